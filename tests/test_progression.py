"""
Unit tests for progression tracking.

Covers the e1RM estimate, load steps and rounding, personal-record
detection against a previous best, and session-to-session double
progression.
"""

import pytest

from lift_scheduler.core.exercises.base import ExerciseDefinition
from lift_scheduler.core.models import PerformedSet, PreviousBest
from lift_scheduler.core.progression import (
    adjust_weight,
    best_performance,
    best_set,
    detect_prs,
    estimate_1rm,
    evaluate_progression,
    load_for_reps,
    merge_bests,
    next_reps,
    next_weight,
    round_to_step,
    session_volume,
    weight_step,
)


def _exercise(load_class: str, intent: str = "horizontal_press", category: str = "compound") -> ExerciseDefinition:
    return ExerciseDefinition(
        exercise_id=f"{load_class}_{intent}",
        display_name=f"{load_class} {intent}",
        intents=(intent,),
        equipment=(),
        load_class=load_class,
        category=category,
        goal_affinity=(("build_strength", 1.0),),
    )


def _set(index: int, weight: float, reps: int, rpe: float | None = None) -> PerformedSet:
    return PerformedSet(index=index, weight_kg=weight, reps=reps, rpe=rpe)


class TestEstimate1RM:
    def test_epley_reference_value(self):
        assert estimate_1rm(100, 5) == pytest.approx(116.67, abs=0.01)

    def test_zero_reps_is_the_weight(self):
        assert estimate_1rm(80, 0) == pytest.approx(80)

    def test_strictly_increasing_in_weight(self):
        values = [estimate_1rm(w, 5) for w in (40, 60, 80, 100, 120)]
        assert all(a < b for a, b in zip(values, values[1:]))

    def test_strictly_increasing_in_reps(self):
        values = [estimate_1rm(100, r) for r in range(1, 15)]
        assert all(a < b for a, b in zip(values, values[1:]))

    @pytest.mark.parametrize("weight,reps", [(-1, 5), (100, -1)])
    def test_negative_input_rejected(self, weight, reps):
        with pytest.raises(ValueError):
            estimate_1rm(weight, reps)


class TestWeightSteps:
    def test_dumbbell_finer_than_barbell(self):
        assert weight_step(_exercise("dumbbell")) < weight_step(_exercise("barbell"))

    def test_lower_body_barbell_uses_larger_step(self):
        squat = _exercise("barbell", intent="knee_dominant", category="compound_heavy")
        bench = _exercise("barbell", intent="horizontal_press", category="compound_heavy")
        assert weight_step(squat) == 5.0
        assert weight_step(bench) == 2.5

    def test_round_to_step(self):
        assert round_to_step(81.2, 2.5) == 80.0
        assert round_to_step(81.25, 2.5) == 82.5
        assert round_to_step(23.4, 1.0) == 23.0

    def test_round_to_step_rejects_zero_step(self):
        with pytest.raises(ValueError):
            round_to_step(50, 0)

    def test_adjust_weight_up_and_down(self):
        bench = _exercise("barbell")
        assert adjust_weight(60, bench, +1) == 62.5
        assert adjust_weight(60, bench, -1) == 57.5

    def test_adjust_weight_never_below_bar(self):
        bench = _exercise("barbell")
        assert adjust_weight(20, bench, -1) == 20.0


class TestBestPerformance:
    def test_empty_sets_have_no_best(self):
        assert best_performance([]) is None

    def test_summarizes_sets(self):
        best = best_performance([_set(1, 100, 5), _set(2, 90, 8)])
        assert best.weight_kg == 100
        assert best.reps == 8
        assert best.e1rm == pytest.approx(max(estimate_1rm(100, 5), estimate_1rm(90, 8)))
        assert best.volume == pytest.approx(session_volume([_set(1, 100, 5), _set(2, 90, 8)]))

    def test_merge_takes_max_per_metric(self):
        merged = merge_bests([
            PreviousBest(weight_kg=100, reps=5, e1rm=116.7, volume=500),
            None,
            PreviousBest(weight_kg=90, reps=10, e1rm=120.0, volume=None),
        ])
        assert merged == PreviousBest(weight_kg=100, reps=10, e1rm=120.0, volume=500)

    def test_merge_of_nothing_is_none(self):
        assert merge_bests([None, None]) is None


class TestDetectPRs:
    def test_tie_is_not_a_pr(self):
        sets = [_set(1, 100, 5)]
        previous = best_performance(sets)
        assert detect_prs("bench", sets, previous, "2026-01-05") == []

    def test_strictly_greater_is_a_pr(self):
        previous = PreviousBest(weight_kg=100, reps=5, e1rm=estimate_1rm(100, 5), volume=500)
        prs = detect_prs("bench", [_set(1, 102.5, 5)], previous, "2026-01-05")
        metrics = {pr.metric for pr in prs}
        assert metrics == {"weight", "e1rm", "volume"}
        weight_pr = next(pr for pr in prs if pr.metric == "weight")
        assert weight_pr.value == 102.5
        assert weight_pr.previous_value == 100

    def test_first_session_records_every_positive_metric(self):
        prs = detect_prs("bench", [_set(1, 60, 8)], None, "2026-01-05")
        assert [pr.metric for pr in prs] == ["weight", "reps", "e1rm", "volume"]
        assert all(pr.previous_value is None for pr in prs)

    def test_bodyweight_first_session_skips_zero_metrics(self):
        prs = detect_prs("push_up", [_set(1, 0, 15)], None, "2026-01-05")
        assert [pr.metric for pr in prs] == ["reps"]

    def test_only_e1rm_pr_against_partial_previous_best(self):
        """100 x 5 against a best of 100 kg / 110 e1RM: the weight ties, e1RM improves."""
        previous = PreviousBest(weight_kg=100, e1rm=110)
        prs = detect_prs("bench", [_set(1, 100, 5)], previous, "2026-01-05")
        assert len(prs) == 1
        assert prs[0].metric == "e1rm"
        assert prs[0].value == pytest.approx(116.67, abs=0.01)
        assert prs[0].previous_value == 110

    def test_no_sets_no_prs(self):
        assert detect_prs("bench", [], None, "2026-01-05") == []


# =============================================================================
# Double progression
# =============================================================================

STRENGTH_RANGE = (3, 6)


class TestEvaluateProgression:
    def test_no_sets_maintains(self):
        assert evaluate_progression([], STRENGTH_RANGE) == "maintain"

    def test_top_of_range_at_moderate_rpe_increases(self):
        sets = [_set(1, 80, 6, rpe=7), _set(2, 80, 6, rpe=8)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "increase"

    def test_missing_rpe_does_not_block_increase(self):
        sets = [_set(1, 80, 6), _set(2, 80, 7)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "increase"

    def test_rpe_above_cap_holds_the_load(self):
        sets = [_set(1, 80, 6, rpe=8.5), _set(2, 80, 6, rpe=8)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "maintain"

    def test_inside_range_maintains(self):
        sets = [_set(1, 80, 5), _set(2, 80, 4)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "maintain"

    def test_first_set_short_of_range_decreases(self):
        sets = [_set(1, 80, 2), _set(2, 80, 4)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "decrease"

    def test_grinding_before_the_last_set_decreases(self):
        sets = [_set(1, 80, 5, rpe=9), _set(2, 80, 5, rpe=9)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "decrease"

    def test_grinding_only_the_last_set_maintains(self):
        sets = [_set(1, 80, 5, rpe=7), _set(2, 80, 5, rpe=9.5)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "maintain"

    def test_two_short_sets_reduce_sets(self):
        sets = [_set(1, 80, 2), _set(2, 80, 2), _set(3, 80, 3)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "reduce_sets"

    def test_sets_are_judged_in_index_order(self):
        sets = [_set(2, 80, 2), _set(1, 80, 5)]
        assert evaluate_progression(sets, STRENGTH_RANGE) == "maintain"


class TestNextWeight:
    def test_increase_adds_one_step(self):
        assert next_weight(80, "increase", _exercise("barbell")) == 82.5

    def test_increase_capped_at_ten_percent(self):
        kettlebell = _exercise("kettlebell")
        # One 4 kg step on 16 kg would be +25%
        assert next_weight(16, "increase", kettlebell) == 16

    def test_decrease_removes_one_step(self):
        assert next_weight(80, "decrease", _exercise("barbell")) == 77.5

    def test_decrease_never_below_equipment_minimum(self):
        assert next_weight(20, "decrease", _exercise("barbell")) == 20.0

    @pytest.mark.parametrize("decision", ["maintain", "reduce_sets"])
    def test_hold_decisions_keep_the_load(self, decision):
        assert next_weight(80, decision, _exercise("barbell")) == 80

    def test_unloaded_stays_unloaded(self):
        assert next_weight(0, "increase", _exercise("bodyweight")) == 0


class TestNextReps:
    def test_loaded_increase_restarts_at_bottom(self):
        assert next_reps(6, STRENGTH_RANGE, "increase") == 3

    def test_unloaded_increase_adds_a_rep(self):
        assert next_reps(8, (6, 10), "increase", loaded=False) == 9

    def test_maintain_works_toward_the_top(self):
        assert next_reps(5, STRENGTH_RANGE, "maintain") == 6
        assert next_reps(6, STRENGTH_RANGE, "maintain") == 6
        assert next_reps(1, STRENGTH_RANGE, "maintain") == 3

    @pytest.mark.parametrize("decision", ["decrease", "reduce_sets"])
    def test_failure_restarts_at_bottom(self, decision):
        assert next_reps(5, STRENGTH_RANGE, decision) == 3


class TestLoadForReps:
    def test_inverts_epley(self):
        assert load_for_reps(estimate_1rm(100, 5), 5) == pytest.approx(100)

    def test_more_reps_less_load(self):
        assert load_for_reps(100, 8) < load_for_reps(100, 3)

    def test_negative_reps_rejected(self):
        with pytest.raises(ValueError):
            load_for_reps(100, -1)

    def test_best_set_prefers_highest_e1rm(self):
        sets = [_set(1, 80, 5), _set(2, 85, 3), _set(3, 70, 10)]
        assert best_set(sets).index == 3

    def test_best_set_tie_keeps_earliest(self):
        assert best_set([_set(1, 80, 5), _set(2, 80, 5)]).index == 1
        assert best_set([]) is None
