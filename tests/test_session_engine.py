"""
Tests for session plan synthesis and its decision traces.

Uses a small hand-built catalog so every score and weight below can be
computed by hand:

  barbell_bench   horizontal_press  barbell+bench   strength 1.0, muscle 0.8
  dumbbell_bench  horizontal_press  dumbbells       strength 0.6, muscle 0.9
  push_up         horizontal_press  (none)          muscle 0.5, fitter 0.9
  overhead_press  vertical_press    barbell         strength 0.9 (overhead)
  pike_push_up    vertical_press,horizontal_press   (none)   muscle 0.6
"""

import pytest

from lift_scheduler.core.engine.config_loader import rule_tables
from lift_scheduler.core.exercises.base import ExerciseDefinition
from lift_scheduler.core.exercises.registry import ExerciseCatalog
from lift_scheduler.core.models import ExercisePerformance, PerformedSet, ProgramDay, TrainingProfile
from lift_scheduler.core.program_planner import snapshot_profile
from lift_scheduler.core.session_engine import (
    build_adhoc_session,
    build_session_from_program_day,
    estimate_duration_minutes,
    exclusion_reason,
    explain_session_plan,
    score_exercise,
    selection_confidence,
)

RULES = rule_tables({})


# ===========================================================================
# Helpers
# ===========================================================================

def _ex(exercise_id, intents, equipment, load_class, category, affinity, **kwargs) -> ExerciseDefinition:
    return ExerciseDefinition(
        exercise_id=exercise_id,
        display_name=exercise_id.replace("_", " ").title(),
        intents=tuple(intents),
        equipment=tuple(equipment),
        load_class=load_class,
        category=category,
        goal_affinity=tuple(affinity.items()),
        **kwargs,
    )


BENCH = _ex(
    "barbell_bench", ["horizontal_press"], ["barbell", "bench"], "barbell", "compound_heavy",
    {"build_strength": 1.0, "build_muscle": 0.8}, contraindications=("shoulder",), default_weight_kg=60.0,
)
DB_BENCH = _ex(
    "dumbbell_bench", ["horizontal_press"], ["dumbbells"], "dumbbell", "compound",
    {"build_strength": 0.6, "build_muscle": 0.9}, default_weight_kg=20.0,
)
PUSH_UP = _ex(
    "push_up", ["horizontal_press"], [], "bodyweight", "compound",
    {"build_muscle": 0.5, "get_fitter": 0.9},
)
OHP = _ex(
    "overhead_press", ["vertical_press"], ["barbell"], "barbell", "compound",
    {"build_strength": 0.9}, movement_patterns=("overhead",), default_weight_kg=40.0,
)
PIKE = _ex(
    "pike_push_up", ["vertical_press", "horizontal_press"], [], "bodyweight", "isolation",
    {"build_muscle": 0.6},
)

CATALOG = ExerciseCatalog([BENCH, DB_BENCH, PUSH_UP, OHP, PIKE])
FULL_GYM = ["barbell", "bench", "dumbbells"]


def _snapshot(goals=None, equipment=FULL_GYM, **kwargs):
    return snapshot_profile(TrainingProfile(goals=goals or {}, equipment=list(equipment), **kwargs))


def _day(intents, week_index=1, label="Push") -> ProgramDay:
    return ProgramDay(
        id=f"p1-w{week_index}-d1",
        program_id="p1",
        user_id="u1",
        date="2026-01-05",
        week_index=week_index,
        day_index=1,
        weekday=1,
        label=label,
        template_key="push",
        intents=tuple(intents),
    )


# ===========================================================================
# Scoring
# ===========================================================================

class TestScoring:
    def test_primary_intent_full_alignment(self):
        assert score_exercise(BENCH, "horizontal_press", {"build_strength": 1.0}) == pytest.approx(1.0)

    def test_secondary_intent_discounted(self):
        # 0.8 alignment x 0.6 affinity
        assert score_exercise(PIKE, "horizontal_press", {"build_muscle": 1.0}) == pytest.approx(0.48)

    def test_unrelated_intent_scores_zero(self):
        assert score_exercise(BENCH, "vertical_press", {"build_strength": 1.0}) == 0.0

    def test_blended_goals(self):
        goals = {"build_strength": 0.5, "build_muscle": 0.5}
        assert score_exercise(BENCH, "horizontal_press", goals) == pytest.approx(0.9)

    def test_confidence_bounds(self):
        assert selection_confidence(1.0, None) == 1.0
        assert selection_confidence(0.9, 0.9) == 0.5
        assert selection_confidence(1.0, 0.1) == 1.0
        assert 0.5 < selection_confidence(0.9, 0.8) < 1.0


class TestHardFilters:
    def test_missing_equipment(self):
        reason = exclusion_reason(BENCH, _snapshot(equipment=["barbell"]))
        assert reason == "barbell_bench: requires bench"

    def test_forbidden_movement(self):
        reason = exclusion_reason(OHP, _snapshot(forbidden_movements=["overhead"]))
        assert "forbidden movement overhead" in reason

    def test_injury_contraindication(self):
        reason = exclusion_reason(BENCH, _snapshot(injuries=["shoulder"]))
        assert "injury shoulder" in reason

    def test_bodyweight_always_available(self):
        assert exclusion_reason(PUSH_UP, _snapshot(equipment=[])) is None


# ===========================================================================
# Synthesis
# ===========================================================================

class TestBuildSessionFromProgramDay:
    def test_baseline_drives_weight(self):
        # strength only, week 1: 100 x 0.80 = 80 kg; reps round((3+6)/2) = 5; 5 sets
        snapshot = _snapshot({"build_strength": 1}, baselines={"barbell_bench": 100})
        plan = build_session_from_program_day(_day(["horizontal_press"]), snapshot, CATALOG, RULES)

        bench = plan.exercises[0]
        assert bench.exercise_id == "barbell_bench"
        assert bench.priority == "primary"
        assert len(bench.sets) == 5
        assert {s.suggested_weight_kg for s in bench.sets} == {80.0}
        assert {s.target_reps for s in bench.sets} == {5}
        assert bench.sets[0].rest_seconds == 180
        assert [s.index for s in bench.sets] == [1, 2, 3, 4, 5]
        assert "100.0 kg e1RM" in bench.trace.prescription_note

    def test_week_four_is_heavier_with_more_sets(self):
        snapshot = _snapshot({"build_strength": 1}, baselines={"barbell_bench": 100})
        week1 = build_session_from_program_day(_day(["horizontal_press"], 1), snapshot, CATALOG, RULES)
        week4 = build_session_from_program_day(_day(["horizontal_press"], 4), snapshot, CATALOG, RULES)
        # 100 x (0.80 + 3 x 0.025) = 87.5; 5 x 1.15 = 5.75 -> 6 sets
        assert week4.exercises[0].sets[0].suggested_weight_kg == 87.5
        assert len(week4.exercises[0].sets) == 6
        assert week4.exercises[0].sets[0].suggested_weight_kg > week1.exercises[0].sets[0].suggested_weight_kg

    def test_missing_baseline_uses_catalog_default(self):
        plan = build_session_from_program_day(
            _day(["horizontal_press"]), _snapshot({"build_muscle": 1}), CATALOG, RULES
        )
        ex = plan.exercises[0]
        assert ex.exercise_id == "dumbbell_bench"
        assert ex.sets[0].suggested_weight_kg == 20.0
        assert "no baseline" in ex.trace.prescription_note

    def test_filters_recorded_in_trace(self):
        snapshot = _snapshot({"build_strength": 1}, injuries=["shoulder"])
        plan = build_session_from_program_day(_day(["horizontal_press"]), snapshot, CATALOG, RULES)
        trace = plan.exercises[0].trace
        assert plan.exercises[0].exercise_id == "dumbbell_bench"
        assert any("barbell_bench" in c and "shoulder" in c for c in trace.constraints_applied)

    def test_no_exercise_selected_twice(self):
        plan = build_session_from_program_day(
            _day(["horizontal_press", "horizontal_press", "horizontal_press"]),
            _snapshot({"build_strength": 1}),
            CATALOG,
            RULES,
        )
        ids = [ex.exercise_id for ex in plan.exercises]
        assert ids == ["barbell_bench", "dumbbell_bench", "push_up"]
        assert len(set(ids)) == len(ids)

    def test_unfilled_slot_reported(self):
        snapshot = _snapshot({"build_strength": 1}, equipment=[], forbidden_movements=["vertical_press"])
        plan = build_session_from_program_day(
            _day(["vertical_press", "horizontal_press"]), snapshot, CATALOG, RULES
        )
        assert [ex.exercise_id for ex in plan.exercises] == ["push_up"]
        assert len(plan.unfilled_slots) == 1
        assert plan.unfilled_slots[0].startswith("vertical_press")

    def test_first_compound_is_primary_rest_accessory(self):
        plan = build_session_from_program_day(
            _day(["horizontal_press", "horizontal_press"]),
            _snapshot({"build_muscle": 1}, equipment=["dumbbells"]),
            CATALOG,
            RULES,
        )
        assert [ex.priority for ex in plan.exercises] == ["primary", "accessory"]

    def test_alternatives_capped_at_five(self):
        variants = [
            _ex(f"press_variant_{i}", ["horizontal_press"], [], "bodyweight", "compound",
                {"build_muscle": round(0.9 - i * 0.05, 2)})
            for i in range(8)
        ]
        plan = build_session_from_program_day(
            _day(["horizontal_press"]), _snapshot({"build_muscle": 1}), ExerciseCatalog(variants), RULES
        )
        trace = plan.exercises[0].trace
        assert len(trace.ranked_alternatives) == 5
        assert [a.exercise_id for a in trace.ranked_alternatives] == [f"press_variant_{i}" for i in range(1, 6)]
        scores = [a.score for a in trace.ranked_alternatives]
        assert scores == sorted(scores, reverse=True)

    def test_confidence_reflects_winner_lead(self):
        plan = build_session_from_program_day(
            _day(["horizontal_press"]), _snapshot({"build_muscle": 1}), CATALOG, RULES
        )
        trace = plan.exercises[0].trace
        # dumbbell 0.9 vs barbell 0.8
        assert trace.confidence == selection_confidence(0.9, 0.8)
        assert 0.0 <= trace.confidence <= 1.0
        assert "Dumbbell Bench" in trace.selection_reason

    def test_pure_and_deterministic(self):
        snapshot = _snapshot({"build_strength": 2, "lose_fat": 1}, baselines={"barbell_bench": 120})
        day = _day(["horizontal_press", "vertical_press"])
        assert build_session_from_program_day(day, snapshot, CATALOG, RULES) == build_session_from_program_day(
            day, snapshot, CATALOG, RULES
        )

    def test_plan_carries_day_identity(self):
        day = _day(["horizontal_press"])
        plan = build_session_from_program_day(day, _snapshot(), CATALOG, RULES)
        assert plan.program_day_id == day.id
        assert plan.date == day.date
        assert plan.label == "Push"


def _last(exercise_id, *sets, date="2026-01-02") -> dict[str, ExercisePerformance]:
    performed = tuple(PerformedSet(index=i, weight_kg=w, reps=r, rpe=rpe) for i, (w, r, rpe) in enumerate(sets, 1))
    return {exercise_id: ExercisePerformance(exercise_id=exercise_id, session_id="s0", date=date, sets=performed)}


class TestProgressionFromHistory:
    """Strength only: range 3-6, 5 sets in week 1, baseline 100 would prescribe 80 kg."""

    def _bench(self, history, week_index=1):
        snapshot = _snapshot({"build_strength": 1}, baselines={"barbell_bench": 100})
        plan = build_session_from_program_day(
            _day(["horizontal_press"], week_index), snapshot, CATALOG, RULES, history=history
        )
        return plan.exercises[0]

    def test_top_of_range_adds_one_step_and_restarts_reps(self):
        bench = self._bench(_last("barbell_bench", (80, 6, 7), (80, 6, 8)))
        assert {s.suggested_weight_kg for s in bench.sets} == {82.5}
        assert {s.target_reps for s in bench.sets} == {3}
        assert len(bench.sets) == 5
        note = bench.trace.prescription_note
        assert "96.0 kg e1RM" in note
        assert "2026-01-02" in note
        assert "increase" in note

    def test_history_replaces_baseline_even_in_week_four(self):
        # Baseline path would give 87.5 kg in week 4
        bench = self._bench(_last("barbell_bench", (80, 6, 7), (80, 6, 8)), week_index=4)
        assert bench.sets[0].suggested_weight_kg == 82.5

    def test_maintain_adds_a_rep_without_raising_load(self):
        # e1RM 93.3 at 6 reps is 77.8 -> 77.5 kg, under the 80 kg ceiling
        bench = self._bench(_last("barbell_bench", (80, 5, None), (80, 4, None)))
        assert bench.sets[0].target_reps == 6
        assert bench.sets[0].suggested_weight_kg == 77.5

    def test_failed_first_set_drops_one_step(self):
        bench = self._bench(_last("barbell_bench", (80, 2, None), (80, 4, None)))
        assert bench.sets[0].suggested_weight_kg == 77.5
        assert bench.sets[0].target_reps == 3
        assert len(bench.sets) == 5

    def test_repeated_failure_drops_a_set(self):
        bench = self._bench(_last("barbell_bench", (80, 2, None), (80, 2, None)))
        assert len(bench.sets) == 4
        assert "reduce_sets" in bench.trace.prescription_note

    def test_other_exercises_keep_the_baseline(self):
        bench = self._bench(_last("overhead_press", (40, 6, 7)))
        assert bench.sets[0].suggested_weight_kg == 80.0
        assert "100.0 kg e1RM" in bench.trace.prescription_note

    def test_adhoc_session_uses_history(self):
        plan = build_adhoc_session(
            "push",
            catalog=CATALOG,
            snapshot=_snapshot({"build_strength": 1}),
            rules=RULES,
            history=_last("barbell_bench", (80, 6, 7), (80, 6, 8)),
        )
        assert plan.exercises[0].sets[0].suggested_weight_kg == 82.5


class TestAdhocSession:
    def test_default_snapshot_is_bodyweight_only(self):
        plan = build_adhoc_session("push", catalog=CATALOG, rules=RULES)
        assert plan.exercises
        assert all(ex.exercise_id in ("push_up", "pike_push_up") for ex in plan.exercises)
        assert plan.program_day_id is None
        assert plan.week_index == 1

    def test_snapshot_unlocks_equipment(self):
        plan = build_adhoc_session("push", catalog=CATALOG, snapshot=_snapshot({"build_strength": 1}), rules=RULES)
        assert plan.exercises[0].exercise_id == "barbell_bench"

    def test_unknown_template(self):
        with pytest.raises(ValueError, match="Unknown template"):
            build_adhoc_session("arms_day", catalog=CATALOG, rules=RULES)


class TestDurationAndExplain:
    def test_duration_estimate(self):
        snapshot = _snapshot({"build_strength": 1}, baselines={"barbell_bench": 100})
        plan = build_session_from_program_day(_day(["horizontal_press"]), snapshot, CATALOG, RULES)
        # 8 warm-up + 5 cool-down + ceil(5 x (40 + 180) / 60) = 13 + 19
        assert plan.estimated_minutes == 32
        assert estimate_duration_minutes([]) == 13

    def test_explain_mentions_every_decision(self):
        snapshot = _snapshot({"build_strength": 1}, injuries=["shoulder"], equipment=["dumbbells"])
        plan = build_session_from_program_day(
            _day(["horizontal_press", "vertical_press"]), snapshot, CATALOG, RULES
        )
        text = explain_session_plan(plan)
        assert "Dumbbell Bench" in text
        assert "confidence" in text
        assert "alternatives:" in text
        assert "excluded:" in text
        # overhead_press needs a barbell; pike_push_up fills vertical_press
        assert "Pike Push Up" in text
