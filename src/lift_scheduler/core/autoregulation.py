"""
In-session autoregulation.

After each logged set, suggest an adjustment for the next pending set of
the same exercise only.  Adjustments are bounded to AUTOREG_MAX_STEPS
weight steps and AUTOREG_MAX_REP_DELTA reps from the originally planned
values and never touch sets that are already logged.

Every adjustment carries a fingerprint of the planned and performed sets it
was computed from; is_current() rejects it once either list changes.
"""

import hashlib
from dataclasses import dataclass

from .config import (
    AUTOREG_EXCESS_REPS,
    AUTOREG_MAX_REP_DELTA,
    AUTOREG_MAX_STEPS,
    AUTOREG_REPS_DROP_FRACTION,
    AUTOREG_RPE_EASY,
    AUTOREG_RPE_HIGH,
    AUTOREG_RPE_VERY_HIGH,
    FATIGUE_HIGH_RPE_SETS,
    REST_ADJUST_EASY,
    REST_ADJUST_HIGH_RPE,
    REST_ADJUST_VERY_HIGH_RPE,
    REST_FLOOR_SECONDS,
)
from .models import PerformedSet, PlannedSet


@dataclass(frozen=True)
class SetAdjustment:
    """Suggested change to one pending set."""

    set_index: int
    new_target_reps: int
    new_suggested_weight_kg: float
    rationale: str
    rule_id: str
    basis: str  # fingerprint of the inputs; see plan_fingerprint()


def plan_fingerprint(planned_sets: tuple[PlannedSet, ...] | list[PlannedSet], performed_sets: list[PerformedSet]) -> str:
    """Stable digest of the planned and performed sets of one exercise."""
    planned = ",".join(f"{s.index}:{s.target_reps}:{s.suggested_weight_kg}" for s in planned_sets)
    performed = ",".join(
        f"{p.index}:{p.weight_kg}:{p.reps}:{p.rpe}" for p in sorted(performed_sets, key=lambda p: p.index)
    )
    return hashlib.sha1(f"{planned}|{performed}".encode()).hexdigest()[:16]


def _pick_rule(completed: PerformedSet, target_reps: int) -> tuple[str, int, int, str] | None:
    """Return (rule_id, weight steps, rep delta, rationale) or None."""
    rpe = completed.rpe
    if rpe is not None and rpe >= AUTOREG_RPE_VERY_HIGH:
        return "VERY_HIGH_RPE", -1, -1, f"RPE {rpe:g} was maximal; lighten the next set"
    if rpe is not None and rpe >= AUTOREG_RPE_HIGH:
        return "HIGH_RPE", -1, 0, f"RPE {rpe:g} is close to failure; reduce load slightly"
    if target_reps > 0 and completed.reps <= target_reps * AUTOREG_REPS_DROP_FRACTION:
        return (
            "REPS_DROP",
            -1,
            0,
            f"Got {completed.reps} of {target_reps} target reps; reduce load to stay in range",
        )
    if (
        completed.reps >= target_reps + AUTOREG_EXCESS_REPS
        and rpe is not None
        and rpe <= AUTOREG_RPE_EASY
    ):
        return (
            "STRONG_PERFORMANCE",
            1,
            0,
            f"{completed.reps} reps at RPE {rpe:g} beat the target; add load",
        )
    return None


def advise_next_set(
    planned_sets: tuple[PlannedSet, ...] | list[PlannedSet],
    performed_sets: list[PerformedSet],
    just_completed: PerformedSet,
    step: float,
    min_weight: float = 0.0,
) -> SetAdjustment | None:
    """
    Compute an adjustment for the first pending set, if one is warranted.

    Args:
        planned_sets: The exercise's planned sets (frozen at session start)
        performed_sets: All performed sets, including just_completed
        just_completed: The set that was just logged
        step: Weight step for the exercise
        min_weight: Lowest loadable weight

    Returns:
        SetAdjustment for the lowest unperformed index, or None when no set is
        pending or no rule fires
    """
    done = {p.index for p in performed_sets} | {just_completed.index}
    pending = sorted((s for s in planned_sets if s.index not in done), key=lambda s: s.index)
    if not pending:
        return None
    next_set = pending[0]

    reference = next((s for s in planned_sets if s.index == just_completed.index), next_set)
    rule = _pick_rule(just_completed, reference.target_reps)
    if rule is None:
        return None
    rule_id, steps, rep_delta, rationale = rule

    steps = max(-AUTOREG_MAX_STEPS, min(AUTOREG_MAX_STEPS, steps))
    planned_weight = next_set.suggested_weight_kg
    new_weight = round(planned_weight + steps * step, 2)
    if planned_weight <= 0 or new_weight < min_weight:
        # Unloaded or already at the minimum: trade the load step for a rep
        new_weight = planned_weight
        rep_delta += steps

    rep_delta = max(-AUTOREG_MAX_REP_DELTA, min(AUTOREG_MAX_REP_DELTA, rep_delta))
    new_reps = max(1, next_set.target_reps + rep_delta)

    if new_weight == planned_weight and new_reps == next_set.target_reps:
        return None

    all_performed = [p for p in performed_sets if p.index != just_completed.index] + [just_completed]
    return SetAdjustment(
        set_index=next_set.index,
        new_target_reps=new_reps,
        new_suggested_weight_kg=new_weight,
        rationale=rationale,
        rule_id=rule_id,
        basis=plan_fingerprint(planned_sets, all_performed),
    )


def is_current(
    adjustment: SetAdjustment,
    planned_sets: tuple[PlannedSet, ...] | list[PlannedSet],
    performed_sets: list[PerformedSet],
) -> bool:
    """True while the adjustment's inputs are unchanged and its target set is still pending."""
    if adjustment.set_index in {p.index for p in performed_sets}:
        return False
    return adjustment.basis == plan_fingerprint(planned_sets, performed_sets)


def adjusted_rest_seconds(base_rest: int, rpe: float | None) -> int:
    """Rest before the next set, lengthened after hard sets and shortened after easy ones."""
    if rpe is None:
        return base_rest
    if rpe >= AUTOREG_RPE_VERY_HIGH:
        rest = base_rest + REST_ADJUST_VERY_HIGH_RPE
    elif rpe >= AUTOREG_RPE_HIGH:
        rest = base_rest + REST_ADJUST_HIGH_RPE
    elif rpe <= AUTOREG_RPE_EASY:
        rest = base_rest + REST_ADJUST_EASY
    else:
        rest = base_rest
    return max(REST_FLOOR_SECONDS, rest)


def detect_session_fatigue(performed_sets: list[PerformedSet]) -> bool:
    """True once enough sets in the session were logged at high RPE."""
    hard = sum(1 for p in performed_sets if p.rpe is not None and p.rpe >= AUTOREG_RPE_HIGH)
    return hard >= FATIGUE_HIGH_RPE_SETS
