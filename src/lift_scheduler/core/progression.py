"""
Progression tracking: estimated 1RM, personal records, load increments and
session-to-session double progression.

Pure functions with no I/O; shared by the session engine (prescription
rounding and history-based loads), the autoregulation advisor (one-step
adjustments), the session runtime (end-of-session PR detection) and the
analytics module.
"""

import math
from collections.abc import Iterable

from .config import (
    LOWER_BODY_BARBELL_STEP_KG,
    LOWER_BODY_INTENTS,
    MINIMUM_LOAD_KG,
    PROGRESSION_FAILURE_RPE,
    PROGRESSION_MAX_INCREASE,
    PROGRESSION_REDUCE_SETS_FAILURES,
    PROGRESSION_RPE_CAP,
    WEIGHT_STEPS_KG,
)
from .exercises.base import ExerciseDefinition
from .models import PerformedSet, PersonalRecord, PreviousBest, ProgressionDecision


def estimate_1rm(weight_kg: float, reps: int) -> float:
    """
    Epley estimate of the one-repetition maximum.

    e1RM = weight × (1 + reps / 30), strictly increasing in both weight and reps.

    Args:
        weight_kg: Load lifted
        reps: Repetitions completed

    Returns:
        Estimated 1RM in kg

    Raises:
        ValueError: If weight or reps is negative
    """
    if weight_kg < 0:
        raise ValueError(f"weight must be non-negative, got {weight_kg}")
    if reps < 0:
        raise ValueError(f"reps must be non-negative, got {reps}")
    return weight_kg * (1 + reps / 30)


def weight_step(exercise: ExerciseDefinition) -> float:
    """
    Smallest sensible load change for an exercise.

    Dumbbells move in finer increments than barbells; barbell squat/hinge
    patterns use the larger lower-body jump.
    """
    if exercise.load_class == "barbell" and exercise.primary_intent in LOWER_BODY_INTENTS:
        return LOWER_BODY_BARBELL_STEP_KG
    return WEIGHT_STEPS_KG[exercise.load_class]


def minimum_weight(exercise: ExerciseDefinition) -> float:
    """Lowest loadable weight for the exercise's equipment class."""
    return MINIMUM_LOAD_KG[exercise.load_class]


def round_to_step(weight_kg: float, step: float) -> float:
    """Round to the nearest multiple of *step* (halves round up)."""
    if step <= 0:
        raise ValueError("step must be positive")
    return round(math.floor(weight_kg / step + 0.5) * step, 2)


def adjust_weight(weight_kg: float, exercise: ExerciseDefinition, direction: int) -> float:
    """
    Apply a manual ± adjustment of *direction* steps.

    The result never drops below the equipment minimum.
    """
    step = weight_step(exercise)
    adjusted = round_to_step(weight_kg, step) + direction * step
    return max(minimum_weight(exercise), round(adjusted, 2))


def session_volume(sets: Iterable[PerformedSet]) -> float:
    """Total volume Σ weight × reps."""
    return sum(s.weight_kg * s.reps for s in sets)


def best_performance(sets: list[PerformedSet]) -> PreviousBest | None:
    """Summarize a session's sets into the metrics detect_prs() compares."""
    if not sets:
        return None
    return PreviousBest(
        weight_kg=max(s.weight_kg for s in sets),
        reps=max(s.reps for s in sets),
        e1rm=max(estimate_1rm(s.weight_kg, s.reps) for s in sets),
        volume=session_volume(sets),
    )


def merge_bests(bests: Iterable[PreviousBest | None]) -> PreviousBest | None:
    """Combine per-session bests into the all-time best for each metric."""
    present = [b for b in bests if b is not None]
    if not present:
        return None

    def top(values):
        values = [v for v in values if v is not None]
        return max(values) if values else None

    return PreviousBest(
        weight_kg=top(b.weight_kg for b in present),
        reps=top(b.reps for b in present),
        e1rm=top(b.e1rm for b in present),
        volume=top(b.volume for b in present),
    )


def detect_prs(
    exercise_id: str,
    performed_sets: list[PerformedSet],
    previous_best: PreviousBest | None,
    date: str,
) -> list[PersonalRecord]:
    """
    Compare a session's best values with the previous best.

    A record is emitted only for metrics strictly greater than before; a tie
    is not a PR.  With no previous best at all, every positive metric is a
    first-time PR.  When a previous best exists, metrics it does not carry
    are not compared.

    Args:
        exercise_id: Exercise the sets belong to
        performed_sets: Sets logged this session
        previous_best: Best values on record, or None for a first session
        date: ISO date stamped on the records

    Returns:
        PersonalRecord list in metric order weight, reps, e1rm, volume
    """
    current = best_performance(performed_sets)
    if current is None:
        return []

    metrics = (
        ("weight", current.weight_kg, previous_best.weight_kg if previous_best else None),
        ("reps", current.reps, previous_best.reps if previous_best else None),
        ("e1rm", current.e1rm, previous_best.e1rm if previous_best else None),
        ("volume", current.volume, previous_best.volume if previous_best else None),
    )

    records: list[PersonalRecord] = []
    for metric, value, previous in metrics:
        if value is None or value <= 0:
            continue
        if previous_best is None:
            is_pr = True
        elif previous is None:
            is_pr = False
        else:
            is_pr = value > previous
        if is_pr:
            records.append(
                PersonalRecord(
                    exercise_id=exercise_id,
                    metric=metric,
                    value=round(float(value), 2),
                    previous_value=previous,
                    date=date,
                )
            )
    return records


# =============================================================================
# SESSION-TO-SESSION PROGRESSION
# =============================================================================


def load_for_reps(e1rm: float, reps: int) -> float:
    """Inverse Epley: the load that matches *e1rm* at *reps* repetitions."""
    if reps < 0:
        raise ValueError(f"reps must be non-negative, got {reps}")
    return e1rm / (1 + reps / 30)


def best_set(sets: Iterable[PerformedSet]) -> PerformedSet | None:
    """The set with the highest estimated 1RM; the earliest one wins a tie."""
    best = None
    for s in sets:
        if best is None or estimate_1rm(s.weight_kg, s.reps) > estimate_1rm(best.weight_kg, best.reps):
            best = s
    return best


def evaluate_progression(
    performed_sets: list[PerformedSet],
    rep_range: tuple[int, int],
    rpe_cap: float = PROGRESSION_RPE_CAP,
) -> ProgressionDecision:
    """
    Double-progression verdict on an exercise's sets from its last session.

    - increase: every set reached the top of the rep range at RPE <= rpe_cap
      (sets without an RPE count as acceptable)
    - decrease: the first set fell short of the range, or a set before the
      last one was at RPE 9 or more
    - reduce_sets: as decrease, with two or more sets short of the range
    - maintain: anything else

    Args:
        performed_sets: Sets logged for the exercise in one session
        rep_range: (low, high) prescribed rep range
        rpe_cap: Highest RPE that still earns a load increase

    Returns:
        ProgressionDecision
    """
    if not performed_sets:
        return "maintain"
    low, high = rep_range
    sets = sorted(performed_sets, key=lambda s: s.index)

    if all(s.reps >= high and (s.rpe is None or s.rpe <= rpe_cap) for s in sets):
        return "increase"

    early_grind = any(s.rpe is not None and s.rpe >= PROGRESSION_FAILURE_RPE for s in sets[:-1])
    if sets[0].reps < low or early_grind:
        short = sum(1 for s in sets if s.reps < low)
        return "reduce_sets" if short >= PROGRESSION_REDUCE_SETS_FAILURES else "decrease"
    return "maintain"


def next_weight(
    current_kg: float,
    decision: ProgressionDecision,
    exercise: ExerciseDefinition,
    max_increase: float = PROGRESSION_MAX_INCREASE,
) -> float:
    """
    Heaviest load the next session may prescribe after *decision*.

    increase adds one weight step but never more than *max_increase* of the
    current load; decrease removes one step (not below the equipment
    minimum); maintain and reduce_sets keep the load.  Unloaded work stays
    unloaded.
    """
    if current_kg <= 0:
        return current_kg
    if decision == "increase":
        cap = round_to_step(current_kg * (1 + max_increase), weight_step(exercise))
        return max(current_kg, min(adjust_weight(current_kg, exercise, 1), cap))
    if decision == "decrease":
        return adjust_weight(current_kg, exercise, -1)
    return current_kg


def next_reps(
    current_reps: int,
    rep_range: tuple[int, int],
    decision: ProgressionDecision,
    loaded: bool = True,
) -> int:
    """
    Rep target for the next session.

    A load increase restarts at the bottom of the range; unloaded work has
    no load to add, so it adds a rep instead.  maintain works one rep toward
    the top of the range; decrease and reduce_sets restart at the bottom.
    """
    low, high = rep_range
    if decision == "increase":
        return low if loaded else current_reps + 1
    if decision == "maintain":
        return max(low, min(current_reps + 1, high))
    return low
