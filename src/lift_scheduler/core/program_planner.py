"""
Four-week program planning.

Turns a TrainingProfile plus selected weekdays into an abstract plan:
for each week 1..4 a day archetype per weekday and the week's intensity
and volume scalars.  The plan never decreases load from one week to the
next.
"""

import logging

from .config import (
    FREQUENCY_MIN_DAYS,
    GOAL_ORDER,
    MUSCLE_STRENGTH_GOALS,
    PROGRAM_WEEKS,
)
from .engine.config_loader import RuleTables, rule_tables
from .models import (
    DayTemplate,
    FourWeekPlan,
    ProfileSnapshot,
    TrainingProfile,
    WeekPlan,
    validate_iso_date,
)

logger = logging.getLogger(__name__)

# =============================================================================
# DAY ARCHETYPES
# =============================================================================

# template_key -> (label, ordered intent slots)
DAY_TEMPLATES: dict[str, tuple[str, tuple[str, ...]]] = {
    "push": ("Push", ("horizontal_press", "vertical_press", "horizontal_press", "elbow_extension")),
    "pull": ("Pull", ("vertical_pull", "horizontal_pull", "horizontal_pull", "elbow_flexion")),
    "legs": ("Legs", ("knee_dominant", "hip_hinge", "single_leg", "trunk_stability")),
    "upper": ("Upper", ("horizontal_press", "horizontal_pull", "vertical_press", "vertical_pull", "elbow_flexion")),
    "lower": ("Lower", ("knee_dominant", "hip_hinge", "single_leg", "trunk_stability")),
    "upper_strength": ("Upper Strength", ("horizontal_press", "horizontal_pull", "vertical_press", "vertical_pull")),
    "lower_strength": ("Lower Strength", ("knee_dominant", "hip_hinge", "single_leg")),
    "upper_hypertrophy": (
        "Upper Hypertrophy",
        ("horizontal_press", "vertical_pull", "vertical_press", "horizontal_pull", "elbow_extension", "elbow_flexion"),
    ),
    "lower_hypertrophy": ("Lower Hypertrophy", ("knee_dominant", "single_leg", "hip_hinge", "trunk_stability")),
    "full_body_a": ("Full Body A", ("knee_dominant", "horizontal_press", "horizontal_pull", "trunk_stability")),
    "full_body_b": ("Full Body B", ("hip_hinge", "vertical_press", "vertical_pull", "carry")),
    "full_body_c": ("Full Body C", ("single_leg", "horizontal_press", "vertical_pull", "conditioning")),
    "conditioning": ("Conditioning", ("conditioning", "carry", "trunk_stability", "single_leg")),
}

_PPL = ["push", "pull", "legs"]
_FULL_BODY = ["full_body_a", "full_body_b", "full_body_c"]
_UPPER_LOWER_4 = ["upper_strength", "lower_strength", "upper_hypertrophy", "lower_hypertrophy"]


# =============================================================================
# GOALS
# =============================================================================


def normalize_goals(goals: dict[str, float]) -> dict[str, float]:
    """
    Re-normalize goal weights so they sum to 1.0.

    Missing goals count as 0.  If every weight is 0 the goals are treated as
    equally weighted.

    Args:
        goals: Raw goal weights (non-negative)

    Returns:
        Dict over GOAL_ORDER with weights summing to 1.0

    Raises:
        ValueError: If a weight is negative or a goal is unknown
    """
    for goal, weight in goals.items():
        if goal not in GOAL_ORDER:
            raise ValueError(f"Unknown goal {goal!r}")
        if weight < 0:
            raise ValueError(f"Goal weight for {goal!r} must be non-negative")

    total = sum(goals.get(g, 0.0) for g in GOAL_ORDER)
    if total <= 0:
        equal = 1.0 / len(GOAL_ORDER)
        return {g: equal for g in GOAL_ORDER}
    return {g: goals.get(g, 0.0) / total for g in GOAL_ORDER}


def dominant_goal(goals: dict[str, float]) -> str:
    """Highest-weighted goal; ties go to the earlier goal in GOAL_ORDER."""
    return max(GOAL_ORDER, key=lambda g: (goals.get(g, 0.0), -GOAL_ORDER.index(g)))


def snapshot_profile(profile: TrainingProfile, weekdays: list[int] | None = None) -> ProfileSnapshot:
    """
    Take an immutable copy of *profile* for a new program.

    Goals are normalized; list and dict fields are copied into tuples so no
    later edit of the profile can reach the snapshot.
    """
    goals = normalize_goals(profile.goals)
    days = sorted(set(weekdays if weekdays is not None else profile.weekdays))
    return ProfileSnapshot(
        goals=tuple((g, goals[g]) for g in GOAL_ORDER),
        equipment=tuple(sorted(set(profile.equipment))),
        injuries=tuple(sorted(set(profile.injuries))),
        forbidden_movements=tuple(sorted(set(profile.forbidden_movements))),
        baselines=tuple(sorted((k, float(v)) for k, v in profile.baselines.items())),
        weekdays=tuple(days),
        frequency=profile.frequency,
        time_window=profile.time_window,
        experience=profile.experience,
    )


def default_snapshot() -> ProfileSnapshot:
    """Snapshot used for ad hoc sessions: equal goals, no equipment or constraints."""
    goals = normalize_goals({})
    return ProfileSnapshot(goals=tuple((g, goals[g]) for g in GOAL_ORDER))


# =============================================================================
# PERIODIZATION
# =============================================================================


def week_intensity(week_index: int, goals: dict[str, float], rules: RuleTables | None = None) -> float:
    """
    Fraction of e1RM prescribed in a given week for a goal mix.

    intensity = Σ_g w_g × (base_g + (week - 1) × step_g); steps are never
    negative, so the value is non-decreasing across weeks.
    """
    if not 1 <= week_index <= PROGRAM_WEEKS:
        raise ValueError(f"week_index must be 1..{PROGRAM_WEEKS}, got {week_index}")
    if rules is None:
        rules = rule_tables()
    total = 0.0
    for goal, weight in goals.items():
        base, step = rules.intensity_curve[goal]
        total += weight * (base + (week_index - 1) * step)
    return round(total, 4)


def week_volume(week_index: int, rules: RuleTables | None = None) -> float:
    """Set-count multiplier for a week (1.0 in week 1, growing by volume_step)."""
    if rules is None:
        rules = rule_tables()
    return round(1.0 + (week_index - 1) * rules.volume_step, 4)


# =============================================================================
# SPLIT SELECTION
# =============================================================================


def resolve_frequency(requested: str, days_per_week: int) -> tuple[str, str | None]:
    """
    Check the muscle-group frequency preference against the schedule.

    Returns:
        (effective frequency, warning message or None).  An infeasible
        preference is downgraded to "auto" rather than rejected.
    """
    required = FREQUENCY_MIN_DAYS[requested]
    if days_per_week >= required:
        return requested, None
    warning = (
        f"Frequency '{requested}' needs at least {required} training days per week "
        f"but only {days_per_week} selected; using 'auto' instead."
    )
    return "auto", warning


def determine_split(days_per_week: int, frequency: str, goals: dict[str, float]) -> list[str]:
    """
    Pick template keys for each training day of the week (Mon-first order).

    Args:
        days_per_week: Number of selected weekdays (1..7)
        frequency: Effective frequency (already feasibility-checked)
        goals: Normalized goal weights

    Returns:
        List of template keys, one per selected weekday
    """
    n = days_per_week

    if frequency == "once":
        # Each pattern once; extra days become low-overlap conditioning days
        return _PPL + ["conditioning"] * (n - 3)

    if frequency == "twice":
        if n == 2:
            return _FULL_BODY[:2]
        if n == 3:
            return list(_FULL_BODY)
        if n == 4:
            return list(_UPPER_LOWER_4)
        if n == 5:
            return ["upper", "lower", "push", "pull", "legs"]
        return (_PPL * 2 + ["conditioning"])[:n]

    # auto
    if n == 1:
        return ["full_body_a"]
    if n == 2:
        return ["upper", "lower"]
    if n == 3:
        return list(_PPL) if dominant_goal(goals) in MUSCLE_STRENGTH_GOALS else list(_FULL_BODY)
    if n == 4:
        return list(_UPPER_LOWER_4)
    if n == 5:
        return ["push", "pull", "legs", "upper", "lower"]
    return (_PPL * 2 + ["conditioning"])[:n]


def build_four_week_plan(
    profile: TrainingProfile,
    weekdays: list[int],
    start_date: str,
    rules: RuleTables | None = None,
) -> FourWeekPlan:
    """
    Build the abstract 4-week plan.

    The same weekly structure repeats each week; intensity and volume rise
    week over week.  An infeasible frequency preference is downgraded to
    "auto" with a warning recorded on the plan.

    Args:
        profile: Training profile (goals are normalized here)
        weekdays: Selected weekdays, 1=Mon .. 7=Sun
        start_date: ISO date of the first program week
        rules: Rule tables; loaded from YAML when None

    Returns:
        FourWeekPlan

    Raises:
        ValueError: If weekdays are empty/out of range or start_date is invalid
    """
    if not weekdays:
        raise ValueError("At least one weekday must be selected")
    for d in weekdays:
        if not isinstance(d, int) or not 1 <= d <= 7:
            raise ValueError(f"Weekday must be 1 (Mon) .. 7 (Sun), got {d!r}")
    validate_iso_date(start_date)
    if rules is None:
        rules = rule_tables()

    days = sorted(set(weekdays))
    goals = normalize_goals(profile.goals)

    frequency, warning = resolve_frequency(profile.frequency, len(days))
    warnings: list[str] = []
    if warning:
        logger.warning(warning)
        warnings.append(warning)

    split = determine_split(len(days), frequency, goals)
    templates = tuple(
        DayTemplate(
            weekday=weekday,
            label=DAY_TEMPLATES[key][0],
            template_key=key,
            intents=DAY_TEMPLATES[key][1],
        )
        for weekday, key in zip(days, split)
    )

    weeks = tuple(
        WeekPlan(
            week_index=w,
            intensity=week_intensity(w, goals, rules),
            volume=week_volume(w, rules),
            days=templates,
        )
        for w in range(1, PROGRAM_WEEKS + 1)
    )

    logger.debug(
        "Planned %d-day split %s from %s (frequency %s)",
        len(days), split, start_date, frequency,
    )

    return FourWeekPlan(
        start_date=start_date,
        weekdays=tuple(days),
        goals=tuple((g, goals[g]) for g in GOAL_ORDER),
        frequency=frequency,
        requested_frequency=profile.frequency,
        weeks=weeks,
        warnings=tuple(warnings),
    )
