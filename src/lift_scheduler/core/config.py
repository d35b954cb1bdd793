"""
Configuration constants for the strength-training model.

All adjustable parameters are centralized here for easy tuning.
The rule tables below are the Python defaults; rules.yaml (bundled) and
~/.lift-scheduler/rules.yaml can override them via engine.config_loader.
"""

from dataclasses import dataclass
from typing import Final

# =============================================================================
# GOALS
# =============================================================================

# Fixed goal order; used for normalization, tie-breaking and display.
GOAL_ORDER: Final[tuple[str, ...]] = (
    "build_muscle",
    "build_strength",
    "lose_fat",
    "get_fitter",
)

# Goals that make a push/pull/legs split the natural 3-day choice
MUSCLE_STRENGTH_GOALS: Final[frozenset[str]] = frozenset({"build_muscle", "build_strength"})

GOAL_WEIGHT_TOLERANCE: Final[float] = 1e-6

# =============================================================================
# PROGRAM SHAPE
# =============================================================================

PROGRAM_WEEKS: Final[int] = 4
FREQUENCIES: Final[tuple[str, ...]] = ("once", "twice", "auto")

# Minimum selected days for each muscle-group frequency preference
FREQUENCY_MIN_DAYS: Final[dict[str, int]] = {
    "once": 3,
    "twice": 2,
    "auto": 1,
}

TIME_WINDOWS: Final[tuple[str, ...]] = ("morning", "afternoon", "evening", "any")
EXPERIENCE_LEVELS: Final[tuple[str, ...]] = ("beginner", "intermediate", "advanced")

# =============================================================================
# PERIODIZATION CURVE (fraction of e1RM)
# =============================================================================

# (week-1 intensity, weekly increment) per goal
INTENSITY_CURVE: Final[dict[str, tuple[float, float]]] = {
    "build_strength": (0.80, 0.025),
    "build_muscle": (0.70, 0.020),
    "lose_fat": (0.62, 0.015),
    "get_fitter": (0.60, 0.015),
}

VOLUME_STEP: Final[float] = 0.05  # Added volume fraction per week

# =============================================================================
# PRESCRIPTION RULES PER GOAL
# =============================================================================


@dataclass(frozen=True)
class GoalRuleParams:
    """Rep ranges and set counts that one goal contributes to the blend."""

    primary_reps_low: int
    primary_reps_high: int
    accessory_reps_low: int
    accessory_reps_high: int
    primary_sets: int
    accessory_sets: int


GOAL_RULES: Final[dict[str, GoalRuleParams]] = {
    "build_strength": GoalRuleParams(
        primary_reps_low=3,
        primary_reps_high=6,
        accessory_reps_low=6,
        accessory_reps_high=10,
        primary_sets=5,
        accessory_sets=3,
    ),
    "build_muscle": GoalRuleParams(
        primary_reps_low=6,
        primary_reps_high=10,
        accessory_reps_low=8,
        accessory_reps_high=12,
        primary_sets=4,
        accessory_sets=3,
    ),
    "lose_fat": GoalRuleParams(
        primary_reps_low=10,
        primary_reps_high=15,
        accessory_reps_low=12,
        accessory_reps_high=15,
        primary_sets=3,
        accessory_sets=3,
    ),
    "get_fitter": GoalRuleParams(
        primary_reps_low=8,
        primary_reps_high=12,
        accessory_reps_low=10,
        accessory_reps_high=15,
        primary_sets=3,
        accessory_sets=2,
    ),
}

# Rest in seconds by movement category (heavier compound lifts rest longer)
REST_SECONDS_BY_CATEGORY: Final[dict[str, int]] = {
    "compound_heavy": 180,
    "compound": 120,
    "isolation": 75,
    "conditioning": 60,
}

COMPOUND_CATEGORIES: Final[frozenset[str]] = frozenset({"compound_heavy", "compound"})

# =============================================================================
# EXERCISE SELECTION
# =============================================================================

PRIMARY_INTENT_ALIGNMENT: Final[float] = 1.0
SECONDARY_INTENT_ALIGNMENT: Final[float] = 0.8
MAX_RANKED_ALTERNATIVES: Final[int] = 5
CONFIDENCE_BASE: Final[float] = 0.5  # Confidence when winner and runner-up tie
CONFIDENCE_GAP_SCALE: Final[float] = 2.0  # Confidence gained per unit of relative gap

# =============================================================================
# LOAD INCREMENTS
# =============================================================================

WEIGHT_STEPS_KG: Final[dict[str, float]] = {
    "barbell": 2.5,
    "dumbbell": 1.0,
    "kettlebell": 4.0,
    "machine": 2.5,
    "cable": 2.5,
    "bodyweight": 1.0,
}

# Barbell lower-body lifts move in bigger jumps
LOWER_BODY_BARBELL_STEP_KG: Final[float] = 5.0
LOWER_BODY_INTENTS: Final[frozenset[str]] = frozenset({"knee_dominant", "hip_hinge"})

MINIMUM_LOAD_KG: Final[dict[str, float]] = {
    "barbell": 20.0,  # empty Olympic bar
    "dumbbell": 1.0,
    "kettlebell": 4.0,
    "machine": 5.0,
    "cable": 2.5,
    "bodyweight": 0.0,
}

# =============================================================================
# SESSION DURATION ESTIMATE
# =============================================================================

WARMUP_MINUTES: Final[int] = 8
COOLDOWN_MINUTES: Final[int] = 5
SET_WORK_SECONDS: Final[int] = 40  # Average time under load per set

# =============================================================================
# AUTOREGULATION
# =============================================================================

AUTOREG_RPE_VERY_HIGH: Final[float] = 10.0
AUTOREG_RPE_HIGH: Final[float] = 9.0
AUTOREG_RPE_EASY: Final[float] = 6.0
AUTOREG_REPS_DROP_FRACTION: Final[float] = 0.80  # reps at or below 80% of target
AUTOREG_EXCESS_REPS: Final[int] = 2  # reps above target that count as "strong"
AUTOREG_MAX_STEPS: Final[int] = 1  # Largest weight change, in rounding steps
AUTOREG_MAX_REP_DELTA: Final[int] = 2

REST_ADJUST_VERY_HIGH_RPE: Final[int] = 60
REST_ADJUST_HIGH_RPE: Final[int] = 30
REST_ADJUST_EASY: Final[int] = -15
REST_FLOOR_SECONDS: Final[int] = 45

FATIGUE_HIGH_RPE_SETS: Final[int] = 3  # High-RPE sets that flag session fatigue

# =============================================================================
# PROGRESSION ACROSS SESSIONS
# =============================================================================

PROGRESSION_RPE_CAP: Final[float] = 8.0  # Top-of-range sets above this do not earn a load increase
PROGRESSION_FAILURE_RPE: Final[float] = 9.0  # RPE this high before the last set counts as a failure
PROGRESSION_MAX_INCREASE: Final[float] = 0.10  # Largest session-to-session load increase (fraction)
PROGRESSION_REDUCE_SETS_FAILURES: Final[int] = 2  # Sets below the range that drop a set next time

# =============================================================================
# ANALYTICS
# =============================================================================

TREND_MIN_POINTS: Final[int] = 3
TREND_CHANGE_PCT: Final[float] = 5.0  # Half-over-half change that counts as a trend
HISTORY_DEFAULT_LIMIT: Final[int] = 10

# =============================================================================
# RUNTIME / SYNC
# =============================================================================

ELAPSED_TICK_SECONDS: Final[float] = 1.0
CONNECTIVITY_PROBE_SECONDS: Final[float] = 15.0

REMOTE_MAX_ATTEMPTS: Final[int] = 3
REMOTE_MIN_WAIT_SECONDS: Final[float] = 0.5
REMOTE_MAX_WAIT_SECONDS: Final[float] = 4.0

# =============================================================================
# STORAGE
# =============================================================================

DATA_DIR_NAME: Final[str] = ".lift-scheduler"
DATA_DIR_ENV: Final[str] = "LIFT_SCHEDULER_HOME"
