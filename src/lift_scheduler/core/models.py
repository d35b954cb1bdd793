"""
Data models for lift-scheduler.

All core dataclasses representing profiles, programs, session plans,
logged sessions and queued offline operations.  Values that must never
change after capture (profile snapshots, planned sets, decision traces)
are frozen dataclasses built from tuples.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from .config import (
    EXPERIENCE_LEVELS,
    FREQUENCIES,
    GOAL_ORDER,
    GOAL_WEIGHT_TOLERANCE,
    PROGRAM_WEEKS,
    TIME_WINDOWS,
)

Goal = Literal["build_muscle", "build_strength", "lose_fat", "get_fitter"]
Frequency = Literal["once", "twice", "auto"]
ProgramStatus = Literal["active", "completed", "cancelled"]
PriorityTier = Literal["primary", "accessory"]
SessionMode = Literal["timed", "manual"]
PRMetric = Literal["weight", "reps", "e1rm", "volume"]
ProgressionDecision = Literal["increase", "maintain", "decrease", "reduce_sets"]
TrendDirection = Literal["increasing", "decreasing", "stable", "insufficient_data"]


def validate_iso_date(date_str: str) -> None:
    """Validate date string is ISO format YYYY-MM-DD."""
    if not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        raise ValueError(f"Invalid date format: {date_str}. Expected YYYY-MM-DD")
    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Invalid date: {date_str}") from e


def _validate_weekdays(weekdays) -> None:
    if not weekdays:
        raise ValueError("At least one weekday must be selected")
    for d in weekdays:
        if not isinstance(d, int) or not 1 <= d <= 7:
            raise ValueError(f"Weekday must be 1 (Mon) .. 7 (Sun), got {d!r}")


# =============================================================================
# PROFILE
# =============================================================================


@dataclass
class TrainingProfile:
    """
    Editable user profile.

    ``goals`` maps each goal in GOAL_ORDER to a non-negative weight; missing
    goals count as 0.  Weights need not sum to 1 here, the planner normalizes.
    ``baselines`` maps exercise_id to a known estimated 1RM in kg.
    """

    goals: dict[str, float] = field(default_factory=dict)
    equipment: list[str] = field(default_factory=list)
    injuries: list[str] = field(default_factory=list)
    forbidden_movements: list[str] = field(default_factory=list)
    baselines: dict[str, float] = field(default_factory=dict)
    weekdays: list[int] = field(default_factory=lambda: [1, 3, 5])
    frequency: Frequency = "auto"
    time_window: str = "any"
    experience: str = "intermediate"

    def __post_init__(self) -> None:
        """Validate profile data."""
        for goal, weight in self.goals.items():
            if goal not in GOAL_ORDER:
                raise ValueError(f"Unknown goal {goal!r}. Valid goals: {', '.join(GOAL_ORDER)}")
            if weight < 0:
                raise ValueError(f"Goal weight for {goal!r} must be non-negative, got {weight}")

        _validate_weekdays(self.weekdays)
        if len(set(self.weekdays)) != len(self.weekdays):
            raise ValueError(f"Weekdays must be distinct, got {self.weekdays}")

        if self.frequency not in FREQUENCIES:
            raise ValueError(f"Invalid frequency: {self.frequency!r}")
        if self.time_window not in TIME_WINDOWS:
            raise ValueError(f"Invalid time_window: {self.time_window!r}")
        if self.experience not in EXPERIENCE_LEVELS:
            raise ValueError(f"Invalid experience level: {self.experience!r}")

        for ex_id, e1rm in self.baselines.items():
            if e1rm <= 0:
                raise ValueError(f"baselines[{ex_id!r}] must be positive, got {e1rm}")


@dataclass(frozen=True)
class ProfileSnapshot:
    """
    Immutable copy of a TrainingProfile taken when a program is created.

    Goals are stored normalized, in GOAL_ORDER.  Later profile edits never
    reach a snapshot; use goal_weights()/baseline_for() for lookups.
    """

    goals: tuple[tuple[str, float], ...]
    equipment: tuple[str, ...] = ()
    injuries: tuple[str, ...] = ()
    forbidden_movements: tuple[str, ...] = ()
    baselines: tuple[tuple[str, float], ...] = ()
    weekdays: tuple[int, ...] = ()
    frequency: str = "auto"
    time_window: str = "any"
    experience: str = "intermediate"

    def __post_init__(self) -> None:
        total = sum(w for _, w in self.goals)
        if abs(total - 1.0) > GOAL_WEIGHT_TOLERANCE:
            raise ValueError(f"Snapshot goal weights must sum to 1.0, got {total}")

    def goal_weights(self) -> dict[str, float]:
        """Return a fresh dict of normalized goal weights."""
        return dict(self.goals)

    def baseline_for(self, exercise_id: str) -> float | None:
        """Return the baseline e1RM for an exercise, or None if unknown."""
        for ex_id, e1rm in self.baselines:
            if ex_id == exercise_id:
                return e1rm
        return None


# =============================================================================
# PROGRAM
# =============================================================================


@dataclass(frozen=True)
class DayTemplate:
    """One day archetype inside the abstract plan."""

    weekday: int
    label: str
    template_key: str
    intents: tuple[str, ...]


@dataclass(frozen=True)
class WeekPlan:
    """A week of the abstract plan with its overload scalars."""

    week_index: int
    intensity: float  # fraction of e1RM prescribed this week
    volume: float  # set-count multiplier
    days: tuple[DayTemplate, ...]


@dataclass(frozen=True)
class FourWeekPlan:
    """Output of build_four_week_plan(); input to generate_program_days()."""

    start_date: str
    weekdays: tuple[int, ...]
    goals: tuple[tuple[str, float], ...]
    frequency: str
    requested_frequency: str
    weeks: tuple[WeekPlan, ...]
    warnings: tuple[str, ...] = ()

    @property
    def duration_weeks(self) -> int:
        return len(self.weeks)

    def goal_weights(self) -> dict[str, float]:
        return dict(self.goals)


@dataclass
class ProgramInstance:
    """A created 4-week program owning its own profile snapshot."""

    id: str
    user_id: str
    start_date: str
    weekdays: list[int]
    profile_snapshot: ProfileSnapshot
    plan: FourWeekPlan
    duration_weeks: int = PROGRAM_WEEKS
    status: ProgramStatus = "active"
    created_at: str = ""

    def __post_init__(self) -> None:
        validate_iso_date(self.start_date)
        _validate_weekdays(self.weekdays)
        if self.duration_weeks != PROGRAM_WEEKS:
            raise ValueError(f"duration_weeks is fixed at {PROGRAM_WEEKS}")
        if self.status not in ("active", "completed", "cancelled"):
            raise ValueError(f"Invalid program status: {self.status}")

    @property
    def expected_day_count(self) -> int:
        return self.duration_weeks * len(self.weekdays)


@dataclass(frozen=True)
class ProgramDay:
    """One calendar-dated training day of a program."""

    id: str
    program_id: str
    user_id: str
    date: str  # ISO format: YYYY-MM-DD
    week_index: int
    day_index: int  # 1-based position inside the week
    weekday: int
    label: str
    template_key: str
    intents: tuple[str, ...]

    def __post_init__(self) -> None:
        validate_iso_date(self.date)
        if not 1 <= self.week_index <= PROGRAM_WEEKS:
            raise ValueError(f"week_index must be 1..{PROGRAM_WEEKS}, got {self.week_index}")
        if self.day_index < 1:
            raise ValueError("day_index must be positive")


# =============================================================================
# SESSION PLAN
# =============================================================================


@dataclass(frozen=True)
class PlannedSet:
    """A prescribed set: target reps at a suggested weight."""

    index: int  # 1-based
    target_reps: int
    suggested_weight_kg: float
    rest_seconds: int

    def __post_init__(self) -> None:
        """Validate planned set data."""
        if self.index < 1:
            raise ValueError("index must be 1-based")
        if self.target_reps < 1:
            raise ValueError("target_reps must be positive")
        if self.suggested_weight_kg < 0:
            raise ValueError("suggested_weight_kg must be non-negative")
        if self.rest_seconds < 0:
            raise ValueError("rest_seconds must be non-negative")


@dataclass(frozen=True)
class RankedAlternative:
    exercise_id: str
    name: str
    score: float


@dataclass(frozen=True)
class DecisionTrace:
    """
    Why one exercise was chosen for a slot.

    Purely explanatory: nothing downstream reads it to make decisions.
    """

    intent: str
    selection_reason: str
    goal_bias: tuple[tuple[str, float], ...]
    constraints_applied: tuple[str, ...]
    ranked_alternatives: tuple[RankedAlternative, ...]
    confidence: float
    score: float = 0.0
    prescription_note: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


@dataclass(frozen=True)
class PlannedExercise:
    exercise_id: str
    name: str
    priority: PriorityTier
    intents: tuple[str, ...]
    sets: tuple[PlannedSet, ...]
    trace: DecisionTrace


@dataclass(frozen=True)
class SessionPlan:
    """
    Ephemeral workout plan for one ProgramDay (or an ad hoc template).

    Never persisted; computing it twice from the same inputs gives an equal value.
    """

    label: str
    template_key: str
    week_index: int
    exercises: tuple[PlannedExercise, ...]
    estimated_minutes: int
    program_day_id: str | None = None
    date: str | None = None
    unfilled_slots: tuple[str, ...] = ()

    @property
    def total_sets(self) -> int:
        return sum(len(ex.sets) for ex in self.exercises)


# =============================================================================
# LOGGED SESSIONS
# =============================================================================


@dataclass
class PerformedSet:
    """A set the user actually completed."""

    index: int
    weight_kg: float
    reps: int
    rpe: float | None = None
    completed_at: str = ""

    def __post_init__(self) -> None:
        """Validate performed set data."""
        if self.index < 1:
            raise ValueError("set index must be 1-based")
        if self.weight_kg < 0:
            raise ValueError("weight_kg must be non-negative")
        if self.reps < 0:
            raise ValueError("reps must be non-negative")
        if self.rpe is not None and not 1 <= self.rpe <= 10:
            raise ValueError(f"rpe must be within 1..10, got {self.rpe}")

    @property
    def volume(self) -> float:
        return self.weight_kg * self.reps


@dataclass(frozen=True)
class PersonalRecord:
    exercise_id: str
    metric: PRMetric
    value: float
    previous_value: float | None
    date: str


@dataclass(frozen=True)
class PreviousBest:
    """Best values on record for an exercise; absent metrics are None."""

    weight_kg: float | None = None
    reps: int | None = None
    e1rm: float | None = None
    volume: float | None = None


@dataclass
class TrainingSessionItem:
    """One exercise inside a session: frozen plan plus what was performed."""

    id: str
    session_id: str
    exercise_id: str
    order_index: int
    planned_sets: tuple[PlannedSet, ...]
    performed_sets: list[PerformedSet] = field(default_factory=list)
    skipped: bool = False
    name: str = ""

    def performed_indices(self) -> set[int]:
        return {s.index for s in self.performed_sets}

    def pending_sets(self) -> list[PlannedSet]:
        """Planned sets with no performed log yet, in index order."""
        done = self.performed_indices()
        return [s for s in self.planned_sets if s.index not in done]

    def record(self, performed: PerformedSet) -> None:
        """Add a performed set; a later log for the same index replaces the earlier one."""
        for i, existing in enumerate(self.performed_sets):
            if existing.index == performed.index:
                self.performed_sets[i] = performed
                return
        self.performed_sets.append(performed)
        self.performed_sets.sort(key=lambda s: s.index)


@dataclass
class SessionSummary:
    duration_seconds: int
    completed_exercises: int
    skipped_exercises: int
    total_sets: int
    total_volume_kg: float
    personal_records: list[PersonalRecord] = field(default_factory=list)
    pr_failures: list[str] = field(default_factory=list)


@dataclass
class TrainingSession:
    """
    A persisted training session.

    program_id/program_day_id are None for ad hoc sessions.  ``summary`` is
    filled exactly once when the session ends.
    """

    id: str
    user_id: str
    mode: SessionMode
    goals: dict[str, float]
    started_at: str
    program_id: str | None = None
    program_day_id: str | None = None
    ended_at: str | None = None
    summary: SessionSummary | None = None

    def __post_init__(self) -> None:
        if self.mode not in ("timed", "manual"):
            raise ValueError(f"Invalid session mode: {self.mode}")

    @property
    def in_progress(self) -> bool:
        return self.ended_at is None


# =============================================================================
# HISTORY AND ANALYTICS
# =============================================================================


@dataclass(frozen=True)
class ExercisePerformance:
    """An exercise's performed sets from one completed session."""

    exercise_id: str
    session_id: str
    date: str
    sets: tuple[PerformedSet, ...]


@dataclass
class SessionHistoryEntry:
    """A completed session together with its items."""

    session: TrainingSession
    items: list[TrainingSessionItem]

    @property
    def date(self) -> str:
        return self.session.started_at[:10]


@dataclass(frozen=True)
class TrendPoint:
    date: str
    value: float
    session_id: str = ""


@dataclass(frozen=True)
class AdherenceStats:
    """How many past program days were trained, and the streaks."""

    planned_days: int
    completed_days: int
    missed_days: int
    adherence_pct: int
    current_streak: int
    longest_streak: int


# =============================================================================
# OFFLINE QUEUE
# =============================================================================


class OperationType(str, Enum):
    """Mutations that can be queued while offline."""

    INSERT_SET_LOG = "insert_set_log"
    UPSERT_ITEM = "upsert_item"
    FINALIZE_SESSION = "finalize_session"


class OperationState(str, Enum):
    """Lifecycle of a queued operation."""

    QUEUED = "queued"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED = "failed"


@dataclass
class OfflineOperation:
    """
    A queued remote mutation.

    ``identity`` is the logical payload identity (e.g. set index for a set
    log); together with type and target it forms the idempotency key.
    """

    id: str
    type: OperationType
    target_id: str
    payload: dict[str, Any]
    enqueued_at: str
    identity: str = ""
    state: OperationState = OperationState.QUEUED
    attempts: int = 0
    last_error: str | None = None

    @property
    def idempotency_key(self) -> str:
        key = f"{self.type.value}:{self.target_id}"
        if self.identity:
            key += f":{self.identity}"
        return key
