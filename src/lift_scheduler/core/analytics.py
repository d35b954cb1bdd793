"""
Training history analytics.

Pure functions over completed sessions (SessionHistoryEntry, oldest
first): the last performance per exercise that drives session-to-session
progression, per-exercise trends, all-time bests and program adherence.
Loading the history from the remote store lives in history.py.
"""

from collections.abc import Iterable

from .config import TREND_CHANGE_PCT, TREND_MIN_POINTS
from .models import (
    AdherenceStats,
    ExercisePerformance,
    PerformedSet,
    PreviousBest,
    ProgramDay,
    SessionHistoryEntry,
    TrendDirection,
    TrendPoint,
)
from .progression import best_performance, estimate_1rm, merge_bests, session_volume


def _performed(
    history: Iterable[SessionHistoryEntry], exercise_id: str
) -> list[tuple[str, str, list[PerformedSet]]]:
    """(date, session id, sets) for every session that logged *exercise_id*."""
    rows = []
    for entry in history:
        for item in entry.items:
            if item.exercise_id == exercise_id and not item.skipped and item.performed_sets:
                rows.append((entry.date, entry.session.id, item.performed_sets))
    return rows


def _per_date(rows: list[tuple[str, float, str]], combine) -> list[TrendPoint]:
    """Collapse (date, value, session id) rows into one point per date."""
    by_date: dict[str, tuple[float, str]] = {}
    for date, value, session_id in rows:
        if date in by_date:
            value = combine(by_date[date][0], value)
            session_id = by_date[date][1]
        by_date[date] = (value, session_id)
    return [
        TrendPoint(date=date, value=round(value, 2), session_id=session_id)
        for date, (value, session_id) in sorted(by_date.items())
    ]


# =============================================================================
# PROGRESSION INPUT
# =============================================================================


def last_performances(
    history: Iterable[SessionHistoryEntry],
    before_date: str | None = None,
) -> dict[str, ExercisePerformance]:
    """
    Most recent performance of every exercise.

    Skipped items and items without logged sets are ignored.  With
    *before_date*, only sessions dated strictly earlier count, so a plan
    rebuilt for a day already trained progresses from the session before.

    Returns:
        Dict of exercise_id -> ExercisePerformance
    """
    latest: dict[str, ExercisePerformance] = {}
    for entry in sorted(history, key=lambda e: e.session.started_at):
        if before_date is not None and entry.date >= before_date:
            continue
        for item in entry.items:
            if item.skipped or not item.performed_sets:
                continue
            latest[item.exercise_id] = ExercisePerformance(
                exercise_id=item.exercise_id,
                session_id=entry.session.id,
                date=entry.date,
                sets=tuple(sorted(item.performed_sets, key=lambda s: s.index)),
            )
    return latest


# =============================================================================
# TRENDS
# =============================================================================


def e1rm_trend(history: Iterable[SessionHistoryEntry], exercise_id: str) -> list[TrendPoint]:
    """Best estimated 1RM per training date; unloaded sets are ignored."""
    rows = []
    for date, session_id, sets in _performed(history, exercise_id):
        loaded = [s for s in sets if s.weight_kg > 0]
        if loaded:
            rows.append((date, max(estimate_1rm(s.weight_kg, s.reps) for s in loaded), session_id))
    return _per_date(rows, max)


def best_set_trend(history: Iterable[SessionHistoryEntry], exercise_id: str) -> list[TrendPoint]:
    """Heaviest load lifted per training date; unloaded sets are ignored."""
    rows = [
        (date, max(s.weight_kg for s in sets), session_id)
        for date, session_id, sets in _performed(history, exercise_id)
        if any(s.weight_kg > 0 for s in sets)
    ]
    return _per_date(rows, max)


def volume_trend(history: Iterable[SessionHistoryEntry], exercise_id: str) -> list[TrendPoint]:
    """Total volume (Σ weight × reps) per training date."""
    rows = [
        (date, session_volume(sets), session_id)
        for date, session_id, sets in _performed(history, exercise_id)
    ]
    return _per_date(rows, lambda a, b: a + b)


def trend_direction(points: list[TrendPoint]) -> TrendDirection:
    """
    Classify a trend by comparing the average of its later half to its
    earlier half.

    Fewer than three points is insufficient data; a change beyond ±5% is
    increasing or decreasing, anything else stable.
    """
    if len(points) < TREND_MIN_POINTS:
        return "insufficient_data"
    mid = len(points) // 2
    first = sum(p.value for p in points[:mid]) / mid
    second = sum(p.value for p in points[mid:]) / (len(points) - mid)
    if first <= 0:
        return "increasing" if second > 0 else "stable"
    change_pct = (second - first) / first * 100
    if change_pct > TREND_CHANGE_PCT:
        return "increasing"
    if change_pct < -TREND_CHANGE_PCT:
        return "decreasing"
    return "stable"


# =============================================================================
# RECORDS AND ADHERENCE
# =============================================================================


def all_time_bests(history: Iterable[SessionHistoryEntry]) -> dict[str, PreviousBest]:
    """Best weight, reps, e1RM and single-session volume per exercise."""
    per_exercise: dict[str, list[PreviousBest]] = {}
    for entry in history:
        for item in entry.items:
            if item.skipped:
                continue
            best = best_performance(item.performed_sets)
            if best is not None:
                per_exercise.setdefault(item.exercise_id, []).append(best)
    return {exercise_id: merge_bests(bests) for exercise_id, bests in sorted(per_exercise.items())}


def adherence(
    program_days: Iterable[ProgramDay],
    history: Iterable[SessionHistoryEntry],
    today: str,
) -> AdherenceStats:
    """
    How faithfully the program's past days were trained.

    A program day up to and including *today* counts as completed when a
    finished session is linked to it or was started on its date.  Streaks
    run over consecutive program days, not calendar days.

    Args:
        program_days: Days of the program
        history: Completed sessions
        today: ISO date; later days are not due yet

    Returns:
        AdherenceStats
    """
    entries = list(history)
    linked = {e.session.program_day_id for e in entries if e.session.program_day_id}
    dates = {e.date for e in entries}

    due = sorted((d for d in program_days if d.date <= today), key=lambda d: (d.date, d.day_index))
    done = [d.id in linked or d.date in dates for d in due]

    longest = streak = 0
    for hit in done:
        streak = streak + 1 if hit else 0
        longest = max(longest, streak)
    current = 0
    for hit in reversed(done):
        if not hit:
            break
        current += 1

    completed = sum(done)
    return AdherenceStats(
        planned_days=len(due),
        completed_days=completed,
        missed_days=len(due) - completed,
        adherence_pct=round(completed / len(due) * 100) if due else 0,
        current_streak=current,
        longest_streak=longest,
    )
