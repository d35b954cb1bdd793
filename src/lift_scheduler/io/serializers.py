"""
JSON serialization for lift-scheduler models.

Handles conversion between dataclasses and JSON-compatible dicts.  Every
dict_to_* function raises ValidationError (never KeyError/ValueError) so
callers can report the file and line that held the bad record.
"""

import json
import re
from datetime import datetime
from typing import Any

from ..core.autoregulation import SetAdjustment
from ..core.models import (
    DayTemplate,
    DecisionTrace,
    FourWeekPlan,
    OfflineOperation,
    OperationState,
    OperationType,
    PerformedSet,
    PersonalRecord,
    PlannedSet,
    ProfileSnapshot,
    ProgramDay,
    ProgramInstance,
    SessionPlan,
    SessionSummary,
    TrainingProfile,
    TrainingSession,
    TrainingSessionItem,
    WeekPlan,
)


class ValidationError(Exception):
    """Raised when data validation fails."""

    pass


def validate_date(date_str: str) -> str:
    """
    Validate and normalize date string to ISO format.

    Args:
        date_str: Date string to validate

    Returns:
        Normalized YYYY-MM-DD string

    Raises:
        ValidationError: If date format is invalid
    """
    if not isinstance(date_str, str) or not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        raise ValidationError(f"Invalid date format: {date_str}. Expected YYYY-MM-DD")

    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError(f"Invalid date: {date_str}") from e

    return date_str


def validate_weekdays(raw: str) -> list[int]:
    """
    Parse a weekday list such as "1,3,5" or "mon,wed,fri".

    Raises:
        ValidationError: If a token is not a weekday
    """
    names = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
    days: list[int] = []
    for token in (t.strip().lower() for t in raw.split(",")):
        if not token:
            continue
        if token.isdigit() and 1 <= int(token) <= 7:
            days.append(int(token))
        elif token[:3] in names:
            days.append(names.index(token[:3]) + 1)
        else:
            raise ValidationError(f"Invalid weekday: {token!r}. Use 1-7 or mon..sun")
    if not days:
        raise ValidationError("At least one weekday is required")
    return sorted(set(days))


def parse_key_values(raw: str, name: str) -> dict[str, float]:
    """
    Parse "key=value,key=value" into a dict of floats.

    Raises:
        ValidationError: On a malformed pair or non-numeric value
    """
    result: dict[str, float] = {}
    for pair in (p.strip() for p in raw.split(",")):
        if not pair:
            continue
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValidationError(f"Invalid {name} entry {pair!r}. Expected key=value")
        try:
            result[key.strip()] = float(value)
        except ValueError as e:
            raise ValidationError(f"Invalid number in {name} entry {pair!r}") from e
    return result


def _build(factory, description: str, **kwargs):
    """Call a model constructor, converting validation failures to ValidationError."""
    try:
        return factory(**kwargs)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Invalid {description}: {e}") from e


def _field(data: dict[str, Any], key: str, description: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError) as e:
        raise ValidationError(f"{description} is missing '{key}'") from e


# =============================================================================
# PROFILE
# =============================================================================


def training_profile_to_dict(profile: TrainingProfile) -> dict[str, Any]:
    """
    Convert TrainingProfile to JSON-compatible dict.

    Args:
        profile: TrainingProfile to convert

    Returns:
        Dict representation
    """
    return {
        "goals": dict(profile.goals),
        "equipment": list(profile.equipment),
        "injuries": list(profile.injuries),
        "forbidden_movements": list(profile.forbidden_movements),
        "baselines": dict(profile.baselines),
        "weekdays": list(profile.weekdays),
        "frequency": profile.frequency,
        "time_window": profile.time_window,
        "experience": profile.experience,
    }


def dict_to_training_profile(data: dict[str, Any]) -> TrainingProfile:
    """
    Convert dict to TrainingProfile.

    Raises:
        ValidationError: If data is invalid
    """
    try:
        goals = {k: float(v) for k, v in (data.get("goals") or {}).items()}
        baselines = {k: float(v) for k, v in (data.get("baselines") or {}).items()}
        weekdays = [int(d) for d in data.get("weekdays") or [1, 3, 5]]
    except (AttributeError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid profile: {e}") from e

    return _build(
        TrainingProfile,
        "profile",
        goals=goals,
        equipment=list(data.get("equipment") or []),
        injuries=list(data.get("injuries") or []),
        forbidden_movements=list(data.get("forbidden_movements") or []),
        baselines=baselines,
        weekdays=weekdays,
        frequency=data.get("frequency", "auto"),
        time_window=data.get("time_window", "any"),
        experience=data.get("experience", "intermediate"),
    )


def snapshot_to_dict(snapshot: ProfileSnapshot) -> dict[str, Any]:
    return {
        "goals": dict(snapshot.goals),
        "equipment": list(snapshot.equipment),
        "injuries": list(snapshot.injuries),
        "forbidden_movements": list(snapshot.forbidden_movements),
        "baselines": dict(snapshot.baselines),
        "weekdays": list(snapshot.weekdays),
        "frequency": snapshot.frequency,
        "time_window": snapshot.time_window,
        "experience": snapshot.experience,
    }


def dict_to_snapshot(data: dict[str, Any]) -> ProfileSnapshot:
    goals = _field(data, "goals", "snapshot")
    return _build(
        ProfileSnapshot,
        "profile snapshot",
        goals=tuple((str(g), float(w)) for g, w in goals.items()),
        equipment=tuple(data.get("equipment") or ()),
        injuries=tuple(data.get("injuries") or ()),
        forbidden_movements=tuple(data.get("forbidden_movements") or ()),
        baselines=tuple(sorted((str(k), float(v)) for k, v in (data.get("baselines") or {}).items())),
        weekdays=tuple(int(d) for d in data.get("weekdays") or ()),
        frequency=data.get("frequency", "auto"),
        time_window=data.get("time_window", "any"),
        experience=data.get("experience", "intermediate"),
    )


# =============================================================================
# PROGRAM
# =============================================================================


def plan_to_dict(plan: FourWeekPlan) -> dict[str, Any]:
    return {
        "start_date": plan.start_date,
        "weekdays": list(plan.weekdays),
        "goals": dict(plan.goals),
        "frequency": plan.frequency,
        "requested_frequency": plan.requested_frequency,
        "warnings": list(plan.warnings),
        "weeks": [
            {
                "week_index": w.week_index,
                "intensity": w.intensity,
                "volume": w.volume,
                "days": [
                    {
                        "weekday": d.weekday,
                        "label": d.label,
                        "template_key": d.template_key,
                        "intents": list(d.intents),
                    }
                    for d in w.days
                ],
            }
            for w in plan.weeks
        ],
    }


def dict_to_plan(data: dict[str, Any]) -> FourWeekPlan:
    try:
        weeks = tuple(
            WeekPlan(
                week_index=int(w["week_index"]),
                intensity=float(w["intensity"]),
                volume=float(w["volume"]),
                days=tuple(
                    DayTemplate(
                        weekday=int(d["weekday"]),
                        label=str(d["label"]),
                        template_key=str(d["template_key"]),
                        intents=tuple(d["intents"]),
                    )
                    for d in w["days"]
                ),
            )
            for w in data["weeks"]
        )
        return FourWeekPlan(
            start_date=validate_date(data["start_date"]),
            weekdays=tuple(int(d) for d in data["weekdays"]),
            goals=tuple((str(g), float(v)) for g, v in data["goals"].items()),
            frequency=str(data["frequency"]),
            requested_frequency=str(data.get("requested_frequency", data["frequency"])),
            weeks=weeks,
            warnings=tuple(data.get("warnings") or ()),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid program plan: {e}") from e


def program_instance_to_dict(instance: ProgramInstance) -> dict[str, Any]:
    """
    Convert ProgramInstance (with snapshot and plan) to JSON-compatible dict.

    Args:
        instance: ProgramInstance to convert

    Returns:
        Dict representation
    """
    return {
        "id": instance.id,
        "user_id": instance.user_id,
        "start_date": instance.start_date,
        "weekdays": list(instance.weekdays),
        "duration_weeks": instance.duration_weeks,
        "status": instance.status,
        "created_at": instance.created_at,
        "profile_snapshot": snapshot_to_dict(instance.profile_snapshot),
        "plan": plan_to_dict(instance.plan),
    }


def dict_to_program_instance(data: dict[str, Any]) -> ProgramInstance:
    """
    Convert dict to ProgramInstance.

    Raises:
        ValidationError: If data is invalid
    """
    return _build(
        ProgramInstance,
        "program instance",
        id=str(_field(data, "id", "program")),
        user_id=str(_field(data, "user_id", "program")),
        start_date=validate_date(_field(data, "start_date", "program")),
        weekdays=[int(d) for d in _field(data, "weekdays", "program")],
        profile_snapshot=dict_to_snapshot(_field(data, "profile_snapshot", "program")),
        plan=dict_to_plan(_field(data, "plan", "program")),
        duration_weeks=int(data.get("duration_weeks", 4)),
        status=data.get("status", "active"),
        created_at=data.get("created_at", ""),
    )


def program_day_to_dict(day: ProgramDay) -> dict[str, Any]:
    return {
        "id": day.id,
        "program_id": day.program_id,
        "user_id": day.user_id,
        "date": day.date,
        "week_index": day.week_index,
        "day_index": day.day_index,
        "weekday": day.weekday,
        "label": day.label,
        "template_key": day.template_key,
        "intents": list(day.intents),
    }


def dict_to_program_day(data: dict[str, Any]) -> ProgramDay:
    try:
        return ProgramDay(
            id=str(data["id"]),
            program_id=str(data["program_id"]),
            user_id=str(data["user_id"]),
            date=str(data["date"]),
            week_index=int(data["week_index"]),
            day_index=int(data["day_index"]),
            weekday=int(data["weekday"]),
            label=str(data["label"]),
            template_key=str(data["template_key"]),
            intents=tuple(data["intents"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid program day: {e}") from e


# =============================================================================
# SESSION PLAN
# =============================================================================


def planned_set_to_dict(planned_set: PlannedSet) -> dict[str, Any]:
    return {
        "index": planned_set.index,
        "target_reps": planned_set.target_reps,
        "suggested_weight_kg": planned_set.suggested_weight_kg,
        "rest_seconds": planned_set.rest_seconds,
    }


def dict_to_planned_set(data: dict[str, Any]) -> PlannedSet:
    try:
        return PlannedSet(
            index=int(data["index"]),
            target_reps=int(data["target_reps"]),
            suggested_weight_kg=float(data["suggested_weight_kg"]),
            rest_seconds=int(data["rest_seconds"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid planned set: {e}") from e


def _trace_to_dict(trace: DecisionTrace) -> dict[str, Any]:
    return {
        "intent": trace.intent,
        "selection_reason": trace.selection_reason,
        "goal_bias": dict(trace.goal_bias),
        "constraints_applied": list(trace.constraints_applied),
        "ranked_alternatives": [
            {"exercise_id": a.exercise_id, "name": a.name, "score": a.score}
            for a in trace.ranked_alternatives
        ],
        "confidence": trace.confidence,
        "score": trace.score,
        "prescription_note": trace.prescription_note,
    }


def session_plan_to_dict(plan: SessionPlan) -> dict[str, Any]:
    """Serialize a SessionPlan (used for previews exported as JSON)."""
    return {
        "label": plan.label,
        "template_key": plan.template_key,
        "week_index": plan.week_index,
        "program_day_id": plan.program_day_id,
        "date": plan.date,
        "estimated_minutes": plan.estimated_minutes,
        "unfilled_slots": list(plan.unfilled_slots),
        "exercises": [
            {
                "exercise_id": ex.exercise_id,
                "name": ex.name,
                "priority": ex.priority,
                "intents": list(ex.intents),
                "sets": [planned_set_to_dict(s) for s in ex.sets],
                "trace": _trace_to_dict(ex.trace),
            }
            for ex in plan.exercises
        ],
    }


# =============================================================================
# LOGGED SESSIONS
# =============================================================================


def performed_set_to_dict(performed: PerformedSet) -> dict[str, Any]:
    d: dict[str, Any] = {
        "index": performed.index,
        "weight_kg": performed.weight_kg,
        "reps": performed.reps,
        "completed_at": performed.completed_at,
    }
    if performed.rpe is not None:
        d["rpe"] = performed.rpe
    return d


def dict_to_performed_set(data: dict[str, Any]) -> PerformedSet:
    try:
        return PerformedSet(
            index=int(data["index"]),
            weight_kg=float(data["weight_kg"]),
            reps=int(data["reps"]),
            rpe=float(data["rpe"]) if data.get("rpe") is not None else None,
            completed_at=str(data.get("completed_at", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid performed set: {e}") from e


def personal_record_to_dict(pr: PersonalRecord) -> dict[str, Any]:
    return {
        "exercise_id": pr.exercise_id,
        "metric": pr.metric,
        "value": pr.value,
        "previous_value": pr.previous_value,
        "date": pr.date,
    }


def dict_to_personal_record(data: dict[str, Any]) -> PersonalRecord:
    try:
        return PersonalRecord(
            exercise_id=str(data["exercise_id"]),
            metric=data["metric"],
            value=float(data["value"]),
            previous_value=float(data["previous_value"]) if data.get("previous_value") is not None else None,
            date=str(data["date"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid personal record: {e}") from e


def summary_to_dict(summary: SessionSummary) -> dict[str, Any]:
    return {
        "duration_seconds": summary.duration_seconds,
        "completed_exercises": summary.completed_exercises,
        "skipped_exercises": summary.skipped_exercises,
        "total_sets": summary.total_sets,
        "total_volume_kg": summary.total_volume_kg,
        "personal_records": [personal_record_to_dict(pr) for pr in summary.personal_records],
        "pr_failures": list(summary.pr_failures),
    }


def dict_to_summary(data: dict[str, Any]) -> SessionSummary:
    try:
        return SessionSummary(
            duration_seconds=int(data["duration_seconds"]),
            completed_exercises=int(data["completed_exercises"]),
            skipped_exercises=int(data["skipped_exercises"]),
            total_sets=int(data["total_sets"]),
            total_volume_kg=float(data["total_volume_kg"]),
            personal_records=[dict_to_personal_record(p) for p in data.get("personal_records") or []],
            pr_failures=list(data.get("pr_failures") or []),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid session summary: {e}") from e


def training_session_to_dict(session: TrainingSession) -> dict[str, Any]:
    """
    Convert TrainingSession to JSON-compatible dict.

    Args:
        session: TrainingSession to convert

    Returns:
        Dict representation (summary is None while in progress)
    """
    return {
        "id": session.id,
        "user_id": session.user_id,
        "mode": session.mode,
        "goals": dict(session.goals),
        "started_at": session.started_at,
        "program_id": session.program_id,
        "program_day_id": session.program_day_id,
        "ended_at": session.ended_at,
        "summary": summary_to_dict(session.summary) if session.summary else None,
    }


def dict_to_training_session(data: dict[str, Any]) -> TrainingSession:
    """
    Convert dict to TrainingSession.

    Raises:
        ValidationError: If data is invalid
    """
    summary = data.get("summary")
    return _build(
        TrainingSession,
        "training session",
        id=str(_field(data, "id", "session")),
        user_id=str(_field(data, "user_id", "session")),
        mode=_field(data, "mode", "session"),
        goals={k: float(v) for k, v in (data.get("goals") or {}).items()},
        started_at=str(_field(data, "started_at", "session")),
        program_id=data.get("program_id"),
        program_day_id=data.get("program_day_id"),
        ended_at=data.get("ended_at"),
        summary=dict_to_summary(summary) if summary else None,
    )


def session_item_to_dict(item: TrainingSessionItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "session_id": item.session_id,
        "exercise_id": item.exercise_id,
        "name": item.name,
        "order_index": item.order_index,
        "planned_sets": [planned_set_to_dict(s) for s in item.planned_sets],
        "performed_sets": [performed_set_to_dict(s) for s in item.performed_sets],
        "skipped": item.skipped,
    }


def dict_to_session_item(data: dict[str, Any]) -> TrainingSessionItem:
    try:
        return TrainingSessionItem(
            id=str(data["id"]),
            session_id=str(data["session_id"]),
            exercise_id=str(data["exercise_id"]),
            order_index=int(data["order_index"]),
            planned_sets=tuple(dict_to_planned_set(s) for s in data["planned_sets"]),
            performed_sets=[dict_to_performed_set(s) for s in data.get("performed_sets") or []],
            skipped=bool(data.get("skipped", False)),
            name=str(data.get("name", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid session item: {e}") from e


def set_adjustment_to_dict(adjustment: SetAdjustment) -> dict[str, Any]:
    return {
        "set_index": adjustment.set_index,
        "new_target_reps": adjustment.new_target_reps,
        "new_suggested_weight_kg": adjustment.new_suggested_weight_kg,
        "rationale": adjustment.rationale,
        "rule_id": adjustment.rule_id,
        "basis": adjustment.basis,
    }


def dict_to_set_adjustment(data: dict[str, Any]) -> SetAdjustment:
    try:
        return SetAdjustment(
            set_index=int(data["set_index"]),
            new_target_reps=int(data["new_target_reps"]),
            new_suggested_weight_kg=float(data["new_suggested_weight_kg"]),
            rationale=str(data["rationale"]),
            rule_id=str(data["rule_id"]),
            basis=str(data["basis"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid set adjustment: {e}") from e


# =============================================================================
# OFFLINE QUEUE
# =============================================================================


def operation_to_dict(op: OfflineOperation) -> dict[str, Any]:
    return {
        "id": op.id,
        "type": op.type.value,
        "target_id": op.target_id,
        "identity": op.identity,
        "payload": op.payload,
        "enqueued_at": op.enqueued_at,
        "state": op.state.value,
        "attempts": op.attempts,
        "last_error": op.last_error,
    }


def dict_to_operation(data: dict[str, Any]) -> OfflineOperation:
    try:
        return OfflineOperation(
            id=str(data["id"]),
            type=OperationType(data["type"]),
            target_id=str(data["target_id"]),
            payload=dict(data["payload"]),
            enqueued_at=str(data["enqueued_at"]),
            identity=str(data.get("identity", "")),
            state=OperationState(data.get("state", "queued")),
            attempts=int(data.get("attempts", 0)),
            last_error=data.get("last_error"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid queued operation: {e}") from e


def operation_to_json_line(op: OfflineOperation) -> str:
    """Single-line JSON for the queue file."""
    return json.dumps(operation_to_dict(op), separators=(",", ":"))
