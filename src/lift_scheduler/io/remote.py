"""
Remote store implementations.

InMemoryRemoteStore keeps everything in dicts and can be told to fail the
next calls, which is how tests simulate a flaky network.  FileRemoteStore
persists the same state to a JSON file so the CLI survives restarts.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..core.errors import AlreadyAppliedError, PermanentRemoteError
from ..core.models import (
    PerformedSet,
    PreviousBest,
    ProgramDay,
    ProgramInstance,
    TrainingSession,
    TrainingSessionItem,
)
from ..core.progression import best_performance, merge_bests
from .serializers import (
    ValidationError,
    dict_to_performed_set,
    dict_to_program_day,
    dict_to_program_instance,
    dict_to_session_item,
    dict_to_summary,
    dict_to_training_session,
    program_day_to_dict,
    program_instance_to_dict,
    session_item_to_dict,
    training_session_to_dict,
)

logger = logging.getLogger(__name__)


class InMemoryRemoteStore:
    """
    Dict-backed RemoteStore.

    Objects are deep-copied on the way in and out so callers never share
    state with the store.  Queue exceptions in ``failures`` to make the next
    calls raise them, one per call.
    """

    def __init__(self) -> None:
        self.programs: dict[str, ProgramInstance] = {}
        self.program_days: dict[str, list[ProgramDay]] = {}
        self.sessions: dict[str, TrainingSession] = {}
        self.items: dict[str, TrainingSessionItem] = {}
        self.failures: list[BaseException] = []
        self.calls: list[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self.failures:
            raise self.failures.pop(0)

    def _mutated(self) -> None:
        """Hook run after every successful write."""
        pass

    # -- programs ---------------------------------------------------------

    async def create_program_instance(self, instance: ProgramInstance) -> None:
        self._enter("create_program_instance")
        if instance.id in self.programs:
            raise AlreadyAppliedError(f"Program {instance.id} already exists")
        for other in self.programs.values():
            if other.user_id == instance.user_id and other.status == "active":
                other.status = "cancelled"
                logger.info("Program %s superseded by %s", other.id, instance.id)
        self.programs[instance.id] = copy.deepcopy(instance)
        self._mutated()

    async def create_program_days(self, days: list[ProgramDay]) -> None:
        self._enter("create_program_days")
        for day in days:
            if day.program_id not in self.programs:
                raise PermanentRemoteError(f"Unknown program {day.program_id}")
        for day in days:
            rows = self.program_days.setdefault(day.program_id, [])
            rows[:] = [d for d in rows if d.id != day.id] + [day]
        self._mutated()

    async def get_program_days(
        self, instance_id: str, from_date: str | None = None, to_date: str | None = None
    ) -> list[ProgramDay]:
        self._enter("get_program_days")
        return [
            d
            for d in sorted(self.program_days.get(instance_id, []), key=lambda d: d.date)
            if (from_date is None or d.date >= from_date) and (to_date is None or d.date <= to_date)
        ]

    async def get_active_program(self, user_id: str) -> ProgramInstance | None:
        self._enter("get_active_program")
        for program in self.programs.values():
            if program.user_id == user_id and program.status == "active":
                return copy.deepcopy(program)
        return None

    # -- sessions ---------------------------------------------------------

    async def create_training_session(self, session: TrainingSession) -> None:
        self._enter("create_training_session")
        if session.id in self.sessions:
            raise AlreadyAppliedError(f"Session {session.id} already exists")
        self.sessions[session.id] = copy.deepcopy(session)
        self._mutated()

    async def create_training_session_items(self, items: list[TrainingSessionItem]) -> None:
        self._enter("create_training_session_items")
        for item in items:
            if item.session_id not in self.sessions:
                raise PermanentRemoteError(f"Unknown session {item.session_id}")
        for item in items:
            self.items[item.id] = copy.deepcopy(item)
        self._mutated()

    async def get_training_session_items(self, session_id: str) -> list[TrainingSessionItem]:
        self._enter("get_training_session_items")
        items = [i for i in self.items.values() if i.session_id == session_id]
        return [copy.deepcopy(i) for i in sorted(items, key=lambda i: i.order_index)]

    async def update_training_session_item(self, item_id: str, changes: dict[str, Any]) -> None:
        self._enter("update_training_session_item")
        item = self._item(item_id)
        if "skipped" in changes:
            item.skipped = bool(changes["skipped"])
        if "performed_sets" in changes:
            item.performed_sets = [dict_to_performed_set(s) for s in changes["performed_sets"]]
        self._mutated()

    async def update_training_session(self, session_id: str, changes: dict[str, Any]) -> None:
        self._enter("update_training_session")
        session = self.sessions.get(session_id)
        if session is None:
            raise PermanentRemoteError(f"Unknown session {session_id}")
        if "ended_at" in changes and session.ended_at is not None:
            raise AlreadyAppliedError(f"Session {session_id} was already finalized")
        if "ended_at" in changes:
            session.ended_at = changes["ended_at"]
        if changes.get("summary") is not None:
            session.summary = dict_to_summary(changes["summary"])
        self._mutated()

    async def insert_set_log(self, item_id: str, performed: PerformedSet) -> None:
        self._enter("insert_set_log")
        self._item(item_id).record(copy.deepcopy(performed))
        self._mutated()

    async def get_active_training_session(self, user_id: str) -> TrainingSession | None:
        self._enter("get_active_training_session")
        for session in self.sessions.values():
            if session.user_id == user_id and session.in_progress:
                return copy.deepcopy(session)
        return None

    async def list_training_sessions(self, user_id: str) -> list[TrainingSession]:
        """The user's finalized sessions, oldest first."""
        self._enter("list_training_sessions")
        ended = [s for s in self.sessions.values() if s.user_id == user_id and s.ended_at is not None]
        return [copy.deepcopy(s) for s in sorted(ended, key=lambda s: s.started_at)]

    async def get_exercise_best_performance(
        self, user_id: str, exercise_id: str, exclude_session_id: str | None = None
    ) -> PreviousBest | None:
        self._enter("get_exercise_best_performance")
        owned = {
            s.id for s in self.sessions.values()
            if s.user_id == user_id and s.id != exclude_session_id
        }
        return merge_bests(
            best_performance(item.performed_sets)
            for item in self.items.values()
            if item.session_id in owned and item.exercise_id == exercise_id and not item.skipped
        )

    def _item(self, item_id: str) -> TrainingSessionItem:
        item = self.items.get(item_id)
        if item is None:
            raise PermanentRemoteError(f"Unknown session item {item_id}")
        return item


class FileRemoteStore(InMemoryRemoteStore):
    """
    InMemoryRemoteStore persisted to a single JSON file after every write.

    The file is rewritten atomically (temp file + os.replace).
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"{self.path}: invalid JSON: {e}") from e

        for raw in data.get("programs", []):
            program = dict_to_program_instance(raw)
            self.programs[program.id] = program
        for raw in data.get("program_days", []):
            day = dict_to_program_day(raw)
            self.program_days.setdefault(day.program_id, []).append(day)
        for raw in data.get("sessions", []):
            session = dict_to_training_session(raw)
            self.sessions[session.id] = session
        for raw in data.get("items", []):
            item = dict_to_session_item(raw)
            self.items[item.id] = item

    def _mutated(self) -> None:
        data = {
            "programs": [program_instance_to_dict(p) for p in self.programs.values()],
            "program_days": [
                program_day_to_dict(d) for days in self.program_days.values() for d in days
            ],
            "sessions": [training_session_to_dict(s) for s in self.sessions.values()],
            "items": [session_item_to_dict(i) for i in self.items.values()],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)
