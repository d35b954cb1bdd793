"""
Live training session runtime.

SessionManager owns the one in-progress session of a user: it creates the
session and its items from a confirmed SessionPlan, logs sets (with
autoregulation of the next set), records skips and finalizes the session
with its summary and personal records.

Every mutation is written straight to the remote when the network is up and
nothing is waiting in the offline queue; otherwise it is queued so replay
keeps the original order.
"""

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from .autoregulation import (
    SetAdjustment,
    adjusted_rest_seconds,
    advise_next_set,
    detect_session_fatigue,
    is_current,
)
from .config import ELAPSED_TICK_SECONDS
from .errors import (
    ActiveSessionError,
    AlreadyAppliedError,
    RemoteError,
    SetLoggingError,
)
from .exercises.registry import ExerciseCatalog, get_catalog
from .interfaces import (
    ConnectivityProbe,
    EventLog,
    OperationQueue,
    RemoteStore,
    safe_log_event,
)
from .models import (
    OperationType,
    PerformedSet,
    PersonalRecord,
    PlannedSet,
    SessionPlan,
    SessionSummary,
    TrainingSession,
    TrainingSessionItem,
)
from .progression import detect_prs, minimum_weight, session_volume, weight_step
from .retry import call_with_retry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ElapsedTicker:
    """
    Fixed-interval asyncio timer counting a session's elapsed time.

    ``on_tick`` receives the elapsed seconds after every interval.  stop()
    cancels the task and waits for it, so nothing keeps running afterwards.
    """

    def __init__(
        self,
        interval: float = ELAPSED_TICK_SECONDS,
        on_tick: Callable[[float], Any] | None = None,
    ):
        self.interval = interval
        self.on_tick = on_tick
        self.ticks = 0
        self._started: float | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def elapsed_seconds(self) -> float:
        if self._started is None:
            return 0.0
        return time.monotonic() - self._started

    def start(self) -> None:
        if self.running:
            return
        self._started = time.monotonic()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.ticks += 1
            if self.on_tick is not None:
                self.on_tick(self.elapsed_seconds)


@dataclass
class SetLogResult:
    """What log_set() recorded and what it suggests for the next set."""

    performed: PerformedSet
    queued: bool
    rest_seconds: int
    adjustment: SetAdjustment | None = None
    fatigue: bool = False


class SessionManager:
    """
    Runtime for one user's active training session.

    Args:
        remote: Remote store
        queue: Offline operation queue
        probe: Connectivity probe consulted before direct writes
        catalog: Exercise catalog (weight steps and minimum loads)
        event_log: Optional telemetry sink
        use_ticker: Run an ElapsedTicker for timed sessions
    """

    def __init__(
        self,
        remote: RemoteStore,
        queue: OperationQueue,
        probe: ConnectivityProbe,
        catalog: ExerciseCatalog | None = None,
        event_log: EventLog | None = None,
        use_ticker: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.remote = remote
        self.queue = queue
        self.probe = probe
        self.catalog = catalog if catalog is not None else get_catalog()
        self.event_log = event_log
        self.use_ticker = use_ticker
        self.clock = clock

        self.session: TrainingSession | None = None
        self.items: list[TrainingSessionItem] = []
        self.adjustments: dict[str, SetAdjustment] = {}
        self.ticker: ElapsedTicker | None = None
        self.resumed = False

    # -- state -----------------------------------------------------------

    def restore(
        self,
        session: TrainingSession,
        items: list[TrainingSessionItem],
        adjustments: dict[str, SetAdjustment] | None = None,
    ) -> None:
        """Load a session saved by an earlier process; stale adjustments are dropped."""
        self.session = session
        self.items = sorted(items, key=lambda i: i.order_index)
        self.adjustments = {}
        for item_id, adj in (adjustments or {}).items():
            item = self._find_item(item_id)
            if is_current(adj, item.planned_sets, item.performed_sets):
                self.adjustments[item_id] = adj

    def _require_active(self) -> TrainingSession:
        if self.session is None or not self.session.in_progress:
            raise ValueError("No training session in progress")
        return self.session

    def _find_item(self, item_id: str) -> TrainingSessionItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise ValueError(f"Unknown session item '{item_id}'")

    def item_by_position(self, position: int) -> TrainingSessionItem:
        """1-based item lookup, as shown to the user."""
        if not 1 <= position <= len(self.items):
            raise ValueError(f"Exercise number must be 1..{len(self.items)}, got {position}")
        return self.items[position - 1]

    def current_adjustment(self, item_id: str) -> SetAdjustment | None:
        """The item's pending adjustment, discarding it if its inputs changed."""
        adj = self.adjustments.get(item_id)
        if adj is None:
            return None
        item = self._find_item(item_id)
        if not is_current(adj, item.planned_sets, item.performed_sets):
            del self.adjustments[item_id]
            return None
        return adj

    def next_set(self, item_id: str) -> PlannedSet | None:
        """First pending set of the item with any current adjustment applied."""
        item = self._find_item(item_id)
        pending = item.pending_sets()
        if not pending or item.skipped:
            return None
        planned = pending[0]
        adj = self.current_adjustment(item_id)
        if adj is None or adj.set_index != planned.index:
            return planned
        return PlannedSet(
            index=planned.index,
            target_reps=adj.new_target_reps,
            suggested_weight_kg=adj.new_suggested_weight_kg,
            rest_seconds=planned.rest_seconds,
        )

    def elapsed_seconds(self) -> int:
        session = self._require_active()
        if self.ticker is not None and self.ticker.running:
            return int(self.ticker.elapsed_seconds)
        started = datetime.fromisoformat(session.started_at)
        return max(0, int((self.clock() - started).total_seconds()))

    # -- writes ----------------------------------------------------------

    async def _write_or_enqueue(
        self,
        op_type: OperationType,
        target_id: str,
        payload: dict[str, Any],
        identity: str,
        direct,
        *args: Any,
    ) -> bool:
        """
        Write directly when possible, else queue.  Returns True when queued.

        Raises:
            SetLoggingError: If the direct write failed and the enqueue failed too
        """
        if self.probe.is_network_available() and self.queue.size() == 0:
            try:
                await call_with_retry(direct, *args)
                return False
            except AlreadyAppliedError:
                return False
            except (RemoteError, TimeoutError, ConnectionError) as e:
                logger.warning("Direct %s for %s failed (%s); queueing", op_type.value, target_id, e)

        try:
            self.queue.enqueue(op_type, target_id, payload, identity)
        except OSError as e:
            raise SetLoggingError(
                f"Could not record {op_type.value} for {target_id}: remote and offline queue both failed"
            ) from e
        return True

    async def start_session(
        self,
        plan: SessionPlan,
        user_id: str,
        goals: dict[str, float] | None = None,
        mode: str = "timed",
        program_id: str | None = None,
        program_day_id: str | None = None,
        resume: bool = False,
    ) -> TrainingSession:
        """
        Start a session from a confirmed plan.

        Only one session may be in progress per user.  With resume=True an
        existing in-progress session is returned (with its items) instead of
        raising.

        Raises:
            ActiveSessionError: A session is in progress and resume is False
            RemoteError: The session could not be created remotely
        """
        existing = self.session if self.session is not None and self.session.in_progress else None
        if existing is None:
            existing = await call_with_retry(self.remote.get_active_training_session, user_id)
            if existing is not None and f"finalize_session:{existing.id}" in self.queue.pending_keys():
                logger.info("Session %s is ended locally; its finalize is still queued", existing.id)
                existing = None
            if existing is not None:
                self.items = await call_with_retry(self.remote.get_training_session_items, existing.id)
                self.adjustments = {}

        if existing is not None:
            if not resume:
                raise ActiveSessionError(existing.id)
            logger.info("Resuming session %s", existing.id)
            self.session = existing
            self.resumed = True
            self._start_ticker()
            return existing

        session = TrainingSession(
            id=uuid.uuid4().hex,
            user_id=user_id,
            mode=mode,
            goals=dict(goals or {}),
            started_at=self.clock().isoformat(timespec="seconds"),
            program_id=program_id,
            program_day_id=program_day_id,
        )
        items = [
            TrainingSessionItem(
                id=f"{session.id}-{order}",
                session_id=session.id,
                exercise_id=ex.exercise_id,
                order_index=order,
                planned_sets=tuple(ex.sets),
                name=ex.name,
            )
            for order, ex in enumerate(plan.exercises, 1)
        ]

        await call_with_retry(self.remote.create_training_session, session)
        await call_with_retry(self.remote.create_training_session_items, items)

        self.session = session
        self.items = items
        self.adjustments = {}
        self.resumed = False
        self._start_ticker()
        logger.info("Started %s session %s with %d exercises", mode, session.id, len(items))
        safe_log_event(
            self.event_log,
            "training_session_started",
            {"session_id": session.id, "program_day_id": program_day_id, "exercises": len(items)},
        )
        return session

    def _start_ticker(self) -> None:
        if not self.use_ticker or self.session is None or self.session.mode != "timed":
            return
        if self.ticker is None:
            self.ticker = ElapsedTicker()
        self.ticker.start()

    async def log_set(
        self,
        item_id: str,
        set_index: int,
        weight_kg: float,
        reps: int,
        rpe: float | None = None,
    ) -> SetLogResult:
        """
        Record a performed set and suggest an adjustment for the next one.

        A second log for the same set index replaces the first.

        Args:
            item_id: Session item the set belongs to
            set_index: 1-based planned set index
            weight_kg: Load used
            reps: Reps completed
            rpe: Optional rating of perceived exertion (1-10)

        Returns:
            SetLogResult

        Raises:
            ValueError: No active session, unknown item, skipped item, bad set values
            SetLoggingError: Neither the remote nor the queue accepted the log
        """
        self._require_active()
        item = self._find_item(item_id)
        if item.skipped:
            raise ValueError(f"Exercise '{item.name or item.exercise_id}' was skipped")
        planned = {s.index: s for s in item.planned_sets}
        if set_index not in planned:
            raise ValueError(f"Set {set_index} is not planned (1..{len(item.planned_sets)})")

        performed = PerformedSet(
            index=set_index,
            weight_kg=weight_kg,
            reps=reps,
            rpe=rpe,
            completed_at=self.clock().isoformat(timespec="seconds"),
        )
        replaced = next((p for p in item.performed_sets if p.index == set_index), None)
        previous_adjustment = self.adjustments.get(item.id)
        item.record(performed)

        exercise = self.catalog.get_exercise_by_id(item.exercise_id)
        adjustment = advise_next_set(
            item.planned_sets,
            item.performed_sets,
            performed,
            step=weight_step(exercise),
            min_weight=minimum_weight(exercise),
        )
        if adjustment is not None:
            self.adjustments[item.id] = adjustment
            logger.debug("Adjustment %s for %s set %d", adjustment.rule_id, item.id, adjustment.set_index)
        else:
            self.adjustments.pop(item.id, None)

        try:
            queued = await self._write_or_enqueue(
                OperationType.INSERT_SET_LOG,
                item.id,
                {"item_id": item.id, "set": asdict(performed)},
                str(set_index),
                self.remote.insert_set_log,
                item.id,
                performed,
            )
        except SetLoggingError:
            # Nothing was recorded anywhere; put the item back as it was
            if replaced is not None:
                item.record(replaced)
            else:
                item.performed_sets = [p for p in item.performed_sets if p.index != set_index]
            if previous_adjustment is not None:
                self.adjustments[item.id] = previous_adjustment
            else:
                self.adjustments.pop(item.id, None)
            raise

        all_performed = [s for i in self.items for s in i.performed_sets]
        return SetLogResult(
            performed=performed,
            queued=queued,
            rest_seconds=adjusted_rest_seconds(planned[set_index].rest_seconds, rpe),
            adjustment=adjustment,
            fatigue=detect_session_fatigue(all_performed),
        )

    async def skip_exercise(self, item_id: str) -> bool:
        """
        Mark an exercise skipped.  Returns True when the change was queued.

        Raises:
            ValueError: No active session or unknown item
            SetLoggingError: Neither the remote nor the queue accepted the change
        """
        self._require_active()
        item = self._find_item(item_id)
        was_skipped = item.skipped
        previous_adjustment = self.adjustments.pop(item.id, None)
        item.skipped = True
        changes = {"skipped": True}
        try:
            return await self._write_or_enqueue(
                OperationType.UPSERT_ITEM,
                item.id,
                {"item_id": item.id, "changes": changes},
                "skipped",
                self.remote.update_training_session_item,
                item.id,
                changes,
            )
        except SetLoggingError:
            item.skipped = was_skipped
            if previous_adjustment is not None:
                self.adjustments[item.id] = previous_adjustment
            raise

    async def _personal_records(self, session: TrainingSession, date: str) -> tuple[list[PersonalRecord], list[str]]:
        records: list[PersonalRecord] = []
        failures: list[str] = []
        online = self.probe.is_network_available()
        for item in self.items:
            if item.skipped or not item.performed_sets:
                continue
            if not online:
                failures.append(item.exercise_id)
                continue
            try:
                best = await call_with_retry(
                    self.remote.get_exercise_best_performance,
                    session.user_id,
                    item.exercise_id,
                    session.id,
                )
                records.extend(detect_prs(item.exercise_id, item.performed_sets, best, date))
            except (RemoteError, TimeoutError, ConnectionError) as e:
                logger.warning("PR detection for %s failed: %s", item.exercise_id, e)
                failures.append(item.exercise_id)
            except Exception:
                logger.exception("PR detection for %s failed", item.exercise_id)
                failures.append(item.exercise_id)
        if failures and not online:
            logger.info("Offline: PR detection skipped for %s", ", ".join(failures))
        return records, failures

    async def end_session(self) -> SessionSummary:
        """
        Finish the active session and compute its summary.

        The summary is computed once; calling again after the session ended
        returns the stored summary unchanged.  When the finalize cannot be
        recorded anywhere the session stays open, so a later call retries it.

        Raises:
            ValueError: No session loaded
            SetLoggingError: Neither the remote nor the queue accepted the finalize
        """
        if self.session is None:
            raise ValueError("No training session in progress")
        session = self.session
        if session.summary is not None:
            return session.summary

        ended = self.clock()
        started = datetime.fromisoformat(session.started_at)
        performed = [s for item in self.items if not item.skipped for s in item.performed_sets]
        records, failures = await self._personal_records(session, ended.date().isoformat())

        summary = SessionSummary(
            duration_seconds=max(0, int((ended - started).total_seconds())),
            completed_exercises=sum(1 for i in self.items if i.performed_sets and not i.skipped),
            skipped_exercises=sum(1 for i in self.items if i.skipped),
            total_sets=len(performed),
            total_volume_kg=round(session_volume(performed), 2),
            personal_records=records,
            pr_failures=failures,
        )
        ended_at = ended.isoformat(timespec="seconds")

        changes = {"ended_at": ended_at, "summary": asdict(summary)}
        await self._write_or_enqueue(
            OperationType.FINALIZE_SESSION,
            session.id,
            {"session_id": session.id, "changes": changes},
            "",
            self.remote.update_training_session,
            session.id,
            changes,
        )

        session.ended_at = ended_at
        session.summary = summary
        self.adjustments = {}
        if self.ticker is not None:
            await self.ticker.stop()
            self.ticker = None

        logger.info(
            "Ended session %s: %d sets, %.1f kg, %d PR(s)",
            session.id, summary.total_sets, summary.total_volume_kg, len(records),
        )
        safe_log_event(
            self.event_log,
            "training_session_completed",
            {"session_id": session.id, "total_sets": summary.total_sets, "prs": len(records)},
        )
        return summary

    async def close(self) -> None:
        """Stop background timers without ending the session."""
        if self.ticker is not None:
            await self.ticker.stop()
            self.ticker = None
