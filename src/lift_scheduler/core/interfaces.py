"""
Collaborator interfaces consumed by the core.

The remote store, offline queue, connectivity probe and telemetry sink
are external; the core only depends on these protocols.  Concrete
implementations live in the io package.
"""

import logging
from typing import Any, Protocol

from .models import (
    OfflineOperation,
    OperationType,
    PerformedSet,
    PreviousBest,
    ProgramDay,
    ProgramInstance,
    TrainingSession,
    TrainingSessionItem,
)

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """
    Persistence reached over an unreliable network.

    Every method may raise TransientRemoteError (retry later) or
    PermanentRemoteError.  Update payloads are JSON-compatible dicts so the
    same call can be replayed from the offline queue.
    """

    async def create_program_instance(self, instance: ProgramInstance) -> None: ...

    async def create_program_days(self, days: list[ProgramDay]) -> None: ...

    async def get_program_days(
        self, instance_id: str, from_date: str | None = None, to_date: str | None = None
    ) -> list[ProgramDay]: ...

    async def get_active_program(self, user_id: str) -> ProgramInstance | None: ...

    async def create_training_session(self, session: TrainingSession) -> None: ...

    async def create_training_session_items(self, items: list[TrainingSessionItem]) -> None: ...

    async def get_training_session_items(self, session_id: str) -> list[TrainingSessionItem]: ...

    async def update_training_session_item(self, item_id: str, changes: dict[str, Any]) -> None: ...

    async def update_training_session(self, session_id: str, changes: dict[str, Any]) -> None: ...

    async def insert_set_log(self, item_id: str, performed: PerformedSet) -> None: ...

    async def get_active_training_session(self, user_id: str) -> TrainingSession | None: ...

    async def list_training_sessions(self, user_id: str) -> list[TrainingSession]: ...

    async def get_exercise_best_performance(
        self, user_id: str, exercise_id: str, exclude_session_id: str | None = None
    ) -> PreviousBest | None: ...


class ConnectivityProbe(Protocol):
    """Polled network check."""

    def is_network_available(self) -> bool: ...


class OperationQueue(Protocol):
    """Durable FIFO of mutations waiting for the remote."""

    def enqueue(
        self,
        op_type: OperationType,
        target_id: str,
        payload: dict[str, Any],
        identity: str = "",
    ) -> OfflineOperation: ...

    def size(self) -> int: ...

    def pending_keys(self) -> list[str]: ...


class EventLog(Protocol):
    """Best-effort telemetry sink."""

    def log_event(self, name: str, payload: dict[str, Any]) -> None: ...


def safe_log_event(event_log: EventLog | None, name: str, payload: dict[str, Any]) -> None:
    """Send a telemetry event; failures are logged and never reach the caller."""
    if event_log is None:
        return
    try:
        event_log.log_event(name, payload)
    except Exception:
        logger.warning("Telemetry event %r could not be recorded", name, exc_info=True)
