"""
Offline queue replay.

Queued operations are applied to the remote strictly in enqueue order.  The
first failure halts the drain so a later operation (e.g. finalizing a
session) can never overtake an earlier one (a set log in that session).
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..core.config import CONNECTIVITY_PROBE_SECONDS
from ..core.errors import AlreadyAppliedError, RemoteError, is_retryable_error
from ..core.interfaces import ConnectivityProbe, EventLog, RemoteStore, safe_log_event
from ..core.models import OfflineOperation, OperationState, OperationType
from .offline_queue import OfflineQueue
from .serializers import ValidationError, dict_to_performed_set

logger = logging.getLogger(__name__)


async def apply_operation(remote: RemoteStore, op: OfflineOperation) -> None:
    """
    Replay one queued operation against the remote.

    Payloads: insert_set_log {"item_id", "set"}, upsert_item {"item_id",
    "changes"}, finalize_session {"session_id", "changes"}.

    Raises:
        RemoteError: Whatever the remote raised
        ValidationError: If the payload is malformed
    """
    payload = op.payload
    try:
        if op.type == OperationType.INSERT_SET_LOG:
            await remote.insert_set_log(payload["item_id"], dict_to_performed_set(payload["set"]))
        elif op.type == OperationType.UPSERT_ITEM:
            await remote.update_training_session_item(payload["item_id"], payload["changes"])
        elif op.type == OperationType.FINALIZE_SESSION:
            await remote.update_training_session(payload["session_id"], payload["changes"])
        else:
            raise ValidationError(f"Unsupported operation type: {op.type}")
    except KeyError as e:
        raise ValidationError(f"Operation {op.id} payload is missing {e}") from e


# =============================================================================
# DRAIN
# =============================================================================


@dataclass
class SyncResult:
    """Outcome of one drain attempt."""

    applied: int = 0
    failed: int = 0
    remaining: int = 0
    offline: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def halted(self) -> bool:
        return self.failed > 0


async def sync_offline_queue(
    queue: OfflineQueue,
    remote: RemoteStore,
    probe: ConnectivityProbe,
    event_log: EventLog | None = None,
) -> SyncResult:
    """
    Drain the queue in FIFO order.

    Returns immediately when the probe reports no network.  Each entry is
    removed only after the remote confirmed it; AlreadyAppliedError counts
    as confirmation.  A retryable failure marks the entry failed_retryable,
    a permanent one marks it failed; either way the drain stops there and
    every later entry stays queued in its original position.

    Args:
        queue: Queue to drain
        remote: Remote store to apply to
        probe: Connectivity probe checked before draining
        event_log: Optional telemetry sink

    Returns:
        SyncResult with applied/failed/remaining counts and error messages
    """
    result = SyncResult()
    if not probe.is_network_available():
        result.offline = True
        result.remaining = queue.size()
        logger.info("Network unavailable; %d operation(s) stay queued", result.remaining)
        return result

    while True:
        op = queue.peek()
        if op is None:
            break

        queue.mark(op.id, OperationState.APPLYING)
        try:
            await apply_operation(remote, op)
        except AlreadyAppliedError:
            logger.info("Remote already holds %s; dropping it", op.idempotency_key)
        except (RemoteError, TimeoutError, ConnectionError, ValidationError) as e:
            if is_retryable_error(e):
                state = OperationState.FAILED_RETRYABLE
            else:
                state = OperationState.FAILED
            queue.mark(op.id, state, error=str(e))
            result.failed += 1
            result.errors.append(f"{op.idempotency_key}: {e}")
            log = logger.warning if state == OperationState.FAILED_RETRYABLE else logger.error
            log("Sync halted at %s (%s): %s", op.idempotency_key, state.value, e)
            break

        queue.remove(op.id)
        result.applied += 1
        logger.debug("Applied %s", op.idempotency_key)

    result.remaining = queue.size()
    safe_log_event(
        event_log,
        "training_sync_completed",
        {"applied": result.applied, "failed": result.failed, "remaining": result.remaining},
    )
    return result


# =============================================================================
# CONNECTIVITY MONITOR
# =============================================================================


class ConnectivityMonitor:
    """
    Polls a probe at a fixed interval and runs ``on_available`` whenever the
    network comes back (including the first successful probe).

    The polling task is cancelled by stop(); callbacks never overlap.
    """

    def __init__(
        self,
        probe: ConnectivityProbe,
        on_available: Callable[[], Awaitable[Any]],
        interval: float = CONNECTIVITY_PROBE_SECONDS,
    ):
        self.probe = probe
        self.on_available = on_available
        self.interval = interval
        self.triggers = 0
        self._was_available = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
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
            available = self.probe.is_network_available()
            if available and not self._was_available:
                self.triggers += 1
                try:
                    await self.on_available()
                except Exception:
                    logger.exception("Reconnect handler failed")
            self._was_available = available
            await asyncio.sleep(self.interval)
