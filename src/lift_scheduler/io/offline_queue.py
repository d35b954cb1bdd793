"""
Durable FIFO queue of remote mutations recorded while offline.

One JSON object per line.  Appends are fsynced before enqueue() returns;
state changes and removals rewrite the whole file through a temp file and
os.replace so a crash leaves either the old or the new queue, never half.
"""

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.models import OfflineOperation, OperationState, OperationType
from .serializers import ValidationError, dict_to_operation, operation_to_json_line

logger = logging.getLogger(__name__)


class OfflineQueue:
    """
    Append-only operation log with an explicit per-entry state.

    An entry leaves the queue only through remove(), which the drain calls
    after the remote confirmed the apply.  All file access happens under a
    lock, so size() can be read from another thread mid-drain.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _read(self) -> list[OfflineOperation]:
        if not self.path.exists():
            return []
        operations = []
        with open(self.path, "r") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    operations.append(dict_to_operation(json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as e:
                    raise ValidationError(f"{self.path}:{line_num}: {e}") from e
        return operations

    def _rewrite(self, operations: list[OfflineOperation]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            for op in operations:
                f.write(operation_to_json_line(op) + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    def enqueue(
        self,
        op_type: OperationType,
        target_id: str,
        payload: dict[str, Any],
        identity: str = "",
    ) -> OfflineOperation:
        """
        Durably append an operation.

        Args:
            op_type: Kind of mutation
            target_id: Item or session id the mutation applies to
            payload: JSON-compatible arguments for the remote call
            identity: Logical identity inside the target (e.g. set index)

        Returns:
            The queued OfflineOperation

        Raises:
            OSError: If the append could not be written and synced
        """
        op = OfflineOperation(
            id=uuid.uuid4().hex,
            type=op_type,
            target_id=target_id,
            payload=payload,
            enqueued_at=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            identity=identity,
        )
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(operation_to_json_line(op) + "\n")
                f.flush()
                os.fsync(f.fileno())
        logger.debug("Queued %s (%s)", op.idempotency_key, op.id)
        return op

    def size(self) -> int:
        """Number of entries not yet confirmed applied."""
        with self._lock:
            return len(self._read())

    def list_operations(self) -> list[OfflineOperation]:
        """All entries in enqueue order."""
        with self._lock:
            return self._read()

    def peek(self) -> OfflineOperation | None:
        """Oldest entry, or None when empty."""
        with self._lock:
            operations = self._read()
            return operations[0] if operations else None

    def mark(self, op_id: str, state: OperationState, error: str | None = None) -> None:
        """
        Record a state transition for one entry.

        Moving to APPLYING counts an attempt.
        """
        with self._lock:
            operations = self._read()
            for op in operations:
                if op.id == op_id:
                    op.state = state
                    if state == OperationState.APPLYING:
                        op.attempts += 1
                    if error is not None:
                        op.last_error = error
                    break
            else:
                raise KeyError(f"No queued operation {op_id}")
            self._rewrite(operations)

    def remove(self, op_id: str) -> None:
        """Drop an entry after a confirmed apply."""
        with self._lock:
            operations = self._read()
            remaining = [op for op in operations if op.id != op_id]
            if len(remaining) == len(operations):
                raise KeyError(f"No queued operation {op_id}")
            self._rewrite(remaining)

    def pending_keys(self) -> list[str]:
        """Idempotency keys in queue order."""
        return [op.idempotency_key for op in self.list_operations()]
