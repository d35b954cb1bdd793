"""
Telemetry sinks.

Events are appended to a JSONL file in the data directory.  Callers go
through safe_log_event(), so a failing sink never interrupts training.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JsonlEventLog:
    """Appends ``{"ts", "event", "payload"}`` records to a file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def log_event(self, name: str, payload: dict[str, Any]) -> None:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "event": name,
            "payload": payload,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            f.write(json.dumps(record, separators=(",", ":")) + "\n")
        logger.debug("Event %s %s", name, payload)


class MemoryEventLog:
    """Keeps events in a list."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def log_event(self, name: str, payload: dict[str, Any]) -> None:
        self.events.append((name, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]
