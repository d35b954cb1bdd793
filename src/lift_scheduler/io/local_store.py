"""
Local data directory used by the CLI.

Layout (default ~/.lift-scheduler, or $LIFT_SCHEDULER_HOME):

    profile.json            training profile + user id
    active_session.json     in-progress session, items and pending adjustments
    offline_queue.jsonl     queued remote mutations
    remote.json             file-backed remote store
    events.jsonl            telemetry
"""

import json
import os
import uuid
from pathlib import Path

from ..core.autoregulation import SetAdjustment
from ..core.config import DATA_DIR_ENV, DATA_DIR_NAME
from ..core.models import TrainingProfile, TrainingSession, TrainingSessionItem
from .offline_queue import OfflineQueue
from .remote import FileRemoteStore
from .serializers import (
    ValidationError,
    dict_to_session_item,
    dict_to_set_adjustment,
    dict_to_training_profile,
    dict_to_training_session,
    session_item_to_dict,
    set_adjustment_to_dict,
    training_profile_to_dict,
    training_session_to_dict,
)
from .telemetry import JsonlEventLog


def default_data_dir() -> Path:
    """$LIFT_SCHEDULER_HOME if set, else ~/.lift-scheduler."""
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / DATA_DIR_NAME


class LocalStore:
    """
    Manages the files in one data directory.

    Args:
        data_dir: Directory to use; default_data_dir() when None
    """

    def __init__(self, data_dir: str | Path | None = None):
        self.data_dir = Path(data_dir) if data_dir is not None else default_data_dir()
        self.profile_path = self.data_dir / "profile.json"
        self.session_path = self.data_dir / "active_session.json"
        self.queue_path = self.data_dir / "offline_queue.jsonl"
        self.remote_path = self.data_dir / "remote.json"
        self.events_path = self.data_dir / "events.jsonl"

    def exists(self) -> bool:
        return self.profile_path.exists()

    def init(self) -> None:
        """Create the data directory if needed."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    # -- profile ---------------------------------------------------------

    def load_profile(self) -> TrainingProfile | None:
        """
        Load the training profile.

        Returns:
            TrainingProfile, or None if the file does not exist

        Raises:
            ValidationError: If the file is not a valid profile
        """
        if not self.profile_path.exists():
            return None
        data = self._read_json(self.profile_path)
        return dict_to_training_profile(data.get("profile", {}))

    def user_id(self) -> str:
        """Stable local user id, created with the profile."""
        if not self.profile_path.exists():
            raise FileNotFoundError(f"No profile at {self.profile_path}. Run 'init' first.")
        return str(self._read_json(self.profile_path)["user_id"])

    def save_profile(self, profile: TrainingProfile) -> None:
        """Write the profile, keeping an existing user id."""
        self.init()
        user_id = uuid.uuid4().hex
        if self.profile_path.exists():
            user_id = self._read_json(self.profile_path).get("user_id", user_id)
        self._write_json(
            self.profile_path,
            {"user_id": user_id, "profile": training_profile_to_dict(profile)},
        )

    # -- active session --------------------------------------------------

    def load_active_session(
        self,
    ) -> tuple[TrainingSession, list[TrainingSessionItem], dict[str, SetAdjustment]] | None:
        if not self.session_path.exists():
            return None
        data = self._read_json(self.session_path)
        try:
            session = dict_to_training_session(data["session"])
            items = [dict_to_session_item(i) for i in data["items"]]
            adjustments = {
                item_id: dict_to_set_adjustment(a)
                for item_id, a in (data.get("adjustments") or {}).items()
            }
        except KeyError as e:
            raise ValidationError(f"{self.session_path}: missing {e}") from e
        return session, items, adjustments

    def save_active_session(
        self,
        session: TrainingSession,
        items: list[TrainingSessionItem],
        adjustments: dict[str, SetAdjustment],
    ) -> None:
        self._write_json(
            self.session_path,
            {
                "session": training_session_to_dict(session),
                "items": [session_item_to_dict(i) for i in items],
                "adjustments": {k: set_adjustment_to_dict(a) for k, a in adjustments.items()},
            },
        )

    def clear_active_session(self) -> None:
        if self.session_path.exists():
            self.session_path.unlink()

    # -- collaborators ---------------------------------------------------

    def queue(self) -> OfflineQueue:
        return OfflineQueue(self.queue_path)

    def remote(self) -> FileRemoteStore:
        return FileRemoteStore(self.remote_path)

    def event_log(self) -> JsonlEventLog:
        return JsonlEventLog(self.events_path)

    # -- helpers ---------------------------------------------------------

    def _read_json(self, path: Path) -> dict:
        try:
            with open(path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"{path}: invalid JSON: {e}") from e

    def _write_json(self, path: Path, data: dict) -> None:
        self.init()
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
