"""Loading completed training sessions from the remote store."""

import logging

from .analytics import last_performances
from .errors import RemoteError
from .interfaces import RemoteStore
from .models import ExercisePerformance, SessionHistoryEntry
from .retry import call_with_retry

logger = logging.getLogger(__name__)


async def load_session_history(
    remote: RemoteStore, user_id: str, limit: int | None = None
) -> list[SessionHistoryEntry]:
    """
    Finished sessions with their items, oldest first.

    Args:
        remote: Remote store
        user_id: Owner
        limit: Keep only the most recent *limit* sessions

    Raises:
        RemoteError: If the remote cannot be read after retries
    """
    sessions = await call_with_retry(remote.list_training_sessions, user_id)
    if limit is not None:
        sessions = sessions[-limit:] if limit > 0 else []

    history = []
    for session in sessions:
        items = await call_with_retry(remote.get_training_session_items, session.id)
        history.append(SessionHistoryEntry(session=session, items=items))
    logger.debug("Loaded %d finished sessions for %s", len(history), user_id)
    return history


async def load_last_performances(
    remote: RemoteStore, user_id: str, before_date: str | None = None
) -> dict[str, ExercisePerformance]:
    """
    Last performance per exercise for progression.

    A plan can always be built from the baseline, so an unreachable history
    is logged and treated as empty.
    """
    try:
        history = await load_session_history(remote, user_id)
    except (RemoteError, TimeoutError, ConnectionError) as e:
        logger.warning("Training history unavailable, prescribing from baselines: %s", e)
        return {}
    return last_performances(history, before_date)
