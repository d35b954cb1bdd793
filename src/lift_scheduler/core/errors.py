"""
Exception taxonomy for lift-scheduler.

Remote errors are split by retryability so callers (direct writes and the
offline queue drain) can decide whether to try again later.
"""


class ProgramGenerationError(Exception):
    """Generated program days do not match weeks x selected weekdays."""

    pass


class RemoteError(Exception):
    """Base class for failures reported by the remote store."""

    pass


class TransientRemoteError(RemoteError):
    """Network/timeout/5xx style failure; the same call may succeed later."""

    pass


class PermanentRemoteError(RemoteError):
    """Rejected by the remote; retrying the same payload will not help."""

    pass


class AlreadyAppliedError(PermanentRemoteError):
    """The remote already holds the result of this operation."""

    pass


class ActiveSessionError(Exception):
    """A training session is already in progress for this user."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Session {session_id} is still in progress. Resume it or end it first."
        )
        self.session_id = session_id


class SetLoggingError(Exception):
    """Both the direct write and the offline enqueue failed."""

    pass


class UnknownExerciseError(KeyError):
    """Exercise id is not present in the catalog."""

    pass


def is_retryable_error(exc: BaseException) -> bool:
    """Return True if *exc* should leave an operation queued for a later attempt."""
    if isinstance(exc, TransientRemoteError):
        return True
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    return False
