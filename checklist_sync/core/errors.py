"""Error taxonomy shared by the store, the gateway and the sync engine.

Transient failures are queued rather than surfaced for field saves and form
submissions. Exhausted retries are a queue status, never an exception.
"""


class ChecklistSyncError(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class UnauthenticatedError(ChecklistSyncError):
    """No bearer token is stored, or the server refused it."""


class UnavailableError(ChecklistSyncError):
    """No network and no usable cache (or a remote id is still unknown)."""


class RemoteRejectedError(ChecklistSyncError):
    """The server answered with a definite, non-network error."""

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientError(ChecklistSyncError):
    """Looks like a connectivity failure or timeout."""


class NotFoundError(ChecklistSyncError):
    """A store record that must exist does not."""
