"""Sync error taxonomy."""


class SyncError(RuntimeError):
    """Base class for sync failures."""


class NotConnectedError(SyncError):
    """Raised when a user has no remote token. Not retried internally."""

    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} is not connected to Todoist")
        self.user_id = user_id


class RemoteOperationError(SyncError):
    """Any failure talking to the remote service: transport, auth or validation."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class SyncLogError(SyncError):
    """Writing a SyncLog row failed. Always swallowed by the engine."""
