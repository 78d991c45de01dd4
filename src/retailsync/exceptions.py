"""Exception hierarchy shared by the sync engine, the upstream client and sinks."""


class RetailSyncError(Exception):
    """Base class for all retailsync errors."""


# ── Upstream ──────────────────────────────────────────────────────────────────

class UpstreamError(RetailSyncError):
    """Raised when the upstream API returns an unexpected response."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(UpstreamError):
    """Raised when an access token cannot be obtained or is rejected twice."""


class RateLimitedError(UpstreamError):
    """Raised on HTTP 429. Retried like any other transient failure."""


# ── Persistence ───────────────────────────────────────────────────────────────

class RecordValidationError(RetailSyncError, ValueError):
    """Raised for a single record that cannot be sanitized (e.g. missing key)."""


class PersistenceError(RetailSyncError):
    """Raised when a whole persistence transaction was rolled back."""


# ── Registry ──────────────────────────────────────────────────────────────────

class UnknownEntityError(RetailSyncError, KeyError):
    """Raised when an entity type has no registered descriptor."""


# ── Notification ──────────────────────────────────────────────────────────────

class NotificationError(RetailSyncError):
    """Raised by a sink when a message could not be delivered."""
