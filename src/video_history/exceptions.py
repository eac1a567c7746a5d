"""Error taxonomy for the history store backends."""


class HistoryError(Exception):
    """Base exception for video history errors."""


class RemoteUnavailable(HistoryError):
    """Transport, auth or store-side failure on a remote store call."""


class LocalCorrupt(HistoryError):
    """The persisted local payload is not a readable history list."""


class LocalWriteFailed(HistoryError):
    """The local slot rejected a write (quota, permissions, serialization)."""
