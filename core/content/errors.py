"""Exceptions raised by the content sync engine."""


class ContentSyncError(Exception):
    """Base class for errors raised while updating the content mirror."""

    pass


class TransientSyncError(ContentSyncError):
    """Raised for network or I/O failures that may succeed on retry."""

    pass


class PermanentSyncError(ContentSyncError):
    """Raised for auth failures, missing remotes or a corrupt working copy.

    These are never retried; the message is surfaced to the caller as-is.
    """

    pass


class ContentParseError(Exception):
    """Raised when a content file in the mirror cannot be parsed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class RuntimeNotInitializedError(Exception):
    """Raised when trying to access the content runtime before startup."""

    pass
