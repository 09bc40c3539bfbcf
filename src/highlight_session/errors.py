from __future__ import annotations


class SessionStorageError(Exception):
    """Base class for every failure raised by the session persistence layer."""


class StorageUnavailable(SessionStorageError):
    """The backing store could not be reached (quota, permissions, locked database)."""


class DecodeFailure(SessionStorageError):
    def __init__(self, store: str, key: str | None, reason: str):
        self.store = store
        self.key = key
        self.reason = reason
        super().__init__(f"Undecodable {store} record {key or '<unknown>'}: {reason}")


class IncompleteSessionDataError(SessionStorageError):
    """Media exists for the session but a sibling entity is missing or inconsistent."""

    def __init__(self, media_id: str, missing: str, detail: str = ""):
        self.media_id = media_id
        self.missing = missing
        message = f"Session for media {media_id} is incomplete: {missing} not found"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class CleanupError(SessionStorageError):
    def __init__(self, session_id: str, message: str):
        self.session_id = session_id
        super().__init__(f"Cleanup of session {session_id} failed: {message}")


class MediaReferenceError(Exception):
    """A playable handle could not be created for media bytes."""
