from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger

from highlight_session.errors import MediaReferenceError
from highlight_session.models import SessionState


@runtime_checkable
class MediaReferenceProvider(Protocol):
    def materialize(self, raw_bytes: bytes) -> str: ...

    def release(self, handle: str) -> None: ...


class TempFileMediaReferenceProvider:
    """Materializes media bytes as temporary files and hands out their file URIs."""

    def __init__(self, directory: str | None = None, suffix: str = ".media"):
        self._directory = directory
        self._suffix = suffix
        self._paths: dict[str, Path] = {}

    def materialize(self, raw_bytes: bytes) -> str:
        if not raw_bytes:
            raise MediaReferenceError("No media bytes to materialize")
        try:
            if self._directory:
                Path(self._directory).mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(suffix=self._suffix, dir=self._directory)
            with os.fdopen(fd, "wb") as f:
                f.write(raw_bytes)
        except OSError as ex:
            raise MediaReferenceError(f"Could not materialize media: {ex}") from ex

        path = Path(name).resolve()
        handle = path.as_uri()
        self._paths[handle] = path
        logger.debug(f"Materialized {len(raw_bytes):,} bytes as {handle}")
        return handle

    def release(self, handle: str) -> None:
        path = self._paths.pop(handle, None)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as ex:
            logger.warning(f"Could not release media handle {handle}: {ex}")

    def release_all(self) -> None:
        for handle in list(self._paths):
            self.release(handle)


def materialize_restored_media(state: SessionState, provider: MediaReferenceProvider) -> str | None:
    """Return a playable handle for restored media, or None when the bytes must be re-supplied."""
    if state.needs_resupply or state.media.payload is None:
        return None
    return provider.materialize(state.media.payload)
