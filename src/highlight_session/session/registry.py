from __future__ import annotations

from dataclasses import replace

from loguru import logger

from highlight_session.errors import StorageUnavailable
from highlight_session.models import (
    SESSION_ID_PREFIX,
    Clock,
    SessionRecord,
    generate_id,
    system_clock,
    utc_now,
)
from highlight_session.storage.durable import SESSION_STORE
from highlight_session.storage.tier import StorageTier

SESSION_ID_KEY = "sessionId"


class SessionRegistry:
    """Owns the current session id and its SessionRecord.

    The id lives in the volatile tier so an in-place restart keeps it; the record
    lives in the durable tier and is created lazily on the first entity write.
    """

    def __init__(
        self,
        tier: StorageTier,
        *,
        prefix: str = SESSION_ID_PREFIX,
        clock: Clock = system_clock,
    ):
        self._tier = tier
        self._prefix = prefix
        self._clock = clock
        self._session_id: str | None = None
        self._record: SessionRecord | None = None

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def current_session_id(self) -> str:
        if self._session_id is None:
            raise RuntimeError("SessionRegistry has not been opened")
        return self._session_id

    def now(self) -> str:
        return utc_now(self._clock)

    def open(self) -> SessionContext:
        existing: object = None
        try:
            existing = self._tier.get_volatile(SESSION_ID_KEY)
        except StorageUnavailable as ex:
            logger.warning(f"Could not read session id from scoped store: {ex}")

        if isinstance(existing, str) and existing.strip():
            self._session_id = existing
            logger.debug(f"Resumed session id {existing}")
        else:
            self._session_id = self._issue_id()
        return SessionContext(self)

    def rotate(self) -> str:
        """Retire the current id and issue a fresh one for the rest of this scope."""
        retired = self._session_id
        self._record = None
        try:
            self._tier.remove_volatile(SESSION_ID_KEY)
        except StorageUnavailable as ex:
            logger.warning(f"Could not remove session id {retired} from scoped store: {ex}")
        self._session_id = self._issue_id()
        logger.info(f"Session {retired} retired, continuing as {self._session_id}")
        return self._session_id

    def reset(self) -> None:
        self._record = None

    async def touch(self, saved_at: str | None = None) -> SessionRecord:
        session_id = self.current_session_id
        now = saved_at or self.now()
        record = self._record
        if record is None:
            stored = await self._tier.get_durable(SESSION_STORE, session_id)
            record = _decode_session(stored) if stored is not None else None

        if record is None:
            record = SessionRecord(session_id=session_id, created_at=now, last_saved_at=now)
            logger.info(f"Session {session_id} created")
        else:
            record = replace(record, last_saved_at=now)

        await self._tier.put_durable(SESSION_STORE, session_id, _encode_session(record))
        self._record = record
        return record

    async def get(self, session_id: str) -> SessionRecord | None:
        stored = await self._tier.get_durable(SESSION_STORE, session_id)
        if stored is None:
            return None
        return _decode_session(stored)

    async def list_sessions(self) -> list[SessionRecord]:
        rows = await self._tier.get_all_durable(SESSION_STORE)
        records: list[SessionRecord] = []
        for row in rows:
            record = _decode_session(row)
            if record is None:
                logger.warning(f"Skipping malformed session record: {row.get('id')!r}")
                continue
            records.append(record)
        records.sort(key=lambda r: (r.last_saved_at, r.created_at), reverse=True)
        return records

    def _issue_id(self) -> str:
        session_id = generate_id(self._prefix)
        try:
            self._tier.put_volatile(SESSION_ID_KEY, session_id)
        except StorageUnavailable as ex:
            logger.warning(f"Session id {session_id} will not survive a restart: {ex}")
        logger.debug(f"Issued session id {session_id}")
        return session_id


class SessionContext:
    """Explicit handle on the session that owns every write made through it."""

    def __init__(self, registry: SessionRegistry):
        self._registry = registry

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def session_id(self) -> str:
        return self._registry.current_session_id

    def now(self) -> str:
        return self._registry.now()


def _encode_session(record: SessionRecord) -> dict:
    return {
        "id": record.session_id,
        "session_id": record.session_id,
        "saved_at": record.last_saved_at,
        "created_at": record.created_at,
        "last_saved_at": record.last_saved_at,
    }


def _decode_session(row: dict) -> SessionRecord | None:
    session_id = row.get("id")
    created_at = row.get("created_at")
    last_saved_at = row.get("last_saved_at")
    if not all(isinstance(v, str) and v for v in (session_id, created_at, last_saved_at)):
        return None
    return SessionRecord(session_id=session_id, created_at=created_at, last_saved_at=last_saved_at)
