from __future__ import annotations

from datetime import timedelta

from loguru import logger

from highlight_session.errors import StorageUnavailable
from highlight_session.models import Clock, parse_timestamp, system_clock
from highlight_session.session.codec import record_session_id
from highlight_session.session.entity_store import METADATA_ONLY_KEY_PREFIX
from highlight_session.session.registry import SessionContext
from highlight_session.storage.durable import DURABLE_STORES, ENTITY_STORES, SESSION_STORE
from highlight_session.storage.tier import StorageTier

DEFAULT_SESSION_TTL = timedelta(hours=24)


class StaleSessionReaper:
    """Deletes sessions left behind by earlier runs. Runs once at boot, before restore.

    A session is reaped when its last write is older than the TTL, when its id is
    outside this registry's id space, or when entities reference it but no
    SessionRecord does (orphans). The current session is never treated as an
    orphan, since its record is only created on its first write.
    """

    def __init__(
        self,
        tier: StorageTier,
        context: SessionContext,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Clock = system_clock,
    ):
        self._tier = tier
        self._context = context
        self._ttl = ttl
        self._clock = clock

    async def reap(self) -> list[str]:
        cutoff = self._clock() - self._ttl
        prefix = self._context.registry.prefix
        current = self._context.session_id

        try:
            records = await self._context.registry.list_sessions()
        except StorageUnavailable as ex:
            logger.warning(f"Reaper could not list sessions: {ex}")
            return []

        doomed: dict[str, str] = {}
        for record in records:
            last_saved = parse_timestamp(record.last_saved_at)
            if last_saved is None or last_saved < cutoff:
                doomed[record.session_id] = "expired"
            elif not record.session_id.startswith(prefix):
                doomed[record.session_id] = "foreign id"

        known = {record.session_id for record in records}
        for session_id in await self._referenced_session_ids():
            if session_id not in known and session_id != current:
                doomed.setdefault(session_id, "orphaned")

        reaped: list[str] = []
        for session_id, reason in doomed.items():
            try:
                await self._delete_session(session_id)
            except StorageUnavailable as ex:
                logger.warning(f"Reaper skipped session {session_id} ({reason}): {ex}")
                continue
            logger.info(f"Reaped session {session_id} ({reason})")
            reaped.append(session_id)
        return reaped

    async def _referenced_session_ids(self) -> set[str]:
        session_ids: set[str] = set()
        for store in ENTITY_STORES:
            try:
                session_ids |= await self._tier.durable_session_ids(store)
            except StorageUnavailable as ex:
                logger.warning(f"Reaper could not scan {store}: {ex}")
        try:
            for key in self._tier.volatile_keys():
                if key.startswith(METADATA_ONLY_KEY_PREFIX):
                    stored = self._tier.get_volatile(key)
                    session_id = record_session_id(stored) if isinstance(stored, dict) else None
                    if session_id:
                        session_ids.add(session_id)
        except StorageUnavailable as ex:
            logger.warning(f"Reaper could not scan metadata-only media: {ex}")
        return session_ids

    async def _delete_session(self, session_id: str) -> None:
        tx = self._tier.begin_transaction(DURABLE_STORES)
        for store in ENTITY_STORES:
            tx.delete_session(store, session_id)
        tx.delete(SESSION_STORE, session_id)
        await tx.commit()
        remove_metadata_only_media(self._tier, session_id)


def remove_metadata_only_media(tier: StorageTier, session_id: str) -> int:
    """Drop the session's metadata-only media from the volatile tier. Failures are logged."""
    removed = 0
    try:
        for key in tier.volatile_keys():
            if not key.startswith(METADATA_ONLY_KEY_PREFIX):
                continue
            stored = tier.get_volatile(key)
            if isinstance(stored, dict) and record_session_id(stored) == session_id:
                tier.remove_volatile(key)
                removed += 1
    except StorageUnavailable as ex:
        logger.warning(f"Could not remove metadata-only media of session {session_id}: {ex}")
    return removed
