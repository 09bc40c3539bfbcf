from __future__ import annotations

from typing import Iterable

from loguru import logger

from highlight_session.errors import CleanupError, StorageUnavailable
from highlight_session.lifecycle.monitor import CLOSING_FLAG_KEY
from highlight_session.session.entity_store import EntityStore
from highlight_session.session.reaper import remove_metadata_only_media
from highlight_session.session.registry import SessionContext
from highlight_session.storage.durable import DURABLE_STORES, ENTITY_STORES, SESSION_STORE
from highlight_session.storage.tier import StorageTier


class SessionCleanupService:
    def __init__(self, tier: StorageTier, context: SessionContext, stores: Iterable[EntityStore]):
        self._tier = tier
        self._context = context
        self._stores = list(stores)

    async def execute(self) -> None:
        """Delete every record of the current session, all or nothing.

        Entity and registry rows are removed in one durable transaction. On
        success the volatile tier is swept and a fresh session id is issued; on
        failure CleanupError is raised and the closing flag stays set so a later
        boot retries. In-memory caches are cleared either way.
        """
        session_id = self._context.session_id
        try:
            tx = self._tier.begin_transaction(DURABLE_STORES)
            for store in ENTITY_STORES:
                tx.delete_session(store, session_id)
            tx.delete(SESSION_STORE, session_id)
            try:
                removed = await tx.commit()
            except StorageUnavailable as ex:
                raise CleanupError(session_id, str(ex)) from ex

            remove_metadata_only_media(self._tier, session_id)
            self._context.registry.rotate()
            self._clear_flag()
            logger.info(f"Session {session_id} cleaned up ({removed} durable records removed)")
        finally:
            for store in self._stores:
                store.clear()
            self._context.registry.reset()

    def _clear_flag(self) -> None:
        try:
            self._tier.remove_volatile(CLOSING_FLAG_KEY)
        except StorageUnavailable as ex:
            logger.warning(f"Closing flag not cleared after cleanup: {ex}")
