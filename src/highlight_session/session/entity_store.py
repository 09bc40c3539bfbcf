from __future__ import annotations

import time
from typing import Any, Generic, TypeVar

from loguru import logger

from highlight_session.errors import DecodeFailure, SessionStorageError, StorageUnavailable
from highlight_session.models import HighlightSet, Media, Transcript
from highlight_session.session.codec import (
    EntityCodec,
    HighlightCodec,
    MediaCodec,
    TranscriptCodec,
    record_save_seq,
    record_saved_at,
    record_session_id,
)
from highlight_session.session.registry import SessionContext
from highlight_session.session.tiering import Tier, TieringPolicy
from highlight_session.storage.tier import StorageTier

E = TypeVar("E")

METADATA_ONLY_KEY_PREFIX = "media:"


class EntityStore(Generic[E]):
    """Write-through repository for one entity kind.

    The in-memory map is authoritative for the lifetime of the process; the
    storage tier is best-effort. Storage and decode failures are logged and
    degrade to "not found", they never reach the caller.
    """

    def __init__(self, tier: StorageTier, context: SessionContext, codec: EntityCodec[E]):
        self._tier = tier
        self._context = context
        self._codec = codec
        self._entities: dict[str, E] = {}
        self._saved_at: dict[str, str] = {}
        self._save_seq: dict[str, int] = {}
        self._last_seq = 0

    @property
    def kind(self) -> str:
        return self._codec.store

    def __len__(self) -> int:
        return len(self._entities)

    def saved_at(self, entity_id: str) -> str | None:
        return self._saved_at.get(entity_id)

    def save_order(self, entity_id: str) -> tuple[str, int]:
        """Sort key for "most recently saved": ``saved_at``, then the save sequence."""
        return self._saved_at.get(entity_id, ""), self._save_seq.get(entity_id, 0)

    async def save(self, entity: E) -> None:
        entity_id = self._codec.entity_id(entity)
        now = self._context.now()
        seq = self._next_seq()
        self._entities[entity_id] = entity
        self._saved_at[entity_id] = now
        self._save_seq[entity_id] = seq

        session_id = self._context.session_id
        try:
            await self._context.registry.touch(now)
        except SessionStorageError as ex:
            logger.warning(f"{self.kind}: session {session_id} not recorded for {entity_id}: {ex}")

        record = self._codec.encode(entity, session_id, now)
        record["save_seq"] = seq
        try:
            await self._persist(entity_id, record, entity)
        except SessionStorageError as ex:
            logger.warning(f"{self.kind}: could not persist {entity_id}, keeping it in memory only: {ex}")

    async def find_by_id(self, entity_id: str) -> E | None:
        cached = self._entities.get(entity_id)
        if cached is not None:
            return cached

        try:
            record = await self._load(entity_id)
        except StorageUnavailable as ex:
            logger.warning(f"{self.kind}: lookup of {entity_id} failed: {ex}")
            return None
        if record is None:
            return None
        return self._admit(record)

    async def find_by_related_id(self, related_id: str) -> list[E]:
        if self._codec.related_field is None:
            raise TypeError(f"{self.kind} records have no related id")

        matches = [e for e in self._entities.values() if self._codec.related_id(e) == related_id]
        if matches:
            return matches

        try:
            records = await self._tier.get_all_durable(
                self.kind,
                session_id=self._context.session_id,
                media_id=related_id,
            )
        except StorageUnavailable as ex:
            logger.warning(f"{self.kind}: lookup by related id {related_id} failed: {ex}")
            return []
        return [entity for entity in (self._admit(record) for record in records) if entity is not None]

    async def find_all(self) -> list[E]:
        if self._entities:
            return list(self._entities.values())

        try:
            records = await self._load_all()
        except StorageUnavailable as ex:
            logger.warning(f"{self.kind}: bulk restore failed: {ex}")
            return []

        restored = [entity for entity in (self._admit(record) for record in records) if entity is not None]
        logger.debug(f"{self.kind}: restored {len(restored)} of {len(records)} records")
        return restored

    def delete(self, entity_id: str) -> None:
        self._entities.pop(entity_id, None)
        self._saved_at.pop(entity_id, None)
        self._save_seq.pop(entity_id, None)

    def clear(self) -> None:
        self._entities.clear()
        self._saved_at.clear()
        self._save_seq.clear()

    def _next_seq(self) -> int:
        # Strictly increasing within the process, wall-clock ordered across processes.
        self._last_seq = max(self._last_seq + 1, time.time_ns())
        return self._last_seq

    async def _persist(self, entity_id: str, record: dict[str, Any], entity: E) -> None:
        await self._tier.put_durable(self.kind, entity_id, record)

    async def _load(self, entity_id: str) -> dict[str, Any] | None:
        return await self._tier.get_durable(self.kind, entity_id)

    async def _load_all(self) -> list[dict[str, Any]]:
        return await self._tier.get_all_durable(self.kind, session_id=self._context.session_id)

    def _admit(self, record: dict[str, Any]) -> E | None:
        try:
            entity = self._codec.decode(record)
        except DecodeFailure as ex:
            logger.warning(f"{self.kind}: skipping record: {ex}")
            return None
        entity_id = self._codec.entity_id(entity)
        self._entities[entity_id] = entity
        self._saved_at[entity_id] = record_saved_at(record)
        seq = record_save_seq(record)
        self._save_seq[entity_id] = seq
        self._last_seq = max(self._last_seq, seq)
        return entity


class MediaStore(EntityStore[Media]):
    """Media repository that splits records across tiers by size.

    Media above the policy threshold is written without its bytes to the volatile
    tier; everything else goes to the durable tier in full.
    """

    def __init__(self, tier: StorageTier, context: SessionContext, policy: TieringPolicy):
        super().__init__(tier, context, MediaCodec())
        self._policy = policy

    async def _persist(self, entity_id: str, record: dict[str, Any], entity: Media) -> None:
        if self._policy.choose_tier(entity.size) is Tier.FULL:
            await self._tier.put_durable(self.kind, entity_id, record)
            return
        descriptor = {k: v for k, v in record.items() if k != "payload"}
        self._tier.put_volatile(metadata_only_key(entity_id), descriptor)
        logger.info(f"media: {entity_id} is {entity.size:,} bytes, persisted metadata only")

    async def _load(self, entity_id: str) -> dict[str, Any] | None:
        record = await self._tier.get_durable(self.kind, entity_id)
        if record is not None:
            return record
        stored = self._tier.get_volatile(metadata_only_key(entity_id))
        return stored if isinstance(stored, dict) else None

    async def _load_all(self) -> list[dict[str, Any]]:
        session_id = self._context.session_id
        records = await self._tier.get_all_durable(self.kind, session_id=session_id)
        try:
            records.extend(self._metadata_only_records(session_id))
        except StorageUnavailable as ex:
            logger.warning(f"media: metadata-only records unavailable: {ex}")
        return records

    def _metadata_only_records(self, session_id: str) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for key in self._tier.volatile_keys():
            if not key.startswith(METADATA_ONLY_KEY_PREFIX):
                continue
            stored = self._tier.get_volatile(key)
            if isinstance(stored, dict) and record_session_id(stored) == session_id:
                records.append(stored)
        return records


class TranscriptStore(EntityStore[Transcript]):
    def __init__(self, tier: StorageTier, context: SessionContext):
        super().__init__(tier, context, TranscriptCodec())

    async def find_by_media_id(self, media_id: str) -> Transcript | None:
        matches = await self.find_by_related_id(media_id)
        return matches[0] if matches else None


class HighlightStore(EntityStore[HighlightSet]):
    def __init__(self, tier: StorageTier, context: SessionContext):
        super().__init__(tier, context, HighlightCodec())

    async def find_by_media_id(self, media_id: str) -> list[HighlightSet]:
        return await self.find_by_related_id(media_id)


def metadata_only_key(media_id: str) -> str:
    return f"{METADATA_ONLY_KEY_PREFIX}{media_id}"
