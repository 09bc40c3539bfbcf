"""Conversions between domain entities and flat persistence records.

Records are plain dicts carrying ``id``, ``session_id`` and ``saved_at`` next to the
entity payload. Media bytes travel under the ``payload`` key and are never part of
the JSON body. Decoding never trusts the stored shape: any missing or mistyped
field raises ``DecodeFailure``.
"""

from __future__ import annotations

from typing import Any, Protocol, TypeVar

from highlight_session.errors import DecodeFailure
from highlight_session.models import HighlightSet, Media, MediaMetadata, Section, Sentence, Transcript
from highlight_session.storage.durable import HIGHLIGHT_STORE, MEDIA_STORE, TRANSCRIPT_STORE

E = TypeVar("E")


class EntityCodec(Protocol[E]):
    store: str
    related_field: str | None

    def entity_id(self, entity: E) -> str: ...

    def related_id(self, entity: E) -> str | None: ...

    def encode(self, entity: E, session_id: str, saved_at: str) -> dict[str, Any]: ...

    def decode(self, record: dict[str, Any]) -> E: ...


def _field(record: dict[str, Any], store: str, name: str, expected: type | tuple[type, ...]) -> Any:
    if name not in record:
        raise DecodeFailure(store, _record_id(record), f"missing field {name!r}")
    value = record[name]
    if isinstance(value, bool) and expected in (int, float, (int, float)):
        raise DecodeFailure(store, _record_id(record), f"field {name!r} has unexpected type bool")
    if not isinstance(value, expected):
        raise DecodeFailure(
            store,
            _record_id(record),
            f"field {name!r} has unexpected type {type(value).__name__}",
        )
    return value


def _record_id(record: dict[str, Any]) -> str | None:
    value = record.get("id")
    return value if isinstance(value, str) else None


def record_session_id(record: dict[str, Any]) -> str | None:
    value = record.get("session_id")
    return value if isinstance(value, str) else None


def record_saved_at(record: dict[str, Any]) -> str:
    value = record.get("saved_at")
    return value if isinstance(value, str) else ""


def record_save_seq(record: dict[str, Any]) -> int:
    value = record.get("save_seq")
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


class MediaCodec:
    store = MEDIA_STORE
    related_field = None

    def entity_id(self, entity: Media) -> str:
        return entity.id

    def related_id(self, entity: Media) -> str | None:
        return None

    def encode(self, entity: Media, session_id: str, saved_at: str) -> dict[str, Any]:
        metadata = entity.metadata
        return {
            "id": entity.id,
            "session_id": session_id,
            "saved_at": saved_at,
            "metadata": {
                "duration": metadata.duration,
                "width": metadata.width,
                "height": metadata.height,
                "size": metadata.size,
                "mime_type": metadata.mime_type,
                "name": metadata.name,
            },
            "payload": entity.payload,
        }

    def decode(self, record: dict[str, Any]) -> Media:
        media_id = _field(record, self.store, "id", str)
        raw = _field(record, self.store, "metadata", dict)
        payload = record.get("payload")
        if payload is not None and not isinstance(payload, (bytes, bytearray)):
            raise DecodeFailure(self.store, media_id, "payload is not binary")
        try:
            metadata = MediaMetadata(
                duration=float(_field(raw, self.store, "duration", (int, float))),
                width=int(_field(raw, self.store, "width", int)),
                height=int(_field(raw, self.store, "height", int)),
                size=int(_field(raw, self.store, "size", int)),
                mime_type=_field(raw, self.store, "mime_type", str),
                name=_field(raw, self.store, "name", str),
            )
        except ValueError as ex:
            raise DecodeFailure(self.store, media_id, str(ex)) from ex
        return Media(id=media_id, metadata=metadata, payload=bytes(payload) if payload is not None else None)


class TranscriptCodec:
    store = TRANSCRIPT_STORE
    related_field = "media_id"

    def entity_id(self, entity: Transcript) -> str:
        return entity.id

    def related_id(self, entity: Transcript) -> str | None:
        return entity.media_id

    def encode(self, entity: Transcript, session_id: str, saved_at: str) -> dict[str, Any]:
        return {
            "id": entity.id,
            "session_id": session_id,
            "saved_at": saved_at,
            "media_id": entity.media_id,
            "full_text": entity.full_text,
            "sections": [
                {
                    "id": section.id,
                    "title": section.title,
                    "sentences": [
                        {
                            "id": sentence.id,
                            "text": sentence.text,
                            "start": sentence.start,
                            "end": sentence.end,
                            "is_suggestion": sentence.is_suggestion,
                        }
                        for sentence in section.sentences
                    ],
                }
                for section in entity.sections
            ],
        }

    def decode(self, record: dict[str, Any]) -> Transcript:
        transcript_id = _field(record, self.store, "id", str)
        media_id = _field(record, self.store, "media_id", str)
        raw_sections = _field(record, self.store, "sections", list)
        try:
            sections = tuple(self._decode_section(raw) for raw in raw_sections)
            return Transcript(
                id=transcript_id,
                media_id=media_id,
                sections=sections,
                full_text=str(record.get("full_text") or ""),
            )
        except ValueError as ex:
            raise DecodeFailure(self.store, transcript_id, str(ex)) from ex

    def _decode_section(self, raw: Any) -> Section:
        if not isinstance(raw, dict):
            raise DecodeFailure(self.store, None, "section is not an object")
        sentences = tuple(self._decode_sentence(item) for item in _field(raw, self.store, "sentences", list))
        return Section(
            id=_field(raw, self.store, "id", str),
            title=_field(raw, self.store, "title", str),
            sentences=sentences,
        )

    def _decode_sentence(self, raw: Any) -> Sentence:
        if not isinstance(raw, dict):
            raise DecodeFailure(self.store, None, "sentence is not an object")
        return Sentence(
            id=_field(raw, self.store, "id", str),
            text=_field(raw, self.store, "text", str),
            start=float(_field(raw, self.store, "start", (int, float))),
            end=float(_field(raw, self.store, "end", (int, float))),
            is_suggestion=bool(raw.get("is_suggestion", False)),
        )


class HighlightCodec:
    store = HIGHLIGHT_STORE
    related_field = "media_id"

    def entity_id(self, entity: HighlightSet) -> str:
        return entity.id

    def related_id(self, entity: HighlightSet) -> str | None:
        return entity.media_id

    def encode(self, entity: HighlightSet, session_id: str, saved_at: str) -> dict[str, Any]:
        return {
            "id": entity.id,
            "session_id": session_id,
            "saved_at": saved_at,
            "media_id": entity.media_id,
            "name": entity.name,
            "selected_sentence_ids": list(entity.selected_sentence_ids),
        }

    def decode(self, record: dict[str, Any]) -> HighlightSet:
        highlight_id = _field(record, self.store, "id", str)
        selected = _field(record, self.store, "selected_sentence_ids", list)
        if not all(isinstance(item, str) for item in selected):
            raise DecodeFailure(self.store, highlight_id, "selected sentence ids must be strings")
        return HighlightSet(
            id=highlight_id,
            media_id=_field(record, self.store, "media_id", str),
            name=_field(record, self.store, "name", str),
            selected_sentence_ids=list(selected),
        )
