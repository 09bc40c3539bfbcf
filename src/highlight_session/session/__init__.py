from highlight_session.session.codec import EntityCodec, HighlightCodec, MediaCodec, TranscriptCodec
from highlight_session.session.entity_store import EntityStore, HighlightStore, MediaStore, TranscriptStore
from highlight_session.session.reaper import StaleSessionReaper
from highlight_session.session.registry import SessionContext, SessionRegistry
from highlight_session.session.tiering import Tier, TieringPolicy

__all__ = [
    "EntityCodec",
    "EntityStore",
    "HighlightCodec",
    "HighlightStore",
    "MediaCodec",
    "MediaStore",
    "SessionContext",
    "SessionRegistry",
    "StaleSessionReaper",
    "Tier",
    "TieringPolicy",
    "TranscriptCodec",
    "TranscriptStore",
]
