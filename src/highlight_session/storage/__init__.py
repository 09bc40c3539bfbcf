from highlight_session.storage.durable import (
    DURABLE_STORES,
    ENTITY_STORES,
    HIGHLIGHT_STORE,
    MEDIA_STORE,
    SESSION_STORE,
    TRANSCRIPT_STORE,
    DurableStore,
)
from highlight_session.storage.scoped import ScopedStore
from highlight_session.storage.tier import LocalStorageTier, LocalTransaction, StorageTier, StorageTransaction

__all__ = [
    "DURABLE_STORES",
    "ENTITY_STORES",
    "HIGHLIGHT_STORE",
    "MEDIA_STORE",
    "SESSION_STORE",
    "TRANSCRIPT_STORE",
    "DurableStore",
    "LocalStorageTier",
    "LocalTransaction",
    "ScopedStore",
    "StorageTier",
    "StorageTransaction",
]
