from __future__ import annotations

import asyncio
import sqlite3
from typing import Any, Callable, Iterable, Protocol, TypeVar, runtime_checkable

from loguru import logger

from highlight_session.errors import StorageUnavailable
from highlight_session.storage.durable import DeleteOp, DurableStore
from highlight_session.storage.scoped import ScopedStore

T = TypeVar("T")


@runtime_checkable
class StorageTransaction(Protocol):
    def delete(self, store: str, key: str) -> None: ...

    def delete_session(self, store: str, session_id: str) -> None: ...

    async def commit(self) -> int: ...


@runtime_checkable
class StorageTier(Protocol):
    async def put_durable(self, store: str, key: str, record: dict[str, Any]) -> None: ...

    async def get_durable(self, store: str, key: str) -> dict[str, Any] | None: ...

    async def get_all_durable(
        self,
        store: str,
        *,
        session_id: str | None = None,
        media_id: str | None = None,
    ) -> list[dict[str, Any]]: ...

    async def durable_session_ids(self, store: str) -> set[str]: ...

    async def delete_durable(self, store: str, key: str) -> None: ...

    def begin_transaction(self, stores: Iterable[str]) -> StorageTransaction: ...

    def put_volatile(self, key: str, value: Any) -> None: ...

    def get_volatile(self, key: str) -> Any | None: ...

    def remove_volatile(self, key: str) -> None: ...

    def volatile_keys(self) -> list[str]: ...


class LocalTransaction:
    """Deletes queued against one set of stores and applied together on commit."""

    def __init__(self, tier: LocalStorageTier, stores: Iterable[str]):
        self._tier = tier
        self._stores = frozenset(stores)
        self._ops: list[DeleteOp] = []
        self._committed = False

    def delete(self, store: str, key: str) -> None:
        self._enqueue(("key", store, key))

    def delete_session(self, store: str, session_id: str) -> None:
        self._enqueue(("session", store, session_id))

    async def commit(self) -> int:
        if self._committed:
            raise RuntimeError("Transaction already committed")
        self._committed = True
        return await self._tier.apply_deletes(list(self._ops))

    def _enqueue(self, op: DeleteOp) -> None:
        if self._committed:
            raise RuntimeError("Transaction already committed")
        if op[1] not in self._stores:
            raise ValueError(f"Store {op[1]!r} is not part of this transaction")
        self._ops.append(op)


class LocalStorageTier:
    """StorageTier over a local SQLite durable store and a file-backed scoped store.

    Durable calls run in a worker thread; volatile calls are synchronous so they can
    be used from termination handlers that cannot await.
    """

    def __init__(self, durable: DurableStore, scoped: ScopedStore):
        self._durable = durable
        self._scoped = scoped

    def close(self) -> None:
        self._durable.close()

    async def put_durable(self, store: str, key: str, record: dict[str, Any]) -> None:
        await self._run_durable(f"put {store}/{key}", self._durable.put, store, key, record)

    async def get_durable(self, store: str, key: str) -> dict[str, Any] | None:
        return await self._run_durable(f"get {store}/{key}", self._durable.get, store, key)

    async def get_all_durable(
        self,
        store: str,
        *,
        session_id: str | None = None,
        media_id: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self._run_durable(
            f"scan {store}",
            lambda: self._durable.get_all(store, session_id=session_id, media_id=media_id),
        )

    async def durable_session_ids(self, store: str) -> set[str]:
        return await self._run_durable(f"list sessions in {store}", self._durable.session_ids, store)

    async def delete_durable(self, store: str, key: str) -> None:
        await self._run_durable(f"delete {store}/{key}", self._durable.delete, store, key)

    def begin_transaction(self, stores: Iterable[str]) -> LocalTransaction:
        return LocalTransaction(self, stores)

    async def apply_deletes(self, ops: list[DeleteOp]) -> int:
        return await self._run_durable(f"commit {len(ops)} deletes", self._durable.apply_deletes, ops)

    def put_volatile(self, key: str, value: Any) -> None:
        self._run_volatile(f"put {key}", self._scoped.put, key, value)

    def get_volatile(self, key: str) -> Any | None:
        return self._run_volatile(f"get {key}", self._scoped.get, key)

    def remove_volatile(self, key: str) -> None:
        self._run_volatile(f"remove {key}", self._scoped.remove, key)

    def volatile_keys(self) -> list[str]:
        return self._run_volatile("list keys", self._scoped.keys)

    async def _run_durable(self, action: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except (sqlite3.Error, OSError) as ex:
            logger.debug(f"Durable store failed to {action}: {ex}")
            raise StorageUnavailable(f"Durable store failed to {action}: {ex}") from ex

    def _run_volatile(self, action: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return fn(*args)
        except (OSError, ValueError, TypeError) as ex:
            logger.debug(f"Scoped store failed to {action}: {ex}")
            raise StorageUnavailable(f"Scoped store failed to {action}: {ex}") from ex
