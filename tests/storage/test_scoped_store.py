import asyncio
import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from highlight_session.errors import StorageUnavailable
from highlight_session.storage import MEDIA_STORE, DurableStore, LocalStorageTier, ScopedStore

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class ScopedStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"scoped-{uuid4().hex}"
        self._scoped = ScopedStore(str(self._tmp_dir / "scope"))

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_missing_file_reads_as_empty(self) -> None:
        self.assertIsNone(self._scoped.get("sessionId"))
        self.assertEqual([], self._scoped.keys())

    def test_values_survive_a_new_instance(self) -> None:
        self._scoped.put("sessionId", "session_abc")
        self._scoped.put("isClosing", {"isClosing": True})

        reopened = ScopedStore(str(self._tmp_dir / "scope"))

        self.assertEqual("session_abc", reopened.get("sessionId"))
        self.assertEqual({"isClosing": True}, reopened.get("isClosing"))
        self.assertEqual(["isClosing", "sessionId"], reopened.keys())

    def test_remove_is_idempotent(self) -> None:
        self._scoped.put("isClosing", {"isClosing": True})
        self._scoped.remove("isClosing")
        self._scoped.remove("isClosing")
        self.assertIsNone(self._scoped.get("isClosing"))

    def test_corrupt_scope_file_surfaces_as_storage_unavailable_through_tier(self) -> None:
        self._scoped.put("sessionId", "session_abc")
        self._scoped.path.write_text("{not json", encoding="utf-8")
        tier = LocalStorageTier(DurableStore(":memory:"), self._scoped)
        try:
            with self.assertRaises(StorageUnavailable):
                tier.get_volatile("sessionId")
        finally:
            tier.close()


class LocalStorageTierTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"tier-{uuid4().hex}"
        self._tier = LocalStorageTier(DurableStore(":memory:"), ScopedStore(str(self._tmp_dir / "scope")))

    def tearDown(self) -> None:
        self._tier.close()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_durable_failures_are_wrapped(self) -> None:
        self._tier.close()
        with self.assertRaises(StorageUnavailable):
            asyncio.run(self._tier.put_durable(MEDIA_STORE, "m1", {"id": "m1", "session_id": "s", "saved_at": "t"}))

    def test_transaction_rejects_stores_outside_its_scope(self) -> None:
        tx = self._tier.begin_transaction([MEDIA_STORE])
        with self.assertRaises(ValueError):
            tx.delete("transcripts", "t1")

    def test_transaction_commits_once(self) -> None:
        record = {"id": "m1", "session_id": "session_a", "saved_at": "2026-03-01T12:00:00+00:00"}

        async def scenario() -> int:
            await self._tier.put_durable(MEDIA_STORE, "m1", record)
            tx = self._tier.begin_transaction([MEDIA_STORE])
            tx.delete(MEDIA_STORE, "m1")
            removed = await tx.commit()
            with self.assertRaises(RuntimeError):
                await tx.commit()
            return removed

        self.assertEqual(1, asyncio.run(scenario()))
        self.assertIsNone(asyncio.run(self._tier.get_durable(MEDIA_STORE, "m1")))


if __name__ == "__main__":
    unittest.main()
