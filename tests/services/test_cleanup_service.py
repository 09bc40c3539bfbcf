import sqlite3

from highlight_session.errors import CleanupError
from highlight_session.lifecycle import CLOSING_FLAG_KEY
from highlight_session.services.cleanup_service import SessionCleanupService
from highlight_session.session import HighlightStore, MediaStore, SessionRegistry, TieringPolicy, TranscriptStore
from highlight_session.session.entity_store import metadata_only_key
from highlight_session.session.registry import SESSION_ID_KEY
from highlight_session.storage import (
    HIGHLIGHT_STORE,
    MEDIA_STORE,
    SESSION_STORE,
    TRANSCRIPT_STORE,
    DurableStore,
    LocalStorageTier,
)
from tests.session.base import TEST_THRESHOLD_BYTES, SessionStoreTestCase, make_media


class _FailingHighlightDelete(DurableStore):
    def _delete_session(self, store: str, session_id: str) -> int:
        if store == HIGHLIGHT_STORE:
            raise sqlite3.OperationalError("disk I/O error")
        return super()._delete_session(store, session_id)


class SessionCleanupServiceTests(SessionStoreTestCase):
    def _service(self) -> SessionCleanupService:
        return SessionCleanupService(self._tier, self._context, [self._media, self._transcripts, self._highlights])

    def test_cleanup_removes_every_record_of_the_session(self) -> None:
        self.save_session()
        self._scoped.put(CLOSING_FLAG_KEY, {"isClosing": True})
        old_session = self._context.session_id

        self.run_async(self._service().execute())

        for store in (MEDIA_STORE, TRANSCRIPT_STORE, HIGHLIGHT_STORE):
            self.assertEqual([], self._durable.get_all(store, session_id=old_session))
        self.assertIsNone(self._durable.get(SESSION_STORE, old_session))
        self.assertIsNone(self._scoped.get(CLOSING_FLAG_KEY))

    def test_cleanup_leaves_other_sessions_alone(self) -> None:
        self._durable.put(MEDIA_STORE, "other_media", {"id": "other_media", "session_id": "session_other", "saved_at": "t"})
        self.save_session()

        self.run_async(self._service().execute())

        self.assertIsNotNone(self._durable.get(MEDIA_STORE, "other_media"))

    def test_cleanup_issues_a_new_session_id(self) -> None:
        self.save_session()
        old_session = self._context.session_id

        self.run_async(self._service().execute())

        self.assertNotEqual(old_session, self._context.session_id)
        self.assertEqual(self._context.session_id, self._scoped.get(SESSION_ID_KEY))

    def test_cleanup_clears_caches(self) -> None:
        self.save_session()

        self.run_async(self._service().execute())

        self.assertEqual(0, len(self._media))
        self.assertEqual(0, len(self._transcripts))
        self.assertEqual(0, len(self._highlights))
        self.assertEqual([], self.run_async(self._media.find_all()))

    def test_cleanup_removes_metadata_only_media(self) -> None:
        media = make_media(size=TEST_THRESHOLD_BYTES * 2)
        self.save_session(media)

        self.run_async(self._service().execute())

        self.assertIsNone(self._scoped.get(metadata_only_key(media.id)))

    def test_writes_after_cleanup_belong_to_the_new_session(self) -> None:
        self.save_session()
        self.run_async(self._service().execute())

        self.save_session()

        self.assertEqual(
            {self._context.session_id},
            self._durable.session_ids(MEDIA_STORE),
        )
        self.assertIsNotNone(self._durable.get(SESSION_STORE, self._context.session_id))

    def test_failed_cleanup_rolls_back_and_keeps_flag(self) -> None:
        self.save_session()
        self._scoped.put(CLOSING_FLAG_KEY, {"isClosing": True})
        session_id = self._context.session_id

        failing = _FailingHighlightDelete(str(self._tmp_dir / "sessions.db"))
        tier = LocalStorageTier(failing, self._scoped)
        self._tiers.append(tier)
        registry = SessionRegistry(tier, clock=self._clock)
        context = registry.open()
        stores = [
            MediaStore(tier, context, TieringPolicy(TEST_THRESHOLD_BYTES)),
            TranscriptStore(tier, context),
            HighlightStore(tier, context),
        ]
        for store in stores:
            self.run_async(store.find_all())

        with self.assertRaises(CleanupError) as ctx:
            self.run_async(SessionCleanupService(tier, context, stores).execute())

        self.assertEqual(session_id, ctx.exception.session_id)
        self.assertEqual(1, len(failing.get_all(MEDIA_STORE, session_id=session_id)))
        self.assertEqual(1, len(failing.get_all(TRANSCRIPT_STORE, session_id=session_id)))
        self.assertIsNotNone(failing.get(SESSION_STORE, session_id))
        self.assertIsNotNone(self._scoped.get(CLOSING_FLAG_KEY))
        self.assertEqual(session_id, context.session_id)
        self.assertEqual([0, 0, 0], [len(store) for store in stores])
