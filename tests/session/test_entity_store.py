from highlight_session.session.entity_store import metadata_only_key
from highlight_session.storage import MEDIA_STORE, TRANSCRIPT_STORE
from tests.session.base import SessionStoreTestCase, make_highlight, make_media, make_transcript


class EntityStoreTests(SessionStoreTestCase):
    def test_saved_entities_survive_a_restart(self) -> None:
        media = self.save_session()
        self._open_process()

        restored = self.run_async(self._media.find_by_id(media.id))
        transcript = self.run_async(self._transcripts.find_by_media_id(media.id))
        highlights = self.run_async(self._highlights.find_by_media_id(media.id))

        self.assertEqual(media, restored)
        self.assertEqual(make_transcript(), transcript)
        self.assertEqual([make_highlight()], highlights)

    def test_save_creates_the_session_record(self) -> None:
        self.save_session()
        record = self.run_async(self._registry.get(self._context.session_id))
        self.assertIsNotNone(record)
        self.assertEqual("2026-03-01T12:00:00+00:00", record.created_at)

    def test_save_records_saved_at(self) -> None:
        self._clock.advance(minutes=3)
        self.run_async(self._highlights.save(make_highlight()))
        self.assertEqual("2026-03-01T12:03:00+00:00", self._highlights.saved_at("highlight_1"))

    def test_latest_save_wins(self) -> None:
        self.run_async(self._highlights.save(make_highlight(selected=["sentence_1"])))
        self.run_async(self._highlights.save(make_highlight(selected=["sentence_2", "sentence_3"])))
        self._open_process()

        restored = self.run_async(self._highlights.find_by_id("highlight_1"))

        self.assertEqual(["sentence_2", "sentence_3"], restored.selected_sentence_ids)

    def test_find_all_only_sees_current_session(self) -> None:
        self.save_session()
        self._registry.rotate()
        self._open_process()

        self.assertEqual([], self.run_async(self._media.find_all()))
        self.assertEqual([], self.run_async(self._highlights.find_by_media_id("media_1")))

    def test_find_all_populates_cache_once(self) -> None:
        self.save_session()
        self._open_process()

        first = self.run_async(self._transcripts.find_all())
        self._durable.apply_deletes([("session", TRANSCRIPT_STORE, self._context.session_id)])
        second = self.run_async(self._transcripts.find_all())

        self.assertEqual(1, len(first))
        self.assertEqual(first, second)
        self.assertEqual(1, len(self._transcripts))

    def test_undecodable_record_is_skipped(self) -> None:
        self.save_session()
        self.run_async(self._transcripts.save(make_transcript("media_2", "transcript_2")))
        self._durable._conn.execute("UPDATE transcripts SET body_json = '[]' WHERE id = 'transcript_2'")
        self._durable._conn.commit()
        self._open_process()

        restored = self.run_async(self._transcripts.find_all())

        self.assertEqual(["transcript_1"], [t.id for t in restored])
        self.assertIsNone(self.run_async(self._transcripts.find_by_media_id("media_2")))

    def test_save_keeps_entity_in_memory_when_storage_is_gone(self) -> None:
        self._durable.close()
        highlight = make_highlight()

        self.run_async(self._highlights.save(highlight))

        self.assertEqual(highlight, self.run_async(self._highlights.find_by_id(highlight.id)))
        self.assertEqual([highlight], self.run_async(self._highlights.find_all()))

    def test_lookup_with_storage_gone_degrades_to_not_found(self) -> None:
        self._durable.close()
        self.assertIsNone(self.run_async(self._media.find_by_id("media_1")))
        self.assertEqual([], self.run_async(self._transcripts.find_all()))

    def test_delete_only_touches_memory(self) -> None:
        self.save_session()
        self._highlights.delete("highlight_1")
        self.assertEqual(0, len(self._highlights))
        self.assertIsNotNone(self._durable.get("highlights", "highlight_1"))

    def test_media_has_no_related_lookup(self) -> None:
        with self.assertRaises(TypeError):
            self.run_async(self._media.find_by_related_id("media_1"))


class MediaTieringTests(SessionStoreTestCase):
    def test_media_at_threshold_is_stored_in_full(self) -> None:
        media = make_media(size=1024)
        self.run_async(self._media.save(media))

        self.assertIsNotNone(self._durable.get(MEDIA_STORE, media.id))
        self.assertIsNone(self._scoped.get(metadata_only_key(media.id)))

    def test_large_media_keeps_metadata_only(self) -> None:
        media = make_media(size=2048)
        self.run_async(self._media.save(media))

        self.assertIsNone(self._durable.get(MEDIA_STORE, media.id))
        descriptor = self._scoped.get(metadata_only_key(media.id))
        self.assertEqual(2048, descriptor["metadata"]["size"])
        self.assertNotIn("payload", descriptor)

    def test_large_media_restores_without_bytes(self) -> None:
        media = make_media(size=2048)
        self.run_async(self._media.save(media))
        self._open_process()

        restored = self.run_async(self._media.find_all())

        self.assertEqual(1, len(restored))
        self.assertEqual(media.metadata, restored[0].metadata)
        self.assertIsNone(restored[0].payload)
        self.assertTrue(restored[0].needs_resupply)

    def test_large_media_of_other_session_is_not_restored(self) -> None:
        self.run_async(self._media.save(make_media(size=2048)))
        self._registry.rotate()
        self._open_process()

        self.assertEqual([], self.run_async(self._media.find_all()))

    def test_large_media_is_still_served_from_memory_with_bytes(self) -> None:
        media = make_media(size=2048)
        self.run_async(self._media.save(media))
        self.assertEqual(media.payload, self.run_async(self._media.find_by_id(media.id)).payload)

    def test_large_media_is_written_even_when_session_record_fails(self) -> None:
        self._durable.close()
        media = make_media(size=2048)

        self.run_async(self._media.save(media))

        descriptor = self._scoped.get(metadata_only_key(media.id))
        self.assertEqual(media.id, descriptor["id"])
        self.assertEqual(self._context.session_id, descriptor["session_id"])

    def test_same_second_saves_keep_their_order(self) -> None:
        self.run_async(self._media.save(make_media("media_z")))
        self.run_async(self._media.save(make_media("media_a")))

        self.assertEqual(self._media.saved_at("media_z"), self._media.saved_at("media_a"))
        self.assertLess(self._media.save_order("media_z"), self._media.save_order("media_a"))
