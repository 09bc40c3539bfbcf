import asyncio
import shutil
import unittest
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

from highlight_session.models import HighlightSet, Media, MediaMetadata, Section, Sentence, Transcript
from highlight_session.session import HighlightStore, MediaStore, SessionRegistry, TieringPolicy, TranscriptStore
from highlight_session.storage import DurableStore, LocalStorageTier, ScopedStore

PROJECT_ROOT = Path(__file__).resolve().parents[2]

TEST_THRESHOLD_BYTES = 1024


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_media(media_id: str = "media_1", size: int = 16, with_payload: bool = True) -> Media:
    return Media(
        id=media_id,
        metadata=MediaMetadata(
            duration=42.5,
            width=1920,
            height=1080,
            size=size,
            mime_type="video/mp4",
            name=f"{media_id}.mp4",
        ),
        payload=b"\x00\x01" * (size // 2) if with_payload else None,
    )


def make_transcript(media_id: str = "media_1", transcript_id: str = "transcript_1") -> Transcript:
    return Transcript(
        id=transcript_id,
        media_id=media_id,
        sections=(
            Section(
                id="section_1",
                title="Opening",
                sentences=(
                    Sentence(id="sentence_1", text="Welcome back.", start=0.0, end=2.5, is_suggestion=True),
                    Sentence(id="sentence_2", text="Today we cut highlights.", start=2.5, end=6.0),
                ),
            ),
            Section(
                id="section_2",
                title="Main",
                sentences=(Sentence(id="sentence_3", text="Here is the good part.", start=6.0, end=9.75),),
            ),
        ),
    )


def make_highlight(
    media_id: str = "media_1",
    highlight_id: str = "highlight_1",
    selected: list[str] | None = None,
) -> HighlightSet:
    return HighlightSet(
        id=highlight_id,
        media_id=media_id,
        name="Best bits",
        selected_sentence_ids=list(selected if selected is not None else ["sentence_3", "sentence_1"]),
    )


class SessionStoreTestCase(unittest.TestCase):
    """Fresh durable and scoped stores in a throwaway directory, with a fixed clock."""

    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"{self.__class__.__name__.lower()}-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._clock = FixedClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC))
        self._tiers: list[LocalStorageTier] = []
        self._open_process()

    def tearDown(self) -> None:
        for tier in self._tiers:
            tier.close()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _open_process(self) -> None:
        """Build the stack the way a freshly started process would, over the same files."""
        self._durable = DurableStore(str(self._tmp_dir / "sessions.db"))
        self._scoped = ScopedStore(str(self._tmp_dir / "scope"))
        self._tier = LocalStorageTier(self._durable, self._scoped)
        self._tiers.append(self._tier)
        self._registry = SessionRegistry(self._tier, clock=self._clock)
        self._context = self._registry.open()
        self._media = MediaStore(self._tier, self._context, TieringPolicy(TEST_THRESHOLD_BYTES))
        self._transcripts = TranscriptStore(self._tier, self._context)
        self._highlights = HighlightStore(self._tier, self._context)

    def run_async(self, coro):
        return asyncio.run(coro)

    def save_session(self, media: Media | None = None) -> Media:
        media = media or make_media()

        async def scenario() -> None:
            await self._media.save(media)
            await self._transcripts.save(make_transcript(media.id))
            await self._highlights.save(make_highlight(media.id))

        self.run_async(scenario())
        return media
