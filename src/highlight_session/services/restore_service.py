from __future__ import annotations

from loguru import logger

from highlight_session.errors import IncompleteSessionDataError
from highlight_session.models import HighlightSet, Media, SessionState, Transcript
from highlight_session.session.entity_store import HighlightStore, MediaStore, TranscriptStore


class SessionRestoreService:
    def __init__(self, media: MediaStore, transcripts: TranscriptStore, highlights: HighlightStore):
        self._media = media
        self._transcripts = transcripts
        self._highlights = highlights

    async def restore(self) -> SessionState | None:
        """Reassemble the current session, or return None when nothing was saved.

        Raises IncompleteSessionDataError when media exists without its transcript or
        highlight sets, or when a highlight set selects sentences the transcript
        does not contain. Consistency between entities is only checked here, never
        on write.
        """
        media_items = await self._media.find_all()
        if not media_items:
            logger.debug("No saved media, nothing to restore")
            return None

        media = self._latest(media_items)
        transcript = await self._transcripts.find_by_media_id(media.id)
        if transcript is None:
            raise IncompleteSessionDataError(media.id, "transcript")

        highlights = await self._highlights.find_by_media_id(media.id)
        if not highlights:
            raise IncompleteSessionDataError(media.id, "highlight set")

        self._check_selection(media, transcript, highlights)

        state = SessionState(
            media=media,
            transcript=transcript,
            highlights=highlights,
            needs_resupply=media.needs_resupply,
        )
        logger.info(
            f"Restored media {media.id} with {len(highlights)} highlight set(s)"
            f"{', media bytes must be re-supplied' if state.needs_resupply else ''}"
        )
        return state

    def _latest(self, media_items: list[Media]) -> Media:
        if len(media_items) > 1:
            logger.warning(f"{len(media_items)} media records in session, restoring the most recent")
        return max(media_items, key=lambda m: self._media.save_order(m.id))

    def _check_selection(self, media: Media, transcript: Transcript, highlights: list[HighlightSet]) -> None:
        known = transcript.sentence_ids()
        for highlight in highlights:
            dangling = [sid for sid in highlight.selected_sentence_ids if sid not in known]
            if dangling:
                raise IncompleteSessionDataError(
                    media.id,
                    "sentence",
                    f"highlight {highlight.id} selects unknown sentences {', '.join(dangling)}",
                )
