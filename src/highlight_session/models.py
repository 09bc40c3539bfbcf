from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Callable
from uuid import uuid4

SESSION_ID_PREFIX = "session_"
MEDIA_ID_PREFIX = "media_"
TRANSCRIPT_ID_PREFIX = "transcript_"
HIGHLIGHT_ID_PREFIX = "highlight_"
SENTENCE_ID_PREFIX = "sentence_"

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(UTC)


def utc_now(clock: Clock = system_clock) -> str:
    return clock().isoformat(timespec="seconds")


def parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def generate_id(prefix: str) -> str:
    return f"{prefix}{uuid4().hex}"


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    created_at: str
    last_saved_at: str


@dataclass(frozen=True)
class MediaMetadata:
    duration: float
    width: int
    height: int
    size: int
    mime_type: str
    name: str

    def __post_init__(self) -> None:
        if self.duration <= 0:
            raise ValueError("Media duration must be positive")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Media dimensions must be positive")
        if self.size < 0:
            raise ValueError("Media size cannot be negative")
        if not self.mime_type.startswith("video/"):
            raise ValueError(f"Unsupported media type: {self.mime_type}")

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class Media:
    id: str
    metadata: MediaMetadata
    payload: bytes | None = None

    @property
    def size(self) -> int:
        return self.metadata.size

    @property
    def needs_resupply(self) -> bool:
        """True when only the descriptor survived and the bytes must be provided again."""
        return self.payload is None

    def without_payload(self) -> Media:
        return replace(self, payload=None)


@dataclass(frozen=True)
class Sentence:
    id: str
    text: str
    start: float
    end: float
    is_suggestion: bool = False

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"Sentence {self.id} starts before zero")
        if self.end < self.start:
            raise ValueError(f"Sentence {self.id} ends before it starts")

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, seconds: float) -> bool:
        return self.start <= seconds <= self.end


@dataclass(frozen=True)
class Section:
    id: str
    title: str
    sentences: tuple[Sentence, ...]

    def __post_init__(self) -> None:
        if not self.sentences:
            raise ValueError(f"Section {self.id} must contain at least one sentence")

    @property
    def start(self) -> float:
        return self.sentences[0].start

    @property
    def end(self) -> float:
        return self.sentences[-1].end


@dataclass(frozen=True)
class Transcript:
    id: str
    media_id: str
    sections: tuple[Section, ...]
    full_text: str = ""

    def __post_init__(self) -> None:
        if not self.full_text:
            text = " ".join(sentence.text for sentence in self.all_sentences())
            object.__setattr__(self, "full_text", text)

    def all_sentences(self) -> list[Sentence]:
        return [sentence for section in self.sections for sentence in section.sentences]

    def sentence_ids(self) -> set[str]:
        return {sentence.id for sentence in self.all_sentences()}

    def get_sentence_by_id(self, sentence_id: str) -> Sentence | None:
        for sentence in self.all_sentences():
            if sentence.id == sentence_id:
                return sentence
        return None

    def get_section_by_id(self, section_id: str) -> Section | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None


@dataclass
class HighlightSet:
    id: str
    media_id: str
    name: str
    selected_sentence_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        ordered: list[str] = []
        for sentence_id in self.selected_sentence_ids:
            if sentence_id not in ordered:
                ordered.append(sentence_id)
        self.selected_sentence_ids = ordered

    def add_sentence(self, sentence_id: str) -> None:
        if sentence_id not in self.selected_sentence_ids:
            self.selected_sentence_ids.append(sentence_id)

    def remove_sentence(self, sentence_id: str) -> None:
        if sentence_id in self.selected_sentence_ids:
            self.selected_sentence_ids.remove(sentence_id)

    def toggle_sentence(self, sentence_id: str) -> None:
        if self.is_selected(sentence_id):
            self.remove_sentence(sentence_id)
        else:
            self.add_sentence(sentence_id)

    def is_selected(self, sentence_id: str) -> bool:
        return sentence_id in self.selected_sentence_ids

    @property
    def selected_count(self) -> int:
        return len(self.selected_sentence_ids)


@dataclass(frozen=True)
class SessionState:
    media: Media
    transcript: Transcript
    highlights: list[HighlightSet]
    needs_resupply: bool
