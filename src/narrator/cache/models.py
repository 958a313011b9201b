"""Data models for narration storage."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from ..tts.models import VoiceId


class CoverageStatus(str, Enum):
    """How much of the required voice set a content item already has."""

    SATISFIED = "satisfied"
    PARTIAL = "partial"
    UNSATISFIED = "unsatisfied"


def classify_coverage(
    present: set[VoiceId], required: list[VoiceId]
) -> CoverageStatus:
    """Classify a set of valid voices against the required voice list."""
    missing = [voice for voice in required if voice not in present]
    if not missing:
        return CoverageStatus.SATISFIED
    if len(missing) < len(required):
        return CoverageStatus.PARTIAL
    return CoverageStatus.UNSATISFIED


@dataclass(frozen=True)
class ContentItem:
    """A piece of text to narrate (a book summary).

    Attributes:
        id: Stable content identifier
        text: Text body to synthesize
        language: Language tag used for defaults
        default_voice: Voice to play when the listener picks none
        created_at: When the content was created upstream
    """

    id: str
    text: str
    language: str = "en-US"
    default_voice: VoiceId | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("content id cannot be empty")


@dataclass(frozen=True)
class VoiceEntry:
    """Synthesized audio for one voice of one content item.

    ``ok`` is the explicit success flag written by the synthesis worker;
    an entry is only usable when the flag is set and the payload is
    non-empty.
    """

    voice: VoiceId
    payload: bytes
    ok: bool = True
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_valid(self) -> bool:
        return self.ok and len(self.payload) > 0


@dataclass(frozen=True)
class VoiceCacheRecord:
    """Per-content mapping from voice to synthesized audio."""

    content_id: str
    entries: dict[VoiceId, VoiceEntry] = field(default_factory=dict)

    def get(self, voice: VoiceId) -> VoiceEntry | None:
        entry = self.entries.get(voice)
        return entry if entry is not None and entry.is_valid else None

    def valid_voices(self) -> set[VoiceId]:
        return {voice for voice, entry in self.entries.items() if entry.is_valid}

    def missing(self, required: list[VoiceId]) -> list[VoiceId]:
        """Required voices without a valid entry, in required order."""
        present = self.valid_voices()
        return [voice for voice in required if voice not in present]

    def classify(self, required: list[VoiceId]) -> CoverageStatus:
        return classify_coverage(self.valid_voices(), required)

    def merge(self, entry: VoiceEntry) -> "VoiceCacheRecord":
        """Return a new record with ``entry`` added, keeping other voices."""
        entries = dict(self.entries)
        entries[entry.voice] = entry
        return replace(self, entries=entries)


@dataclass(frozen=True)
class AudioChunk:
    """One pre-rendered piece of a content item's audio."""

    index: int
    payload: bytes

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError("chunk index cannot be negative")


@dataclass
class PlaybackProgress:
    """Resume point for one listener on one content item.

    Attributes:
        user_id: Listener (or session) identifier
        content_id: Content being played
        percentage: Overall progress 0-100
        position: Chunk index to resume from
        updated_at: Last write time
        completed_at: Set once the listener finished the content
    """

    user_id: str
    content_id: str
    percentage: float = 0.0
    position: int = 0
    updated_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.percentage <= 100.0:
            raise ValueError(
                f"percentage must be between 0 and 100, got {self.percentage}"
            )
        if self.position < 0:
            raise ValueError("position cannot be negative")

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "content_id": self.content_id,
            "percentage": self.percentage,
            "position": self.position,
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PlaybackProgress":
        completed_at = data.get("completed_at")
        updated_at = data.get("updated_at")
        return cls(
            user_id=data["user_id"],
            content_id=data["content_id"],
            percentage=float(data.get("percentage", 0.0)),
            position=int(data.get("position", 0)),
            updated_at=datetime.fromisoformat(updated_at)
            if updated_at
            else datetime.now(),
            completed_at=datetime.fromisoformat(completed_at)
            if completed_at
            else None,
        )
