"""Durable storage for narration content, audio and progress."""

from pathlib import Path

from .models import (
    AudioChunk,
    ContentItem,
    CoverageStatus,
    PlaybackProgress,
    VoiceCacheRecord,
    VoiceEntry,
    classify_coverage,
)
from .storage import NarrationStorage

__all__ = [
    "AudioChunk",
    "ContentItem",
    "CoverageStatus",
    "NarrationStorage",
    "PlaybackProgress",
    "VoiceCacheRecord",
    "VoiceEntry",
    "classify_coverage",
    "get_data_dir",
]


def get_data_dir() -> Path:
    """Get or create the narrator data directory.

    Creates ~/.cache/narrator/ if it doesn't exist.

    Returns:
        Path to the data directory
    """
    data_dir = Path.home() / ".cache" / "narrator"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
