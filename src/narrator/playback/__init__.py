"""Client-side playback: chunk codec, readiness polling and the engine."""

from .backend import AudioBackend
from .codec import ChunkEnvelope, decode_chunk, encode_chunk
from .engine import (
    ChunkPlaybackEngine,
    PlaybackState,
    overall_percentage,
    target_chunk_for,
)
from .errors import (
    AudioDecodeError,
    AudioStartError,
    AudioTransportError,
    BackendError,
    GenerationNotReadyError,
    PlaybackError,
    PollCancelledError,
)
from .poller import ReadinessPoller

__all__ = [
    "AudioBackend",
    "AudioDecodeError",
    "AudioStartError",
    "AudioTransportError",
    "BackendError",
    "ChunkEnvelope",
    "ChunkPlaybackEngine",
    "GenerationNotReadyError",
    "PlaybackError",
    "PlaybackState",
    "PollCancelledError",
    "ReadinessPoller",
    "decode_chunk",
    "encode_chunk",
    "overall_percentage",
    "target_chunk_for",
]
