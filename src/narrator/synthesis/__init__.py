"""Background synthesis: retries, per-content workers, chunking and the backlog."""

from .chunks import ChunkResult, ChunkSynthesizer, split_into_chunks
from .retry import AttemptResult, RetryingSynthesizer, RetryPolicy
from .scheduler import (
    BacklogItem,
    BacklogScanError,
    BacklogScanner,
    BacklogStatus,
    DispatchReport,
    pace_backlog,
)
from .worker import SynthesisResult, SynthesisStatus, SynthesisWorker, VoiceOutcome

__all__ = [
    "AttemptResult",
    "BacklogItem",
    "BacklogScanError",
    "BacklogScanner",
    "BacklogStatus",
    "ChunkResult",
    "ChunkSynthesizer",
    "DispatchReport",
    "RetryPolicy",
    "RetryingSynthesizer",
    "SynthesisResult",
    "SynthesisStatus",
    "SynthesisWorker",
    "VoiceOutcome",
    "pace_backlog",
    "split_into_chunks",
]
