"""Playback-side exceptions."""

from typing import ClassVar


class PlaybackError(Exception):
    """Base exception for playback failures."""

    retryable: ClassVar[bool] = False


class AudioTransportError(PlaybackError):
    """The audio device refused to load or play a chunk."""


class AudioDecodeError(PlaybackError):
    """A chunk's bytes could not be reconstructed or decoded."""


class BackendError(PlaybackError):
    """A call to the narration backend failed."""

    retryable: ClassVar[bool] = True


class GenerationNotReadyError(PlaybackError):
    """Audio was not available before the readiness budget ran out.

    Generation may simply need more time, so callers may retry.
    """

    retryable: ClassVar[bool] = True

    def __init__(self, content_id: str, voice: str, waited: float) -> None:
        super().__init__(
            f"Audio for {content_id} ({voice}) not ready after {waited:.1f}s"
        )
        self.content_id = content_id
        self.voice = voice
        self.waited = waited


class PollCancelledError(PlaybackError):
    """The caller lost interest while waiting for audio."""


class AudioStartError(PlaybackError):
    """The first chunk could not be obtained, so playback never started."""

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
