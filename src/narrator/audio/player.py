"""pygame transport that plays one MP3 chunk at a time, plus file export."""

# ruff: noqa: E402
import os

# Suppress pygame's welcome message BEFORE any pygame import
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "1"

import warnings

# Suppress pygame's pkg_resources deprecation warning spam
warnings.filterwarnings("ignore", category=UserWarning, module="pygame.pkgdata")

import io
import logging
from pathlib import Path

import pygame

from ..playback.errors import AudioDecodeError, AudioTransportError
from .base import AudioTransport

logger = logging.getLogger(__name__)


class AudioPlayer(AudioTransport):
    """Chunk transport backed by pygame.mixer.music.

    pygame cannot change playback speed, so only rate 1.0 is accepted.
    """

    def __init__(self) -> None:
        """Initialize the audio player with pygame mixer.

        Raises:
            AudioTransportError: If pygame mixer fails to initialize.
        """
        try:
            pygame.mixer.init()
        except pygame.error as e:
            raise AudioTransportError(
                f"Failed to initialize pygame audio mixer: {e}"
            ) from e

        self._duration_ms: float | None = None
        self._started = False
        self._paused = False

    def load(self, data: bytes) -> None:
        """Load one chunk of MP3 or WAV audio.

        Raises:
            AudioDecodeError: If pygame cannot decode the bytes.
        """
        if not data:
            raise AudioDecodeError("No audio data provided")

        self.stop()
        try:
            pygame.mixer.music.load(io.BytesIO(data))
        except pygame.error as e:
            raise AudioDecodeError(f"Failed to load audio: {e}") from e

        try:
            self._duration_ms = pygame.mixer.Sound(io.BytesIO(data)).get_length() * 1000
        except pygame.error as e:
            # Playback still works, only the in-chunk fraction is unknown
            logger.debug(f"Could not measure chunk length: {e}")
            self._duration_ms = None

    def play(self) -> None:
        try:
            pygame.mixer.music.play()
        except pygame.error as e:
            raise AudioTransportError(f"Failed to play audio: {e}") from e
        self._started = True
        self._paused = False

    def pause(self) -> None:
        if self._started and not self._paused:
            pygame.mixer.music.pause()
            self._paused = True

    def resume(self) -> None:
        if self._paused:
            pygame.mixer.music.unpause()
            self._paused = False

    def stop(self) -> None:
        if self._started:
            pygame.mixer.music.stop()
            pygame.mixer.music.unload()
        self._started = False
        self._paused = False

    def is_finished(self) -> bool:
        return self._started and not self._paused and not pygame.mixer.music.get_busy()

    def position(self) -> float:
        if not self._started or not self._duration_ms:
            return 0.0
        pos = pygame.mixer.music.get_pos()
        if pos < 0:
            return 0.0
        return min(pos / self._duration_ms, 1.0)

    def close(self) -> None:
        self.stop()
        pygame.mixer.quit()


def save_to_file(audio_data: bytes, filepath: str | Path) -> Path:
    """Save audio bytes to a file.

    Args:
        audio_data: Audio data to save.
        filepath: Path where the audio file should be saved.

    Returns:
        The path written.

    Raises:
        ValueError: If no audio data provided.
        OSError: If file cannot be written.
    """
    if not audio_data:
        raise ValueError("No audio data provided")

    filepath = Path(filepath)

    try:
        # Create parent directories if they don't exist
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_bytes(audio_data)
    except OSError as e:
        raise OSError(f"Failed to save audio to {filepath}: {e}") from e

    return filepath
