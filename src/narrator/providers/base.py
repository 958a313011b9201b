"""Abstract base class for text-to-speech providers.

This module defines the interface that all TTS providers must implement,
ensuring consistent behavior across different speech vendors. Providers
hold no state beyond their vendor client: one call in, one payload or one
typed failure out.
"""

import re
from abc import ABC, abstractmethod

from ..tts.errors import TTSInputError
from ..tts.models import VoiceId

# C0 control characters except tab and newline
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def prepare_text(text: str) -> str:
    """Strip control characters and surrounding whitespace from ``text``.

    Raises:
        TTSInputError: If nothing speakable remains
    """
    if text is None:
        raise TTSInputError("Text cannot be empty")
    cleaned = _CONTROL_CHARS.sub(" ", text).strip()
    if not cleaned:
        raise TTSInputError("Text cannot be empty")
    return cleaned


class TTSProvider(ABC):
    """Abstract base class for text-to-speech providers.

    All TTS providers must inherit from this class and implement
    the required methods for synthesizing speech and listing voices.

    Failures must be raised as one of the ``narrator.tts.errors`` classes
    so that the synthesis worker can decide whether to retry.

    Voice Dictionary Structure:
        Each voice returned by list_voices() should follow this structure:
        {
            "id": str,       # Unique identifier for the voice
            "name": str,     # Human-readable name for the voice
            "provider": str  # Name of the provider (e.g., "azure")
        }
    """

    @abstractmethod
    async def synthesize(self, text: str, voice: VoiceId) -> bytes:
        """Convert text to audio bytes.

        Args:
            text: The text to convert to speech
            voice: Voice to use for synthesis

        Returns:
            Audio data as bytes (MP3)

        Raises:
            TTSRateLimitError: Vendor asked us to slow down
            TTSAPIError: Network, timeout or server failure
            TTSAuthError: Credentials rejected
            TTSInputError: Empty text or request rejected
        """
        pass

    @abstractmethod
    async def list_voices(self) -> list[dict]:
        """Return available voices for this provider.

        Returns:
            List of voice dictionaries, each containing:
            - id: Unique voice identifier
            - name: Human-readable voice name
            - provider: Provider name

        Raises:
            TTSError: If voice listing fails
        """
        pass
