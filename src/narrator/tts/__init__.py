"""TTS (Text-to-Speech) package for narrator.

This package holds the vendor-neutral voice identifier and the typed
error taxonomy shared by every provider.
"""

from .errors import (
    TTSAPIError,
    TTSAuthError,
    TTSError,
    TTSInputError,
    TTSRateLimitError,
)
from .models import VoiceId, VoiceSettings

__all__ = [
    "TTSAPIError",
    "TTSAuthError",
    "TTSError",
    "TTSInputError",
    "TTSRateLimitError",
    "VoiceId",
    "VoiceSettings",
]
