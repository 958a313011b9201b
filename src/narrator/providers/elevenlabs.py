"""ElevenLabs speech synthesis through the official SDK.

The SDK is synchronous, so every call runs in a worker thread.
"""

import asyncio
import os

from elevenlabs.client import ElevenLabs

from ..tts.errors import (
    TTSAPIError,
    TTSAuthError,
    TTSError,
    TTSRateLimitError,
    error_for_status,
)
from ..tts.models import VoiceId, VoiceSettings
from .base import TTSProvider, prepare_text

DEFAULT_MODEL = "eleven_turbo_v2_5"


def _map_error(e: Exception, action: str) -> TTSError:
    """Translate an SDK exception into the TTS error taxonomy.

    Prefers the SDK's status_code attribute; older SDK errors only carry
    the status in their message, so fall back to sniffing the text.
    """
    status_code = getattr(e, "status_code", None)
    if isinstance(status_code, int):
        headers = getattr(e, "headers", None) or {}
        retry_after = headers.get("retry-after") or headers.get("Retry-After")
        return error_for_status(status_code, str(e), retry_after, e)

    message = str(e)
    lowered = message.lower()
    if "401" in message or "unauthorized" in lowered:
        return TTSAuthError(f"Authentication failed: {e}", e)
    if "429" in message:
        return TTSRateLimitError(f"Rate limit exceeded: {e}", original_error=e)
    if message.startswith("5"):
        return TTSAPIError(f"Server error: {e}", None, e)
    return TTSAPIError(f"{action} failed: {e}", None, e)


class ElevenLabsProvider(TTSProvider):
    """Synthesizes MP3 audio with an ElevenLabs model.

    Args:
        api_key: Falls back to ELEVENLABS_API_KEY
        model_id: ElevenLabs model used for every request
        timeout: Network timeout per request in seconds

    Raises:
        TTSAuthError: If no key is available or the client cannot be built
    """

    def __init__(
        self,
        api_key: str | None = None,
        model_id: str = DEFAULT_MODEL,
        timeout: float = 60.0,
    ) -> None:
        self._api_key = api_key or os.getenv("ELEVENLABS_API_KEY")
        if not self._api_key:
            raise TTSAuthError(
                "ElevenLabs API key not found. Export ELEVENLABS_API_KEY "
                "or pass api_key."
            )

        try:
            self._client = ElevenLabs(api_key=self._api_key, timeout=timeout)
        except Exception as e:
            raise TTSAuthError(f"Failed to initialize ElevenLabs client: {e}") from e

        self.model_id = model_id
        self.voice_settings = VoiceSettings()
        self._voices: list[dict] | None = None

    async def synthesize(self, text: str, voice: VoiceId) -> bytes:
        text = prepare_text(text)
        settings = self.voice_settings.to_dict()

        def convert() -> bytes:
            stream = self._client.text_to_speech.convert(
                text=text,
                voice_id=str(voice),
                model_id=self.model_id,
                voice_settings=settings,
            )
            return b"".join(stream)

        try:
            audio = await asyncio.to_thread(convert)
        except Exception as e:
            raise _map_error(e, "API call") from e

        if not audio:
            raise TTSAPIError("No audio data received from API")
        return audio

    async def list_voices(self) -> list[dict]:
        """Voices on the account, fetched once per provider instance."""
        if self._voices is None:

            def fetch() -> list[dict]:
                response = self._client.voices.get_all()
                return [
                    {"id": v.voice_id, "name": v.name, "provider": "elevenlabs"}
                    for v in response.voices
                ]

            try:
                self._voices = await asyncio.to_thread(fetch)
            except Exception as e:
                raise _map_error(e, "List voices") from e
        return self._voices
