"""Azure Cognitive Services text-to-speech provider implementation."""

import logging
import os
import re
from xml.sax.saxutils import escape

import httpx

from ..tts.errors import TTSAPIError, TTSAuthError, error_for_status
from ..tts.models import VoiceId
from .base import TTSProvider, prepare_text

logger = logging.getLogger(__name__)

DEFAULT_REGION = "francecentral"
OUTPUT_FORMAT = "audio-24khz-96kbitrate-mono-mp3"
USER_AGENT = "narrator-tts"

_ENDPOINT_REGION = re.compile(r"https?://([^.]+)\.api\.cognitive\.microsoft\.com")
_SSML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def normalize_region(region: str) -> str:
    """Reduce a region given as a full endpoint URL to its bare name.

    "https://francecentral.api.cognitive.microsoft.com/" -> "francecentral"
    """
    region = region.strip()
    match = _ENDPOINT_REGION.match(region)
    if match:
        return match.group(1)
    if region.startswith(("https://", "http://")):
        region = re.sub(r"^https?://", "", region).split(".")[0]
    return region


def build_ssml(
    text: str, voice: VoiceId, rate: str = "1.0", pitch: str = "0%"
) -> str:
    """Wrap ``text`` in an SSML document, escaping markup metacharacters."""
    return (
        "<speak version='1.0' xmlns='http://www.w3.org/2001/10/synthesis' "
        "xml:lang='en-US'>"
        f"<voice name='{voice}'>"
        f"<prosody rate='{rate}' pitch='{pitch}'>"
        f"{escape(text, _SSML_ENTITIES)}"
        "</prosody></voice></speak>"
    )


class AzureSpeechProvider(TTSProvider):
    """Azure neural TTS provider.

    Talks to the regional REST endpoint directly with httpx. Credentials
    come from AZURE_TTS_KEY / AZURE_TTS_REGION unless given explicitly.
    """

    def __init__(
        self,
        api_key: str | None = None,
        region: str | None = None,
        timeout: float = 60.0,
        rate: str = "1.0",
        pitch: str = "0%",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Azure provider.

        Args:
            api_key: Azure speech key. Falls back to AZURE_TTS_KEY.
            region: Azure region or endpoint URL. Falls back to
                    AZURE_TTS_REGION, then "francecentral".
            timeout: Network timeout per request in seconds
            rate: SSML prosody rate
            pitch: SSML prosody pitch
            transport: Optional httpx transport (used by tests)

        Raises:
            TTSAuthError: If no API key is available.
        """
        self._api_key = api_key or os.getenv("AZURE_TTS_KEY")
        if not self._api_key:
            raise TTSAuthError(
                "Azure TTS key not found. Set AZURE_TTS_KEY environment "
                "variable or provide api_key parameter."
            )

        self.region = normalize_region(
            region or os.getenv("AZURE_TTS_REGION") or DEFAULT_REGION
        )
        self.timeout = timeout
        self.rate = rate
        self.pitch = pitch
        self._transport = transport

        self._voices_cache: list[dict] | None = None

    @property
    def synthesis_url(self) -> str:
        return f"https://{self.region}.tts.speech.microsoft.com/cognitiveservices/v1"

    @property
    def voices_url(self) -> str:
        return (
            f"https://{self.region}.tts.speech.microsoft.com"
            "/cognitiveservices/voices/list"
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def synthesize(self, text: str, voice: VoiceId) -> bytes:
        """Convert text to MP3 audio bytes.

        Args:
            text: Text to convert to speech
            voice: Azure voice short name (e.g., en-US-AvaNeural)

        Returns:
            Audio data as bytes (MP3 format)

        Raises:
            TTSRateLimitError: On 429, carrying the Retry-After hint
            TTSAPIError: On 5xx, timeout, network failure or empty body
            TTSAuthError: On 401/403
            TTSInputError: On empty text or other 4xx
        """
        ssml = build_ssml(prepare_text(text), voice, self.rate, self.pitch)
        headers = {
            "Ocp-Apim-Subscription-Key": self._api_key,
            "Content-Type": "application/ssml+xml",
            "X-Microsoft-OutputFormat": OUTPUT_FORMAT,
            "User-Agent": USER_AGENT,
        }

        logger.debug(f"Azure synthesis: voice={voice}, {len(ssml)} bytes of SSML")

        try:
            async with self._client() as client:
                response = await client.post(
                    self.synthesis_url, content=ssml.encode("utf-8"), headers=headers
                )
        except httpx.TimeoutException as e:
            raise TTSAPIError(f"Request timed out: {e}", None, e) from e
        except httpx.HTTPError as e:
            raise TTSAPIError(f"API call failed: {e}", None, e) from e

        if response.status_code != 200:
            raise error_for_status(
                response.status_code,
                response.text[:200],
                response.headers.get("Retry-After"),
            )

        audio_bytes = response.content
        if not audio_bytes:
            raise TTSAPIError("No audio data received from API", response.status_code)

        logger.debug(f"Azure synthesis returned {len(audio_bytes)} bytes for {voice}")
        return audio_bytes

    async def list_voices(self) -> list[dict]:
        """Get English voices, Neural voices first.

        Results are cached after first call to avoid repeated API requests.
        """
        if self._voices_cache is not None:
            return self._voices_cache

        try:
            async with self._client() as client:
                response = await client.get(
                    self.voices_url,
                    headers={"Ocp-Apim-Subscription-Key": self._api_key},
                )
        except httpx.HTTPError as e:
            raise TTSAPIError(f"Failed to list voices: {e}", None, e) from e

        if response.status_code != 200:
            raise error_for_status(
                response.status_code,
                response.text[:200],
                response.headers.get("Retry-After"),
            )

        voices = [
            {
                "id": v["ShortName"],
                "name": v.get("DisplayName", v["ShortName"]),
                "provider": "azure",
                "gender": v.get("Gender"),
                "locale": v.get("Locale"),
                "voice_type": v.get("VoiceType"),
            }
            for v in response.json()
            if str(v.get("Locale", "")).startswith("en-")
        ]
        voices.sort(key=lambda v: (v["voice_type"] != "Neural", v["name"]))

        self._voices_cache = voices
        return voices
