"""Unit tests for ElevenLabsProvider error handling and logic."""

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from narrator.providers.elevenlabs import ElevenLabsProvider, _map_error
from narrator.tts.errors import (
    TTSAPIError,
    TTSAuthError,
    TTSInputError,
    TTSRateLimitError,
)
from narrator.tts.models import VoiceId

VOICE = VoiceId("21m00Tcm4TlvDq8ikWAM")


class StatusError(Exception):
    """Stand-in for an SDK error carrying an HTTP status."""

    def __init__(self, status_code: int, headers: dict | None = None) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code
        self.headers = headers


class TestElevenLabsProviderInitialization:
    """Test ElevenLabsProvider initialization and authentication error handling."""

    def test_initialization_with_provided_api_key(self) -> None:
        """Test ElevenLabsProvider initializes successfully with provided API key."""
        with patch("narrator.providers.elevenlabs.ElevenLabs") as mock_elevenlabs:
            provider = ElevenLabsProvider(api_key="test_key", timeout=12.0)

            assert provider._api_key == "test_key"
            mock_elevenlabs.assert_called_once_with(api_key="test_key", timeout=12.0)

    def test_initialization_no_api_key_raises_auth_error(self) -> None:
        """Test ElevenLabsProvider raises TTSAuthError when no API key provided."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(TTSAuthError, match="ElevenLabs API key not found"):
                ElevenLabsProvider()

    def test_client_failure_raises_auth_error(self) -> None:
        """Test a failing client constructor surfaces as TTSAuthError."""
        with patch("narrator.providers.elevenlabs.ElevenLabs") as mock_elevenlabs:
            mock_elevenlabs.side_effect = Exception("Invalid API key")

            with pytest.raises(
                TTSAuthError, match="Failed to initialize ElevenLabs client"
            ):
                ElevenLabsProvider(api_key="invalid_key")


class TestMapError:
    """Test SDK exception translation."""

    def test_status_code_429_uses_retry_after_header(self) -> None:
        error = _map_error(StatusError(429, {"retry-after": "4"}), "API call")
        assert isinstance(error, TTSRateLimitError)
        assert error.retry_after == 4.0

    def test_status_code_401(self) -> None:
        assert isinstance(_map_error(StatusError(401), "API call"), TTSAuthError)

    def test_status_code_422(self) -> None:
        assert isinstance(_map_error(StatusError(422), "API call"), TTSInputError)

    def test_status_code_500(self) -> None:
        error = _map_error(StatusError(500), "API call")
        assert type(error) is TTSAPIError

    def test_message_sniffing_without_status(self) -> None:
        """Test plain exceptions are classified from their message."""
        assert isinstance(_map_error(Exception("401 unauthorized"), "x"), TTSAuthError)
        assert isinstance(_map_error(Exception("429 rate limit"), "x"), TTSRateLimitError)
        assert "Server error" in str(_map_error(Exception("500 oops"), "x"))
        assert "List voices failed" in str(
            _map_error(Exception("network error"), "List voices")
        )


class TestElevenLabsProviderSynthesize:
    """Test ElevenLabsProvider synthesize method."""

    def setup_method(self) -> None:
        """Set up test provider with mocked ElevenLabs client."""
        with patch("narrator.providers.elevenlabs.ElevenLabs") as mock_elevenlabs:
            self.mock_client = MagicMock()
            mock_elevenlabs.return_value = self.mock_client
            self.provider = ElevenLabsProvider(api_key="test_key")

    @pytest.mark.asyncio
    async def test_synthesize_joins_audio_chunks(self) -> None:
        self.mock_client.text_to_speech.convert.return_value = iter([b"ab", b"cd"])

        audio = await self.provider.synthesize(" hello ", VOICE)

        assert audio == b"abcd"
        kwargs = self.mock_client.text_to_speech.convert.call_args.kwargs
        assert kwargs["text"] == "hello"
        assert kwargs["voice_id"] == str(VOICE)
        assert kwargs["model_id"] == "eleven_turbo_v2_5"

    @pytest.mark.asyncio
    async def test_synthesize_empty_text_raises_input_error(self) -> None:
        with pytest.raises(TTSInputError, match="Text cannot be empty"):
            await self.provider.synthesize("   ", VOICE)
        self.mock_client.text_to_speech.convert.assert_not_called()

    @pytest.mark.asyncio
    async def test_synthesize_rate_limit(self) -> None:
        self.mock_client.text_to_speech.convert.side_effect = StatusError(429)

        with pytest.raises(TTSRateLimitError):
            await self.provider.synthesize("text", VOICE)

    @pytest.mark.asyncio
    async def test_synthesize_no_audio_data_raises_tts_api_error(self) -> None:
        self.mock_client.text_to_speech.convert.return_value = iter([])

        with pytest.raises(TTSAPIError, match="No audio data received from API"):
            await self.provider.synthesize("test text", VOICE)

    @pytest.mark.asyncio
    async def test_list_voices_cached(self) -> None:
        voice = MagicMock(voice_id="abc")
        voice.name = "Rachel"
        self.mock_client.voices.get_all.return_value = MagicMock(voices=[voice])

        first = await self.provider.list_voices()
        second = await self.provider.list_voices()

        assert first == [{"id": "abc", "name": "Rachel", "provider": "elevenlabs"}]
        assert second is first
        self.mock_client.voices.get_all.assert_called_once()
