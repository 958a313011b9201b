"""Unit tests for the provider interface, text preparation and registry."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from narrator.providers import (
    AzureSpeechProvider,
    ElevenLabsProvider,
    ProviderRegistry,
)
from narrator.providers.base import TTSProvider, prepare_text
from narrator.tts.errors import TTSInputError


class TestPrepareText:
    """Test text cleanup before synthesis."""

    def test_strips_whitespace(self) -> None:
        assert prepare_text("  Hello world \n") == "Hello world"

    def test_replaces_control_characters(self) -> None:
        """Test control characters become spaces while newlines survive."""
        assert prepare_text("a\x00b\tc\nd\x7f") == "a b\tc\nd"

    @pytest.mark.parametrize("text", ["", "   ", "\x00\x01", None])
    def test_empty_after_cleanup_is_input_error(self, text) -> None:
        with pytest.raises(TTSInputError, match="Text cannot be empty"):
            prepare_text(text)


class TestTTSProviderInterface:
    """Test the abstract provider contract."""

    def test_cannot_instantiate_abstract_provider(self) -> None:
        with pytest.raises(TypeError):
            TTSProvider()

    def test_incomplete_subclass_cannot_instantiate(self) -> None:
        class HalfProvider(TTSProvider):
            async def synthesize(self, text, voice) -> bytes:
                return b""

        with pytest.raises(TypeError):
            HalfProvider()


class TestProviderRegistry:
    """Test provider registration and lookup."""

    def test_builtin_providers_registered(self) -> None:
        assert ProviderRegistry.get("azure") is AzureSpeechProvider
        assert ProviderRegistry.get("elevenlabs") is ElevenLabsProvider

    def test_unknown_provider_lists_available(self) -> None:
        with pytest.raises(KeyError, match="Configure one of: azure, elevenlabs"):
            ProviderRegistry.get("nonexistent")

    def test_register_custom_provider(self) -> None:
        class CustomProvider(TTSProvider):
            async def synthesize(self, text, voice) -> bytes:
                return b"x"

            def __init__(self, timeout: float = 60.0) -> None:
                self.timeout = timeout

            async def list_voices(self) -> list[dict]:
                return []

        ProviderRegistry.register("custom-test", CustomProvider)
        try:
            assert ProviderRegistry.get("custom-test") is CustomProvider
            assert "custom-test" in ProviderRegistry.names()
            instance = ProviderRegistry.create("custom-test", timeout=5.0)
            assert isinstance(instance, CustomProvider)
            assert instance.timeout == 5.0
        finally:
            ProviderRegistry._providers.pop("custom-test", None)
