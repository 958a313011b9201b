"""Speech vendors behind one interface.

Providers are looked up by the name used in ``tts.provider``, so swapping
vendors is a config change that only touches this package.
"""

from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from .base import TTSProvider

from .azure import AzureSpeechProvider
from .elevenlabs import ElevenLabsProvider

__all__ = ["AzureSpeechProvider", "ElevenLabsProvider", "ProviderRegistry"]


class ProviderRegistry:
    """Provider classes keyed by their configuration name."""

    _providers: ClassVar[dict[str, type["TTSProvider"]]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type["TTSProvider"]) -> None:
        cls._providers[name] = provider_class

    @classmethod
    def names(cls) -> list[str]:
        return sorted(cls._providers)

    @classmethod
    def get(cls, name: str) -> type["TTSProvider"]:
        """Provider class registered as ``name``.

        Raises:
            KeyError: If nothing is registered under that name
        """
        try:
            return cls._providers[name]
        except KeyError:
            choices = ", ".join(cls.names()) or "none"
            raise KeyError(
                f"Unknown TTS provider '{name}'. Configure one of: {choices}"
            ) from None

    @classmethod
    def create(cls, name: str, timeout: float = 60.0) -> "TTSProvider":
        """Instantiate a provider, reading its credentials from the environment.

        Raises:
            KeyError: If nothing is registered under that name
            TTSAuthError: If the provider has no credentials
        """
        return cls.get(name)(timeout=timeout)


ProviderRegistry.register("azure", AzureSpeechProvider)
ProviderRegistry.register("elevenlabs", ElevenLabsProvider)
