"""Voice identifiers and vendor voice settings."""

import re
from dataclasses import dataclass

VOICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:\-]{0,127}$")


@dataclass(frozen=True, order=True)
class VoiceId:
    """Opaque vendor voice identifier, validated at the boundary.

    Business logic passes ``VoiceId`` values around and only the
    provider that talks to the vendor looks at the underlying string.

    Args:
        value: Vendor identifier (e.g., "en-US-AvaNeural")
    """

    value: str

    def __post_init__(self) -> None:
        """Validate voice identifier."""
        if not isinstance(self.value, str) or not VOICE_ID_PATTERN.match(self.value):
            raise ValueError(f"Invalid voice id: {self.value!r}")

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: "str | VoiceId") -> "VoiceId":
        """Return ``raw`` as a VoiceId, validating plain strings."""
        if isinstance(raw, VoiceId):
            return raw
        return cls(raw.strip())


_SETTING_BOUNDS = (
    ("stability", 0.0, 1.0),
    ("similarity_boost", 0.0, 1.0),
    ("style", 0.0, 1.0),
    ("speaking_rate", 0.25, 4.0),
)


@dataclass
class VoiceSettings:
    """ElevenLabs voice tuning sent with every synthesis request.

    The unit-interval fields and ``speaking_rate`` are range checked on
    construction; ``speaking_rate`` is not part of the request payload.
    """

    stability: float = 0.65
    similarity_boost: float = 0.75
    style: float = 0.4
    use_speaker_boost: bool = True
    speaking_rate: float = 1.0

    def __post_init__(self) -> None:
        for name, low, high in _SETTING_BOUNDS:
            value = getattr(self, name)
            if not low <= value <= high:
                raise ValueError(
                    f"{name} must be between {low} and {high}, got {value}"
                )

    def to_dict(self) -> dict:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "use_speaker_boost": self.use_speaker_boost,
        }
