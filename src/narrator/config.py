"""Configuration management for narrator.

Loads configuration from ~/.config/narrator/config.toml.
Priority chain: CLI flags > env vars > config file.
"""

import os
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path

from .tts.models import VoiceId

CONFIG_DIR = Path.home() / ".config" / "narrator"
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_CONFIG = """\
# narrator configuration

[tts]
# Provider: "azure" (Azure neural voices) or "elevenlabs"
provider = "azure"

# Voices every content item must have audio for
voices = ["en-US-AvaNeural", "en-US-AndrewNeural"]

# Voice used for playback when none is given
default_voice = "en-US-AvaNeural"

# Network timeout per vendor request, in seconds
timeout = 60.0

[synthesis]
# Attempts per voice before the voice is marked failed for the run
max_attempts = 3

# Transient failures wait backoff_base * attempt seconds
backoff_base = 2.0

# Upper bound on a vendor Retry-After hint
max_retry_after = 60.0

# Pause between voices of one content item
voice_cooldown = 5.0

# Chunked generation
chunk_size = 2000
chunk_cooldown = 2.0

# Payloads shorter than this are treated as a failed synthesis
min_payload_bytes = 100

# Background backlog pacing in the daemon
pacing_enabled = false
pacing_interval = 45.0
pacing_error_backoff = 90.0
pacing_initial_delay = 10.0

[playback]
# Readiness polling while audio is being generated
poll_interval = 1.5
poll_budget = 30.0

# Progress is written every progress_step percentage points
progress_step = 10

# Vendor credentials are read from environment variables, not this file:
#   AZURE_TTS_KEY       - Azure speech key
#   AZURE_TTS_REGION    - Azure region (default francecentral)
#   ELEVENLABS_API_KEY  - ElevenLabs provider
"""


@dataclass(frozen=True)
class TTSConfig:
    """TTS provider configuration."""

    provider: str
    voices: tuple[VoiceId, ...]
    default_voice: VoiceId
    timeout: float = 60.0


@dataclass(frozen=True)
class SynthesisConfig:
    """Retry, pacing and chunking settings for background synthesis."""

    max_attempts: int = 3
    backoff_base: float = 2.0
    max_retry_after: float = 60.0
    voice_cooldown: float = 5.0
    chunk_size: int = 2000
    chunk_cooldown: float = 2.0
    min_payload_bytes: int = 100
    pacing_enabled: bool = False
    pacing_interval: float = 45.0
    pacing_error_backoff: float = 90.0
    pacing_initial_delay: float = 10.0


@dataclass(frozen=True)
class PlaybackConfig:
    """Client playback settings."""

    poll_interval: float = 1.5
    poll_budget: float = 30.0
    progress_step: int = 10


@dataclass(frozen=True)
class NarratorConfig:
    """Top-level narrator configuration."""

    tts: TTSConfig
    synthesis: SynthesisConfig
    playback: PlaybackConfig
    db_path: Path


_cached_config: NarratorConfig | None = None


def default_db_path() -> Path:
    from .cache import get_data_dir

    return get_data_dir() / "narrator.db"


def generate_config() -> Path:
    """Generate default config file at ~/.config/narrator/config.toml."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(DEFAULT_CONFIG)
    return CONFIG_PATH


def _parse_voices(raw: str | list[str]) -> tuple[VoiceId, ...]:
    if isinstance(raw, str):
        raw = [part for part in raw.split(",") if part.strip()]
    return tuple(VoiceId.parse(v) for v in raw)


def load_config() -> NarratorConfig:
    """Load configuration from config file with env var overrides.

    On first run, generates the config file and exits so the user
    can review it before proceeding.

    Returns:
        Loaded and validated NarratorConfig.

    Raises:
        SystemExit: If config is missing (after generating) or invalid.
    """
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if not CONFIG_PATH.exists():
        path = generate_config()
        print(
            f"No config found. Generated {path}. Review it and run again.",
            file=sys.stderr,
        )
        raise SystemExit(1)

    with open(CONFIG_PATH, "rb") as f:
        data = tomllib.load(f)

    tts = data.get("tts", {})
    synthesis = data.get("synthesis", {})
    playback = data.get("playback", {})

    # Validate required fields
    missing = []
    if "provider" not in tts:
        missing.append("tts.provider")
    if "voices" not in tts:
        missing.append("tts.voices")

    if missing:
        print(
            f"Missing required config values: {', '.join(missing)}",
            file=sys.stderr,
        )
        print(f"Edit {CONFIG_PATH} or delete it to regenerate.", file=sys.stderr)
        raise SystemExit(1)

    # Env vars override config file values
    try:
        voices = _parse_voices(os.getenv("NARRATOR_VOICES") or tts["voices"])
        default_raw = os.getenv("NARRATOR_DEFAULT_VOICE") or tts.get("default_voice")
        default_voice = VoiceId.parse(default_raw) if default_raw else None
    except ValueError as e:
        print(f"Invalid voice in config: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    if not voices:
        print("tts.voices must name at least one voice", file=sys.stderr)
        raise SystemExit(1)

    db_env = os.getenv("NARRATOR_DB_PATH") or data.get("db_path")
    known = SynthesisConfig.__dataclass_fields__

    _cached_config = NarratorConfig(
        tts=TTSConfig(
            provider=os.getenv("NARRATOR_PROVIDER", tts["provider"]),
            voices=voices,
            default_voice=default_voice or voices[0],
            timeout=float(tts.get("timeout", 60.0)),
        ),
        synthesis=SynthesisConfig(
            **{k: v for k, v in synthesis.items() if k in known}
        ),
        playback=PlaybackConfig(
            **{
                k: v
                for k, v in playback.items()
                if k in PlaybackConfig.__dataclass_fields__
            }
        ),
        db_path=Path(db_env).expanduser() if db_env else default_db_path(),
    )

    return _cached_config
