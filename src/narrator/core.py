"""Core functionality for narrator: picks a backend and drives playback."""

import logging
from collections.abc import Callable
from pathlib import Path

from .config import NarratorConfig, load_config
from .playback.backend import AudioBackend
from .playback.codec import decode_chunk
from .playback.engine import ChunkPlaybackEngine
from .playback.poller import ReadinessPoller
from .service import NarrationService
from .synthesis.worker import SynthesisResult
from .tts.models import VoiceId

logger = logging.getLogger(__name__)

DEFAULT_USER = "local"


async def get_backend(
    config: NarratorConfig | None = None, use_daemon: bool = True
) -> AudioBackend:
    """Daemon client when the daemon is (or can be made) available, else in-process.

    The in-process service cannot keep background generation alive after
    the command exits, so the daemon is preferred.
    """
    config = config or load_config()
    if use_daemon:
        from .daemon.client import DaemonClient
        from .daemon.spawn import ensure_daemon_running

        if await ensure_daemon_running():
            return DaemonClient()
        logger.warning("Daemon unavailable, falling back to in-process service")
    return NarrationService.from_config(config)


async def synthesize_content(
    content_id: str, config: NarratorConfig | None = None
) -> SynthesisResult:
    """Run the synthesis worker for one item in this process and wait for it."""
    service = NarrationService.from_config(config or load_config())
    try:
        content = service.get_content(content_id)
        return await service.scanner.dispatch(content)
    finally:
        await service.aclose()


async def play_content(
    content_id: str,
    voice: VoiceId | None = None,
    user_id: str = DEFAULT_USER,
    seek: float | None = None,
    rate: float = 1.0,
    use_daemon: bool = True,
    on_progress: Callable[[float], None] | None = None,
) -> ChunkPlaybackEngine:
    """Play one content item through the speakers until it finishes.

    Raises:
        AudioStartError: If no audio could be obtained
        AudioTransportError: If the audio device cannot be opened
    """
    from .audio.player import AudioPlayer

    config = load_config()
    backend = await get_backend(config, use_daemon)
    voice = voice or config.tts.default_voice

    poller = ReadinessPoller(
        backend,
        interval=config.playback.poll_interval,
        budget=config.playback.poll_budget,
    )
    engine = ChunkPlaybackEngine(
        backend,
        AudioPlayer(),
        content_id,
        voice,
        user_id=user_id,
        poller=poller,
        progress_step=config.playback.progress_step,
        on_progress=on_progress,
    )
    engine.set_rate(rate)

    try:
        await engine.play()
        if seek is not None:
            await engine.seek(seek)
        await engine.wait()
    finally:
        await engine.close()
        if isinstance(backend, NarrationService):
            await backend.aclose()
    return engine


async def export_content(
    content_id: str,
    output: str | Path,
    voice: VoiceId | None = None,
    use_daemon: bool = True,
) -> Path | None:
    """Write all available audio for one voice to ``output``.

    Returns:
        The written path, or None if no audio exists yet
    """
    from .audio.player import save_to_file

    config = load_config()
    voice = voice or config.tts.default_voice
    backend = await get_backend(config, use_daemon)

    if isinstance(backend, NarrationService):
        try:
            audio = await backend.export_audio(content_id, voice)
        finally:
            await backend.aclose()
    else:
        envelope = await backend.export_audio(content_id, voice)
        audio = decode_chunk(envelope) if envelope else None

    if not audio:
        return None
    return save_to_file(audio, output)


async def list_available_voices(provider: str | None = None) -> list[dict]:
    """Voices offered by the configured (or named) provider.

    Raises:
        TTSAuthError: If the provider has no credentials
        TTSAPIError: If the vendor call fails
        KeyError: If the provider name is unknown
    """
    from .providers import ProviderRegistry

    config = load_config()
    vendor = ProviderRegistry.create(
        provider or config.tts.provider, timeout=config.tts.timeout
    )
    return await vendor.list_voices()
