"""High-level API for narrator library usage."""

from .core import DEFAULT_USER, play_content
from .tts.models import VoiceId


async def listen(
    content_id: str,
    voice: str | None = None,
    user_id: str = DEFAULT_USER,
    seek: float | None = None,
    rate: float = 1.0,
    use_daemon: bool = True,
) -> float:
    """Play a content item's narration, resuming where the listener left off.

    Args:
        content_id: Content to play
        voice: Voice ID (configured default if omitted)
        user_id: Listener whose progress is read and written
        seek: Optional starting percentage, overriding the stored position
        rate: Playback speed multiplier
        use_daemon: Whether to go through the daemon (default True)

    Returns:
        The overall percentage reached when playback stopped

    Raises:
        AudioStartError: If no audio could be obtained in time
        AudioTransportError: If the audio device is unavailable
        ValueError: If the voice ID or rate is invalid
    """
    engine = await play_content(
        content_id,
        voice=VoiceId.parse(voice) if voice else None,
        user_id=user_id,
        seek=seek,
        rate=rate,
        use_daemon=use_daemon,
    )
    return engine.percentage
