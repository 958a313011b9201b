"""Interface the playback engine uses to reach the narration backend."""

from typing import Protocol, runtime_checkable

from ..cache.models import PlaybackProgress
from ..tts.models import VoiceId
from .codec import ChunkEnvelope


@runtime_checkable
class AudioBackend(Protocol):
    """Remote (or in-process) side of playback.

    Implemented by ``NarrationService`` in-process and by ``DaemonClient``
    over the daemon socket. Implementations raise ``BackendError`` when a
    call cannot be completed.
    """

    async def trigger_generation(self, content_id: str, voice: VoiceId) -> dict:
        """Start generating audio and return an acknowledgement at once."""
        ...

    async def fetch_chunks(self, content_id: str, voice: VoiceId) -> list[ChunkEnvelope]:
        """Return the ordered chunks available now, or an empty list."""
        ...

    async def save_progress(self, progress: PlaybackProgress) -> None:
        ...

    async def get_progress(
        self, user_id: str, content_id: str
    ) -> PlaybackProgress | None:
        ...
