"""Bounded wait for audio that may still be generating."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ..tts.models import VoiceId
from .backend import AudioBackend
from .codec import ChunkEnvelope
from .errors import (
    AudioDecodeError,
    BackendError,
    GenerationNotReadyError,
    PollCancelledError,
)

logger = logging.getLogger(__name__)


class ReadinessPoller:
    """Triggers generation once, then polls for chunks within a time budget.

    Args:
        backend: Where to trigger generation and fetch chunks
        interval: Seconds between polls
        budget: Total seconds to wait before giving up
        clock: Monotonic clock, injectable for tests
        sleep: Async sleep, injectable for tests
    """

    def __init__(
        self,
        backend: AudioBackend,
        interval: float = 1.5,
        budget: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval <= 0 or budget < 0:
            raise ValueError("interval must be positive and budget non-negative")
        self.backend = backend
        self.interval = interval
        self.budget = budget
        self._clock = clock
        self._sleep = sleep

    async def _trigger(self, content_id: str, voice: VoiceId) -> None:
        try:
            ack = await self.backend.trigger_generation(content_id, voice)
            logger.debug(f"Generation triggered for {content_id}/{voice}: {ack}")
        except Exception as e:
            # Polling continues, another trigger may already be generating
            logger.warning(f"Failed to trigger generation for {content_id}/{voice}: {e}")

    async def wait_for_chunks(
        self,
        content_id: str,
        voice: VoiceId,
        is_active: Callable[[], bool] | None = None,
    ) -> list[ChunkEnvelope]:
        """Return the first non-empty chunk list the backend reports.

        Raises:
            GenerationNotReadyError: If the budget runs out first
            PollCancelledError: If ``is_active`` turns False
        """
        start = self._clock()
        deadline = start + self.budget
        trigger = asyncio.create_task(self._trigger(content_id, voice))

        try:
            while True:
                if is_active is not None and not is_active():
                    raise PollCancelledError(f"Stopped waiting for {content_id}")

                try:
                    chunks = await self.backend.fetch_chunks(content_id, voice)
                except (BackendError, AudioDecodeError, OSError) as e:
                    logger.warning(f"Poll for {content_id}/{voice} failed: {e}")
                    chunks = []

                if chunks:
                    return chunks

                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise GenerationNotReadyError(
                        content_id, str(voice), self._clock() - start
                    )
                await self._sleep(min(self.interval, remaining))
        finally:
            if not trigger.done():
                trigger.cancel()
