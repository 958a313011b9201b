"""Sequential chunk playback with resumable progress.

The engine owns one content item in one voice. It plays the chunk list
strictly in index order on a single transport, skips chunks that fail
to decode or play, and writes progress through the backend only when
the overall percentage crosses a ``progress_step`` boundary.

State machine::

    IDLE -> LOADING -> PLAYING <-> PAUSED -> COMPLETED
    stop() returns any state to IDLE
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from contextlib import suppress
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from ..cache.models import PlaybackProgress
from ..tts.models import VoiceId
from .backend import AudioBackend
from .codec import ChunkEnvelope, decode_chunk
from .errors import (
    AudioDecodeError,
    AudioStartError,
    AudioTransportError,
    BackendError,
    PlaybackError,
    PollCancelledError,
)
from .poller import ReadinessPoller

if TYPE_CHECKING:
    from ..audio.base import AudioTransport

logger = logging.getLogger(__name__)

MIN_RATE = 0.5
MAX_RATE = 2.0


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETED = "completed"


def overall_percentage(index: int, fraction: float, total: int) -> float:
    """Collapse (chunk index, fraction within chunk) to 0-100."""
    if total <= 0:
        return 0.0
    return min(max((index + fraction) / total * 100, 0.0), 100.0)


def target_chunk_for(percentage: float, total: int) -> int:
    """Chunk index a seek to ``percentage`` lands on.

    100% maps to ``total``, one past the last chunk, meaning "finished".
    """
    return math.floor(percentage / 100 * total)


class ChunkPlaybackEngine:
    """Plays an ordered chunk sequence back-to-back.

    Args:
        backend: Source of chunks and sink for progress
        transport: Audio output, one chunk at a time
        content_id: Content being played
        voice: Voice to fetch
        user_id: Listener for progress writes; None disables persistence
        poller: Used when the first fetch returns nothing
        progress_step: Persist progress every this many percentage points
        tick_interval: Seconds between position checks while a chunk plays
        on_progress: Called with the percentage each time progress is written
        on_complete: Called once when the sequence finishes
        on_error: Called with the AudioStartError when playback cannot start
    """

    def __init__(
        self,
        backend: AudioBackend,
        transport: "AudioTransport",
        content_id: str,
        voice: VoiceId,
        user_id: str | None = None,
        poller: ReadinessPoller | None = None,
        progress_step: int = 10,
        tick_interval: float = 0.1,
        on_progress: Callable[[float], None] | None = None,
        on_complete: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if progress_step <= 0:
            raise ValueError("progress_step must be positive")
        self.backend = backend
        self.transport = transport
        self.content_id = content_id
        self.voice = voice
        self.user_id = user_id
        self.poller = poller
        self.progress_step = progress_step
        self.tick_interval = tick_interval
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_error = on_error
        self._sleep = sleep

        self._state = PlaybackState.IDLE
        self._chunks: list[ChunkEnvelope] | None = None
        self._index = 0
        self._fraction = 0.0
        self._last_bucket = 0
        self._completed = False
        # Last progress write carried a completion timestamp
        self._finalized = False
        self._rate = 1.0
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._run_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None

        # Indices actually started and indices skipped, in order
        self.history: list[int] = []
        self.skipped: list[int] = []

    # === STATE ===

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def total_chunks(self) -> int:
        return len(self._chunks) if self._chunks else 0

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def percentage(self) -> float:
        if self._state is PlaybackState.COMPLETED:
            return 100.0
        return overall_percentage(self._index, self._fraction, self.total_chunks)

    @property
    def rate(self) -> float:
        return self._rate

    # === LOADING ===

    async def _fetch_once(self) -> list[ChunkEnvelope]:
        try:
            return await self.backend.fetch_chunks(self.content_id, self.voice)
        except (BackendError, AudioDecodeError, OSError) as e:
            logger.warning(f"Fetching chunks for {self.content_id} failed: {e}")
            return []

    async def _load_chunks(self) -> list[ChunkEnvelope]:
        chunks = await self._fetch_once()
        if chunks:
            return chunks
        if self.poller is None:
            raise AudioStartError(f"No audio available for {self.content_id}")

        self._poll_task = asyncio.create_task(
            self.poller.wait_for_chunks(
                self.content_id,
                self.voice,
                is_active=lambda: self._state is PlaybackState.LOADING,
            )
        )
        try:
            return await self._poll_task
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            raise PollCancelledError(f"Loading {self.content_id} was cancelled")
        finally:
            self._poll_task = None

    async def _resume_index(self) -> int:
        if self.user_id is None:
            return 0
        try:
            progress = await self.backend.get_progress(self.user_id, self.content_id)
        except (BackendError, OSError) as e:
            logger.warning(f"Could not read progress for {self.content_id}: {e}")
            return 0
        if progress is None or progress.is_complete:
            return 0
        if 0 <= progress.position < self.total_chunks:
            return progress.position
        return 0

    # === CONTROLS ===

    async def play(self) -> None:
        """Start, resume or replay.

        Raises:
            AudioStartError: If no chunk could be obtained at all
        """
        if self._state is PlaybackState.PAUSED:
            await self.resume()
            return
        if self._state in (PlaybackState.PLAYING, PlaybackState.LOADING):
            return

        if self._chunks is None:
            self._state = PlaybackState.LOADING
            try:
                self._chunks = await self._load_chunks()
            except PollCancelledError:
                logger.info(f"Stopped waiting for audio for {self.content_id}")
                self._state = PlaybackState.IDLE
                return
            except PlaybackError as e:
                self._state = PlaybackState.IDLE
                error = (
                    e
                    if isinstance(e, AudioStartError)
                    else AudioStartError(f"Could not start audio: {e}", e.retryable)
                )
                if self.on_error is not None:
                    self.on_error(error)
                if error is e:
                    raise
                raise error from e

        if self._state is PlaybackState.COMPLETED:
            start = 0
        else:
            start = await self._resume_index()

        start_pct = overall_percentage(start, 0.0, self.total_chunks)
        self._last_bucket = self._bucket(start_pct)
        await self._start_from(start)
        await self._persist(start_pct, start)

    async def pause(self) -> None:
        if self._state is not PlaybackState.PLAYING:
            return
        self.transport.pause()
        self._resume_event.clear()
        self._state = PlaybackState.PAUSED

    async def resume(self) -> None:
        if self._state is not PlaybackState.PAUSED:
            return
        self.transport.resume()
        self._state = PlaybackState.PLAYING
        self._resume_event.set()

    async def stop(self) -> None:
        """Tear down playback and reset progress to zero."""
        was_idle = self._state is PlaybackState.IDLE and self._chunks is None
        await self._teardown()
        self._state = PlaybackState.IDLE
        self._index = 0
        self._fraction = 0.0
        self._last_bucket = 0
        if not was_idle:
            await self._persist(0.0, 0)

    async def seek(self, percentage: float) -> int:
        """Jump to the chunk containing ``percentage`` and play it from its start.

        Returns:
            The target chunk index (``total_chunks`` when the seek finished
            the sequence)
        """
        if not self._chunks:
            raise PlaybackError("No audio loaded")

        percentage = min(max(percentage, 0.0), 100.0)
        target = target_chunk_for(percentage, self.total_chunks)
        if target >= self.total_chunks:
            await self.mark_complete()
            return self.total_chunks
        await self._jump(target)
        return target

    async def skip_forward(self) -> int:
        if not self._chunks:
            raise PlaybackError("No audio loaded")
        target = min(self._index + 1, self.total_chunks - 1)
        await self._jump(target)
        return target

    async def skip_backward(self) -> int:
        if not self._chunks:
            raise PlaybackError("No audio loaded")
        target = max(self._index - 1, 0)
        await self._jump(target)
        return target

    async def _jump(self, target: int) -> None:
        active = self._state in (PlaybackState.PLAYING, PlaybackState.PAUSED)
        if active and target == self._index:
            return
        boundary = overall_percentage(target, 0.0, self.total_chunks)
        self._last_bucket = self._bucket(boundary)
        await self._start_from(target)
        await self._persist(boundary, target)

    async def mark_complete(self) -> None:
        """Finish the sequence now, as if the last chunk had ended."""
        await self._cancel_run()
        self.transport.stop()
        await self._complete()

    def set_rate(self, rate: float) -> bool:
        """Change playback speed.

        Returns:
            False if the transport cannot play at that speed
        """
        if not MIN_RATE <= rate <= MAX_RATE:
            raise ValueError(f"rate must be between {MIN_RATE} and {MAX_RATE}")
        try:
            self.transport.set_rate(rate)
        except AudioTransportError as e:
            logger.warning(f"Keeping playback rate {self._rate}: {e}")
            return False
        self._rate = rate
        return True

    async def reload(self, voice: VoiceId | None = None) -> None:
        """Drop the resident sequence and start over, optionally in a new voice."""
        await self._teardown()
        if voice is not None:
            self.voice = voice
        self._chunks = None
        self._completed = False
        self._state = PlaybackState.IDLE
        self._index = 0
        self._fraction = 0.0
        self.history.clear()
        self.skipped.clear()
        await self.play()

    async def wait(self) -> None:
        """Block until playback is no longer running."""
        while True:
            task = self._run_task
            if task is None or task.done():
                return
            await asyncio.wait({task})

    async def close(self) -> None:
        await self._teardown()
        self.transport.close()

    # === INTERNALS ===

    async def _cancel_run(self) -> None:
        task = self._run_task
        self._run_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _teardown(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        await self._cancel_run()
        self.transport.stop()
        self._resume_event.set()

    async def _start_from(self, index: int) -> None:
        await self._cancel_run()
        self.transport.stop()
        self._index = index
        self._fraction = 0.0
        self._resume_event.set()
        self._state = PlaybackState.PLAYING
        self._run_task = asyncio.create_task(self._run(index))

    async def _run(self, start: int) -> None:
        total = self.total_chunks
        for i in range(start, total):
            self._index = i
            self._fraction = 0.0
            try:
                data = decode_chunk(self._chunks[i])
                self.transport.load(data)
                self.transport.play()
                if self._state is PlaybackState.PAUSED:
                    # Paused while no chunk was loaded
                    self.transport.pause()
            except (AudioDecodeError, AudioTransportError) as e:
                logger.warning(f"Skipping chunk {i} of {self.content_id}: {e}")
                self.skipped.append(i)
                continue

            self.history.append(i)
            await self._wait_chunk(i)
            if i < total - 1:
                await self._report_position(i + 1, 0.0)

        await self._complete()

    async def _wait_chunk(self, index: int) -> None:
        while True:
            if self._state is PlaybackState.PAUSED:
                await self._resume_event.wait()
                continue
            if self.transport.is_finished():
                return
            await self._report_position(index, self.transport.position())
            await self._sleep(self.tick_interval)

    def _bucket(self, percentage: float) -> int:
        return math.floor(percentage / self.progress_step)

    async def _report_position(self, index: int, fraction: float) -> None:
        self._fraction = fraction
        pct = overall_percentage(index, fraction, self.total_chunks)
        bucket = self._bucket(pct)
        if bucket > self._last_bucket:
            self._last_bucket = bucket
            await self._persist(pct, index)

    async def _complete(self) -> None:
        self._state = PlaybackState.COMPLETED
        self._fraction = 0.0
        self._resume_event.set()
        self.transport.stop()
        if not self._finalized:
            await self._persist(100.0, max(self.total_chunks - 1, 0), completed=True)
        if self._completed:
            return
        self._completed = True
        logger.info(
            f"Finished {self.content_id}: played {len(self.history)}, "
            f"skipped {len(self.skipped)}"
        )
        if self.on_complete is not None:
            self.on_complete()

    async def _persist(
        self, percentage: float, position: int, completed: bool = False
    ) -> None:
        self._finalized = completed
        if self.on_progress is not None:
            self.on_progress(percentage)
        if self.user_id is None:
            return

        now = datetime.now()
        progress = PlaybackProgress(
            user_id=self.user_id,
            content_id=self.content_id,
            percentage=round(percentage, 2),
            position=position,
            updated_at=now,
            completed_at=now if completed else None,
        )
        try:
            await self.backend.save_progress(progress)
        except (BackendError, OSError) as e:
            logger.warning(f"Progress write for {self.content_id} failed: {e}")
