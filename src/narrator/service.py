"""In-process narration service.

Wires storage, the vendor provider and the synthesis components together
and exposes the operations the daemon and the playback engine use:
trigger generation, fetch chunks, backlog status, process one backlog
item, and progress reads and writes.
"""

import asyncio
import logging
import sqlite3
from typing import Any

from .cache.models import ContentItem, PlaybackProgress
from .cache.storage import NarrationStorage
from .config import NarratorConfig, PlaybackConfig, SynthesisConfig
from .playback.codec import ChunkEnvelope, encode_chunk
from .playback.errors import BackendError
from .providers import ProviderRegistry
from .providers.base import TTSProvider
from .synthesis.chunks import ChunkResult, ChunkSynthesizer
from .synthesis.retry import RetryingSynthesizer, RetryPolicy, Sleep
from .synthesis.scheduler import BacklogScanner, BacklogStatus, DispatchReport
from .synthesis.worker import SynthesisWorker
from .tts.models import VoiceId

logger = logging.getLogger(__name__)


class ContentNotFoundError(LookupError):
    """No content item with the requested id."""


class NarrationService:
    """Everything the daemon serves, usable directly in one process.

    The vendor provider is created on first use, so read-only operations
    (status, fetch, progress) work without vendor credentials.
    """

    def __init__(
        self,
        storage: NarrationStorage,
        required_voices: list[VoiceId],
        provider: TTSProvider | None = None,
        provider_name: str = "azure",
        provider_timeout: float = 60.0,
        synthesis: SynthesisConfig | None = None,
        playback: PlaybackConfig | None = None,
        default_voice: VoiceId | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not required_voices:
            raise ValueError("required_voices cannot be empty")
        self.storage = storage
        self.required_voices = list(required_voices)
        self.default_voice = default_voice or self.required_voices[0]
        self.provider_name = provider_name
        self.provider_timeout = provider_timeout
        self.synthesis_config = synthesis or SynthesisConfig()
        self.playback_config = playback or PlaybackConfig()
        self._provider = provider
        self._sleep = sleep

        self._synthesizer: RetryingSynthesizer | None = None
        self._scanner: BacklogScanner | None = None
        self._chunk_synthesizer: ChunkSynthesizer | None = None
        self._generation_tasks: dict[tuple[str, VoiceId], asyncio.Task] = {}

    @classmethod
    def from_config(cls, config: NarratorConfig) -> "NarrationService":
        return cls(
            storage=NarrationStorage(config.db_path),
            required_voices=list(config.tts.voices),
            provider_name=config.tts.provider,
            provider_timeout=config.tts.timeout,
            synthesis=config.synthesis,
            playback=config.playback,
            default_voice=config.tts.default_voice,
        )

    # === COMPONENTS ===

    @property
    def provider(self) -> TTSProvider:
        """Vendor provider, created from the registry on first access.

        Raises:
            KeyError: If the provider name is not registered
            TTSAuthError: If the provider has no credentials
        """
        if self._provider is None:
            self._provider = ProviderRegistry.create(
                self.provider_name, timeout=self.provider_timeout
            )
        return self._provider

    @property
    def synthesizer(self) -> RetryingSynthesizer:
        if self._synthesizer is None:
            cfg = self.synthesis_config
            self._synthesizer = RetryingSynthesizer(
                self.provider,
                RetryPolicy(cfg.max_attempts, cfg.backoff_base, cfg.max_retry_after),
                sleep=self._sleep,
                min_payload_bytes=cfg.min_payload_bytes,
            )
        return self._synthesizer

    @property
    def scanner(self) -> BacklogScanner:
        if self._scanner is None:
            worker = SynthesisWorker(
                self.storage,
                self.synthesizer,
                self.required_voices,
                voice_cooldown=self.synthesis_config.voice_cooldown,
                sleep=self._sleep,
            )
            self._scanner = BacklogScanner(self.storage, self.required_voices, worker)
        return self._scanner

    @property
    def chunk_synthesizer(self) -> ChunkSynthesizer:
        if self._chunk_synthesizer is None:
            self._chunk_synthesizer = ChunkSynthesizer(
                self.storage,
                self.synthesizer,
                chunk_size=self.synthesis_config.chunk_size,
                chunk_cooldown=self.synthesis_config.chunk_cooldown,
                sleep=self._sleep,
            )
        return self._chunk_synthesizer

    def _status_scanner(self) -> BacklogScanner:
        # Counting coverage needs no provider
        if self._scanner is not None:
            return self._scanner
        return BacklogScanner(self.storage, self.required_voices, worker=None)

    # === CONTENT ===

    def add_content(
        self,
        content_id: str,
        text: str,
        language: str = "en-US",
        default_voice: VoiceId | None = None,
    ) -> ContentItem:
        item = ContentItem(
            id=content_id, text=text, language=language, default_voice=default_voice
        )
        self.storage.add_content(item)
        logger.info(f"Added content {content_id} ({len(text)} chars)")
        return item

    def get_content(self, content_id: str) -> ContentItem:
        item = self.storage.get_content(content_id)
        if item is None:
            raise ContentNotFoundError(f"Unknown content: {content_id}")
        return item

    # === BACKLOG ===

    def status(self) -> BacklogStatus:
        return self._status_scanner().status()

    async def process_one(self) -> DispatchReport:
        return await self.scanner.process_one()

    async def synthesize_content(self, content_id: str) -> dict[str, Any]:
        """Dispatch the synthesis worker for one newly created item."""
        content = self.get_content(content_id)
        already_running = self.scanner.is_running(content_id)
        self.scanner.dispatch(content)
        return {"content_id": content_id, "dispatched": not already_running}

    # === CHUNKED GENERATION ===

    async def trigger_generation(self, content_id: str, voice: VoiceId) -> dict[str, Any]:
        """Start chunked generation for one voice and return at once.

        At most one generation task runs per (content, voice) in this
        process.
        """
        content = self.get_content(content_id)
        key = (content_id, voice)

        running = self._generation_tasks.get(key)
        if running is not None and not running.done():
            return {
                "content_id": content_id,
                "voice": str(voice),
                "started": False,
                "in_progress": True,
            }

        expected = self.chunk_synthesizer.expected_chunks(content)
        stored = self.storage.chunk_indices(content_id, voice)
        if expected and len(stored) >= expected:
            return {
                "content_id": content_id,
                "voice": str(voice),
                "started": False,
                "total_chunks": expected,
            }

        task = asyncio.create_task(self.chunk_synthesizer.run(content, voice))
        self._generation_tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._generation_finished(k, t))
        logger.info(f"Started chunk generation for {content_id}/{voice}")
        return {
            "content_id": content_id,
            "voice": str(voice),
            "started": True,
            "total_chunks": expected,
        }

    def _generation_finished(self, key: tuple[str, VoiceId], task: asyncio.Task) -> None:
        if self._generation_tasks.get(key) is task:
            del self._generation_tasks[key]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Chunk generation for {key[0]}/{key[1]} crashed: {error!r}")
            return
        result: ChunkResult = task.result()
        logger.info(
            f"Chunk generation for {key[0]}/{key[1]}: "
            f"{result.generated}/{result.total} chunks"
        )

    async def fetch_chunks(self, content_id: str, voice: VoiceId) -> list[ChunkEnvelope]:
        """Ordered chunks for one voice.

        Returns the stored chunks from index 0 up to the first gap, or the
        whole-content voice cache payload as a single chunk when no chunks
        exist, or an empty list.
        """
        try:
            chunks = self.storage.get_chunks(content_id, voice)
            if chunks:
                envelopes = []
                for expected, chunk in enumerate(chunks):
                    if chunk.index != expected:
                        break
                    envelopes.append(encode_chunk(chunk.index, chunk.payload))
                return envelopes

            entry = self.storage.load_record(content_id).get(voice)
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read audio for {content_id}: {e}") from e

        if entry is None:
            return []
        return [encode_chunk(0, entry.payload)]

    async def export_audio(self, content_id: str, voice: VoiceId) -> bytes | None:
        """All available audio for one voice as a single MP3 byte string."""
        try:
            chunks = self.storage.get_chunks(content_id, voice)
            if chunks:
                return b"".join(chunk.payload for chunk in chunks)
            entry = self.storage.load_record(content_id).get(voice)
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read audio for {content_id}: {e}") from e
        return entry.payload if entry else None

    # === PROGRESS ===

    async def save_progress(self, progress: PlaybackProgress) -> None:
        try:
            self.storage.save_progress(progress)
        except sqlite3.Error as e:
            raise BackendError(f"Failed to save progress: {e}") from e

    async def get_progress(self, user_id: str, content_id: str) -> PlaybackProgress | None:
        try:
            return self.storage.get_progress(user_id, content_id)
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read progress: {e}") from e

    # === VOICES ===

    async def list_voices(self) -> list[dict]:
        return await self.provider.list_voices()

    # === LIFECYCLE ===

    async def drain(self) -> None:
        """Wait for all background synthesis started by this service."""
        tasks = list(self._generation_tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._scanner is not None:
            await self._scanner.drain()

    async def aclose(self) -> None:
        tasks = list(self._generation_tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._scanner is not None:
            await self._scanner.cancel_all()
