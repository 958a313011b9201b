"""Shared fakes for narrator tests."""

import asyncio
import hashlib

from narrator.audio.base import AudioTransport
from narrator.cache.models import PlaybackProgress
from narrator.playback.codec import ChunkEnvelope, encode_chunk
from narrator.playback.errors import AudioDecodeError, BackendError
from narrator.providers.base import TTSProvider

# Comfortably above the minimum payload size
AUDIO = b"ID3" + bytes(range(256)) * 2


class ScriptedProvider(TTSProvider):
    """Provider whose answers are scripted per voice.

    A script value may be bytes, an exception (raised on every call), or a
    list of those consumed one per call. Unscripted voices get ``AUDIO``.
    """

    def __init__(self, script: dict | None = None, default: bytes = AUDIO) -> None:
        self.script = dict(script or {})
        self.default = default
        self.calls: list[tuple[str, str]] = []

    async def synthesize(self, text, voice) -> bytes:
        self.calls.append((text, str(voice)))
        outcome = self.script.get(str(voice), self.default)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if outcome else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def list_voices(self) -> list[dict]:
        return [{"id": "en-US-AvaNeural", "name": "Ava", "provider": "scripted"}]

    def calls_for(self, voice) -> int:
        return sum(1 for _, v in self.calls if v == str(voice))


class RecordingSleep:
    """Async sleep that returns at once and remembers the delays asked for."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class FakeClock:
    """Monotonic clock advanced only by its paired sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeTransport(AudioTransport):
    """Transport where each chunk lasts ``ticks`` position checks.

    Payloads listed in ``undecodable`` raise AudioDecodeError on load.
    """

    def __init__(self, ticks: int = 3, undecodable: tuple[bytes, ...] = ()) -> None:
        self.ticks = ticks
        self.undecodable = set(undecodable)
        self.loaded: list[bytes] = []
        self.rate = 1.0
        self.paused = False
        self.playing = False
        self.stops = 0
        self.closed = False
        self._remaining = 0

    def load(self, data: bytes) -> None:
        if data in self.undecodable:
            raise AudioDecodeError("cannot decode")
        self.loaded.append(data)
        self._remaining = self.ticks

    def play(self) -> None:
        self.playing = True
        self.paused = False

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def stop(self) -> None:
        self.stops += 1
        self.playing = False
        self.paused = False

    def is_finished(self) -> bool:
        if not self.playing or self.paused:
            return False
        if self._remaining <= 0:
            return True
        self._remaining -= 1
        return False

    def position(self) -> float:
        if self.ticks == 0:
            return 1.0
        return 1.0 - self._remaining / self.ticks

    def set_rate(self, rate: float) -> None:
        self.rate = rate

    def close(self) -> None:
        self.closed = True
        self.stop()


def chunk_payload(index: int) -> bytes:
    return f"chunk-{index}:".encode() + AUDIO


def make_chunks(count: int, corrupt: tuple[int, ...] = ()) -> list[ChunkEnvelope]:
    """Chunk envelopes whose listed indices fail checksum verification."""
    chunks = []
    for i in range(count):
        envelope = encode_chunk(i, chunk_payload(i))
        if i in corrupt:
            envelope = ChunkEnvelope(
                i, envelope.audio_base64, hashlib.sha256(b"other").hexdigest()
            )
        chunks.append(envelope)
    return chunks


class MemoryBackend:
    """In-memory AudioBackend.

    Chunks become visible on the ``ready_after``-th fetch (1-based); before
    that fetches return nothing.
    """

    def __init__(
        self,
        chunks: list[ChunkEnvelope] | None = None,
        ready_after: int = 1,
        fail_progress: bool = False,
        fail_trigger: bool = False,
    ) -> None:
        self.chunks = chunks or []
        self.ready_after = ready_after
        self.fail_progress = fail_progress
        self.fail_trigger = fail_trigger
        self.fetches = 0
        self.triggers: list[tuple[str, str]] = []
        self.saved: list[PlaybackProgress] = []
        self.progress: dict[tuple[str, str], PlaybackProgress] = {}

    async def trigger_generation(self, content_id, voice) -> dict:
        self.triggers.append((content_id, str(voice)))
        if self.fail_trigger:
            raise BackendError("trigger refused")
        return {"started": True}

    async def fetch_chunks(self, content_id, voice) -> list[ChunkEnvelope]:
        self.fetches += 1
        if self.fetches < self.ready_after:
            return []
        return list(self.chunks)

    async def save_progress(self, progress: PlaybackProgress) -> None:
        if self.fail_progress:
            raise BackendError("progress store down")
        self.saved.append(progress)
        self.progress[(progress.user_id, progress.content_id)] = progress

    async def get_progress(self, user_id, content_id) -> PlaybackProgress | None:
        return self.progress.get((user_id, content_id))

    def percentages(self) -> list[float]:
        return [p.percentage for p in self.saved]


class GatedProgressBackend(MemoryBackend):
    """MemoryBackend whose progress write for one position blocks until released."""

    def __init__(self, chunks: list[ChunkEnvelope], gate_position: int) -> None:
        super().__init__(chunks)
        self.gate_position = gate_position
        self.blocked = asyncio.Event()
        self.release = asyncio.Event()

    async def save_progress(self, progress: PlaybackProgress) -> None:
        if progress.position == self.gate_position and not self.release.is_set():
            self.blocked.set()
            await self.release.wait()
        await super().save_progress(progress)
