"""Integration tests for SynthesisWorker and ChunkSynthesizer with real storage."""

import sqlite3
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from narrator.cache.models import ContentItem, VoiceEntry
from narrator.synthesis.chunks import ChunkSynthesizer
from narrator.synthesis.retry import RetryingSynthesizer
from narrator.synthesis.worker import SynthesisStatus, SynthesisWorker
from narrator.tts.errors import TTSAuthError, TTSInputError, TTSRateLimitError
from narrator.tts.models import VoiceId
from test_helpers import AUDIO, RecordingSleep, ScriptedProvider

A, B, C = VoiceId("voice-a"), VoiceId("voice-b"), VoiceId("voice-c")
CONTENT = ContentItem("book-1", "A short summary of a long book.")


def make_worker(storage, provider, voices=(A, B, C), sleep=None):
    sleep = sleep or RecordingSleep()
    synthesizer = RetryingSynthesizer(provider, sleep=sleep)
    return SynthesisWorker(storage, synthesizer, list(voices), voice_cooldown=5.0, sleep=sleep)


class TestSynthesisWorker:
    """Test per-content synthesis across the required voices."""

    @pytest.mark.asyncio
    async def test_all_voices_succeed(self, storage) -> None:
        provider = ScriptedProvider()
        sleep = RecordingSleep()

        result = await make_worker(storage, provider, sleep=sleep).run(CONTENT)

        assert result.status is SynthesisStatus.COMPLETE
        assert result.succeeded == [A, B, C]
        assert storage.load_record(CONTENT.id).valid_voices() == {A, B, C}
        # Cooldown between voices, none before the first
        assert sleep.delays == [5.0, 5.0]

    @pytest.mark.asyncio
    async def test_second_run_makes_no_vendor_calls(self, storage) -> None:
        """Test running the worker again on a complete item is a no-op."""
        provider = ScriptedProvider()
        worker = make_worker(storage, provider)

        await worker.run(CONTENT)
        calls_after_first = len(provider.calls)
        again = await worker.run(CONTENT)

        assert again.skipped
        assert again.status is SynthesisStatus.COMPLETE
        assert len(provider.calls) == calls_after_first

    @pytest.mark.asyncio
    async def test_rate_limited_voice_does_not_block_others(self, storage) -> None:
        provider = ScriptedProvider({str(B): TTSRateLimitError("429", retry_after=1)})
        sleep = RecordingSleep()

        result = await make_worker(storage, provider, sleep=sleep).run(CONTENT)

        assert result.status is SynthesisStatus.PARTIAL
        assert provider.calls_for(A) == 1
        assert provider.calls_for(B) == 3
        assert provider.calls_for(C) == 1
        assert result.failed == [B]
        assert storage.load_record(CONTENT.id).valid_voices() == {A, C}
        assert sleep.delays == [5.0, 1, 1, 5.0]

    @pytest.mark.asyncio
    async def test_only_missing_voices_are_synthesized(self, storage) -> None:
        storage.merge_voice(CONTENT.id, VoiceEntry(A, AUDIO))
        storage.merge_voice(CONTENT.id, VoiceEntry(C, b"", ok=True))
        provider = ScriptedProvider()

        result = await make_worker(storage, provider).run(CONTENT)

        assert [v for _, v in provider.calls] == [str(B), str(C)]
        assert result.status is SynthesisStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_every_voice_failing_is_failed(self, storage) -> None:
        provider = ScriptedProvider(
            {str(v): TTSAuthError("bad key") for v in (A, B, C)}
        )

        result = await make_worker(storage, provider).run(CONTENT)

        assert result.status is SynthesisStatus.FAILED
        assert len(provider.calls) == 3
        assert all("bad key" in o.error for o in result.outcomes)

    @pytest.mark.asyncio
    async def test_crash_keeps_voices_already_stored(self, storage) -> None:
        """Test each voice is persisted as soon as it succeeds."""
        provider = ScriptedProvider({str(B): RuntimeError("worker killed")})

        with pytest.raises(RuntimeError):
            await make_worker(storage, provider).run(CONTENT)

        assert storage.load_record(CONTENT.id).valid_voices() == {A}

    @pytest.mark.asyncio
    async def test_storage_failure_reported_per_voice(self, storage) -> None:
        provider = ScriptedProvider()
        worker = make_worker(storage, provider, voices=(A,))

        with patch.object(
            storage, "merge_voice", side_effect=sqlite3.OperationalError("disk I/O")
        ):
            result = await worker.run(CONTENT)

        assert result.status is SynthesisStatus.FAILED
        assert "disk I/O" in result.outcomes[0].error

    def test_requires_voices(self, storage) -> None:
        with pytest.raises(ValueError):
            SynthesisWorker(storage, RetryingSynthesizer(ScriptedProvider()), [])

    @pytest.mark.asyncio
    async def test_result_serializes(self, storage) -> None:
        provider = ScriptedProvider({str(B): TTSInputError("unknown voice")})
        result = await make_worker(storage, provider, voices=(A, B)).run(CONTENT)

        data = result.to_dict()
        assert data["status"] == "partial"
        assert data["outcomes"][1] == {
            "voice": str(B),
            "ok": False,
            "attempts": 1,
            "error": "unknown voice",
        }


class TestChunkSynthesizer:
    """Test chunked generation for one voice."""

    TEXT = "First sentence here. Second sentence here. Third sentence here."

    def make(self, storage, provider, sleep):
        synthesizer = RetryingSynthesizer(provider, sleep=sleep)
        return ChunkSynthesizer(
            storage, synthesizer, chunk_size=25, chunk_cooldown=2.0, sleep=sleep
        )

    @pytest.mark.asyncio
    async def test_generates_every_chunk_in_order(self, storage) -> None:
        provider = ScriptedProvider()
        sleep = RecordingSleep()
        content = ContentItem("c", self.TEXT)
        chunker = self.make(storage, provider, sleep)

        result = await chunker.run(content, A)

        assert chunker.expected_chunks(content) == 3
        assert result.success
        assert [text for text, _ in provider.calls] == [
            "First sentence here.",
            "Second sentence here.",
            "Third sentence here.",
        ]
        assert [c.index for c in storage.get_chunks("c", A)] == [0, 1, 2]
        assert sleep.delays == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_failed_chunk_retried_on_next_run(self, storage) -> None:
        provider = ScriptedProvider({str(A): [AUDIO, TTSInputError("rejected"), AUDIO]})
        sleep = RecordingSleep()
        content = ContentItem("c", self.TEXT)
        chunker = self.make(storage, provider, sleep)

        first = await chunker.run(content, A)
        assert (first.generated, first.total) == (2, 3)
        assert storage.chunk_indices("c", A) == {0, 2}

        second = await chunker.run(content, A)
        assert second.success
        assert len(provider.calls) == 4
        assert provider.calls[-1][0] == "Second sentence here."
