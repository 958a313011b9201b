"""Integration tests for backlog scanning, dispatch and pacing."""

import asyncio
import sqlite3
import sys
import time
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from narrator.cache.models import ContentItem, CoverageStatus, VoiceEntry
from narrator.synthesis.retry import RetryingSynthesizer
from narrator.synthesis.scheduler import (
    BacklogScanError,
    BacklogScanner,
    BacklogStatus,
    DispatchReport,
    pace_backlog,
)
from narrator.synthesis.worker import SynthesisStatus, SynthesisWorker
from narrator.tts.models import VoiceId
from test_helpers import AUDIO, RecordingSleep, ScriptedProvider

A, B = VoiceId("voice-a"), VoiceId("voice-b")
BASE = datetime(2026, 3, 1)


class GatedProvider(ScriptedProvider):
    """Provider that holds every call until the gate opens."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def synthesize(self, text, voice) -> bytes:
        await self.gate.wait()
        return await super().synthesize(text, voice)


def seed(storage, count: int) -> list[ContentItem]:
    items = [
        ContentItem(f"book-{i}", f"Summary {i}.", created_at=BASE + timedelta(hours=i))
        for i in range(count)
    ]
    for item in items:
        storage.add_content(item)
    return items


def make_scanner(storage, provider=None) -> BacklogScanner:
    sleep = RecordingSleep()
    worker = SynthesisWorker(
        storage,
        RetryingSynthesizer(provider or ScriptedProvider(), sleep=sleep),
        [A, B],
        voice_cooldown=0,
        sleep=sleep,
    )
    return BacklogScanner(storage, [A, B], worker)


class TestBacklogScan:
    """Test backlog classification."""

    def test_scan_excludes_satisfied_newest_first(self, storage) -> None:
        seed(storage, 3)
        storage.merge_voice("book-0", VoiceEntry(A, AUDIO))
        storage.merge_voice("book-0", VoiceEntry(B, AUDIO))
        storage.merge_voice("book-1", VoiceEntry(A, AUDIO))

        backlog = BacklogScanner(storage, [A, B]).scan()

        assert [(i.content.id, i.coverage) for i in backlog] == [
            ("book-2", CoverageStatus.UNSATISFIED),
            ("book-1", CoverageStatus.PARTIAL),
        ]

    def test_status_counts(self, storage) -> None:
        seed(storage, 4)
        for voice in (A, B):
            storage.merge_voice("book-0", VoiceEntry(voice, AUDIO))
        storage.merge_voice("book-1", VoiceEntry(B, AUDIO))

        status = BacklogScanner(storage, [A, B]).status()

        assert status == BacklogStatus(total=4, satisfied=1, partial=1, unsatisfied=2)
        assert status.percent_complete == 25.0
        assert status.to_dict()["percent_complete"] == 25.0

    def test_empty_status_is_complete(self, storage) -> None:
        assert BacklogScanner(storage, [A]).status().percent_complete == 100.0

    def test_listing_failure_raises_scan_error(self, storage) -> None:
        scanner = BacklogScanner(storage, [A])
        with patch.object(
            storage, "list_contents", side_effect=sqlite3.OperationalError("locked")
        ):
            with pytest.raises(BacklogScanError, match="locked") as exc_info:
                scanner.scan()
        assert isinstance(exc_info.value.original_error, sqlite3.OperationalError)

    @pytest.mark.asyncio
    async def test_dispatch_without_worker(self, storage) -> None:
        (item,) = seed(storage, 1)
        with pytest.raises(RuntimeError):
            BacklogScanner(storage, [A]).dispatch(item)


class TestProcessOne:
    """Test one-at-a-time dispatch."""

    @pytest.mark.asyncio
    async def test_empty_backlog_reports_done(self, storage) -> None:
        report = await make_scanner(storage).process_one()
        assert report == DispatchReport(dispatched=None, remaining=0, done=True)

    @pytest.mark.asyncio
    async def test_dispatches_newest_and_returns_immediately(self, storage) -> None:
        seed(storage, 3)
        provider = GatedProvider()
        scanner = make_scanner(storage, provider)

        report = await scanner.process_one()

        assert report.dispatched == "book-2"
        assert report.remaining == 2
        assert not report.done
        assert scanner.is_running("book-2")
        # Worker is still blocked on the vendor
        assert provider.calls == []

        provider.gate.set()
        results = await scanner.drain()
        assert [r.status for r in results] == [SynthesisStatus.COMPLETE]
        assert not scanner.is_running("book-2")

    @pytest.mark.asyncio
    async def test_running_items_are_not_dispatched_twice(self, storage) -> None:
        seed(storage, 2)
        provider = GatedProvider()
        scanner = make_scanner(storage, provider)

        first = await scanner.process_one()
        second = await scanner.process_one()
        third = await scanner.process_one()

        assert (first.dispatched, second.dispatched) == ("book-1", "book-0")
        assert third == DispatchReport(dispatched=None, remaining=2, done=False)

        provider.gate.set()
        await scanner.drain()
        assert (await scanner.process_one()).done

    @pytest.mark.asyncio
    async def test_crashing_worker_is_logged_and_forgotten(self, storage, caplog) -> None:
        seed(storage, 1)
        provider = ScriptedProvider({str(A): RuntimeError("boom")})
        scanner = make_scanner(storage, provider)

        await scanner.process_one()
        results = await scanner.drain()
        await asyncio.sleep(0)

        assert results == []
        assert not scanner.is_running("book-0")
        assert "synthesis crashed" in caplog.text

    @pytest.mark.asyncio
    async def test_cancel_all(self, storage) -> None:
        seed(storage, 1)
        scanner = make_scanner(storage, GatedProvider())

        await scanner.process_one()
        await scanner.cancel_all()
        await asyncio.sleep(0)

        assert not scanner.is_running("book-0")


class TestPaceBacklog:
    """Test the slow background timer."""

    @pytest.mark.asyncio
    async def test_runs_until_backlog_empty(self, storage) -> None:
        seed(storage, 3)
        scanner = make_scanner(storage)

        await asyncio.wait_for(
            pace_backlog(scanner, interval=0.01, error_backoff=0.01, initial_delay=0),
            timeout=5,
        )
        await scanner.drain()

        assert scanner.status().satisfied == 3

    @pytest.mark.asyncio
    async def test_backs_off_after_scan_error(self) -> None:
        times: list[float] = []

        async def process_one():
            times.append(time.monotonic())
            if len(times) == 1:
                raise BacklogScanError("db locked")
            return DispatchReport(dispatched=None, remaining=0, done=True)

        scanner = MagicMock()
        scanner.process_one = process_one

        await asyncio.wait_for(
            pace_backlog(scanner, interval=0.01, error_backoff=0.2, initial_delay=0),
            timeout=5,
        )

        assert len(times) == 2
        assert times[1] - times[0] >= 0.15

    @pytest.mark.asyncio
    async def test_stop_event_ends_loop(self) -> None:
        scanner = MagicMock()
        scanner.process_one = AsyncMock(
            return_value=DispatchReport(dispatched="x", remaining=5, done=False)
        )
        stop = asyncio.Event()

        task = asyncio.create_task(
            pace_backlog(scanner, interval=10, initial_delay=0, stop_event=stop)
        )
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert scanner.process_one.await_count == 1

    @pytest.mark.asyncio
    async def test_stop_before_first_tick(self) -> None:
        scanner = MagicMock()
        scanner.process_one = AsyncMock()
        stop = asyncio.Event()
        stop.set()

        await pace_backlog(scanner, initial_delay=10, stop_event=stop)

        scanner.process_one.assert_not_awaited()
