"""Backlog discovery and one-at-a-time dispatch of synthesis work."""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass

from ..cache.models import ContentItem, CoverageStatus, classify_coverage
from ..cache.storage import NarrationStorage
from ..tts.models import VoiceId
from .worker import SynthesisResult, SynthesisWorker

logger = logging.getLogger(__name__)


class BacklogScanError(Exception):
    """Raised when the backlog listing itself cannot be read."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


@dataclass(frozen=True)
class BacklogItem:
    content: ContentItem
    coverage: CoverageStatus


@dataclass(frozen=True)
class DispatchReport:
    """Answer to one process-one call.

    ``remaining`` counts backlog items other than the one just dispatched.
    """

    dispatched: str | None
    remaining: int
    done: bool

    def to_dict(self) -> dict:
        return {
            "dispatched": self.dispatched,
            "remaining": self.remaining,
            "done": self.done,
        }


@dataclass(frozen=True)
class BacklogStatus:
    total: int
    satisfied: int
    partial: int
    unsatisfied: int

    @property
    def percent_complete(self) -> float:
        if self.total == 0:
            return 100.0
        return round(self.satisfied / self.total * 100, 1)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "satisfied": self.satisfied,
            "partial": self.partial,
            "unsatisfied": self.unsatisfied,
            "percent_complete": self.percent_complete,
        }


class BacklogScanner:
    """Finds content missing required voices and dispatches one item at a time.

    Nothing about the backlog is cached between calls: every scan is a fresh
    query. The only state kept is the set of worker tasks this process has
    started, so the same item is not dispatched twice while its worker runs.
    """

    def __init__(
        self,
        storage: NarrationStorage,
        required_voices: list[VoiceId],
        worker: SynthesisWorker | None = None,
    ) -> None:
        self.storage = storage
        self.required_voices = list(required_voices)
        self.worker = worker
        self._in_flight: dict[str, asyncio.Task] = {}

    def _classified(self) -> list[BacklogItem]:
        try:
            contents = self.storage.list_contents()
            voices = self.storage.valid_voices_by_content()
        except sqlite3.Error as e:
            raise BacklogScanError(f"Failed to list backlog: {e}", e) from e

        return [
            BacklogItem(
                content,
                classify_coverage(voices.get(content.id, set()), self.required_voices),
            )
            for content in contents
        ]

    def scan(self) -> list[BacklogItem]:
        """Items missing one or more required voices, newest first.

        Raises:
            BacklogScanError: If the listing query fails
        """
        return [
            item
            for item in self._classified()
            if item.coverage is not CoverageStatus.SATISFIED
        ]

    def status(self) -> BacklogStatus:
        """Aggregate coverage counts across all content.

        Raises:
            BacklogScanError: If the listing query fails
        """
        counts = {status: 0 for status in CoverageStatus}
        items = self._classified()
        for item in items:
            counts[item.coverage] += 1
        return BacklogStatus(
            total=len(items),
            satisfied=counts[CoverageStatus.SATISFIED],
            partial=counts[CoverageStatus.PARTIAL],
            unsatisfied=counts[CoverageStatus.UNSATISFIED],
        )

    def is_running(self, content_id: str) -> bool:
        return content_id in self._in_flight

    def dispatch(self, content: ContentItem) -> asyncio.Task:
        """Start the worker for one item in the background.

        A second dispatch for an item whose worker is still running returns
        the running task.
        """
        task = self._in_flight.get(content.id)
        if task is not None:
            return task

        if self.worker is None:
            raise RuntimeError("BacklogScanner has no worker to dispatch")

        task = asyncio.create_task(self.worker.run(content))
        self._in_flight[content.id] = task
        task.add_done_callback(lambda t, cid=content.id: self._finished(cid, t))
        return task

    def _finished(self, content_id: str, task: asyncio.Task) -> None:
        self._in_flight.pop(content_id, None)
        if task.cancelled():
            logger.info(f"{content_id}: synthesis cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{content_id}: synthesis crashed: {error!r}")

    async def process_one(self) -> DispatchReport:
        """Dispatch the worker for one backlog item and return immediately.

        Raises:
            BacklogScanError: If the listing query fails
        """
        backlog = self.scan()
        if not backlog:
            return DispatchReport(dispatched=None, remaining=0, done=True)

        candidate = next(
            (item for item in backlog if not self.is_running(item.content.id)),
            None,
        )
        if candidate is None:
            logger.debug("Every backlog item already has a worker running")
            return DispatchReport(dispatched=None, remaining=len(backlog), done=False)

        self.dispatch(candidate.content)
        logger.info(
            f"Dispatched {candidate.content.id} ({candidate.coverage.value}), "
            f"{len(backlog) - 1} remaining"
        )
        return DispatchReport(
            dispatched=candidate.content.id, remaining=len(backlog) - 1, done=False
        )

    async def drain(self) -> list[SynthesisResult]:
        """Wait for every worker this scanner started."""
        tasks = list(self._in_flight.values())
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        return [o for o in outcomes if isinstance(o, SynthesisResult)]

    async def cancel_all(self) -> None:
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def pace_backlog(
    scanner: BacklogScanner,
    interval: float = 45.0,
    error_backoff: float = 90.0,
    initial_delay: float = 10.0,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Call process_one on a slow timer until the backlog is empty.

    After a failed call the next tick waits max(2 * interval, error_backoff).
    Setting ``stop_event`` ends the loop at the next wait.
    """
    stop_event = stop_event or asyncio.Event()

    async def wait(seconds: float) -> bool:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    if await wait(initial_delay):
        return

    while True:
        try:
            report = await scanner.process_one()
        except BacklogScanError as e:
            logger.warning(f"Backlog pass failed: {e}")
            delay = max(interval * 2, error_backoff)
        else:
            if report.done:
                logger.info("Backlog empty, pacing loop stopping")
                return
            delay = interval

        if await wait(delay):
            return
