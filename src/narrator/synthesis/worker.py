"""Per-content synthesis across the required voice set."""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum

from ..cache.models import ContentItem, CoverageStatus, VoiceEntry
from ..cache.storage import NarrationStorage
from ..tts.models import VoiceId
from .retry import RetryingSynthesizer, Sleep

logger = logging.getLogger(__name__)


class SynthesisStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class VoiceOutcome:
    voice: VoiceId
    ok: bool
    attempts: int
    error: str | None = None


@dataclass
class SynthesisResult:
    """Report of one worker run.

    ``skipped`` is True when every required voice was already present and
    no vendor call was made.
    """

    content_id: str
    status: SynthesisStatus
    outcomes: list[VoiceOutcome] = field(default_factory=list)
    skipped: bool = False

    @property
    def succeeded(self) -> list[VoiceId]:
        return [o.voice for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[VoiceId]:
        return [o.voice for o in self.outcomes if not o.ok]

    def to_dict(self) -> dict:
        return {
            "content_id": self.content_id,
            "status": self.status.value,
            "skipped": self.skipped,
            "outcomes": [
                {
                    "voice": str(o.voice),
                    "ok": o.ok,
                    "attempts": o.attempts,
                    "error": o.error,
                }
                for o in self.outcomes
            ],
        }


class SynthesisWorker:
    """Fills in missing voices for one content item.

    Voices are synthesized one after another with a cooldown between them.
    Each success is merged into storage as soon as it arrives, so a crash
    after the first voice keeps that voice.
    """

    def __init__(
        self,
        storage: NarrationStorage,
        synthesizer: RetryingSynthesizer,
        required_voices: list[VoiceId],
        voice_cooldown: float = 5.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not required_voices:
            raise ValueError("required_voices cannot be empty")
        self.storage = storage
        self.synthesizer = synthesizer
        self.required_voices = list(required_voices)
        self.voice_cooldown = voice_cooldown
        self._sleep = sleep

    async def run(self, content: ContentItem) -> SynthesisResult:
        """Synthesize every required voice that ``content`` is missing.

        Returns:
            COMPLETE when all required voices are present afterwards,
            PARTIAL when some are, FAILED when none are
        """
        record = self.storage.load_record(content.id)
        missing = record.missing(self.required_voices)

        if not missing:
            logger.debug(f"{content.id}: all voices present, nothing to do")
            return SynthesisResult(content.id, SynthesisStatus.COMPLETE, skipped=True)

        logger.info(
            f"{content.id}: synthesizing {len(missing)} voice(s): "
            f"{', '.join(str(v) for v in missing)}"
        )

        outcomes: list[VoiceOutcome] = []
        for i, voice in enumerate(missing):
            if i > 0 and self.voice_cooldown > 0:
                await self._sleep(self.voice_cooldown)

            result = await self.synthesizer.synthesize(content.text, voice)
            if not result.ok:
                outcomes.append(
                    VoiceOutcome(voice, False, result.attempts, str(result.error))
                )
                continue

            try:
                self.storage.merge_voice(
                    content.id, VoiceEntry(voice=voice, payload=result.payload)
                )
            except sqlite3.Error as e:
                logger.error(f"{content.id}: failed to store {voice}: {e}")
                outcomes.append(VoiceOutcome(voice, False, result.attempts, str(e)))
                continue

            logger.info(
                f"{content.id}: stored {voice} ({len(result.payload)} bytes)"
            )
            outcomes.append(VoiceOutcome(voice, True, result.attempts))

        coverage = self.storage.load_record(content.id).classify(self.required_voices)
        if coverage is CoverageStatus.SATISFIED:
            status = SynthesisStatus.COMPLETE
        elif coverage is CoverageStatus.PARTIAL:
            status = SynthesisStatus.PARTIAL
        else:
            status = SynthesisStatus.FAILED

        logger.info(f"{content.id}: synthesis {status.value}")
        return SynthesisResult(content.id, status, outcomes)
