"""Retry policy around a single vendor synthesis call."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..providers.base import TTSProvider
from ..tts.errors import TTSAPIError, TTSError, TTSRateLimitError
from ..tts.models import VoiceId

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and delays for one voice.

    Attributes:
        max_attempts: Total attempts, counting the first one
        backoff_base: Transient failures wait backoff_base * attempt seconds
        max_retry_after: Cap applied to a vendor's Retry-After hint
    """

    max_attempts: int = 3
    backoff_base: float = 2.0
    max_retry_after: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_base < 0 or self.max_retry_after < 0:
            raise ValueError("delays cannot be negative")

    def delay_for(self, error: TTSError, attempt: int) -> float:
        """Seconds to wait after ``error`` on the given 1-based attempt."""
        if isinstance(error, TTSRateLimitError):
            return min(max(error.retry_after, 0.0), self.max_retry_after)
        return self.backoff_base * attempt


@dataclass
class AttemptResult:
    """Outcome of synthesizing one voice under a retry policy."""

    voice: VoiceId
    payload: bytes | None
    attempts: int
    error: TTSError | None = None

    @property
    def ok(self) -> bool:
        return self.payload is not None


class RetryingSynthesizer:
    """Calls a provider with bounded retries.

    Rate-limited calls wait the vendor's hint, transient failures back off
    linearly per attempt, and permanent failures stop at once. The result
    is always returned, never raised, so callers can carry on with other
    voices.
    """

    def __init__(
        self,
        provider: TTSProvider,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
        min_payload_bytes: int = 100,
    ) -> None:
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.min_payload_bytes = min_payload_bytes

    async def _call(self, text: str, voice: VoiceId) -> bytes:
        payload = await self.provider.synthesize(text, voice)
        if len(payload) < self.min_payload_bytes:
            raise TTSAPIError(
                f"Audio payload too short ({len(payload)} bytes) for {voice}"
            )
        return payload

    async def synthesize(self, text: str, voice: VoiceId) -> AttemptResult:
        last_error: TTSError | None = None

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                payload = await self._call(text, voice)
                return AttemptResult(voice, payload, attempt)
            except TTSError as e:
                last_error = e
                if not e.retryable:
                    logger.warning(
                        f"Permanent failure for {voice} on attempt {attempt}: {e}"
                    )
                    return AttemptResult(voice, None, attempt, e)

                if attempt == self.policy.max_attempts:
                    break

                delay = self.policy.delay_for(e, attempt)
                logger.warning(
                    f"Attempt {attempt}/{self.policy.max_attempts} for {voice} "
                    f"failed ({e}); retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

        logger.warning(
            f"Giving up on {voice} after {self.policy.max_attempts} attempts: "
            f"{last_error}"
        )
        return AttemptResult(voice, None, self.policy.max_attempts, last_error)
