"""Chunked generation of one content item in one voice."""

import asyncio
import logging
import re
import sqlite3
from dataclasses import dataclass

from ..cache.models import AudioChunk, ContentItem
from ..cache.storage import NarrationStorage
from ..tts.models import VoiceId
from .retry import RetryingSynthesizer, Sleep

logger = logging.getLogger(__name__)

CHUNK_SIZE = 2000

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def split_into_chunks(text: str, max_chars: int = CHUNK_SIZE) -> list[str]:
    """Split text at sentence boundaries into pieces of about max_chars.

    Sentences are never cut, so a single sentence longer than max_chars
    becomes its own oversized chunk.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be positive")

    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_END.split(text.strip()):
        if not sentence:
            continue
        if current and len(current) + 1 + len(sentence) > max_chars:
            chunks.append(current.strip())
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence

    if current.strip():
        chunks.append(current.strip())
    return chunks


@dataclass
class ChunkResult:
    content_id: str
    voice: VoiceId
    total: int
    generated: int

    @property
    def success(self) -> bool:
        return self.generated == self.total

    def to_dict(self) -> dict:
        return {
            "content_id": self.content_id,
            "voice": str(self.voice),
            "total": self.total,
            "generated": self.generated,
            "success": self.success,
        }


class ChunkSynthesizer:
    """Generates the missing chunks of one (content, voice) pair in order.

    Chunks already stored are counted and skipped, so an interrupted run
    resumes where it stopped. A chunk that fails is left missing for the
    next run.
    """

    def __init__(
        self,
        storage: NarrationStorage,
        synthesizer: RetryingSynthesizer,
        chunk_size: int = CHUNK_SIZE,
        chunk_cooldown: float = 2.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.storage = storage
        self.synthesizer = synthesizer
        self.chunk_size = chunk_size
        self.chunk_cooldown = chunk_cooldown
        self._sleep = sleep

    def expected_chunks(self, content: ContentItem) -> int:
        return len(split_into_chunks(content.text, self.chunk_size))

    async def run(self, content: ContentItem, voice: VoiceId) -> ChunkResult:
        pieces = split_into_chunks(content.text, self.chunk_size)
        existing = self.storage.chunk_indices(content.id, voice)
        logger.info(
            f"{content.id}/{voice}: {len(pieces)} chunks, {len(existing)} already stored"
        )

        generated = 0
        for index, piece in enumerate(pieces):
            if index in existing:
                generated += 1
                continue

            result = await self.synthesizer.synthesize(piece, voice)
            if result.ok:
                try:
                    self.storage.save_chunk(
                        content.id, voice, AudioChunk(index, result.payload)
                    )
                    generated += 1
                    logger.debug(f"{content.id}/{voice}: saved chunk {index}")
                except sqlite3.Error as e:
                    logger.error(f"{content.id}/{voice}: chunk {index} not saved: {e}")
            else:
                logger.warning(
                    f"{content.id}/{voice}: chunk {index} failed: {result.error}"
                )

            if index < len(pieces) - 1 and self.chunk_cooldown > 0:
                await self._sleep(self.chunk_cooldown)

        return ChunkResult(content.id, voice, len(pieces), generated)
