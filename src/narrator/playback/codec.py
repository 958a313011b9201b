"""Text-safe envelope for audio chunks crossing the daemon socket."""

import base64
import binascii
import hashlib
from dataclasses import dataclass

from .errors import AudioDecodeError


@dataclass(frozen=True)
class ChunkEnvelope:
    """Base64 audio plus a SHA-256 of the original bytes."""

    index: int
    audio_base64: str
    sha256: str

    def to_dict(self) -> dict:
        return {
            "chunk_index": self.index,
            "audio_base64": self.audio_base64,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChunkEnvelope":
        try:
            return cls(
                index=int(data["chunk_index"]),
                audio_base64=str(data["audio_base64"]),
                sha256=str(data["sha256"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AudioDecodeError(f"Malformed chunk envelope: {e}") from e


def encode_chunk(index: int, payload: bytes) -> ChunkEnvelope:
    return ChunkEnvelope(
        index=index,
        audio_base64=base64.b64encode(payload).decode("ascii"),
        sha256=hashlib.sha256(payload).hexdigest(),
    )


def decode_chunk(envelope: ChunkEnvelope) -> bytes:
    """Reconstruct the exact bytes of a chunk.

    Raises:
        AudioDecodeError: If the base64 is invalid, the result is empty,
            or the digest does not match
    """
    try:
        payload = base64.b64decode(envelope.audio_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioDecodeError(f"Chunk {envelope.index}: invalid base64: {e}") from e

    if not payload:
        raise AudioDecodeError(f"Chunk {envelope.index}: empty payload")

    if hashlib.sha256(payload).hexdigest() != envelope.sha256:
        raise AudioDecodeError(f"Chunk {envelope.index}: checksum mismatch")

    return payload
