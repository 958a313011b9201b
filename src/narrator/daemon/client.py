"""Unix socket client for communicating with the narrator daemon."""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any

from ..cache.models import PlaybackProgress
from ..playback.codec import ChunkEnvelope
from ..playback.errors import BackendError
from ..tts.models import VoiceId
from .paths import get_socket_path


class DaemonClient:
    """Client for the narrator daemon.

    ``send_request`` never raises: transport problems come back as an
    error dict, as the daemon's own errors do. The typed methods below
    raise ``BackendError`` instead, which makes the client usable as the
    playback engine's ``AudioBackend``.
    """

    def __init__(self, socket_path: Path | None = None, timeout: float = 30.0) -> None:
        self.socket_path = socket_path or get_socket_path()
        self.timeout = timeout

    async def send_request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """Send one JSON request and return the parsed response.

        Args:
            method: RPC method name (e.g., "generate", "status")
            params: Parameters for the method

        Returns:
            Parsed JSON response, or ``{"status": "error", "error": ...}``
            when the daemon could not be reached
        """
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_unix_connection(str(self.socket_path)), self.timeout
            )
            try:
                request = {"id": str(uuid.uuid4()), "method": method, "params": params}
                writer.write(json.dumps(request).encode())
                await writer.drain()
                writer.write_eof()

                # Responses carry audio and may be large, read to EOF
                data = await asyncio.wait_for(reader.read(), self.timeout)
            finally:
                writer.close()
                await writer.wait_closed()

            return json.loads(data.decode())

        except FileNotFoundError:
            return {"status": "error", "error": "Daemon not running"}
        except ConnectionRefusedError:
            return {"status": "error", "error": "Daemon not responding"}
        except asyncio.TimeoutError:
            return {"status": "error", "error": "Daemon request timed out"}
        except json.JSONDecodeError as e:
            return {"status": "error", "error": f"Invalid response from daemon: {e}"}
        except OSError as e:
            return {"status": "error", "error": f"Communication error: {e}"}

    async def _call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        response = await self.send_request(method, params)
        if response.get("status") != "success":
            result = response.get("result") or {}
            message = result.get("error") or response.get("error") or "Unknown daemon error"
            raise BackendError(f"{method} failed: {message}")
        return response.get("result") or {}

    # === SERVICE METHODS ===

    async def status(self) -> dict[str, Any]:
        return await self._call("status", {})

    async def backlog_status(self) -> dict[str, Any]:
        return await self._call("backlog_status", {})

    async def process_one(self) -> dict[str, Any]:
        return await self._call("process_one", {})

    async def add_content(
        self, content_id: str, text: str, language: str = "en-US"
    ) -> dict[str, Any]:
        return await self._call(
            "add_content",
            {"content_id": content_id, "text": text, "language": language},
        )

    async def synthesize_content(self, content_id: str) -> dict[str, Any]:
        return await self._call("synthesize_content", {"content_id": content_id})

    async def trigger_generation(self, content_id: str, voice: VoiceId) -> dict:
        return await self._call(
            "generate", {"content_id": content_id, "voice": str(voice)}
        )

    async def fetch_chunks(self, content_id: str, voice: VoiceId) -> list[ChunkEnvelope]:
        result = await self._call(
            "get_chunks", {"content_id": content_id, "voice": str(voice)}
        )
        return [ChunkEnvelope.from_dict(c) for c in result.get("chunks", [])]

    async def export_audio(self, content_id: str, voice: VoiceId) -> ChunkEnvelope | None:
        result = await self._call(
            "export_audio", {"content_id": content_id, "voice": str(voice)}
        )
        audio = result.get("audio")
        return ChunkEnvelope.from_dict(audio) if audio else None

    async def save_progress(self, progress: PlaybackProgress) -> None:
        await self._call("save_progress", progress.to_dict())

    async def get_progress(
        self, user_id: str, content_id: str
    ) -> PlaybackProgress | None:
        result = await self._call(
            "get_progress", {"user_id": user_id, "content_id": content_id}
        )
        data = result.get("progress")
        return PlaybackProgress.from_dict(data) if data else None

    async def list_voices(self) -> list[dict]:
        result = await self._call("list_voices", {})
        return result.get("voices", [])
