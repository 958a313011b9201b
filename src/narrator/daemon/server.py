"""Unix socket daemon serving the narration service."""

import asyncio
import fcntl
import json
import logging
import os
import socket as sock
from collections.abc import Awaitable, Callable
from typing import Any

from ..cache.models import PlaybackProgress
from ..playback.codec import encode_chunk
from ..service import NarrationService
from ..synthesis.scheduler import pace_backlog
from ..tts.models import VoiceId
from .paths import get_lock_path, get_socket_path

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


class NarrationDaemon:
    """Long-running process that owns background synthesis.

    Requests are single JSON objects terminated by EOF; each gets one
    ``{"id", "status", "result"}`` response. Synthesis tasks started by a
    request keep running after the response is sent.
    """

    def __init__(
        self, service: NarrationService | None = None, pacing: bool | None = None
    ) -> None:
        self.socket_path = get_socket_path()
        self.lock_path = get_lock_path()
        self.lock_fd: int | None = None
        self.service = service
        self.pacing = pacing
        self.pacing_task: asyncio.Task | None = None
        self._pacing_stop = asyncio.Event()
        self._owns_socket = False

        self.handlers: dict[str, Handler] = {
            "status": self.handle_status,
            "backlog_status": self.handle_backlog_status,
            "process_one": self.handle_process_one,
            "synthesize_content": self.handle_synthesize_content,
            "add_content": self.handle_add_content,
            "generate": self.handle_generate,
            "get_chunks": self.handle_get_chunks,
            "export_audio": self.handle_export_audio,
            "save_progress": self.handle_save_progress,
            "get_progress": self.handle_get_progress,
            "list_voices": self.handle_list_voices,
        }

    # === REQUEST HANDLING ===

    async def handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Read one JSON request, dispatch it and write the response."""
        request_id = None
        try:
            data = await reader.read()
            if not data:
                return

            try:
                request = json.loads(data.decode())
                request_id = request.get("id")
                method = request.get("method", "unknown")
                logger.debug(f"Received request: {method}")

                response = await self.dispatch(method, request.get("params") or {})
                response["id"] = request_id

            except json.JSONDecodeError as e:
                response = self._error(None, f"Invalid JSON: {e}", "JSONDecodeError")

            except Exception as e:
                logger.error(f"Error handling client: {e}")
                response = self._error(request_id, str(e), type(e).__name__)

            writer.write(json.dumps(response).encode())
            await writer.drain()
        except (ConnectionError, OSError) as e:
            logger.warning(f"Client went away before response {request_id}: {e}")
        finally:
            writer.close()
            await writer.wait_closed()

    async def dispatch(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        handler = self.handlers.get(method)
        if handler is None:
            return self._error(None, f"Unknown method: {method}", "UnknownMethod")
        try:
            result = await handler(params)
        except (KeyError, TypeError, ValueError) as e:
            logger.info(f"Bad request for {method}: {e}")
            return self._error(None, f"Invalid request: {e}", type(e).__name__)
        except Exception as e:
            logger.error(f"Error handling {method}: {e}")
            return self._error(
                None, str(e), type(e).__name__, getattr(e, "retryable", False)
            )
        return {"id": None, "status": "success", "result": result}

    @staticmethod
    def _error(
        request_id: str | None, message: str, kind: str, retryable: bool = False
    ) -> dict[str, Any]:
        return {
            "id": request_id,
            "status": "error",
            "result": {"error": message, "type": kind, "retryable": retryable},
        }

    def _require_service(self) -> NarrationService:
        if self.service is None:
            raise RuntimeError("Daemon service not initialized")
        return self.service

    # === HANDLERS ===

    async def handle_status(self, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "pid": os.getpid(),
            "ready": self.service is not None,
            "pacing": self.pacing_task is not None and not self.pacing_task.done(),
        }

    async def handle_backlog_status(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._require_service().status().to_dict()

    async def handle_process_one(self, params: dict[str, Any]) -> dict[str, Any]:
        report = await self._require_service().process_one()
        return report.to_dict()

    async def handle_synthesize_content(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self._require_service().synthesize_content(params["content_id"])

    async def handle_add_content(self, params: dict[str, Any]) -> dict[str, Any]:
        default_voice = params.get("default_voice")
        item = self._require_service().add_content(
            params["content_id"],
            params["text"],
            language=params.get("language", "en-US"),
            default_voice=VoiceId.parse(default_voice) if default_voice else None,
        )
        return {"content_id": item.id, "created_at": item.created_at.isoformat()}

    async def handle_generate(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self._require_service().trigger_generation(
            params["content_id"], VoiceId.parse(params["voice"])
        )

    async def handle_get_chunks(self, params: dict[str, Any]) -> dict[str, Any]:
        chunks = await self._require_service().fetch_chunks(
            params["content_id"], VoiceId.parse(params["voice"])
        )
        return {"chunks": [chunk.to_dict() for chunk in chunks]}

    async def handle_export_audio(self, params: dict[str, Any]) -> dict[str, Any]:
        audio = await self._require_service().export_audio(
            params["content_id"], VoiceId.parse(params["voice"])
        )
        return {"audio": encode_chunk(0, audio).to_dict() if audio else None}

    async def handle_save_progress(self, params: dict[str, Any]) -> dict[str, Any]:
        progress = PlaybackProgress.from_dict(params)
        await self._require_service().save_progress(progress)
        return {"saved": True}

    async def handle_get_progress(self, params: dict[str, Any]) -> dict[str, Any]:
        progress = await self._require_service().get_progress(
            params["user_id"], params["content_id"]
        )
        return {"progress": progress.to_dict() if progress else None}

    async def handle_list_voices(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"voices": await self._require_service().list_voices()}

    # === LIFECYCLE ===

    def _acquire_lock(self) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        self.lock_fd = os.open(str(self.lock_path), os.O_CREAT | os.O_RDWR, 0o600)
        try:
            fcntl.flock(self.lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            logger.error("Another daemon is already running (lock held)")
            os.close(self.lock_fd)
            self.lock_fd = None
            raise RuntimeError("Another daemon process is already running")
        logger.info("Acquired exclusive daemon lock")

    def _release_lock(self) -> None:
        if self.lock_fd is not None:
            try:
                os.close(self.lock_fd)
                logger.debug("Released daemon lock")
            except OSError as e:
                logger.debug(f"Failed to release lock: {e}")
            self.lock_fd = None

    def _remove_stale_socket(self) -> None:
        if not self.socket_path.exists():
            return

        probe = sock.socket(sock.AF_UNIX, sock.SOCK_STREAM)
        probe.settimeout(0.5)
        try:
            probe.connect(str(self.socket_path))
        except (OSError, TimeoutError):
            # Socket exists but nobody listening, safe to remove
            self.socket_path.unlink()
            logger.debug(f"Removed stale socket: {self.socket_path}")
            return
        finally:
            probe.close()

        logger.error(f"Another daemon is already running on {self.socket_path}")
        raise RuntimeError(
            f"Socket {self.socket_path} is already in use by another daemon"
        )

    def _start_pacing(self) -> None:
        service = self._require_service()
        cfg = service.synthesis_config
        enabled = cfg.pacing_enabled if self.pacing is None else self.pacing
        if not enabled:
            return
        self.pacing_task = asyncio.create_task(
            pace_backlog(
                service.scanner,
                interval=cfg.pacing_interval,
                error_backoff=cfg.pacing_error_backoff,
                initial_delay=cfg.pacing_initial_delay,
                stop_event=self._pacing_stop,
            )
        )
        logger.info(f"Backlog pacing every {cfg.pacing_interval:.0f}s")

    async def start(self) -> None:
        """Acquire the lock, open the socket and serve until cancelled."""
        logger.info("Starting narrator daemon...")
        self._acquire_lock()
        try:
            if self.service is None:
                from ..config import load_config

                self.service = NarrationService.from_config(load_config())

            self._remove_stale_socket()
            server = await asyncio.start_unix_server(
                self.handle_client, str(self.socket_path)
            )
            self._owns_socket = True
            self._start_pacing()

            logger.info(f"Daemon listening on {self.socket_path}")
            logger.info(f"PID: {os.getpid()}")

            async with server:
                await server.serve_forever()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        self._pacing_stop.set()
        if self.pacing_task is not None:
            self.pacing_task.cancel()
            await asyncio.gather(self.pacing_task, return_exceptions=True)
        if self.service is not None:
            await self.service.aclose()
        if self._owns_socket and self.socket_path.exists():
            try:
                self.socket_path.unlink()
            except OSError as e:
                logger.debug(f"Failed to remove socket: {e}")
        self._release_lock()
