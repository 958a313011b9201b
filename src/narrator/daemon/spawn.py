"""Auto-spawn logic for the narrator daemon."""

import asyncio
import logging
import subprocess
import sys

from .client import DaemonClient
from .paths import get_socket_path

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT = 10.0


async def is_daemon_alive() -> bool:
    """True if the daemon socket exists and answers a status request."""
    if not get_socket_path().exists():
        return False
    response = await DaemonClient(timeout=2.0).send_request("status", {})
    return response.get("status") == "success"


def spawn_daemon() -> bool:
    """Start ``python -m narrator.daemon`` detached from this process.

    Returns:
        True if the process was started, False on error
    """
    cmd = [sys.executable, "-m", "narrator.daemon"]
    logger.debug(f"Spawning daemon with command: {' '.join(cmd)}")
    try:
        subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
            start_new_session=True,  # Detach from parent process group
        )
    except OSError as e:
        logger.error(f"Failed to spawn daemon: {e}")
        return False
    return True


async def ensure_daemon_running(timeout: float = STARTUP_TIMEOUT) -> bool:
    """Make sure a daemon is answering, spawning one if needed.

    Returns:
        True once the daemon responds, False if it did not come up in time
    """
    if await is_daemon_alive():
        logger.debug("Daemon already running and responsive")
        return True

    socket_path = get_socket_path()
    if socket_path.exists():
        logger.debug("Removing stale socket file")
        try:
            socket_path.unlink()
        except OSError as e:
            logger.debug(f"Failed to remove stale socket: {e}")

    if not spawn_daemon():
        return False

    steps = int(timeout / 0.1)
    for i in range(steps):
        await asyncio.sleep(0.1)
        if socket_path.exists() and await is_daemon_alive():
            logger.debug(f"Daemon ready after {(i + 1) * 0.1:.1f} seconds")
            return True

    logger.error(f"Daemon failed to start within {timeout:.0f} seconds")
    return False
