"""Status, stop and restart for the narrator daemon process."""

import asyncio
import logging
import os
import signal
import subprocess
import time
from typing import Any

from .client import DaemonClient
from .paths import get_socket_path
from .spawn import ensure_daemon_running

logger = logging.getLogger(__name__)


async def daemon_status() -> dict[str, Any]:
    """Current daemon state.

    Returns:
        Dict with ``running``, ``pid``, ``pacing`` and ``socket_path``, plus
        ``error`` when the socket exists but the daemon did not answer
    """
    socket_path = get_socket_path()
    status: dict[str, Any] = {
        "running": False,
        "pid": None,
        "pacing": None,
        "socket_path": str(socket_path),
    }
    if not socket_path.exists():
        return status

    response = await DaemonClient(timeout=2.0).send_request("status", {})
    if response.get("status") == "success":
        result = response.get("result", {})
        status.update(running=True, pid=result.get("pid"), pacing=result.get("pacing"))
    else:
        status["error"] = response.get("error") or response.get("result", {}).get(
            "error", "Unknown daemon error"
        )
    return status


def _find_daemon_pids() -> list[int]:
    pids: list[int] = []

    status = asyncio.run(daemon_status())
    if status["running"] and status["pid"]:
        pids.append(status["pid"])

    # Orphans that lost their socket still show up in the process list
    try:
        result = subprocess.run(
            ["ps", "-eo", "pid,args"], capture_output=True, text=True, check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"Process scan failed: {e}")
        return pids

    for line in result.stdout.splitlines()[1:]:
        pid_str, _, args = line.strip().partition(" ")
        if "narrator.daemon" not in args:
            continue
        try:
            pid = int(pid_str)
        except ValueError:
            continue
        if pid not in pids and pid != os.getpid():
            pids.append(pid)
    return pids


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


def daemon_stop(grace: float = 2.0) -> bool:
    """Stop every daemon process: SIGTERM first, SIGKILL after ``grace`` seconds.

    Returns:
        True if no daemon is left running
    """
    pids = _find_daemon_pids()
    if not pids:
        logger.info("No daemon processes found")
        return True

    logger.info(f"Sending SIGTERM to PIDs: {pids}")
    for pid in pids:
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            continue
        except PermissionError:
            logger.error(f"Permission denied for PID {pid}")
            return False

    deadline = time.monotonic() + grace
    while time.monotonic() < deadline and any(_alive(pid) for pid in pids):
        time.sleep(0.1)

    for pid in pids:
        if not _alive(pid):
            continue
        try:
            os.kill(pid, signal.SIGKILL)
            logger.warning(f"Used SIGKILL on PID {pid}")
        except ProcessLookupError:
            continue
        except PermissionError:
            logger.error(f"Permission denied for SIGKILL on PID {pid}")
            return False

    socket_path = get_socket_path()
    if socket_path.exists():
        try:
            socket_path.unlink()
            logger.debug("Cleaned up stale socket")
        except OSError as e:
            logger.debug(f"Failed to remove socket: {e}")

    return True


def daemon_restart() -> bool:
    """Stop any running daemon, then start a fresh one."""
    daemon_stop()
    time.sleep(0.5)
    return asyncio.run(ensure_daemon_running())
