"""Runtime file locations for the narrator daemon."""

import os
from pathlib import Path

APP_NAME = "narrator"


def get_runtime_dir() -> Path:
    """Directory holding the daemon socket and lock.

    Uses $XDG_RUNTIME_DIR/narrator when set (cleaned on logout), then
    $XDG_CACHE_HOME/narrator, then ~/.cache/narrator, and finally
    /tmp/narrator-{uid}. Created with 0700 permissions.
    """
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    cache_home = os.environ.get("XDG_CACHE_HOME")

    if runtime_dir:
        path = Path(runtime_dir) / APP_NAME
    elif cache_home:
        path = Path(cache_home) / APP_NAME
    elif Path.home().exists():
        path = Path.home() / ".cache" / APP_NAME
    else:
        path = Path(f"/tmp/{APP_NAME}-{os.getuid()}")

    path.mkdir(parents=True, exist_ok=True, mode=0o700)
    return path


def get_socket_path() -> Path:
    return get_runtime_dir() / "daemon.sock"


def get_lock_path() -> Path:
    return get_runtime_dir() / "daemon.lock"
