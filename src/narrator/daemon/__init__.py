"""Unix socket daemon that owns background synthesis."""

from .client import DaemonClient
from .server import NarrationDaemon

__all__ = ["DaemonClient", "NarrationDaemon"]
