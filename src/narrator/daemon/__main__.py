"""Run the narrator daemon: ``python -m narrator.daemon``."""

import asyncio
import logging
import os
import signal
import sys

from .server import NarrationDaemon

logger = logging.getLogger("narrator.daemon")


async def serve() -> int:
    """Serve until SIGTERM or SIGINT and return the process exit code."""
    task = asyncio.create_task(NarrationDaemon().start())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, task.cancel)

    try:
        await task
    except asyncio.CancelledError:
        logger.info("Daemon shutdown complete")
    except (RuntimeError, OSError) as e:
        logger.error(f"Daemon failed: {e}")
        return 1
    return 0


def main() -> None:
    logging.basicConfig(
        level=os.getenv("NARRATOR_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(serve()))


if __name__ == "__main__":
    main()
