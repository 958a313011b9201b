"""Audio output for narrator.

The pygame-backed player is imported lazily so that the daemon and the
tests can run without initializing an audio device.
"""

from .base import AudioTransport

__all__ = ["AudioTransport"]
