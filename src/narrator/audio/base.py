"""Abstract audio output used by the playback engine."""

from abc import ABC, abstractmethod

from ..playback.errors import AudioTransportError


class AudioTransport(ABC):
    """One audio output that holds at most one loaded chunk.

    ``load`` replaces whatever was loaded before. Implementations raise
    ``AudioDecodeError`` for bytes they cannot decode and
    ``AudioTransportError`` when the device itself fails.
    """

    @abstractmethod
    def load(self, data: bytes) -> None:
        pass

    @abstractmethod
    def play(self) -> None:
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def resume(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop and unload the current chunk. Safe to call when idle."""
        pass

    @abstractmethod
    def is_finished(self) -> bool:
        """True once the loaded chunk has played to its natural end."""
        pass

    @abstractmethod
    def position(self) -> float:
        """Fraction of the loaded chunk played so far, 0.0 to 1.0."""
        pass

    def set_rate(self, rate: float) -> None:
        """Change playback speed for this and later chunks."""
        if rate != 1.0:
            raise AudioTransportError(
                f"{type(self).__name__} does not support playback rate {rate}"
            )

    def close(self) -> None:
        self.stop()
