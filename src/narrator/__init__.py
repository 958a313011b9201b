"""narrator - background narration of text content with resumable chunked playback."""

__version__ = "0.1.0"
__all__ = ["listen"]


def __getattr__(name: str):  # type: ignore[no-untyped-def]
    if name == "listen":
        from .api import listen

        return listen
    raise AttributeError(f"module 'narrator' has no attribute {name!r}")
