"""Pytest configuration and fixtures for narrator tests."""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from narrator.cache.storage import NarrationStorage
from narrator.tts.models import VoiceId


@pytest.fixture(autouse=True)
def patch_daemon_paths(monkeypatch) -> Path:
    """Keep daemon sockets and locks in a per-process temp directory.

    The runtime directory is resolved from XDG_RUNTIME_DIR at call time,
    so pointing it elsewhere isolates every test from a real daemon.
    A short base path keeps socket paths under the AF_UNIX length limit.
    """
    runtime_base = Path(tempfile.gettempdir()) / f"narrator-test-{os.getpid()}"
    runtime_base.mkdir(parents=True, exist_ok=True, mode=0o700)
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(runtime_base))
    return runtime_base / "narrator"


@pytest.fixture
def storage(tmp_path) -> NarrationStorage:
    """Real SQLite storage in a temporary directory."""
    return NarrationStorage(tmp_path / "narrator.db")


@pytest.fixture
def voices() -> list[VoiceId]:
    return [VoiceId("en-US-AvaNeural"), VoiceId("en-US-AndrewNeural")]
