"""Typer CLI definition for narrator."""

import asyncio
import logging
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import typer

from .config import load_config
from .playback.errors import PlaybackError
from .service import ContentNotFoundError, NarrationService
from .synthesis.scheduler import BacklogScanError
from .synthesis.worker import SynthesisStatus
from .tts.errors import TTSError
from .tts.models import VoiceId

app = typer.Typer(
    help="Narrate text content with background synthesis and resumable playback"
)

_state = {"debug": False}


@app.callback()
def main(
    debug: bool = typer.Option(
        False, "--debug", help="Show verbose error messages and log activity"
    ),
) -> None:
    """Narrate text content with background synthesis and resumable playback."""
    _state["debug"] = debug
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )


def _fail(e: BaseException, prefix: str = "") -> typer.Exit:
    if _state["debug"]:
        typer.echo(f"Debug - {type(e).__name__}: {e!r}", err=True)
    else:
        typer.echo(f"Error: {prefix}{e}", err=True)
    return typer.Exit(1)


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine, turning known failures into a one-line error and exit 1."""
    try:
        return asyncio.run(coro)
    except (TTSError, PlaybackError, BacklogScanError, ContentNotFoundError) as e:
        raise _fail(e) from None
    except (KeyError, ValueError) as e:
        # KeyError: unknown provider name
        raise _fail(e) from None
    except OSError as e:
        raise _fail(e, "File system error: ") from None


def _voice(raw: str | None) -> VoiceId | None:
    if raw is None:
        return None
    try:
        return VoiceId.parse(raw)
    except ValueError as e:
        raise _fail(e) from None


def _read_text(text: str | None, file: Path | None) -> str:
    """Text from the argument, a file, or stdin, in that order."""
    if text is not None:
        return text
    if file is not None:
        try:
            return file.read_text()
        except FileNotFoundError:
            raise _fail(FileNotFoundError(f"File not found: {file}")) from None
        except PermissionError:
            raise _fail(
                PermissionError(f"Permission denied reading file: {file}")
            ) from None
        except UnicodeDecodeError:
            raise _fail(ValueError(f"Unable to decode file as text: {file}")) from None
    if not sys.stdin.isatty():
        return sys.stdin.read()
    raise _fail(ValueError("No text provided"))


def _service() -> NarrationService:
    return NarrationService.from_config(load_config())


async def _daemon():
    """Client for a running daemon, spawning one if needed."""
    from .daemon.client import DaemonClient
    from .daemon.spawn import ensure_daemon_running

    if not await ensure_daemon_running():
        raise PlaybackError("Daemon unavailable")
    return DaemonClient()


@app.command()
def add(
    content_id: str = typer.Argument(..., help="Stable content identifier"),
    text: str | None = typer.Argument(None, help="Text to narrate"),
    file: Path | None = typer.Option(None, "-f", "--file", help="Read text from file"),
    language: str = typer.Option("en-US", "--language", help="Language tag"),
    synthesize: bool = typer.Option(
        False, "--synthesize", help="Ask the daemon to synthesize it right away"
    ),
) -> None:
    """Add (or replace) a content item."""
    body = _read_text(text, file).strip()
    if not body:
        raise _fail(ValueError("Text cannot be empty"))

    try:
        _service().add_content(content_id, body, language=language)
    except ValueError as e:
        raise _fail(e) from None
    typer.echo(f"Added {content_id} ({len(body)} chars)")

    if synthesize:

        async def notify() -> dict:
            return await (await _daemon()).synthesize_content(content_id)

        _run(notify())
        typer.echo(f"Synthesis dispatched for {content_id}")


@app.command()
def synthesize(
    content_id: str = typer.Argument(..., help="Content to synthesize"),
) -> None:
    """Synthesize every missing required voice now and wait for the result."""
    from .core import synthesize_content

    result = _run(synthesize_content(content_id))
    if result.skipped:
        typer.echo(f"{content_id}: all voices already present")
        return
    for outcome in result.outcomes:
        mark = "✓" if outcome.ok else "✗"
        detail = f" ({outcome.error})" if outcome.error else ""
        typer.echo(f"{mark} {outcome.voice} after {outcome.attempts} attempt(s){detail}")
    typer.echo(f"{content_id}: {result.status.value}")
    if result.status is SynthesisStatus.FAILED:
        raise typer.Exit(1)


@app.command("process-one")
def process_one(
    no_daemon: bool = typer.Option(
        False, "--no-daemon", help="Run in this process and wait for the worker"
    ),
) -> None:
    """Dispatch synthesis for one backlog item."""

    async def via_daemon() -> dict:
        return await (await _daemon()).process_one()

    async def in_process() -> dict:
        service = _service()
        try:
            report = await service.process_one()
            await service.drain()
            return report.to_dict()
        finally:
            await service.aclose()

    report = _run(in_process() if no_daemon else via_daemon())
    if report["done"]:
        typer.echo("Backlog empty")
    elif report["dispatched"]:
        typer.echo(f"Dispatched {report['dispatched']}, {report['remaining']} remaining")
    else:
        typer.echo(f"All {report['remaining']} backlog items already in progress")


@app.command()
def status() -> None:
    """Show how many content items have all, some or none of their voices."""
    try:
        report = _service().status()
    except BacklogScanError as e:
        raise _fail(e) from None
    typer.echo(f"Total:       {report.total}")
    typer.echo(f"With audio:  {report.satisfied}")
    typer.echo(f"Partial:     {report.partial}")
    typer.echo(f"No audio:    {report.unsatisfied}")
    typer.echo(f"Complete:    {report.percent_complete}%")


@app.command()
def generate(
    content_id: str = typer.Argument(..., help="Content to generate chunks for"),
    voice: str | None = typer.Option(None, "-v", "--voice", help="Voice ID"),
    no_daemon: bool = typer.Option(
        False, "--no-daemon", help="Run in this process and wait for all chunks"
    ),
) -> None:
    """Start chunked generation for one voice."""
    config = load_config()
    chosen = _voice(voice) or config.tts.default_voice

    async def via_daemon() -> dict:
        return await (await _daemon()).trigger_generation(content_id, chosen)

    async def in_process() -> dict:
        service = NarrationService.from_config(config)
        try:
            content = service.get_content(content_id)
            result = await service.chunk_synthesizer.run(content, chosen)
            return result.to_dict()
        finally:
            await service.aclose()

    result = _run(in_process() if no_daemon else via_daemon())
    if no_daemon:
        typer.echo(f"Generated {result['generated']}/{result['total']} chunks")
        if not result["success"]:
            raise typer.Exit(1)
    elif result.get("started"):
        typer.echo(f"Generation started for {content_id} ({chosen})")
    elif result.get("in_progress"):
        typer.echo(f"Generation already running for {content_id} ({chosen})")
    else:
        typer.echo(f"All {result.get('total_chunks', 0)} chunks already generated")


@app.command()
def play(
    content_id: str = typer.Argument(..., help="Content to play"),
    voice: str | None = typer.Option(None, "-v", "--voice", help="Voice ID"),
    user: str = typer.Option("local", "-u", "--user", help="Listener for progress"),
    seek: float | None = typer.Option(
        None, "--seek", min=0.0, max=100.0, help="Start at this percentage"
    ),
    rate: float = typer.Option(1.0, "--rate", help="Playback speed multiplier"),
    no_daemon: bool = typer.Option(False, "--no-daemon", help="Skip the daemon"),
) -> None:
    """Play a content item, resuming from the listener's saved position."""
    from .core import play_content

    def show(pct: float) -> None:
        typer.echo(f"\r{pct:5.1f}%", nl=False)

    engine = _run(
        play_content(
            content_id,
            voice=_voice(voice),
            user_id=user,
            seek=seek,
            rate=rate,
            use_daemon=not no_daemon,
            on_progress=show,
        )
    )
    typer.echo("")
    if engine.skipped:
        typer.echo(f"Skipped {len(engine.skipped)} unplayable chunk(s)", err=True)


@app.command()
def export(
    content_id: str = typer.Argument(..., help="Content to export"),
    output: Path = typer.Option(..., "-o", "--output", help="Destination MP3 file"),
    voice: str | None = typer.Option(None, "-v", "--voice", help="Voice ID"),
    no_daemon: bool = typer.Option(False, "--no-daemon", help="Skip the daemon"),
) -> None:
    """Save a content item's audio to a file."""
    from .core import export_content

    path = _run(
        export_content(content_id, output, voice=_voice(voice), use_daemon=not no_daemon)
    )
    if path is None:
        typer.echo(f"Error: No audio available for {content_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Audio saved to {path}")


@app.command()
def voices(
    provider: str | None = typer.Option(None, "-p", "--provider", help="TTS provider"),
) -> None:
    """List available voices."""
    from .core import list_available_voices

    for entry in _run(list_available_voices(provider)):
        typer.echo(f"{entry['name']}: {entry['id']}")


@app.command()
def daemon(
    action: str = typer.Argument("status", help="status, start, stop or restart"),
) -> None:
    """Manage the background daemon."""
    from .daemon import control, spawn

    if action == "status":
        info = asyncio.run(control.daemon_status())
        if info["running"]:
            pacing = "on" if info.get("pacing") else "off"
            typer.echo(f"✓ Daemon running (PID: {info['pid']}, pacing: {pacing})")
        else:
            typer.echo("✗ Daemon not running")
            if "error" in info and _state["debug"]:
                typer.echo(f"Debug - Error: {info['error']}", err=True)
    elif action == "start":
        if not asyncio.run(spawn.ensure_daemon_running()):
            typer.echo("Error: Daemon failed to start", err=True)
            raise typer.Exit(1)
        typer.echo("Daemon running")
    elif action == "stop":
        if not control.daemon_stop():
            typer.echo("Error: Failed to stop daemon", err=True)
            raise typer.Exit(1)
        typer.echo("Daemon stopped")
    elif action == "restart":
        if not control.daemon_restart():
            typer.echo("Error: Failed to restart daemon", err=True)
            raise typer.Exit(1)
        typer.echo("Daemon restarted")
    else:
        typer.echo(f"Error: Unknown daemon action: {action}", err=True)
        raise typer.Exit(1)
