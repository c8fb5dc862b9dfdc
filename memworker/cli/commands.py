"""Offline diagnosis commands for captured provider responses."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

import typer

from memworker import __version__
from memworker.logging import setup_logging
from memworker.parsing.observations import parse_observations_json, parse_summary_json
from memworker.providers.gemini import parse_gemini_stream_response
from memworker.providers.openai import parse_openai_sse_stream

app = typer.Typer(
    name="memworker",
    help="memworker - replay captured model output through the response pipeline",
    no_args_is_help=True,
)

DEFAULT_TYPES = ["discovery", "change", "bugfix", "feature", "refactor", "decision"]


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        typer.echo(f"Error: cannot read {path}: {e}", err=True)
        raise typer.Exit(2) from e


def _emit(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"memworker v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
    debug: bool = typer.Option(False, "--debug", help="Log at DEBUG level"),
) -> None:
    """memworker - replay captured model output through the response pipeline."""
    setup_logging(json_output=False, level="DEBUG" if debug else "WARNING")


@app.command("replay-observations")
def replay_observations(
    file: Path = typer.Argument(..., help="Raw model response text"),
    types: List[str] = typer.Option(
        DEFAULT_TYPES, "--type", "-t", help="Valid observation type (repeatable)"
    ),
) -> None:
    """Parse a captured observation response and print the observations."""
    observations = parse_observations_json(_read(file), types, correlation_id=file.name)
    _emit([asdict(obs) for obs in observations])


@app.command("replay-summary")
def replay_summary(
    file: Path = typer.Argument(..., help="Raw model response text"),
) -> None:
    """Parse a captured summary response; exits 1 when no summary is found."""
    summary = parse_summary_json(_read(file), session_id=file.name)
    if summary is None:
        _emit(None)
        raise typer.Exit(1)
    _emit(asdict(summary))


@app.command("decode-stream")
def decode_stream(
    file: Path = typer.Argument(..., help="Captured SSE response body"),
    protocol: str = typer.Option("openai", "--protocol", "-p", help="openai or gemini"),
) -> None:
    """Decode a captured SSE body and print content and token usage."""
    body = _read(file)
    if protocol == "gemini":
        response = parse_gemini_stream_response(body)
    elif protocol == "openai":
        response = parse_openai_sse_stream(body)
    else:
        typer.echo(f"Error: unknown protocol {protocol!r} (expected openai or gemini)", err=True)
        raise typer.Exit(2)
    _emit(asdict(response))
    if response.error:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
