"""Output formatting for CLI commands."""

from __future__ import annotations

import json
import sys
from typing import Any, NoReturn

import rich_click as click
from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from plexus.core.progress import EventKind, ProgressEvent

THEME = Theme(
    {
        "event.kind": "bold cyan",
        "event.step": "dim",
        "result": "white",
        "success": "bold green",
        "error": "bold red",
        "chunk": "magenta",
    }
)


def make_console(no_color: bool = False) -> Console:
    return Console(theme=THEME, no_color=no_color, highlight=False, soft_wrap=True)


def output_json(data: Any, indent: int | None = 2) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=indent, default=str))


def error_exit(message: str, code: int = 1) -> NoReturn:
    """Print error message and exit with code."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def _short(value: Any, limit: int = 200) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text if len(text) <= limit else f"{text[:limit]}..."


def _result_text(result: Any) -> str:
    if isinstance(result, dict):
        if "text" in result:
            return str(result["text"])
        if "data" in result:
            return _short(result["data"])
    return _short(result)


class EventPrinter:
    """Renders progress events as they arrive.

    Streamed ``text-chunk`` events are written inline; everything else is
    one line per event. The final result is printed in full.
    """

    def __init__(self, console: Console, verbose: bool = False) -> None:
        self.console = console
        self.verbose = verbose
        self._in_chunk = False

    def _end_chunk(self) -> None:
        if self._in_chunk:
            self.console.print()
            self._in_chunk = False

    def __call__(self, event: ProgressEvent) -> None:
        payload = event.payload
        kind = event.kind

        if kind == EventKind.TEXT_CHUNK:
            self.console.print(payload.get("chunk", ""), style="chunk", end="")
            self._in_chunk = True
            return
        self._end_chunk()

        if kind == EventKind.START:
            self.console.print(f"[event.kind]start[/] {payload.get('workflowType', '')}")
        elif kind == EventKind.PROGRESS:
            self.console.print(f"[event.step]  {payload.get('step', '')}[/]")
        elif kind == EventKind.COMPLETE:
            self.console.print("[success]complete[/]")
            self.console.print_json(json.dumps(payload.get("result"), default=str))
        elif kind == EventKind.ERROR:
            self.console.print(f"[error]error[/] {payload.get('error', '')}")
        elif "result" in payload and not self.verbose:
            summary = _short(_result_text(payload["result"]))
            self.console.print(f"[event.kind]{kind.value}[/] {summary}")
        else:
            self.console.print(f"[event.kind]{kind.value}[/] {_short(payload)}")


def print_patterns(console: Console, patterns: list[dict[str, str]]) -> None:
    table = Table(title="Patterns", show_lines=False)
    table.add_column("Name", style="bold")
    table.add_column("Description")
    for pattern in patterns:
        table.add_row(pattern["name"], pattern.get("description", ""))
    console.print(table)
