"""
Console output shared by the CLI commands.

Status lines go through click so CliRunner captures them; tables are
rendered with rich.
"""

from collections.abc import Iterable
from typing import Any

import click
from rich.console import Console
from rich.table import Table

console = Console()

# level -> (marker, colour)
STATUS_STYLES = {
    "success": ("✓", "green"),
    "error": ("✗", "red"),
    "warning": ("⚠", "yellow"),
    "info": ("ℹ", "blue"),
}


def echo_status(level: str, message: str) -> None:
    """Print a one-line status message. Errors go to stderr."""
    marker, colour = STATUS_STYLES[level]
    click.secho(f"{marker} {message}", fg=colour, err=level == "error")


def echo_success(message: str) -> None:
    echo_status("success", message)


def echo_error(message: str) -> None:
    echo_status("error", message)


def echo_warning(message: str) -> None:
    echo_status("warning", message)


def echo_info(message: str) -> None:
    echo_status("info", message)


def count_entities(count: int) -> str:
    """Entity count with thousands separator, e.g. ``1 entity``, ``1,204 entities``."""
    return f"{count:,} {'entity' if count == 1 else 'entities'}"


def _cell(value: Any) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def print_pairs(title: str, headers: tuple[str, str], pairs: Iterable[tuple[Any, Any]]) -> None:
    """Print a two-column table of labels and values.

    Booleans render as yes/no and lists as comma-separated text.
    """
    table = Table(title=title)
    table.add_column(headers[0], style="cyan")
    table.add_column(headers[1])

    for label, value in pairs:
        table.add_row(_cell(label), _cell(value))

    console.print(table)
