"""Terminal output helpers for the CLI."""

from __future__ import annotations

from typing import Any

from rich.console import Console

_out = Console()
_err = Console(stderr=True)


def header(text: str) -> None:
    _out.print(f"[bold cyan]{text}[/bold cyan]")


def key_value(key: str, value: Any) -> None:
    _out.print(f"  [dim]{key:<22}[/dim] {value}")


def info(text: str) -> None:
    _out.print(text)


def success(text: str) -> None:
    _out.print(f"[green]✓[/green] {text}")


def warning(text: str) -> None:
    _err.print(f"[yellow]![/yellow] {text}")


def error(text: str) -> None:
    _err.print(f"[bold red]error:[/bold red] {text}")
