"""Console output helpers for the CLI."""

from __future__ import annotations

from typing import Any, Dict, Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hybridrag.core.exceptions import HybridRAGError

_console: Console | None = None

STATUS_STYLES = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}


def get_console() -> Console:
    """Shared console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def status_text(status: str) -> Text:
    return Text(status, style=f"bold {STATUS_STYLES.get(status, 'white')}")


def render_error(exc: BaseException, context: str = "") -> None:
    """Render an exception as a panel with its cause and fixes."""
    body = Text()
    if context:
        body.append(f"{context}\n\n", style="dim")
    body.append(str(exc) or type(exc).__name__)

    title = "Error"
    if isinstance(exc, HybridRAGError):
        title = f"Error: {exc.error_code}"
        body.append("\n\nWhy it happened:\n", style="bold")
        body.append(exc.why_it_happened)
        body.append("\n\nHow to fix:\n", style="bold")
        for step in exc.how_to_fix:
            body.append(f"  - {step}\n")

    get_console().print(Panel(body, title=title, border_style="red", expand=False))


def render_mapping(title: str, values: Dict[str, Any]) -> None:
    """Two-column table of scalar values; nested dicts are flattened."""
    table = Table(title=title, show_header=False, box=None, pad_edge=False)
    table.add_column("key", style="cyan")
    table.add_column("value")
    for key, value in _flatten(values):
        table.add_row(key, str(value))
    get_console().print(table)


def _flatten(values: Dict[str, Any], prefix: str = "") -> Iterable[tuple]:
    for key, value in values.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            yield from _flatten(value, f"{name}.")
        elif isinstance(value, list):
            yield name, ", ".join(str(v) for v in value) if value else "-"
        else:
            yield name, value
