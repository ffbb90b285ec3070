"""
CLI utility helpers — runtime wiring, error reporting and output formatting.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from playdeck.catalog.config import load_catalog_config
from playdeck.catalog.models import CatalogConfig
from playdeck.catalog.service import CatalogService
from playdeck.core.errors import InvalidTransitionError, PlaydeckError
from playdeck.core.host import LocalHost
from playdeck.core.settings import PlaydeckSettings, get_settings
from playdeck.execution.orchestrator import ExecutionOrchestrator
from playdeck.execution.store import InstanceStore

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)

STATE_STYLES = {
    "pending": "yellow",
    "running": "cyan",
    "completed": "green",
    "failed": "red",
}


# ── Runtime wiring ───────────────────────────────────────────────────────


@dataclass
class Runtime:
    """Everything a command needs, built from settings and ``config.json``."""

    host: LocalHost
    settings: PlaydeckSettings
    config: CatalogConfig

    @property
    def catalog(self) -> CatalogService:
        return CatalogService(self.host, self.settings)

    @property
    def store(self) -> InstanceStore:
        return InstanceStore(self.host, self.settings, catalog=self.catalog)

    def orchestrator(self, store: InstanceStore | None = None) -> ExecutionOrchestrator:
        return ExecutionOrchestrator(self.host, store or self.store, self.config, self.settings)


def make_runtime(config_path: str | None = None) -> Runtime:
    """Create a ``Runtime`` for CLI commands.  ``config_path`` overrides ``config.json``."""
    host = LocalHost()
    settings = get_settings()
    config = load_catalog_config(host, config_path)
    return Runtime(host=host, settings=settings, config=config)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn playdeck errors into a red message and exit code 1."""
    try:
        yield
    except PlaydeckError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=1) from e
    except InvalidTransitionError as e:
        err_console.print(f"[bold red]Error[/bold red] (STATE): {e}")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_json(data: Any) -> None:
    payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
    console.print_json(json.dumps(payload, default=str))


def print_table(
    rows: Sequence[Sequence[Any]],
    columns: Sequence[str],
    *,
    title: str = "",
) -> None:
    """Render rows as a Rich table, or a dim note when there are none."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def styled_state(state: str) -> str:
    style = STATE_STYLES.get(state, "white")
    return f"[{style}]{state}[/{style}]"
