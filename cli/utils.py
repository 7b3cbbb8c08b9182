from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from promptopt.compare import CompareError
from promptopt.config import configure_logging, get_settings
from promptopt.data import DataImportError
from promptopt.history import HistoryError, PromptChain, PromptRecord
from promptopt.llm.base import StreamCallbacks
from promptopt.llm.errors import LLMError
from promptopt.models import ModelError
from promptopt.prompt import PromptError
from promptopt.services import Services, build_services
from promptopt.storage.base import StorageProviderError
from promptopt.templates import TemplateError

T = TypeVar("T")

console = Console()

# Errors reported as a one-line message with exit code 1
CLI_ERRORS = (
    PromptError,
    HistoryError,
    ModelError,
    TemplateError,
    LLMError,
    DataImportError,
    CompareError,
    StorageProviderError,
    ValueError,
)


async def _default_services() -> Services:
    settings = get_settings()
    configure_logging(settings.log_level)
    return await build_services(settings)


# Replaced in tests to inject in-memory storage and mock providers
services_factory: Callable[[], Awaitable[Services]] = _default_services


def run(fn: Callable[[Services], Awaitable[T]]) -> T:
    """Build the services, run ``fn`` against them and exit 1 on a known error."""

    async def main() -> T:
        services = await services_factory()
        try:
            return await fn(services)
        finally:
            await services.aclose()

    try:
        return asyncio.run(main())
    except CLI_ERRORS as exc:
        console.print(f"[red]Error:[/red] {exc}", markup=True, highlight=False)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(130)


async def resolve_model_key(services: Services, model_key: Optional[str]) -> str:
    """Use the given key, or the first enabled model when none is given."""
    if model_key:
        return model_key
    enabled = await services.models.get_enabled_models()
    if not enabled:
        raise ValueError("No enabled model; pass --model or enable one with 'models enable'")
    return enabled[0][0]


def token_printer() -> StreamCallbacks:
    return StreamCallbacks(
        on_token=lambda token: console.print(token, end="", markup=False, highlight=False),
        on_complete=lambda: console.print(),
    )


def short_id(value: str) -> str:
    return value[:8]


def preview(text: str, width: int = 50) -> str:
    flat = text.replace("\n", " ")
    return flat[:width] + ("..." if len(flat) > width else "")


def records_table(records: Iterable[PromptRecord], title: Optional[str] = None) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("ID", style="dim", width=10)
    table.add_column("Chain", style="cyan", width=10)
    table.add_column("Ver", justify="right", style="yellow", width=4)
    table.add_column("Type", style="magenta", width=8)
    table.add_column("Date", width=16)
    table.add_column("Model", width=12)
    table.add_column("Prompt", style="dim", width=50)
    for r in records:
        date_str = datetime.fromtimestamp(r.timestamp / 1000).strftime("%Y-%m-%d %H:%M")
        table.add_row(
            short_id(r.id),
            short_id(r.chain_id),
            str(r.version),
            r.type,
            date_str,
            r.model_name or r.model_key,
            preview(r.optimized_prompt),
        )
    return table


def print_record(record: PromptRecord) -> None:
    details = [
        f"[bold]ID:[/bold] {record.id}",
        f"[bold]Chain:[/bold] {record.chain_id}  [bold]Version:[/bold] {record.version}  [bold]Type:[/bold] {record.type}",
        f"[bold]Model:[/bold] {record.model_name or record.model_key}  [bold]Template:[/bold] {record.template_id}",
    ]
    if record.previous_id:
        details.append(f"[bold]Previous:[/bold] {record.previous_id}")
    if record.iteration_note:
        details.append(f"[bold]Note:[/bold] {record.iteration_note}")
    console.print(Panel("\n".join(details), title="Record", border_style="cyan"))
    console.print(Panel(record.original_prompt, title="Original", border_style="red"))
    console.print(Panel(record.optimized_prompt, title="Optimized", border_style="green"))


def print_chain(chain: PromptChain) -> None:
    console.print(
        f"\n[bold cyan]Chain {chain.chain_id}[/bold cyan] "
        f"[dim]({len(chain.versions)} versions, current v{chain.current_record.version})[/dim]\n"
    )
    console.print(records_table(chain.versions))
    console.print(Panel(chain.current_record.optimized_prompt, title="Current prompt", border_style="green"))
