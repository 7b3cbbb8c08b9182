from __future__ import annotations

import json

import typer
from rich.table import Table

from cli.utils import console, run

app = typer.Typer(help="LLM provider configurations")


@app.command("list")
def models_list(
    enabled_only: bool = typer.Option(False, "--enabled", help="Only enabled models"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List model configurations. API keys are masked."""

    async def action(services):
        if enabled_only:
            return await services.models.get_enabled_models()
        return await services.models.get_all_models()

    pairs = run(action)
    if json_output:
        payload = [{"key": key, **config.masked().model_dump(mode="json")} for key, config in pairs]
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    table = Table(show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Provider", style="magenta")
    table.add_column("Default model")
    table.add_column("Enabled", justify="center")
    table.add_column("API key", style="dim")
    for key, config in pairs:
        masked = config.masked()
        table.add_row(
            key,
            config.name,
            config.provider,
            config.default_model,
            "[green]yes[/green]" if config.enabled else "[dim]no[/dim]",
            masked.api_key or "-",
        )
    console.print(table)


@app.command("enable")
def models_enable(key: str = typer.Argument(..., help="Model key")):
    """Enable a model. Its config must be complete and carry an API key."""
    run(lambda services: services.models.enable_model(key))
    console.print(f"[green]Enabled[/green] {key}")


@app.command("disable")
def models_disable(key: str = typer.Argument(..., help="Model key")):
    run(lambda services: services.models.disable_model(key))
    console.print(f"[yellow]Disabled[/yellow] {key}")


@app.command("set-key")
def models_set_key(
    key: str = typer.Argument(..., help="Model key"),
    api_key: str = typer.Option(..., "--api-key", prompt=True, hide_input=True),
):
    """Store the API key for a model."""
    run(lambda services: services.models.update_model(key, {"api_key": api_key}))
    console.print(f"[green]API key saved for[/green] {key}")


@app.command("ping")
def models_ping(key: str = typer.Argument(..., help="Model key")):
    """Send a short request to check that the model answers."""
    reply = run(lambda services: services.llm.test_connection(key))
    console.print(f"[green]OK[/green] {reply}", markup=True, highlight=False)
