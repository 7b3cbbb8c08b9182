from __future__ import annotations

import json
from typing import Optional

import typer

from cli.utils import console, print_chain, print_record, records_table, run

app = typer.Typer(help="Prompt history and version chains")


def _echo_json(payload) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@app.command("list")
def history_list(
    limit: int = typer.Option(10, help="Number of records to show"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Filter by text"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List recent records, newest first."""

    async def action(services):
        if query:
            return await services.history.search(query, limit=limit)
        return (await services.history.get_records())[:limit]

    records = run(action)
    if json_output:
        _echo_json([r.model_dump(mode="json") for r in records])
        return
    if not records:
        console.print("[yellow]No history records found[/yellow]")
        return
    console.print(records_table(records, title=f"Prompt History ({len(records)})"))


@app.command("show")
def history_show(
    record_id: str = typer.Argument(..., help="Record ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show full details of one record."""
    record = run(lambda services: services.history.get_record(record_id))
    if json_output:
        _echo_json(record.model_dump(mode="json"))
        return
    print_record(record)


@app.command("lineage")
def history_lineage(
    record_id: str = typer.Argument(..., help="Record ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Follow previous links back from a record, oldest first."""
    records = run(lambda services: services.history.get_iteration_chain(record_id))
    if json_output:
        _echo_json([r.model_dump(mode="json") for r in records])
        return
    if not records:
        console.print(f"[red]Record not found:[/red] {record_id}")
        raise typer.Exit(1)
    console.print(records_table(records, title="Lineage"))


@app.command("chains")
def history_chains(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """List all chains with their current version."""
    chains = run(lambda services: services.history.get_all_chains())
    if json_output:
        _echo_json(
            [
                {
                    "chain_id": c.chain_id,
                    "versions": len(c.versions),
                    "current_version": c.current_record.version,
                    "current_id": c.current_record.id,
                }
                for c in chains
            ]
        )
        return
    if not chains:
        console.print("[yellow]No chains found[/yellow]")
        return
    console.print(records_table([c.current_record for c in chains], title="Chains (current versions)"))


@app.command("chain")
def history_chain(
    chain_id: str = typer.Argument(..., help="Chain ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show every version of a chain."""
    chain = run(lambda services: services.history.get_chain(chain_id))
    if json_output:
        _echo_json(chain.model_dump(mode="json"))
        return
    print_chain(chain)


@app.command("delete")
def history_delete(record_id: str = typer.Argument(..., help="Record ID")):
    """Delete a single record."""
    run(lambda services: services.history.delete_record(record_id))
    console.print(f"[green]Deleted record[/green] {record_id}")


@app.command("delete-chain")
def history_delete_chain(chain_id: str = typer.Argument(..., help="Chain ID")):
    """Delete every record of a chain."""
    removed = run(lambda services: services.history.delete_chain(chain_id))
    console.print(f"[green]Deleted {removed} records[/green]")


@app.command("clear")
def history_clear(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Delete all history."""
    if not yes and not typer.confirm("Delete all history records?"):
        raise typer.Exit(0)
    run(lambda services: services.history.clear_history())
    console.print("[green]History cleared[/green]")
