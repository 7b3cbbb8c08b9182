from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel
from rich.table import Table

from cli.utils import console, run

app = typer.Typer(help="Template management")


@app.command("list")
def template_list(
    template_type: Optional[str] = typer.Option(None, "--type", help="optimize or iterate"),
):
    """List built-in and user templates."""

    async def action(services):
        if template_type:
            return services.templates.list_templates_by_type(template_type)
        return services.templates.list_templates()

    templates = run(action)
    if not templates:
        typer.echo("No templates found.")
        return

    table = Table(show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type", style="magenta")
    table.add_column("Source", style="dim")
    table.add_column("Description")
    for t in templates:
        table.add_row(
            t.id,
            t.name,
            t.metadata.template_type,
            "built-in" if t.is_builtin else "user",
            t.metadata.description or "",
        )
    console.print(table)


@app.command("show")
def template_show(template_id: str = typer.Argument(..., help="Template ID")):
    """Show details of a template."""

    async def action(services):
        return services.templates.get_template(template_id)

    tmpl = run(action)
    typer.echo(f"Template: {tmpl.id}")
    typer.echo(f"Name: {tmpl.name}")
    typer.echo(f"Type: {tmpl.metadata.template_type}")
    typer.echo(f"Description: {tmpl.metadata.description or 'N/A'}")
    typer.echo("---")
    if tmpl.is_simple:
        typer.echo(tmpl.content)
        return
    for message in tmpl.content:
        console.print(Panel(message.content, title=message.role, border_style="cyan"), markup=False)


@app.command("export")
def template_export(
    template_id: str = typer.Argument(..., help="Template ID"),
    fmt: str = typer.Option("json", "--format", "-f", help="json or yaml"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write to file instead of stdout"),
):
    """Export a template as JSON or YAML."""

    async def action(services):
        return services.templates.export_template(template_id, fmt=fmt)

    text = run(action)
    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        console.print(f"[green]Saved to[/green] {out}")
    else:
        typer.echo(text)


@app.command("import")
def template_import(path: Path = typer.Argument(..., exists=True, readable=True, help="JSON or YAML file")):
    """Import a user template from a file."""
    text = path.read_text(encoding="utf-8")
    tmpl = run(lambda services: services.templates.import_template(text))
    console.print(f"[green]Imported template[/green] {tmpl.id}")


@app.command("delete")
def template_delete(template_id: str = typer.Argument(..., help="Template ID")):
    """Delete a user template."""
    run(lambda services: services.templates.delete_template(template_id))
    console.print(f"[green]Deleted template[/green] {template_id}")
