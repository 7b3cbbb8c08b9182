from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from cli.utils import console, run

app = typer.Typer(help="Export and import data")


@app.command("export")
def data_export(
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output file (default: stdout)"),
    compact: bool = typer.Option(False, "--compact", help="No indentation"),
):
    """Export history, model configs and user templates as JSON."""
    text = run(lambda services: services.data.export_all_data(pretty=not compact))
    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        console.print(f"[green]Exported to[/green] {out}")
    else:
        typer.echo(text)


@app.command("import")
def data_import(path: Path = typer.Argument(..., exists=True, readable=True, help="Export file")):
    """Restore data from an export file. Sections in the file replace current data."""
    text = path.read_text(encoding="utf-8")
    stats = run(lambda services: services.data.import_all_data(text))
    console.print(
        f"[green]Imported[/green] {stats['history']} records, "
        f"{stats['models']} models, {stats['user_templates']} templates"
    )
