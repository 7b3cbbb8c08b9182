from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel
from rich.text import Text

from cli.commands import data as data_commands
from cli.commands import history as history_commands
from cli.commands import models as models_commands
from cli.commands import templates as templates_commands
from cli.utils import console, print_chain, resolve_model_key, run, token_printer
from promptopt import get_version
from promptopt.compare import CompareError, compare_texts, unified_diff
from promptopt.prompt.service import DEFAULT_ITERATE_TEMPLATE, DEFAULT_OPTIMIZE_TEMPLATE

app = typer.Typer(help="Prompt optimizer CLI")
app.add_typer(history_commands.app, name="history")
app.add_typer(models_commands.app, name="models")
app.add_typer(templates_commands.app, name="templates")
app.add_typer(data_commands.app, name="data")


def _read_text(text: Optional[str], file: Optional[Path], what: str) -> str:
    if file is not None:
        if not file.exists():
            console.print(f"[red]File not found: {file}[/red]")
            raise typer.Exit(1)
        return file.read_text(encoding="utf-8")
    if text is None:
        console.print(f"[red]Provide the {what} as an argument or with --file[/red]")
        raise typer.Exit(1)
    return text


@app.command("version")
def version():
    """Show the installed version."""
    typer.echo(get_version())


@app.command("optimize")
def optimize(
    prompt: Optional[str] = typer.Argument(None, help="Prompt text to optimize"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read the prompt from a file"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model key (default: first enabled)"),
    template: str = typer.Option(DEFAULT_OPTIMIZE_TEMPLATE, "--template", "-t", help="Template ID"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Print tokens as they arrive"),
    json_output: bool = typer.Option(False, "--json", help="Output the new chain as JSON"),
):
    """
    Optimize a prompt and start a new version chain.
    """
    text = _read_text(prompt, file, "prompt")

    async def action(services):
        key = await resolve_model_key(services, model)
        if stream and not json_output:
            return await services.prompts.optimize_prompt_stream(text, key, token_printer(), template_id=template)
        return await services.prompts.optimize_prompt(text, key, template_id=template)

    chain = run(action)
    if chain is None:
        console.print("[yellow]Cancelled, nothing saved[/yellow]")
        raise typer.Exit(1)
    if json_output:
        typer.echo(json.dumps(chain.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return
    if not stream:
        console.print(Panel(chain.current_record.optimized_prompt, title="Optimized", border_style="green"))
    console.print(f"[dim]Chain:[/dim] {chain.chain_id}  [dim]Record:[/dim] {chain.current_record.id}")


@app.command("iterate")
def iterate(
    chain_id: str = typer.Argument(..., help="Chain to refine"),
    instruction: Optional[str] = typer.Argument(None, help="What to change"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read the instruction from a file"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model key (default: first enabled)"),
    template: str = typer.Option(DEFAULT_ITERATE_TEMPLATE, "--template", "-t", help="Template ID"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Print tokens as they arrive"),
    json_output: bool = typer.Option(False, "--json", help="Output the chain as JSON"),
):
    """
    Refine the current version of a chain and save it as the next version.
    """
    text = _read_text(instruction, file, "instruction")

    async def action(services):
        key = await resolve_model_key(services, model)
        if stream and not json_output:
            return await services.prompts.iterate_prompt_stream(
                chain_id, text, key, token_printer(), template_id=template
            )
        return await services.prompts.iterate_prompt(chain_id, text, key, template_id=template)

    chain = run(action)
    if chain is None:
        console.print("[yellow]Cancelled, nothing saved[/yellow]")
        raise typer.Exit(1)
    if json_output:
        typer.echo(json.dumps(chain.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return
    if stream:
        console.print(f"[dim]Saved version {chain.current_record.version} of[/dim] {chain.chain_id}")
        return
    print_chain(chain)


@app.command("test")
def test(
    prompt: Optional[str] = typer.Argument(None, help="Prompt used as the system message"),
    test_input: str = typer.Option(..., "--input", "-i", help="User message to run the prompt against"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read the prompt from a file"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model key (default: first enabled)"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Print tokens as they arrive"),
):
    """
    Run a prompt against a test input. Nothing is saved to history.
    """
    text = _read_text(prompt, file, "prompt")

    async def action(services):
        key = await resolve_model_key(services, model)
        if stream:
            return await services.prompts.test_prompt_stream(text, test_input, key, token_printer())
        return await services.prompts.test_prompt(text, test_input, key)

    result = run(action)
    if result is None:
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(1)
    if not stream:
        typer.echo(result)


@app.command("compare")
def compare(
    original: Path = typer.Argument(..., help="Original prompt file"),
    optimized: Path = typer.Argument(..., help="Optimized prompt file"),
    granularity: str = typer.Option("word", "--granularity", "-g", help="word or char"),
    ignore_whitespace: bool = typer.Option(False, "--ignore-whitespace", "-w"),
    ignore_case: bool = typer.Option(False, "--ignore-case", "-i"),
    unified: bool = typer.Option(False, "--unified", "-u", help="Show a line-based unified diff"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Compare two prompt versions.
    """
    a = _read_text(None, original, "original")
    b = _read_text(None, optimized, "optimized")

    if unified:
        lines = unified_diff(a, b)
        if not lines:
            console.print("[green]No differences[/green]")
        for line in lines:
            style = "green" if line.startswith("+") else "red" if line.startswith("-") else None
            console.print(Text(line, style=style) if style else Text(line))
        return

    try:
        result = compare_texts(
            a, b, granularity=granularity, ignore_whitespace=ignore_whitespace, case_sensitive=not ignore_case
        )
    except CompareError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        return

    styles = {"added": "bold green", "removed": "strike red", "unchanged": ""}
    body = Text()
    for fragment in result.fragments:
        body.append(fragment.text, style=styles[fragment.type])
    console.print(Panel(body, title="Changes", border_style="cyan"))
    console.print(
        f"[green]+{result.additions}[/green] [red]-{result.deletions}[/red] "
        f"[dim]={result.unchanged}[/dim]  similarity {result.similarity:.1f}%"
    )


# Entry point
if __name__ == "__main__":  # pragma: no cover
    app()
