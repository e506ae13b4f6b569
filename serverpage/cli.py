import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from . import TemplateProcessor, __version__, lex
from .engine import EngineConfig, PythonEngine
from .processor import DEFAULT_ENCODING

app = typer.Typer(help="serverpage: render pages with embedded code")

logger = logging.getLogger(__name__)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    )
):
    """serverpage: render pages with embedded code"""
    pass


def parse_params(params: List[str]) -> Dict[str, str]:
    """Turn ``key=value`` strings into a request mapping."""
    request = {}
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected key=value, got {item!r}", param_hint="--param")
        request[key] = value
    return request


def _read(template: Path, console: Console) -> str:
    try:
        return template.read_text(encoding=DEFAULT_ENCODING)
    except OSError as e:
        console.print(f"[red]Error: cannot read {template}: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def render(
    template: Path = typer.Argument(..., help="Page to render"),
    param: List[str] = typer.Option(
        [], "--param", "-p", help="Request parameter as key=value (repeatable)"
    ),
    show_source: bool = typer.Option(False, help="Print the generated execution unit to stderr"),
    verbose: bool = typer.Option(False, help="Enable debug logging"),
):
    """
    Render a page and print the result. Exits 1 if rendering failed.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
        logging.getLogger().setLevel(logging.DEBUG)

    err_console = Console(stderr=True)
    request = parse_params(param)
    document = _read(template, err_console)

    processor = TemplateProcessor(PythonEngine(EngineConfig(filename=str(template))))
    if show_source:
        err_console.print(processor.prepare(document).source, markup=False, highlight=False)

    result = processor.process_script(document, request)
    typer.echo(result.result, nl=False)
    if result.error:
        raise typer.Exit(1)


@app.command("lex")
def lex_command(
    template: Path = typer.Argument(..., help="Page to split into segments"),
):
    """
    Show how a page splits into markup, statement and expression segments.
    """
    console = Console()
    document = _read(template, Console(stderr=True))

    table = Table(title=str(template))
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Position")
    table.add_column("Text", overflow="fold")
    for i, segment in enumerate(lex(document)):
        table.add_row(
            str(i), segment.kind.value, f"{segment.line}:{segment.column}", Text(repr(segment.text))
        )
    console.print(table)


if __name__ == "__main__":
    app()
