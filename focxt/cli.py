"""Typer-based CLI for focxt."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .config_manager import ExtractSettings, load_settings, write_default_config
from .engine import ContextExtractor
from .errors import FocxtError
from .frontend import CrateFrontEnd, crate_name_for
from .loader import load_modules, save_modules
from .models import Module

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Focal-context extraction for Rust crates.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich.

    ``FOCXT_LOG_LEVEL`` overrides the level chosen by ``--verbose``.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    env_level = os.environ.get(config.LOG_LEVEL_ENV, "").upper()
    if isinstance(getattr(logging, env_level, None), int):
        level = getattr(logging, env_level)

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = RichHandler(console=err_console, rich_tracebacks=True, show_path=False)
    handler.setLevel(level)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
    )


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"focxt v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """focxt: one self-contained context file per function of a Rust crate."""
    pass


def _load(crate_dir: Path, modules_file: Optional[Path], settings: ExtractSettings) -> List[Module]:
    if modules_file is not None:
        return load_modules(modules_file)
    front_end = CrateFrontEnd(
        crate_dir,
        root_file=settings.root_file,
        skip_test_modules=settings.skip_test_modules,
    )
    return front_end.list_modules()


def _fail(exc: FocxtError) -> None:
    console.print(f"[red]✗[/red] {exc}")
    raise typer.Exit(1)


@app.command("extract")
def extract(
    crate_dir: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the Rust crate."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output directory."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Worker threads."),
    modules_file: Optional[Path] = typer.Option(
        None, "--modules", "-m", exists=True, dir_okay=False, help="Read the module list from JSON."
    ),
    dump: Optional[bool] = typer.Option(None, "--dump/--no-dump", help="Write context.txt."),
    clean: Optional[bool] = typer.Option(None, "--clean/--no-clean", help="Empty the output directory first."),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """Write one context file per entry point, plus name_map.json."""
    setup_logging(verbose)
    settings = load_settings(
        crate_dir,
        overrides={"out_dir": out, "workers": workers, "dump_context": dump, "clean": clean},
    )

    try:
        modules = _load(crate_dir, modules_file, settings)
        extractor = ContextExtractor(modules, settings)
        console.print(f"[bold cyan]Extracting {len(extractor.index.entry_points())} entry points...[/bold cyan]")
        report = extractor.run()
    except FocxtError as exc:
        _fail(exc)
        return

    console.print(
        f"[green]✓[/green] {len(report.succeeded)} context files written to {report.out_dir}"
    )
    if report.failed:
        console.print(f"[red]✗[/red] {len(report.failed)} entry points failed:")
        for name, reason in sorted(report.failed.items()):
            console.print(f"  • {name}: {reason}")
        raise typer.Exit(1)


@app.command("entries")
def entries(
    crate_dir: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the Rust crate."),
    modules_file: Optional[Path] = typer.Option(
        None, "--modules", "-m", exists=True, dir_okay=False, help="Read the module list from JSON."
    ),
):
    """List the entry points of a crate."""
    setup_logging()
    settings = load_settings(crate_dir)
    try:
        modules = _load(crate_dir, modules_file, settings)
    except FocxtError as exc:
        _fail(exc)
        return

    extractor = ContextExtractor(modules, settings)
    entry_points = extractor.index.entry_points()
    table = Table(title="Entry points", caption=f"{len(entry_points)} entry points", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Kind", width=8)
    table.add_column("Module")
    for entry in entry_points:
        kind = entry.owner.kind.value if entry.owner is not None else "fn"
        table.add_row(entry.name, kind, entry.module.name)
    console.print(table)


@app.command("show")
def show(
    crate_dir: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the Rust crate."),
    name: str = typer.Argument(..., help="Qualified name of the entry point."),
    modules_file: Optional[Path] = typer.Option(
        None, "--modules", "-m", exists=True, dir_okay=False, help="Read the module list from JSON."
    ),
):
    """Print the focal context of one entry point."""
    setup_logging()
    settings = load_settings(crate_dir)
    try:
        modules = _load(crate_dir, modules_file, settings)
    except FocxtError as exc:
        _fail(exc)
        return

    text = ContextExtractor(modules, settings).context_for(name)
    if text is None:
        console.print(f"[red]✗[/red] Unknown entry point: {name}")
        raise typer.Exit(1)
    typer.echo(text, nl=False)


@app.command("modules")
def dump_module_list(
    crate_dir: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the Rust crate."),
    output: Path = typer.Option(..., "--output", "-o", help="JSON file to write."),
):
    """Write the crate's module list as JSON."""
    setup_logging()
    settings = load_settings(crate_dir)
    try:
        modules = _load(crate_dir, None, settings)
        save_modules(modules, output, crate=crate_name_for(crate_dir))
    except FocxtError as exc:
        _fail(exc)
        return
    console.print(f"[green]✓[/green] Wrote {len(modules)} modules to {output}")


@app.command("init-config")
def init_config(
    crate_dir: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the Rust crate."),
):
    """Write a default focxt.toml into the crate."""
    path = write_default_config(crate_dir)
    console.print(f"[green]✓[/green] Wrote {path}")


if __name__ == "__main__":
    app()
