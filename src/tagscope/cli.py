"""Typer CLI entry point for tagscope.

Crawls the given directories and feeds every source file to cscope and
ctags, or, with --inspect, prints what would be fed.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from tagscope import __version__
from tagscope.classifiers import build_registry
from tagscope.config import load_config, split_csv, validate_config
from tagscope.exceptions import ConfigError, TagscopeError
from tagscope.orchestrator import Orchestrator, RunMode
from tagscope.sink import default_backends

app = typer.Typer(
    name="tagscope",
    help="Build cscope and ctags databases for a source tree.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()

LIST_DRIVERS = "list"


def _error_exit(message: str, hint: str | None = None) -> None:
    """Print a styled error and exit."""
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    if hint:
        console.print(f"[dim]Hint: {hint}[/dim]")
    raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"tagscope {__version__}")
        raise typer.Exit()


def _list_drivers() -> None:
    registry = build_registry(None)
    for line in registry.render_listing():
        console.print(line, markup=False, highlight=False)


@app.command()
def main(
    dirs: Annotated[
        list[str] | None,
        typer.Argument(help="Files and directories to index [default: .]", show_default=False),
    ] = None,
    driver: Annotated[
        str | None,
        typer.Option(
            "--driver",
            "-d",
            help="Classifier to use. Pass 'list' to show all classifiers in order of preference.",
        ),
    ] = None,
    inspect: Annotated[
        bool,
        typer.Option("--inspect", "-i", help="Print what would be indexed and why; start no indexer."),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
    jobs: Annotated[
        int | None,
        typer.Option("--jobs", "-j", min=1, help="Number of parallel jobs [default: CPU count]"),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", "-x", help="Comma-separated path substrings to skip."),
    ] = None,
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version."),
    ] = False,
) -> None:
    """Index source files below DIRS with cscope and ctags."""
    if driver == LIST_DRIVERS:
        _list_drivers()
        raise typer.Exit(code=0)

    try:
        config = load_config(Path.cwd())

        if driver is not None:
            config.classifier = driver
        if inspect:
            config.inspect = True
        if verbose:
            config.verbose = True
            config.log_level = "DEBUG"
        if jobs is not None:
            config.jobs = jobs
        if exclude:
            config.excludes = [*config.excludes, *split_csv(exclude)]
        validate_config(config)

        registry = build_registry(config.classifier, config.probe_timeout)
        if not registry.usable():
            _error_exit(
                "No usable classifier found.",
                hint=f"Run 'tagscope --driver {LIST_DRIVERS}' to see the available classifiers.",
            )

        orchestrator = Orchestrator(config, registry, backends=default_backends, output=console)
        stats = orchestrator.run(dirs or ["."])

        if orchestrator.mode is RunMode.NORMAL:
            problems = stats.write_failures or stats.walk_errors
            if config.verbose:
                console.print(
                    f"[green]Indexed[/green] [bold]{stats.included}[/bold] files "
                    f"({stats.by_extension} by extension, {stats.by_type} by type), "
                    f"{stats.excluded} excluded, {stats.unknown} unknown, "
                    f"{stats.write_failures} write failures, "
                    f"{stats.walk_errors} unreadable directories",
                    soft_wrap=True,
                )
            elif problems:
                console.print(
                    f"[yellow]Warning:[/yellow] {stats.write_failures} write failures, "
                    f"{stats.walk_errors} unreadable directories",
                    soft_wrap=True,
                )

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130)
    except ConfigError as exc:
        _error_exit(str(exc), hint="Check .tagscope.toml and TAGSCOPE_* variables.")
    except TagscopeError as exc:
        _error_exit(str(exc))
