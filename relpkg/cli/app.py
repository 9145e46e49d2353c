from __future__ import annotations

import os
from pathlib import Path

import typer

from relpkg import __version__
from relpkg.cli.commands.repo_cmd import repo_app
from relpkg.cli.commands.resolve_cmd import resolve_cmd
from relpkg.cli.commands.run_cmd import run
from relpkg.cli.commands.sync_cmd import sync_cmd
from relpkg.cli.context import CONFIG_ENV, ROOT_ENV
from relpkg.core.errors import ErrorCode


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


# Commands
app.command("resolve")(resolve_cmd)
app.command("sync")(sync_cmd)
app.command()(run)

# Sub-apps
app.add_typer(repo_app, name="repo")


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_show_version,
        is_eager=True,
        help="Show version and exit.",
    ),
    root: Path | None = typer.Option(
        None,
        "--root",
        help="Project root (defaults to the current directory)",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Path to relpkg.toml (defaults to <root>/relpkg.toml)",
    ),
) -> None:
    if root is not None:
        try:
            resolved = root.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --root: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if not resolved.is_dir():
            typer.echo(f"error: --root '{resolved}' is not a directory", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        os.environ[ROOT_ENV] = str(resolved)

    if config is not None:
        os.environ[CONFIG_ENV] = str(config.expanduser().resolve())


def main() -> None:
    app()
