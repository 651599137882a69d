from __future__ import annotations

import os
from pathlib import Path

import typer

from eco import __version__
from eco.cli.commands.release_cmd import release_app
from eco.core.errors import ErrorCode
from eco.core.workspace import MARKER_FILE, WORKSPACE_ENV_VAR, is_workspace_root
from eco.platform.paths import STATE_DIR_ENV_VAR, clear_caches


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(release_app, name="release", help="Plan, apply and roll back ecosystem releases.")


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"eco {__version__}")
        raise typer.Exit(code=int(ErrorCode.OK))


def _pin_workspace(workspace: Path) -> None:
    try:
        root = workspace.expanduser().resolve()
    except OSError as e:
        typer.echo(f"error: invalid --workspace: {e}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    if not root.is_dir() or not is_workspace_root(root):
        typer.echo(f"error: {root} is not an ecosystem root (no {MARKER_FILE})", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    os.environ[WORKSPACE_ENV_VAR] = str(root)


def _pin_state_dir(state_dir: Path) -> None:
    os.environ[STATE_DIR_ENV_VAR] = str(state_dir.expanduser())
    clear_caches()


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Show version and exit.",
    ),
    workspace: Path | None = typer.Option(
        None,
        "--workspace",
        help=f"Ecosystem root holding {MARKER_FILE} (overrides ${WORKSPACE_ENV_VAR})",
    ),
    state_dir: Path | None = typer.Option(
        None,
        "--state-dir",
        help=f"Where the release plan and staged changelogs live (overrides ${STATE_DIR_ENV_VAR})",
    ),
) -> None:
    if workspace is not None:
        _pin_workspace(workspace)
    if state_dir is not None:
        _pin_state_dir(state_dir)


def main() -> None:
    app()
