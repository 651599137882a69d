from __future__ import annotations

from dataclasses import dataclass

import typer

from eco.core.config import Config, load_config
from eco.core.errors import ErrorCode
from eco.core.result import Err
from eco.core.workspace import Workspace, detect_workspace
from eco.output.console import ConsoleProtocol, RichConsole
from eco.services.release.plan_store import ReleasePlanStore, default_store


@dataclass(frozen=True, slots=True)
class CLIContext:
    workspace: Workspace
    config: Config
    console: ConsoleProtocol
    store: ReleasePlanStore


def build_context() -> CLIContext:
    workspace_result = detect_workspace()
    if isinstance(workspace_result, Err):
        typer.echo(f"error: {workspace_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    workspace = workspace_result.value
    config_result = load_config(workspace.config_path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    return CLIContext(
        workspace=workspace,
        config=config_result.value,
        console=RichConsole(),
        store=default_store(),
    )
