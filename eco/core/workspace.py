"""Workspace detection.

The workspace is the root directory of the ecosystem: the parent
repository that contains every independently-versioned sub-project.

It is identified by the presence of an `eco.toml` file, which doubles as
the configuration file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .result import Err, Ok, Result

__all__ = [
    "MARKER_FILE",
    "WORKSPACE_ENV_VAR",
    "Workspace",
    "WorkspaceError",
    "detect_workspace",
    "find_workspace_upward",
    "is_workspace_root",
]

WORKSPACE_ENV_VAR = "ECO_WORKSPACE"
MARKER_FILE = "eco.toml"


@dataclass(frozen=True)
class WorkspaceError:
    """Error when workspace cannot be detected."""

    message: str
    searched_from: Path | None = None


@dataclass(frozen=True, slots=True)
class Workspace:
    """A detected ecosystem root."""

    root: Path

    @property
    def config_path(self) -> Path:
        """Path to eco.toml."""
        return self.root / MARKER_FILE

    def exists(self) -> bool:
        return self.root.is_dir() and self.config_path.is_file()

    def __str__(self) -> str:
        return str(self.root)


def is_workspace_root(path: Path) -> bool:
    """Check if a path holds an eco.toml marker."""
    return (path / MARKER_FILE).is_file()


def find_workspace_upward(start: Path) -> Path | None:
    """Search upward from start directory for a workspace root."""
    for parent in (start, *start.parents):
        if is_workspace_root(parent):
            return parent
    return None


def detect_workspace(
    *,
    start_dir: Path | None = None,
    env_var: str = WORKSPACE_ENV_VAR,
) -> Result[Workspace, WorkspaceError]:
    """Detect the workspace root directory.

    Detection order:
    1. ECO_WORKSPACE environment variable (if set, it must be valid)
    2. Search upward from start_dir (or cwd) for eco.toml
    """
    env_value = os.environ.get(env_var)
    if env_value:
        env_path = Path(env_value).expanduser().resolve()
        if env_path.is_dir() and is_workspace_root(env_path):
            return Ok(Workspace(root=env_path))
        return Err(
            WorkspaceError(
                message=f"${env_var} is set to '{env_value}' but it is not a valid workspace",
                searched_from=env_path if env_path.is_dir() else None,
            )
        )

    search_start = (start_dir or Path.cwd()).resolve()
    found = find_workspace_upward(search_start)
    if found is None:
        return Err(
            WorkspaceError(
                message=f"Could not find workspace ({MARKER_FILE} not found)",
                searched_from=search_start,
            )
        )
    return Ok(Workspace(root=found))
