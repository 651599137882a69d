"""Typed configuration loading and access.

This module provides dataclasses for the eco.toml structure found at the
workspace root. Every value has a default, so an empty eco.toml (which only
marks the workspace) is a valid configuration.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_float,
    get_int,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "ChangelogConfig",
    "Config",
    "ConfigError",
    "ReleaseConfig",
    "TimeoutsConfig",
    "WorkspaceConfig",
    "load_config",
    "load_config_or_default",
]

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------

DEFAULT_REMOTE = "origin"
DEFAULT_BRANCH = "main"
DEFAULT_CHANGELOG_FILE = "CHANGELOG.md"

# CI gate: short discovery window, long completion window
CI_DISCOVERY_SECONDS = 5 * 60.0
CI_POLL_INTERVAL_SECONDS = 5.0
CI_COMPLETION_SECONDS = 60 * 60.0

# Registry availability: 15s doubling to 60s, 5 minutes overall
REGISTRY_TIMEOUT_SECONDS = 5 * 60.0
REGISTRY_INITIAL_BACKOFF_SECONDS = 15.0
REGISTRY_MAX_BACKOFF_SECONDS = 60.0
REGISTRY_MAX_ATTEMPTS = 20


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class WorkspaceConfig:
    """Which sub-projects make up the ecosystem.

    An empty ``projects`` tuple means "every immediate subdirectory with a
    recognised manifest".
    """

    projects: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TimeoutsConfig:
    """Deadlines and poll intervals, in seconds."""

    ci_discovery: float = CI_DISCOVERY_SECONDS
    ci_poll_interval: float = CI_POLL_INTERVAL_SECONDS
    ci_completion: float = CI_COMPLETION_SECONDS
    registry: float = REGISTRY_TIMEOUT_SECONDS
    registry_initial_backoff: float = REGISTRY_INITIAL_BACKOFF_SECONDS
    registry_max_backoff: float = REGISTRY_MAX_BACKOFF_SECONDS
    registry_max_attempts: int = REGISTRY_MAX_ATTEMPTS


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    """Release behaviour shared by every project."""

    remote: str = DEFAULT_REMOTE
    branch: str = DEFAULT_BRANCH
    push: bool = True
    ci_workflow: str | None = None
    skip_ci: bool = False
    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)


@dataclass(frozen=True, slots=True)
class ChangelogConfig:
    """Changelog file name and optional external generator command."""

    file: str = DEFAULT_CHANGELOG_FILE
    generator: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    release: ReleaseConfig = field(default_factory=ReleaseConfig)
    changelog: ChangelogConfig = field(default_factory=ChangelogConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML)."""
        workspace: StrDict = get_table(data, "workspace") or {}
        release: StrDict = get_table(data, "release") or {}
        timeouts: StrDict = get_table(release, "timeouts") or {}
        changelog: StrDict = get_table(data, "changelog") or {}

        push = get_bool(release, "push")
        skip_ci = get_bool(release, "skip_ci")

        return cls(
            workspace=WorkspaceConfig(
                projects=tuple(get_str_list(workspace, "projects") or ()),
            ),
            release=ReleaseConfig(
                remote=get_str(release, "remote") or DEFAULT_REMOTE,
                branch=get_str(release, "branch") or DEFAULT_BRANCH,
                push=True if push is None else push,
                ci_workflow=get_str(release, "ci_workflow"),
                skip_ci=bool(skip_ci),
                timeouts=TimeoutsConfig(
                    ci_discovery=get_float(timeouts, "ci_discovery") or CI_DISCOVERY_SECONDS,
                    ci_poll_interval=get_float(timeouts, "ci_poll_interval")
                    or CI_POLL_INTERVAL_SECONDS,
                    ci_completion=get_float(timeouts, "ci_completion") or CI_COMPLETION_SECONDS,
                    registry=get_float(timeouts, "registry") or REGISTRY_TIMEOUT_SECONDS,
                    registry_initial_backoff=get_float(timeouts, "registry_initial_backoff")
                    or REGISTRY_INITIAL_BACKOFF_SECONDS,
                    registry_max_backoff=get_float(timeouts, "registry_max_backoff")
                    or REGISTRY_MAX_BACKOFF_SECONDS,
                    registry_max_attempts=get_int(timeouts, "registry_max_attempts")
                    or REGISTRY_MAX_ATTEMPTS,
                ),
            ),
            changelog=ChangelogConfig(
                file=get_str(changelog, "file") or DEFAULT_CHANGELOG_FILE,
                generator=tuple(get_str_list(changelog, "generator") or ()),
            ),
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to eco.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path) -> Config:
    """Load config from file, or return the default config if it can't be read."""
    result = load_config(path)
    if isinstance(result, Ok):
        return result.value
    return Config()
