"""Platform-aware path utilities.

This module locates the per-user directories the release engine keeps its
process-wide state in. Release state (the plan document, staged changelogs,
the apply lock) lives in the user state directory, outside every project's
working tree.
"""

from __future__ import annotations

import os
import sys
from functools import lru_cache
from pathlib import Path

__all__ = [
    "APP_NAME",
    "STATE_DIR_ENV_VAR",
    "clear_caches",
    "home",
    "is_windows",
    "release_state_dir",
    "user_state_dir",
]

# Application name used for directory naming
APP_NAME = "eco"

STATE_DIR_ENV_VAR = "ECO_STATE_DIR"


def is_windows() -> bool:
    return sys.platform == "win32"


@lru_cache(maxsize=1)
def home() -> Path:
    """Get user's home directory.

    Uses USERPROFILE on Windows, HOME on Unix.
    Falls back to Path.home() which handles edge cases.
    """
    if is_windows():
        userprofile = os.environ.get("USERPROFILE")
        if userprofile:
            return Path(userprofile)
    else:
        home_env = os.environ.get("HOME")
        if home_env:
            return Path(home_env)

    return Path.home()


@lru_cache(maxsize=1)
def user_state_dir() -> Path:
    """Get the user-level state directory.

    Location, in order of precedence:
    - $ECO_STATE_DIR
    - %LOCALAPPDATA%/eco (Windows)
    - $XDG_STATE_HOME/eco or ~/.local/state/eco (Linux/macOS)
    """
    override = os.environ.get(STATE_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()

    if is_windows():
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            return Path(local_app_data) / APP_NAME
        return home() / "AppData" / "Local" / APP_NAME

    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        return Path(xdg_state) / APP_NAME
    return home() / ".local" / "state" / APP_NAME


def release_state_dir() -> Path:
    """Directory holding release_plan.json, staging/ and apply.lock."""
    return user_state_dir() / "release"


def clear_caches() -> None:
    """Clear all cached paths.

    Useful for testing when environment variables change.
    """
    home.cache_clear()
    user_state_dir.cache_clear()
