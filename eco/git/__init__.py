"""Git operations module.

Usage:
    from eco.git import Repository

    repo = Repository(Path("/path/to/project"))
    match repo.status():
        case Ok(status):
            print(f"Branch: {status.branch}")
        case Err(e):
            print(f"Error: {e.message}")
"""

from eco.git.repository import (
    GitError,
    GitStatus,
    LogEntry,
    Repository,
    ResetMode,
    StatusEntry,
)

__all__ = [
    "GitError",
    "GitStatus",
    "LogEntry",
    "Repository",
    "ResetMode",
    "StatusEntry",
]
