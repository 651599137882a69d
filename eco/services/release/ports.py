"""Narrow interfaces to the processes the engine collaborates with.

Production code satisfies these with ``eco.git.Repository`` and
``eco.platform.process.run``; tests substitute in-memory fakes so that
planning and apply never spawn real git/gh/go processes.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from eco.core.result import Result
from eco.git.repository import GitError, GitStatus, LogEntry, ResetMode
from eco.platform.process import ProcessError


class VcsPort(Protocol):
    path: Path

    def exists(self) -> bool: ...

    def status(self) -> Result[GitStatus, GitError]: ...

    def has_upstream(self) -> bool: ...

    def head_sha(self) -> Result[str, GitError]: ...

    def last_tag(self) -> Result[str | None, GitError]: ...

    def list_tags(self, pattern: str | None = None) -> Result[list[str], GitError]: ...

    def tag_exists(self, tag: str) -> bool: ...

    def remote_tag_exists(self, remote: str, tag: str) -> Result[bool, GitError]: ...

    def log_since(self, tag: str | None) -> Result[list[LogEntry], GitError]: ...

    def add(self, paths: list[str]) -> Result[None, GitError]: ...

    def has_staged_changes(self) -> bool: ...

    def commit(self, message: str) -> Result[str, GitError]: ...

    def create_tag(self, tag: str, message: str) -> Result[None, GitError]: ...

    def delete_tag(self, tag: str) -> Result[bool, GitError]: ...

    def delete_remote_tag(self, remote: str, tag: str) -> Result[bool, GitError]: ...

    def push_branch(self, remote: str, branch: str) -> Result[None, GitError]: ...

    def push_tag(self, remote: str, tag: str) -> Result[None, GitError]: ...

    def force_push_branch(self, remote: str, branch: str) -> Result[None, GitError]: ...

    def reset(self, commits: int, mode: ResetMode = "mixed") -> Result[str, GitError]: ...

    def remote_slug(self, remote: str) -> Result[str, GitError]: ...


VcsFactory = Callable[[Path], VcsPort]


class ToolRunner(Protocol):
    """Signature of ``eco.platform.process.run``."""

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]: ...
