"""Git repository abstraction.

This module provides the Repository class: the version-control adapter the
release engine drives for every project (status, describe, log, add, commit,
annotated tags, push, remote tag deletion, reset).
All operations return Result types for proper error handling.

Usage:
    repo = Repository(Path("/path/to/project"))

    match repo.last_tag():
        case Ok(None):
            print("never released")
        case Ok(tag):
            print(f"last release: {tag}")
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from eco.core.result import Err, Ok, Result
from eco.platform.process import ProcessError
from eco.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Field and record separators for `git log --format`
_FS = "\x1f"
_RS = "\x1e"

ResetMode = Literal["hard", "soft", "mixed"]

_SLUG_RE = re.compile(r"github\.com[:/](?P<slug>[^/\s]+/[^/\s]+?)(?:\.git)?/?$")

__all__ = [
    "GitError",
    "GitStatus",
    "LogEntry",
    "Repository",
    "ResetMode",
    "StatusEntry",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status.

    Attributes:
        xy: Two-character status code (e.g., "M ", " M", "??")
        path: File path
    """

    xy: str
    path: str

    @property
    def is_staged(self) -> bool:
        return self.xy != "??" and self.xy[0] != " "

    @property
    def is_unstaged(self) -> bool:
        return self.xy != "??" and self.xy[1] != " "

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"


@dataclass(frozen=True, slots=True)
class GitStatus:
    """Parsed `git status --porcelain=v1 -b`.

    Attributes:
        branch: Current branch name
        upstream: Upstream branch (e.g., "origin/main"), None if not set
        ahead: Number of commits ahead of upstream
        behind: Number of commits behind upstream
        entries: All status entries (staged, unstaged, untracked)
    """

    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return len(self.entries) == 0

    @property
    def staged_count(self) -> int:
        return sum(1 for e in self.entries if e.is_staged)

    @property
    def modified_count(self) -> int:
        return sum(1 for e in self.entries if e.is_unstaged)

    @property
    def untracked_count(self) -> int:
        return sum(1 for e in self.entries if e.is_untracked)


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One commit from `git log`.

    Attributes:
        sha: Full commit hash
        date: Committer date, ISO 8601
        message: Full commit message (subject and body)
    """

    sha: str
    date: str
    message: str

    @property
    def subject(self) -> str:
        return self.message.split("\n", 1)[0].strip()

    @property
    def body(self) -> str:
        parts = self.message.split("\n", 1)
        return parts[1].strip() if len(parts) > 1 else ""

    @property
    def short_sha(self) -> str:
        return self.sha[:7]


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if this is a git repository (a .git dir, or a .git file for submodules)."""
        return (self.path / ".git").exists()

    def status(self) -> Result[GitStatus, GitError]:
        """Get repository status."""
        result = self._run(["status", "--porcelain=v1", "-b"])
        match result:
            case Err(e):
                return Err(_git_error("status", e, "git status failed"))
            case Ok(stdout):
                return Ok(self._parse_status(stdout))

    def current_branch(self) -> str | None:
        """Get current branch name.

        Returns None if detached HEAD or error.
        """
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def has_upstream(self) -> bool:
        result = self._run(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"])
        return isinstance(result, Ok)

    def head_sha(self) -> Result[str, GitError]:
        result = self._run(["rev-parse", "HEAD"])
        if isinstance(result, Err):
            return Err(_git_error("rev-parse HEAD", result.error, "no commits"))
        return Ok(result.value.strip())

    def last_tag(self) -> Result[str | None, GitError]:
        """Most recent tag reachable from HEAD, or None when the project was never tagged."""
        result = self._run(["describe", "--tags", "--abbrev=0"])
        if isinstance(result, Err):
            text = result.error.stderr.lower()
            if "no names found" in text or "cannot describe" in text or "no tags" in text:
                return Ok(None)
            if "does not have any commits" in text or "not a valid object name" in text:
                return Ok(None)
            return Err(_git_error("describe", result.error, "git describe failed"))
        tag = result.value.strip()
        return Ok(tag or None)

    def list_tags(self, pattern: str | None = None) -> Result[list[str], GitError]:
        args = ["tag", "--list"]
        if pattern is not None:
            args.append(pattern)
        result = self._run(args)
        if isinstance(result, Err):
            return Err(_git_error("tag --list", result.error, "git tag failed"))
        return Ok([ln.strip() for ln in result.value.splitlines() if ln.strip()])

    def tag_exists(self, tag: str) -> bool:
        result = self.list_tags(tag)
        return isinstance(result, Ok) and tag in result.value

    def remote_tag_exists(self, remote: str, tag: str) -> Result[bool, GitError]:
        result = self._run(["ls-remote", "--tags", remote, f"refs/tags/{tag}"])
        if isinstance(result, Err):
            return Err(_git_error("ls-remote", result.error, "git ls-remote failed"))
        return Ok(bool(result.value.strip()))

    def log_since(self, tag: str | None) -> Result[list[LogEntry], GitError]:
        """Commits after tag (all commits when tag is None), newest first."""
        rev = f"{tag}..HEAD" if tag else "HEAD"
        result = self._run(["log", rev, f"--format=%H{_FS}%cI{_FS}%B{_RS}"])
        if isinstance(result, Err):
            if "does not have any commits" in result.error.stderr:
                return Ok([])
            return Err(_git_error("log", result.error, "git log failed"))

        entries: list[LogEntry] = []
        for record in result.value.split(_RS):
            record = record.strip("\n")
            if not record.strip():
                continue
            parts = record.split(_FS, 2)
            if len(parts) != 3:
                continue
            sha, date, message = parts
            entries.append(LogEntry(sha=sha.strip(), date=date.strip(), message=message.strip()))
        return Ok(entries)

    def add(self, paths: list[str]) -> Result[None, GitError]:
        result = self._run(["add", "--", *paths])
        if isinstance(result, Err):
            return Err(_git_error("add", result.error, "git add failed"))
        return Ok(None)

    def has_staged_changes(self) -> bool:
        result = self._run(["diff", "--cached", "--quiet"])
        return isinstance(result, Err) and result.error.returncode == 1

    def commit(self, message: str) -> Result[str, GitError]:
        """Commit the index and return the new HEAD sha."""
        result = self._run(["commit", "-m", message])
        if isinstance(result, Err):
            return Err(_git_error("commit", result.error, "git commit failed"))
        return self.head_sha()

    def create_tag(self, tag: str, message: str) -> Result[None, GitError]:
        """Create an annotated tag at HEAD."""
        result = self._run(["tag", "-a", tag, "-m", message])
        if isinstance(result, Err):
            return Err(_git_error("tag", result.error, f"failed to create tag {tag}"))
        return Ok(None)

    def delete_tag(self, tag: str) -> Result[bool, GitError]:
        """Delete a local tag. Ok(False) when it did not exist."""
        result = self._run(["tag", "-d", tag])
        if isinstance(result, Err):
            if "not found" in result.error.stderr.lower():
                return Ok(False)
            return Err(_git_error("tag -d", result.error, f"failed to delete tag {tag}"))
        return Ok(True)

    def delete_remote_tag(self, remote: str, tag: str) -> Result[bool, GitError]:
        """Delete a tag on the remote. Ok(False) when the remote did not have it."""
        result = self._run(["push", remote, f":refs/tags/{tag}"])
        if isinstance(result, Err):
            text = result.error.stderr.lower()
            if "not found" in text or "unable to delete" in text:
                return Ok(False)
            return Err(
                _git_error("push --delete", result.error, f"failed to delete remote tag {tag}")
            )
        return Ok(True)

    def push_branch(self, remote: str, branch: str) -> Result[None, GitError]:
        result = self._run(["push", remote, f"HEAD:{branch}"])
        if isinstance(result, Err):
            return Err(_git_error("push", result.error, f"failed to push to {remote}/{branch}"))
        return Ok(None)

    def push_tag(self, remote: str, tag: str) -> Result[None, GitError]:
        result = self._run(["push", remote, f"refs/tags/{tag}"])
        if isinstance(result, Err):
            return Err(_git_error("push", result.error, f"failed to push tag {tag}"))
        return Ok(None)

    def force_push_branch(self, remote: str, branch: str) -> Result[None, GitError]:
        """Push a rewound branch; refuses when the remote moved since the last fetch."""
        result = self._run(["push", "--force-with-lease", remote, f"HEAD:{branch}"])
        if isinstance(result, Err):
            return Err(_git_error("push", result.error, f"failed to push to {remote}/{branch}"))
        return Ok(None)

    def reset(self, commits: int, mode: ResetMode = "mixed") -> Result[str, GitError]:
        """Move HEAD back by commits and return the new HEAD sha."""
        result = self._run(["reset", f"--{mode}", f"HEAD~{commits}"])
        if isinstance(result, Err):
            return Err(_git_error("reset", result.error, f"git reset --{mode} failed"))
        return self.head_sha()

    def remote_slug(self, remote: str) -> Result[str, GitError]:
        """GitHub `owner/name` slug of a remote."""
        result = self._run(["remote", "get-url", remote])
        if isinstance(result, Err):
            return Err(_git_error("remote get-url", result.error, f"no remote {remote}"))
        url = result.value.strip()
        match = _SLUG_RE.search(url)
        if match is None:
            return Err(GitError(command="remote get-url", message=f"not a GitHub remote: {url}"))
        return Ok(match.group("slug"))

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS
            if command in {"fetch", "pull", "push", "ls-remote"}
            else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    def _parse_status(self, output: str) -> GitStatus:
        """Parse git status --porcelain=v1 -b output."""
        lines = [ln for ln in output.splitlines() if ln.strip()]

        if not lines:
            return GitStatus(branch="")

        branch, upstream = self._parse_branch_line(lines[0])
        ahead, behind = self._parse_ahead_behind(lines[0])

        entries: list[StatusEntry] = []
        for line in lines[1:]:
            if len(line) < 4:
                continue
            entries.append(StatusEntry(xy=line[:2], path=line[3:]))

        return GitStatus(
            branch=branch,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            entries=tuple(entries),
        )

    def _parse_branch_line(self, line: str) -> tuple[str, str | None]:
        """Parse branch line: ## branch...upstream [info]"""
        s = line.strip()
        if s.startswith("##"):
            s = s[2:].lstrip()

        s = s.split(" [", 1)[0].strip()
        if s.startswith("No commits yet on "):
            s = s.removeprefix("No commits yet on ")

        if "..." in s:
            left, right = s.split("...", 1)
            return (left.strip(), right.strip())

        return (s, None)

    def _parse_ahead_behind(self, line: str) -> tuple[int, int]:
        match = re.search(r"\[([^\]]+)\]", line)
        if not match:
            return (0, 0)

        inside = match.group(1)
        ahead_match = re.search(r"ahead\s+(\d+)", inside)
        behind_match = re.search(r"behind\s+(\d+)", inside)

        ahead = int(ahead_match.group(1)) if ahead_match else 0
        behind = int(behind_match.group(1)) if behind_match else 0
        return (ahead, behind)


def _git_error(command: str, error: ProcessError, fallback: str) -> GitError:
    return GitError(
        command=command,
        message=error.stderr.strip() or error.stdout.strip() or fallback,
        returncode=error.returncode,
    )
