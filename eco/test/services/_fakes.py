"""In-memory stand-ins for the release engine's ports."""

from __future__ import annotations

import fnmatch
import hashlib
from dataclasses import dataclass, field
from pathlib import Path

from eco.core.result import Err, Ok, Result
from eco.git.repository import GitError, GitStatus, LogEntry
from eco.platform.process import ProcessError
from eco.services.release.ci import CiRun
from eco.services.release.errors import ReleaseError
from eco.services.release.kinds import ProjectKind
from eco.services.release.semver import SemVer


def _empty_events() -> list[str]:
    return []


def commit(message: str, *, date: str = "2026-10-01T12:00:00+00:00") -> LogEntry:
    sha = hashlib.sha1(message.encode("utf-8")).hexdigest()
    return LogEntry(sha=sha, date=date, message=message)


@dataclass
class FakeRepo:
    """One project's repository: tags, commits since the last tag, staged files."""

    path: Path
    events: list[str] = field(default_factory=_empty_events)
    is_repo: bool = True
    tags: list[str] = field(default_factory=list)
    remote_tags: set[str] = field(default_factory=set)
    history: list[LogEntry] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    committed: dict[str, str] = field(default_factory=dict)
    staged: dict[str, str] = field(default_factory=dict)
    pushes: list[str] = field(default_factory=list)
    slug: str = ""
    head: str = "0123456789abcdef0123456789abcdef01234567"
    failures: dict[str, GitError] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.path.name

    def _fail(self, op: str) -> GitError | None:
        return self.failures.get(op)

    def _event(self, text: str) -> None:
        self.events.append(f"{self.name}: {text}")

    def exists(self) -> bool:
        return self.is_repo

    def status(self) -> Result[GitStatus, GitError]:
        return Ok(GitStatus(branch="main", upstream="origin/main"))

    def has_upstream(self) -> bool:
        return True

    def head_sha(self) -> Result[str, GitError]:
        return Ok(self.head)

    def last_tag(self) -> Result[str | None, GitError]:
        return Ok(self.tags[-1] if self.tags else None)

    def list_tags(self, pattern: str | None = None) -> Result[list[str], GitError]:
        if pattern is None:
            return Ok(list(self.tags))
        return Ok([t for t in self.tags if fnmatch.fnmatch(t, pattern)])

    def tag_exists(self, tag: str) -> bool:
        return tag in self.tags

    def remote_tag_exists(self, remote: str, tag: str) -> Result[bool, GitError]:
        return Ok(tag in self.remote_tags)

    def log_since(self, tag: str | None) -> Result[list[LogEntry], GitError]:
        return Ok(list(self.history))

    def add(self, paths: list[str]) -> Result[None, GitError]:
        for rel in paths:
            file = self.path / rel
            if not file.is_file():
                continue
            text = file.read_text(encoding="utf-8")
            if self.committed.get(rel) != text:
                self.staged[rel] = text
        return Ok(None)

    def has_staged_changes(self) -> bool:
        return bool(self.staged)

    def commit(self, message: str) -> Result[str, GitError]:
        failure = self._fail("commit")
        if failure is not None:
            return Err(failure)
        self.committed.update(self.staged)
        self.staged.clear()
        self.messages.append(message)
        self.head = hashlib.sha1(f"{self.head}{message}".encode()).hexdigest()
        self._event(f"commit {message}")
        return Ok(self.head)

    def create_tag(self, tag: str, message: str) -> Result[None, GitError]:
        failure = self._fail("tag")
        if failure is not None:
            return Err(failure)
        if tag in self.tags:
            return Err(GitError(command="tag", message=f"tag '{tag}' already exists"))
        self.tags.append(tag)
        self._event(f"tag {tag}")
        return Ok(None)

    def delete_tag(self, tag: str) -> Result[bool, GitError]:
        if tag not in self.tags:
            return Ok(False)
        self.tags.remove(tag)
        self._event(f"delete tag {tag}")
        return Ok(True)

    def delete_remote_tag(self, remote: str, tag: str) -> Result[bool, GitError]:
        if tag not in self.remote_tags:
            return Ok(False)
        self.remote_tags.discard(tag)
        self._event(f"delete remote tag {tag}")
        return Ok(True)

    def push_branch(self, remote: str, branch: str) -> Result[None, GitError]:
        failure = self._fail("push")
        if failure is not None:
            return Err(failure)
        self.pushes.append(f"{remote}/{branch}")
        self._event(f"push {branch}")
        return Ok(None)

    def push_tag(self, remote: str, tag: str) -> Result[None, GitError]:
        failure = self._fail("push")
        if failure is not None:
            return Err(failure)
        self.remote_tags.add(tag)
        self._event(f"push tag {tag}")
        return Ok(None)

    def force_push_branch(self, remote: str, branch: str) -> Result[None, GitError]:
        failure = self._fail("push")
        if failure is not None:
            return Err(failure)
        self.pushes.append(f"{remote}/{branch} (forced)")
        self._event(f"force push {branch}")
        return Ok(None)

    def reset(self, commits: int, mode: str = "mixed") -> Result[str, GitError]:
        failure = self._fail("reset")
        if failure is not None:
            return Err(failure)
        self.head = hashlib.sha1(f"{self.head}~{commits}".encode()).hexdigest()
        self._event(f"reset --{mode} HEAD~{commits}")
        return Ok(self.head)

    def remote_slug(self, remote: str) -> Result[str, GitError]:
        return Ok(self.slug or f"example/{self.name}")


def _snapshot(path: Path) -> dict[str, str]:
    """Files present when the repository is first opened count as committed."""
    if not path.is_dir():
        return {}
    return {
        p.relative_to(path).as_posix(): p.read_text(encoding="utf-8")
        for p in sorted(path.rglob("*"))
        if p.is_file()
    }


@dataclass
class FakeGit:
    """VcsFactory handing out one FakeRepo per path, sharing an event log."""

    repos: dict[Path, FakeRepo] = field(default_factory=dict)
    events: list[str] = field(default_factory=_empty_events)

    def __call__(self, path: Path) -> FakeRepo:
        repo = self.repos.get(path)
        if repo is None:
            repo = FakeRepo(path=path, events=self.events, committed=_snapshot(path))
            self.repos[path] = repo
        return repo


@dataclass
class FakeCi:
    """CiPort answering from a "slug@tag" -> conclusion table; unknown keys never get a run."""

    conclusions: dict[str, str] = field(default_factory=dict)
    events: list[str] = field(default_factory=_empty_events)
    list_calls: int = 0

    def _runs(self, slug: str) -> list[CiRun]:
        runs: list[CiRun] = []
        for i, (key, conclusion) in enumerate(sorted(self.conclusions.items())):
            run_slug, tag = key.split("@", 1)
            if run_slug != slug:
                continue
            runs.append(
                CiRun(
                    id=1000 + i,
                    url=f"https://github.com/{slug}/actions/runs/{1000 + i}",
                    status="completed",
                    conclusion=conclusion,
                    head_branch=tag,
                    event="push",
                )
            )
        return runs

    def list_runs(
        self,
        *,
        slug: str,
        branch: str | None,
        workflow: str | None,
        limit: int,
        timeout: float,
    ) -> Result[list[CiRun], ReleaseError]:
        self.list_calls += 1
        runs = self._runs(slug)
        if branch is not None:
            runs = [r for r in runs if r.head_branch == branch]
        return Ok(runs[:limit])

    def view_run(self, *, slug: str, run_id: int, timeout: float) -> Result[CiRun, ReleaseError]:
        for run in self._runs(slug):
            if run.id == run_id:
                self.events.append(f"ci {slug} {run.head_branch} {run.conclusion}")
                return Ok(run)
        return Err(ReleaseError(kind="tool_failed", message=f"no run {run_id}"))


@dataclass
class FakeAvailability:
    """Reports a version as available after ``delay`` failed lookups."""

    delay: int = 0
    events: list[str] = field(default_factory=_empty_events)
    lookups: int = 0

    def lookup(
        self,
        kind: ProjectKind,
        *,
        project_dir: Path,
        identity: str,
        version: SemVer,
        timeout: float,
    ) -> Result[bool, str]:
        self.lookups += 1
        if self.lookups <= self.delay:
            return Ok(False)
        self.events.append(f"available {identity} {version.to_tag()}")
        return Ok(True)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@dataclass
class FakeRunner:
    """ToolRunner recording commands; every command succeeds unless listed in ``failing``."""

    calls: list[tuple[list[str], Path]] = field(default_factory=list)
    failing: dict[str, str] = field(default_factory=dict)

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        self.calls.append((cmd, cwd))
        key = " ".join(cmd)
        if key in self.failing:
            return Err(
                ProcessError(command=tuple(cmd), returncode=1, stdout="", stderr=self.failing[key])
            )
        return Ok("")


# -----------------------------------------------------------------------------
# Workspace builders
# -----------------------------------------------------------------------------


def write_go_project(
    root: Path,
    name: str,
    *,
    requires: dict[str, str] | None = None,
    ci: bool = True,
) -> Path:
    path = root / name
    path.mkdir(parents=True, exist_ok=True)
    lines = [f"module example.com/{name}", "", "go 1.22", ""]
    if requires:
        lines.append("require (")
        for dep, version in requires.items():
            lines.append(f"\texample.com/{dep} {version}")
        lines.append(")")
        lines.append("")
    (path / "go.mod").write_text("\n".join(lines), encoding="utf-8")
    if ci:
        (path / ".github" / "workflows").mkdir(parents=True, exist_ok=True)
    return path


def write_workspace(root: Path, projects: list[str] | None = None) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    body = "[release]\nremote = \"origin\"\nbranch = \"main\"\n"
    if projects is not None:
        listed = ", ".join(f'"{p}"' for p in projects)
        body = f"[workspace]\nprojects = [{listed}]\n\n" + body
    (root / "eco.toml").write_text(body, encoding="utf-8")
    return root


def lib_and_app(root: Path, git: FakeGit, *, lib_commits: list[str] | None = None) -> None:
    """lib-a (level 0) and app-b requiring it (level 1), both released at v0.1.0."""
    write_workspace(root)
    write_go_project(root, "lib-a")
    write_go_project(root, "app-b", requires={"lib-a": "v0.1.0"})
    lib = git(root / "lib-a")
    lib.tags.append("v0.1.0")
    lib.remote_tags.add("v0.1.0")
    lib.history = [commit(m) for m in (lib_commits or ["fix: handle empty input"])]
    app = git(root / "app-b")
    app.tags.append("v0.1.0")
    app.remote_tags.add("v0.1.0")
    git(root)
