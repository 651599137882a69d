"""Changelog generation and staging.

Generated sections are written to a per-project staging file outside the
project's working tree. The plan remembers the hash of the text the tool
last generated there (or, once the section has been promoted into the
project's own CHANGELOG.md, the hash of that file). A later planning pass
compares the reviewed file against that hash: a mismatch means a human
edited it, the state becomes ``dirty``, and from then on new content is
only ever prepended so manual edits survive. The hash of the generated
section itself is tracked apart from that, so re-planning without new
commits does not prepend the same section twice.

Staging is split in two: ``prepare`` works out the new file contents and
``write_pending`` writes a whole batch, putting earlier files back when a
later write fails.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol, TypeAlias

from eco.core.result import Err, Ok, Result
from eco.git.repository import LogEntry
from eco.platform.files import atomic_write_text, sha256_file, sha256_text
from eco.platform.process import run as run_process
from eco.services.release.errors import ReleaseError, tool_failed
from eco.services.release.model import ChangelogState, ProjectDescriptor, RepoReleasePlan
from eco.services.release.ports import ToolRunner
from eco.services.release.timeouts import TOOL_TIMEOUT_SECONDS
from eco.services.release.versioning import ConventionalCommit, parse_commit

# Section title per commit group, in rendering order
_GROUPS: tuple[tuple[str, str], ...] = (
    ("breaking", "Breaking Changes"),
    ("feat", "Features"),
    ("fix", "Bug Fixes"),
    ("perf", "Performance"),
    ("other", "Other Changes"),
)


def _group_of(commit: ConventionalCommit) -> str:
    if commit.breaking:
        return "breaking"
    if commit.type in ("feat", "fix", "perf"):
        return commit.type
    return "other"


def render_conventional(version: str, commits: Sequence[LogEntry]) -> str | None:
    """Render a markdown section from conventional commits.

    Free-form commit messages are left out. Returns None when no commit
    follows the convention. The header date is the newest commit's date so
    the output only depends on the commit range.
    """
    parsed = [c for c in (parse_commit(e) for e in commits) if c is not None]
    if not parsed:
        return None

    newest = max(c.date for c in parsed)[:10]
    lines = [f"## {version} ({newest})", ""]
    for key, title in _GROUPS:
        members = [c for c in parsed if _group_of(c) == key]
        if not members:
            continue
        lines.append(f"### {title}")
        lines.append("")
        for c in members:
            scope = f"**{c.scope}:** " if c.scope else ""
            lines.append(f"- {scope}{c.description} ({c.sha[:7]})")
        lines.append("")
    return "\n".join(lines)


class ChangelogGenerator(Protocol):
    def generate(
        self,
        project: ProjectDescriptor,
        version: str,
        commits: Sequence[LogEntry],
    ) -> Result[str | None, ReleaseError]: ...


class ConventionalGenerator:
    def generate(
        self,
        project: ProjectDescriptor,
        version: str,
        commits: Sequence[LogEntry],
    ) -> Result[str | None, ReleaseError]:
        return Ok(render_conventional(version, commits))


@dataclass(frozen=True, slots=True)
class CommandGenerator:
    """External generator: prints the markdown section on stdout.

    Invoked in the project directory as
    ``<command> [--from <last-tag>] --to HEAD --version <next>``.
    """

    command: tuple[str, ...]
    runner: ToolRunner = run_process

    def generate(
        self,
        project: ProjectDescriptor,
        version: str,
        commits: Sequence[LogEntry],
    ) -> Result[str | None, ReleaseError]:
        cmd = list(self.command)
        if project.current_tag:
            cmd.extend(["--from", project.current_tag])
        cmd.extend(["--to", "HEAD", "--version", version])

        result = self.runner(cmd, project.path, timeout=TOOL_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(tool_failed(f"{project.name}: changelog generator failed", result.error))

        text = result.value.strip()
        if not text:
            return Ok(None)
        return Ok(text + "\n")


@dataclass(frozen=True, slots=True)
class ChangelogTracking:
    path: str
    hash: str
    state: ChangelogState
    promoted: bool
    # Hash of the section the tool generated, kept apart from the reviewed file's
    generated_hash: str = ""


@dataclass(frozen=True, slots=True)
class PendingChangelog:
    """Outcome of a staging pass that has not touched the disk yet."""

    tracking: ChangelogTracking
    reviewed_path: Path
    reviewed_text: str
    writes: tuple[tuple[Path, str], ...] = ()


# Files touched by write_pending with their previous text (None: did not exist)
StagingSnapshot: TypeAlias = list[tuple[Path, str | None]]


def _join(new: str, existing: str) -> str:
    if not existing.strip():
        return new
    return new + "\n" + existing


def _read(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def has_version_header(text: str, version: str) -> bool:
    header = f"## {version}"
    return any(line == header or line.startswith(header + " ") for line in text.splitlines())


class ChangelogStager:
    def __init__(self, staging_dir: Path, *, file_name: str = "CHANGELOG.md") -> None:
        self.staging_dir = staging_dir
        self.file_name = file_name

    def staged_path(self, project: str) -> Path:
        return self.staging_dir / project / self.file_name

    def working_path(self, project_dir: Path) -> Path:
        return project_dir / self.file_name

    def reviewed_path(self, entry: RepoReleasePlan, project_dir: Path) -> Path:
        """The file a human reviews: the staged copy, or CHANGELOG.md once promoted."""
        if entry.changelog_promoted:
            return self.working_path(project_dir)
        return Path(entry.changelog_path)

    def detect_state(self, entry: RepoReleasePlan | None, project_dir: Path) -> ChangelogState:
        if entry is None or not entry.changelog_hash or not entry.changelog_path:
            return "none"
        current = sha256_file(self.reviewed_path(entry, project_dir))
        if current is None:
            return "none"
        return "clean" if current == entry.changelog_hash else "dirty"

    def prepare(
        self,
        project: str,
        project_dir: Path,
        content: str,
        previous: RepoReleasePlan | None = None,
    ) -> Result[PendingChangelog, ReleaseError]:
        """Work out what staging content would write, without writing it."""
        state = self.detect_state(previous, project_dir)
        if previous is not None and state == "dirty":
            return Ok(self._prepend(previous, project_dir, content))
        if previous is not None and state == "clean" and previous.changelog_promoted:
            return self._restage_promoted(project, previous, project_dir, content)
        return Ok(self._fresh(project, content))

    def stage(
        self,
        project: str,
        project_dir: Path,
        content: str,
        previous: RepoReleasePlan | None = None,
    ) -> Result[ChangelogTracking, ReleaseError]:
        """Stage content, honouring manual edits recorded against previous."""
        pending = self.prepare(project, project_dir, content, previous)
        if isinstance(pending, Err):
            return pending
        written = self.write_pending([pending.value])
        if isinstance(written, Err):
            return written
        return Ok(pending.value.tracking)

    def overwrite(
        self,
        project: str,
        content: str,
        *,
        previous: RepoReleasePlan | None,
        project_dir: Path,
    ) -> Result[ChangelogTracking, ReleaseError]:
        """Replace the staged text. Refuses when it carries manual edits."""
        if self.detect_state(previous, project_dir) == "dirty":
            return Err(
                ReleaseError(
                    kind="changelog_dirty_conflict",
                    message=f"{project}: refusing to overwrite a manually edited changelog",
                    hint="new content must be prepended; run clear-plan to start over",
                )
            )

        pending = self._fresh(project, content)
        written = self.write_pending([pending])
        if isinstance(written, Err):
            return written
        return Ok(pending.tracking)

    def write_pending(
        self, pending: Sequence[PendingChangelog]
    ) -> Result[StagingSnapshot, ReleaseError]:
        """Write every pending file, or none of them.

        On failure the files already written get their previous text back.
        The returned snapshot lets a caller undo a successful write later.
        """
        snapshot: StagingSnapshot = []
        for item in pending:
            for path, text in item.writes:
                try:
                    original = _read(path)
                except OSError as e:
                    error = ReleaseError(
                        kind="tool_failed",
                        message=f"failed to read changelog: {e}",
                        hint=str(path),
                    )
                    return self._abort(snapshot, error)
                written = self._write(path, text)
                if isinstance(written, Err):
                    return self._abort(snapshot, written.error)
                snapshot.append((path, original))
        return Ok(snapshot)

    def _abort(self, snapshot: StagingSnapshot, error: ReleaseError) -> Err[ReleaseError]:
        stuck = self.restore(snapshot)
        if stuck:
            paths = ", ".join(str(p) for p in stuck)
            return Err(replace(error, hint=f"could not restore {paths}"))
        return Err(error)

    def restore(self, snapshot: StagingSnapshot) -> list[Path]:
        """Put back the text recorded in snapshot. Returns the paths that failed."""
        stuck: list[Path] = []
        for path, original in reversed(snapshot):
            try:
                if original is None:
                    path.unlink(missing_ok=True)
                else:
                    atomic_write_text(path, original)
            except OSError:
                stuck.append(path)
        return stuck

    def promote(
        self,
        entry: RepoReleasePlan,
        project_dir: Path,
        version: str,
    ) -> Result[RepoReleasePlan, ReleaseError]:
        """Copy the staged section into the project's CHANGELOG.md (prepend)."""
        if entry.changelog_promoted or not entry.changelog_path:
            return Ok(entry)

        staged = _read(Path(entry.changelog_path))
        if staged is None:
            return Ok(entry)

        working_path = self.working_path(project_dir)
        existing = _read(working_path) or ""
        if has_version_header(existing, version):
            return Ok(replace(entry, changelog_promoted=True))

        content = _join(staged, existing)
        written = self._write(working_path, content)
        if isinstance(written, Err):
            return written

        if entry.changelog_state == "dirty":
            return Ok(replace(entry, changelog_promoted=True))
        return Ok(
            replace(
                entry,
                changelog_promoted=True,
                changelog_hash=sha256_text(content),
                changelog_state="clean",
            )
        )

    def _fresh(self, project: str, content: str) -> PendingChangelog:
        path = self.staged_path(project)
        digest = sha256_text(content)
        return PendingChangelog(
            tracking=ChangelogTracking(
                path=str(path),
                hash=digest,
                state="clean",
                promoted=False,
                generated_hash=digest,
            ),
            reviewed_path=path,
            reviewed_text=content,
            writes=((path, content),),
        )

    def _prepend(
        self,
        previous: RepoReleasePlan,
        project_dir: Path,
        content: str,
    ) -> PendingChangelog:
        path = self.reviewed_path(previous, project_dir)
        existing = _read(path) or ""
        generated = sha256_text(content)
        # Same section as last time: the human edits are all that changed
        last = previous.changelog_generated_hash or previous.changelog_hash
        text = existing
        if generated != last and not existing.startswith(content):
            text = _join(content, existing)
        return PendingChangelog(
            tracking=ChangelogTracking(
                path=previous.changelog_path,
                hash=previous.changelog_hash,
                state="dirty",
                promoted=previous.changelog_promoted,
                generated_hash=generated,
            ),
            reviewed_path=path,
            reviewed_text=text,
            writes=((path, text),) if text != existing else (),
        )

    def _restage_promoted(
        self,
        project: str,
        previous: RepoReleasePlan,
        project_dir: Path,
        content: str,
    ) -> Result[PendingChangelog, ReleaseError]:
        staged_old = _read(Path(previous.changelog_path)) or ""
        working_path = self.working_path(project_dir)
        working = _read(working_path) or ""
        if not staged_old or not working.startswith(staged_old):
            return Err(
                ReleaseError(
                    kind="changelog_dirty_conflict",
                    message=f"{project}: staged changelog no longer matches {working_path}",
                    hint="run clear-plan to start over",
                )
            )

        history = working[len(staged_old) :].removeprefix("\n")
        merged = _join(content, history)
        return Ok(
            PendingChangelog(
                tracking=ChangelogTracking(
                    path=previous.changelog_path,
                    hash=sha256_text(merged),
                    state="clean",
                    promoted=True,
                    generated_hash=sha256_text(content),
                ),
                reviewed_path=working_path,
                reviewed_text=merged,
                writes=((Path(previous.changelog_path), content), (working_path, merged)),
            )
        )

    def _write(self, path: Path, content: str) -> Result[None, ReleaseError]:
        try:
            atomic_write_text(path, content)
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="tool_failed",
                    message=f"failed to write changelog: {e}",
                    hint=str(path),
                )
            )
        return Ok(None)
