"""Roll back the commits of an aborted release.

Each targeted project first gets a backup tag at its current HEAD, so the
rewound commits stay reachable, then its branch is reset by the requested
number of commits. With ``push`` the rewound branch is force-pushed with a
lease so the remote follows without clobbering commits someone else pushed.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from eco.core.result import Err, Ok, Result
from eco.git.repository import GitError, Repository, ResetMode
from eco.output.console import ConsoleProtocol, Style
from eco.services.release.errors import ReleaseError, tool_failed
from eco.services.release.model import ReleasePlan
from eco.services.release.ports import VcsFactory, VcsPort


def backup_tag(project: str, now: datetime) -> str:
    return f"backup-{int(now.timestamp())}-{project}"


def _targets(plan: ReleasePlan, projects: list[str] | None) -> Result[list[str], ReleaseError]:
    if not projects:
        return Ok(plan.selected_names())
    unknown = sorted(set(projects) - set(plan.repos))
    if unknown:
        return Err(
            ReleaseError(
                kind="project_not_found",
                message=f"not in the release plan: {', '.join(unknown)}",
                hint=f"planned: {', '.join(sorted(plan.repos))}",
            )
        )
    return Ok(list(projects))


def _rollback_project(
    name: str,
    repo: VcsPort,
    *,
    console: ConsoleProtocol,
    commits: int,
    mode: ResetMode,
    push: bool,
    remote: str,
    tag: str,
) -> Result[str, ReleaseError]:
    def failed(message: str, error: GitError) -> ReleaseError:
        return tool_failed(message, error).at(project=name, step="rollback")

    if repo.tag_exists(tag):
        console.warning(f"{name}: backup tag {tag} already exists")
    else:
        created = repo.create_tag(tag, "Backup before rollback").map_err(
            lambda e: failed(f"failed to create backup tag {tag}", e)
        )
        if isinstance(created, Err):
            return created
        console.print(f"{name}: backup tag {tag}", Style.DIM)

    status = repo.status()
    if mode == "hard" and not status.map(lambda s: s.is_clean).unwrap_or(True):
        console.warning(f"{name}: uncommitted changes are lost by a hard reset")

    reset = repo.reset(commits, mode).map_err(
        lambda e: failed(f"git reset --{mode} HEAD~{commits} failed", e)
    )
    if isinstance(reset, Err):
        return reset
    console.success(f"{name}: rolled back {commits} commit(s) ({mode})")
    if not push:
        return reset

    branch = status.map(lambda s: s.branch).unwrap_or("")
    if not branch or branch == "HEAD":
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="cannot push a rollback from a detached HEAD",
                hint=f"check out the release branch in {repo.path}",
            ).at(project=name, step="rollback")
        )
    pushed = repo.force_push_branch(remote, branch).map_err(
        lambda e: failed(f"failed to push the rollback to {remote}/{branch}", e)
    )
    if isinstance(pushed, Err):
        return pushed
    console.success(f"{name}: pushed to {remote}/{branch}")
    return reset


def rollback_commits(
    *,
    plan: ReleasePlan,
    console: ConsoleProtocol,
    commits: int = 1,
    mode: ResetMode = "mixed",
    push: bool = False,
    remote: str = "origin",
    projects: list[str] | None = None,
    vcs: VcsFactory = Repository,
    now: datetime | None = None,
) -> Result[dict[str, str], ReleaseError]:
    """Reset the plan's projects by commits; returns the new HEAD per project.

    Stops at the first project that fails, leaving the ones before it rolled
    back (their backup tags say where they were).
    """
    if commits < 1:
        return Err(
            ReleaseError(kind="invalid_input", message=f"--commits must be >= 1, got {commits}")
        )

    targets = _targets(plan, projects)
    if isinstance(targets, Err):
        return targets
    if not targets.value:
        console.info("no projects selected in the release plan")
        return Ok({})

    now = now or datetime.now(UTC)
    heads: dict[str, str] = {}
    for name in targets.value:
        entry = plan.repos[name]
        path = Path(entry.project_path) if entry.project_path else Path(plan.root_dir) / name
        rolled = _rollback_project(
            name,
            vcs(path),
            console=console,
            commits=commits,
            mode=mode,
            push=push,
            remote=remote,
            tag=backup_tag(name, now),
        )
        if isinstance(rolled, Err):
            return rolled
        heads[name] = rolled.value

    console.print(f"recover with the {backup_tag('*', now)} tags", Style.DIM)
    return Ok(heads)
