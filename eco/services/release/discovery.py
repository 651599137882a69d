"""Project discovery.

Produces the ordered ProjectDescriptor list a planning pass works on:
either the projects listed in ``[workspace].projects`` or every immediate,
non-hidden subdirectory of the root that carries a recognised manifest.
"""

from __future__ import annotations

from pathlib import Path

from eco.core.config import Config
from eco.core.result import Err, Ok, Result
from eco.git.repository import Repository
from eco.services.release.errors import ReleaseError, tool_failed
from eco.services.release.kinds import detect_kind
from eco.services.release.model import GitSnapshot, ProjectDescriptor
from eco.services.release.ports import VcsFactory, VcsPort


def _candidate_dirs(root: Path, config: Config) -> Result[list[Path], ReleaseError]:
    if config.workspace.projects:
        dirs: list[Path] = []
        for name in config.workspace.projects:
            path = root / name
            if not path.is_dir():
                return Err(
                    ReleaseError(
                        kind="project_not_found",
                        message=f"configured project does not exist: {name}",
                        hint=str(path),
                    )
                )
            dirs.append(path)
        return Ok(dirs)

    return Ok(
        [
            p
            for p in sorted(root.iterdir())
            if p.is_dir() and not p.name.startswith(".") and detect_kind(p) is not None
        ]
    )


def discover_projects(
    root: Path,
    config: Config,
    *,
    vcs: VcsFactory = Repository,
) -> Result[list[ProjectDescriptor], ReleaseError]:
    dirs = _candidate_dirs(root, config)
    if isinstance(dirs, Err):
        return dirs

    projects: list[ProjectDescriptor] = []
    for path in dirs.value:
        kind = detect_kind(path)
        if kind is None:
            return Err(
                ReleaseError(
                    kind="project_not_found",
                    message=f"{path.name}: no go.mod, pyproject.toml or template.toml",
                    hint=str(path),
                )
            )

        identity = kind.identity(path)
        if isinstance(identity, Err):
            return identity
        deps = kind.parse_dependencies(path)
        if isinstance(deps, Err):
            return deps

        tag = vcs(path).last_tag()
        if isinstance(tag, Err):
            return Err(tool_failed(f"{path.name}: cannot read last tag", tag.error))

        projects.append(
            ProjectDescriptor(
                name=path.name,
                path=path,
                manifest_path=path / kind.manifest,
                kind=kind.name,
                identity=identity.value,
                current_tag=tag.value,
                dependencies=deps.value,
            )
        )

    return Ok(projects)


def git_snapshot(repo: VcsPort, commits_since_tag: int) -> GitSnapshot:
    """Working-tree summary recorded in the plan; best effort, never fails planning."""
    status = repo.status()
    if isinstance(status, Err):
        return GitSnapshot(commits_since_tag=commits_since_tag)
    s = status.value
    return GitSnapshot(
        branch=s.branch,
        is_dirty=not s.is_clean,
        has_upstream=s.upstream is not None,
        ahead=s.ahead,
        behind=s.behind,
        modified=s.modified_count,
        staged=s.staged_count,
        untracked=s.untracked_count,
        commits_since_tag=commits_since_tag,
    )
