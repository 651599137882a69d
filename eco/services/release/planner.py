"""Release planning: discovery, leveling, version decisions and changelog staging.

Everything that can fail is computed before the first write. Changelog
sections are generated for every selected project up front, staged only
once all of them succeeded, and the plan document is written last, so a
failing planning pass never leaves a partial plan behind.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path

from eco.core.config import Config
from eco.core.result import Err, Ok, Result
from eco.git.repository import LogEntry, Repository
from eco.output.console import ConsoleProtocol, Style
from eco.services.release.changelog import (
    ChangelogGenerator,
    ChangelogStager,
    CommandGenerator,
    ConventionalGenerator,
    PendingChangelog,
    has_version_header,
)
from eco.services.release.discovery import discover_projects, git_snapshot
from eco.services.release.errors import ReleaseError, tool_failed
from eco.services.release.graph import build_graph, compute_levels
from eco.services.release.model import (
    PlanKind,
    ProjectDescriptor,
    ReleasePlan,
    RepoReleasePlan,
)
from eco.services.release.plan_store import ReleasePlanStore
from eco.services.release.ports import VcsFactory
from eco.services.release.semver import latest_parent_version, next_parent_version
from eco.services.release.versioning import BumpOverrides, VersionDecision, plan_versions


@dataclass(frozen=True, slots=True)
class PlanRequest:
    """Operator choices for one planning pass (the ``plan`` command flags)."""

    projects: frozenset[str] | None = None
    overrides: BumpOverrides = field(default_factory=BumpOverrides)
    with_dependents: bool = False
    with_deps: bool = False
    external_changelog: bool = False
    rc: bool = False

    @property
    def kind(self) -> PlanKind:
        return "rc" if self.rc else "full"


def _fallback_section(version: str, commits: Sequence[LogEntry]) -> str:
    # Dated like a rendered section: by the newest commit, never by the clock
    header = f"## {version}"
    if commits:
        header += f" ({max(c.date for c in commits)[:10]})"
    return f"{header}\n\n- Maintenance release.\n"


def _load_previous(store: ReleasePlanStore, console: ConsoleProtocol) -> ReleasePlan | None:
    loaded = store.load()
    if isinstance(loaded, Ok):
        return loaded.value
    if loaded.error.kind != "plan_not_found":
        console.warning(f"ignoring previous plan: {loaded.error.message}")
    return None


def _generator_for(
    config: Config, request: PlanRequest
) -> Result[ChangelogGenerator, ReleaseError]:
    if not request.external_changelog:
        return Ok(ConventionalGenerator())
    if not config.changelog.generator:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="--external-changelog needs a generator command",
                hint='set [changelog].generator in eco.toml, e.g. ["git-cliff", "--strip", "all"]',
            )
        )
    return Ok(CommandGenerator(command=config.changelog.generator))


def _collect_history(
    projects: list[ProjectDescriptor], vcs: VcsFactory
) -> Result[tuple[dict[str, list[LogEntry]], dict[str, str]], ReleaseError]:
    commits: dict[str, list[LogEntry]] = {}
    heads: dict[str, str] = {}
    for project in projects:
        repo = vcs(project.path)
        log = repo.log_since(project.current_tag)
        if isinstance(log, Err):
            return Err(tool_failed(f"{project.name}: cannot read commit history", log.error))
        commits[project.name] = log.value
        heads[project.name] = repo.head_sha().unwrap_or("")
    return Ok((commits, heads))


def _generate_sections(
    projects: list[ProjectDescriptor],
    decisions: Mapping[str, VersionDecision],
    generator: ChangelogGenerator,
) -> Result[dict[str, str], ReleaseError]:
    sections: dict[str, str] = {}
    for project in projects:
        decision = decisions[project.name]
        if not decision.selected:
            continue
        text = generator.generate(project, decision.next_version, decision.commits)
        if isinstance(text, Err):
            return text
        sections[project.name] = text.value or _fallback_section(
            decision.next_version, decision.commits
        )
    return Ok(sections)


def _prepare_sections(
    stager: ChangelogStager,
    projects: list[ProjectDescriptor],
    sections: Mapping[str, str],
    decisions: Mapping[str, VersionDecision],
    previous: ReleasePlan | None,
    console: ConsoleProtocol,
) -> Result[dict[str, PendingChangelog], ReleaseError]:
    pending: dict[str, PendingChangelog] = {}
    for project in projects:
        content = sections.get(project.name)
        if content is None:
            continue
        before = previous.repos.get(project.name) if previous is not None else None
        prepared = stager.prepare(project.name, project.path, content, before)
        if isinstance(prepared, Err):
            return prepared
        item = prepared.value
        pending[project.name] = item

        if item.tracking.state == "dirty":
            version = decisions[project.name].next_version
            console.warning(f"{project.name}: changelog was edited by hand; new notes prepended")
            if not has_version_header(item.reviewed_text, version):
                console.warning(
                    f"{project.name}: {item.reviewed_path} has no '## {version}' section"
                )
    return Ok(pending)


def _remove_stale_staging(stager: ChangelogStager, keep: set[str]) -> None:
    if not stager.staging_dir.is_dir():
        return
    for child in stager.staging_dir.iterdir():
        if child.is_dir() and child.name not in keep:
            shutil.rmtree(child, ignore_errors=True)


def _parent_versions(root: Path, vcs: VcsFactory, today: date) -> tuple[str, str]:
    repo = vcs(root)
    if not repo.exists():
        return ("", "")
    tags = repo.list_tags()
    if isinstance(tags, Err):
        return ("", "")
    return (latest_parent_version(tags.value), next_parent_version(today, tags.value))


def create_plan(
    *,
    root: Path,
    config: Config,
    store: ReleasePlanStore,
    request: PlanRequest,
    console: ConsoleProtocol,
    vcs: VcsFactory = Repository,
    generator: ChangelogGenerator | None = None,
    now: datetime | None = None,
) -> Result[ReleasePlan, ReleaseError]:
    """Compute a fresh release plan and persist it, replacing any prior plan."""
    now = now or datetime.now(UTC)

    discovered = discover_projects(root, config, vcs=vcs)
    if isinstance(discovered, Err):
        return discovered
    projects = discovered.value
    if not projects:
        return Err(
            ReleaseError(
                kind="project_not_found",
                message=f"no projects found under {root}",
                hint="add go.mod, pyproject.toml or template.toml, or list [workspace].projects",
            )
        )
    console.print(f"discovered {len(projects)} project(s)", Style.DIM)

    graph = build_graph(projects)
    levels = compute_levels(graph)
    if isinstance(levels, Err):
        return levels

    history = _collect_history(projects, vcs)
    if isinstance(history, Err):
        return history
    commits, heads = history.value

    restrict = request.projects
    if restrict is not None and request.with_deps:
        restrict = restrict | graph.transitive_dependencies(restrict)

    decided = plan_versions(
        projects,
        commits,
        graph,
        overrides=request.overrides,
        restrict=restrict,
        propagate=request.with_dependents,
        plan_kind=request.kind,
        head_shas=heads,
    )
    if isinstance(decided, Err):
        return decided
    decisions = decided.value

    if not any(d.selected for d in decisions.values()):
        return Err(
            ReleaseError(
                kind="no_changes",
                message="nothing to release: no project has releasable commits",
                hint="force a release with --patch/--minor/--major <project>",
            )
        )

    previous = _load_previous(store, console)
    if previous is not None and any(
        e.tagged and not e.released for e in previous.repos.values()
    ):
        console.warning("previous plan had an unfinished apply; its tags were not undone")

    stager = ChangelogStager(store.staging_dir, file_name=config.changelog.file)
    pending: dict[str, PendingChangelog] = {}
    if request.kind == "full":
        if generator is None:
            chosen = _generator_for(config, request)
            if isinstance(chosen, Err):
                return chosen
            generator = chosen.value
        sections = _generate_sections(projects, decisions, generator)
        if isinstance(sections, Err):
            return sections
        prepared = _prepare_sections(
            stager, projects, sections.value, decisions, previous, console
        )
        if isinstance(prepared, Err):
            return prepared
        pending = prepared.value

    repos: dict[str, RepoReleasePlan] = {}
    for project in projects:
        decision = decisions[project.name]
        item = pending.get(project.name)
        tracking = item.tracking if item else None
        repos[project.name] = RepoReleasePlan(
            current_version=decision.current_version,
            suggested_bump=decision.suggested_bump,
            suggestion_reasoning=decision.reasoning,
            selected_bump=decision.selected_bump,
            next_version=decision.next_version,
            status="Pending Review" if decision.selected else "-",
            selected=decision.selected,
            project_kind=project.kind,
            project_path=str(project.path),
            changelog_path=tracking.path if tracking else "",
            changelog_hash=tracking.hash if tracking else "",
            changelog_generated_hash=tracking.generated_hash if tracking else "",
            changelog_state=tracking.state if tracking else "none",
            changelog_promoted=tracking.promoted if tracking else False,
            git=git_snapshot(vcs(project.path), len(decision.commits)),
        )

    parent_current, parent_next = ("", "")
    if request.kind == "full":
        parent_current, parent_next = _parent_versions(root, vcs, now.date())

    plan = ReleasePlan(
        created_at=now.isoformat(timespec="seconds"),
        repos=repos,
        release_levels=tuple(tuple(level) for level in levels.value),
        root_dir=str(root),
        kind=request.kind,
        parent_version=parent_next,
        parent_current_version=parent_current,
    )

    written = stager.write_pending(list(pending.values()))
    if isinstance(written, Err):
        return written
    saved = store.save(plan)
    if isinstance(saved, Err):
        for path in stager.restore(written.value):
            console.warning(f"could not restore {path}")
        return saved
    _remove_stale_staging(stager, keep=set(pending))
    return Ok(plan)
