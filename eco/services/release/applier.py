"""Apply a release plan.

Each selected project runs through the same small state machine, driven
by the progress flags stored in its plan entry::

    pending -> tagged -> changelog_pushed -> ci_passed -> tag_pushed (released)

A step either advances the entry (and the plan is saved right away) or
fails, in which case ``last_failed_operation`` is recorded and the whole
apply halts. Re-running apply resumes from the first incomplete step;
released projects are skipped. Levels are processed strictly in order,
and a project's dependents get their manifests pinned to the new version
only once it is confirmed available from the registry.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path

from eco.core.config import Config, TimeoutsConfig
from eco.core.result import Err, Ok, Result
from eco.git.repository import Repository
from eco.output.console import ConsoleProtocol, Style
from eco.platform.process import run as run_process
from eco.services.release.changelog import ChangelogStager
from eco.services.release.ci import CiPort, GhCi, gate_tag
from eco.services.release.errors import ReleaseError, tool_failed
from eco.services.release.fsm import FINISH, StepHandler, StepOutcome, advance, run_state_machine
from eco.services.release.graph import DependencyGraph, build_graph
from eco.services.release.kinds import kind_by_name
from eco.services.release.lock import acquire_apply_lock, release_apply_lock
from eco.services.release.model import ProjectDescriptor, ReleasePlan, RepoReleasePlan
from eco.services.release.plan_store import ReleasePlanStore
from eco.services.release.poll import SYSTEM_CLOCK, Backoff, Clock, PollPolicy
from eco.services.release.ports import ToolRunner, VcsFactory, VcsPort
from eco.services.release.registry import AvailabilityPort, RegistryLookup, wait_for_availability
from eco.services.release.semver import SemVer, parse_tag
from eco.services.release.timeouts import TOOL_TIMEOUT_SECONDS


def ci_discovery_policy(t: TimeoutsConfig) -> PollPolicy:
    return PollPolicy(backoff=Backoff(t.ci_poll_interval), timeout=t.ci_discovery)


def ci_completion_policy(t: TimeoutsConfig) -> PollPolicy:
    return PollPolicy(backoff=Backoff(t.ci_poll_interval), timeout=t.ci_completion)


def registry_policy(t: TimeoutsConfig) -> PollPolicy:
    return PollPolicy(
        backoff=Backoff(t.registry_initial_backoff, multiplier=2.0, cap=t.registry_max_backoff),
        timeout=t.registry,
        max_attempts=t.registry_max_attempts,
    )


@dataclass(frozen=True, slots=True)
class ApplyOptions:
    dry_run: bool = False
    push: bool = True
    skip_ci: bool = False
    skip_parent: bool = False
    run_tests: bool = False
    remote: str = "origin"
    branch: str = "main"
    ci_workflow: str | None = None
    changelog_file: str = "CHANGELOG.md"
    ci_discovery: PollPolicy = field(default_factory=lambda: ci_discovery_policy(TimeoutsConfig()))
    ci_completion: PollPolicy = field(
        default_factory=lambda: ci_completion_policy(TimeoutsConfig())
    )
    registry: PollPolicy = field(default_factory=lambda: registry_policy(TimeoutsConfig()))

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        dry_run: bool = False,
        push: bool | None = None,
        skip_ci: bool = False,
        skip_parent: bool = False,
        run_tests: bool = False,
    ) -> ApplyOptions:
        release = config.release
        return cls(
            dry_run=dry_run,
            push=release.push if push is None else push,
            skip_ci=skip_ci or release.skip_ci,
            skip_parent=skip_parent,
            run_tests=run_tests,
            remote=release.remote,
            branch=release.branch,
            ci_workflow=release.ci_workflow,
            changelog_file=config.changelog.file,
            ci_discovery=ci_discovery_policy(release.timeouts),
            ci_completion=ci_completion_policy(release.timeouts),
            registry=registry_policy(release.timeouts),
        )


@dataclass(frozen=True, slots=True)
class ApplyPorts:
    """External collaborators; tests swap in fakes."""

    vcs: VcsFactory = Repository
    ci: Callable[[Path], CiPort] = GhCi
    availability: AvailabilityPort = field(default_factory=RegistryLookup)
    runner: ToolRunner = run_process
    clock: Clock = SYSTEM_CLOCK


@dataclass(frozen=True, slots=True)
class ProjectRun:
    """State threaded through one project's state machine."""

    plan: ReleasePlan
    name: str

    @property
    def entry(self) -> RepoReleasePlan:
        return self.plan.repos[self.name]

    def with_entry(self, entry: RepoReleasePlan) -> ProjectRun:
        return replace(self, plan=self.plan.with_repo(self.name, entry))


def next_step(run: ProjectRun, *, push: bool = True) -> str:
    entry = run.entry
    if not entry.tagged:
        return "tag"
    if not push:
        return "done"
    if not entry.changelog_pushed:
        return "push"
    if not entry.ci_passed:
        return "ci_wait"
    if not entry.tag_pushed:
        return "registry_wait"
    return "done"


def resolve_projects(plan: ReleasePlan) -> Result[dict[str, ProjectDescriptor], ReleaseError]:
    """Re-read identities and declared dependencies from the manifests on disk."""
    projects: dict[str, ProjectDescriptor] = {}
    for name, entry in plan.repos.items():
        path = Path(entry.project_path) if entry.project_path else Path(plan.root_dir) / name
        kind = kind_by_name(entry.project_kind)
        identity = kind.identity(path)
        if isinstance(identity, Err):
            return Err(identity.error.at(project=name, step="dependency_sync"))
        deps = kind.parse_dependencies(path)
        if isinstance(deps, Err):
            return Err(deps.error.at(project=name, step="dependency_sync"))
        projects[name] = ProjectDescriptor(
            name=name,
            path=path,
            manifest_path=path / kind.manifest,
            kind=kind.name,
            identity=identity.value,
            current_tag=entry.current_version or None,
            dependencies=deps.value,
        )
    return Ok(projects)


class ReleaseApplier:
    def __init__(
        self,
        *,
        store: ReleasePlanStore,
        console: ConsoleProtocol,
        options: ApplyOptions,
        ports: ApplyPorts | None = None,
    ) -> None:
        self.store = store
        self.console = console
        self.options = options
        self.ports = ports or ApplyPorts()
        self.stager = ChangelogStager(store.staging_dir, file_name=options.changelog_file)
        self._plan: ReleasePlan | None = None
        self._projects: dict[str, ProjectDescriptor] = {}
        self._graph = DependencyGraph(nodes=(), edges=())
        self._handlers: Mapping[str, StepHandler[ProjectRun]] = {
            "tag": self._step_tag,
            "push": self._step_push,
            "ci_wait": self._step_ci,
            "registry_wait": self._step_registry,
            "done": self._step_done,
        }

    @property
    def plan(self) -> ReleasePlan:
        assert self._plan is not None
        return self._plan

    def apply(self, plan: ReleasePlan) -> Result[ReleasePlan, ReleaseError]:
        """Drive plan to completion; returns the final plan or the first failure."""
        if self.options.dry_run:
            return self._apply(plan)

        lock = acquire_apply_lock(self.store.state_dir)
        if isinstance(lock, Err):
            return lock
        try:
            return self._apply(plan)
        finally:
            release_apply_lock(lock.value)

    # -------------------------------------------------------------------------
    # Orchestration
    # -------------------------------------------------------------------------

    def _apply(self, plan: ReleasePlan) -> Result[ReleasePlan, ReleaseError]:
        resolved = resolve_projects(plan)
        if isinstance(resolved, Err):
            return resolved
        self._projects = resolved.value
        self._graph = build_graph(self._projects.values())
        self._plan = plan

        approved = self._approve()
        if isinstance(approved, Err):
            return approved

        for i, level in enumerate(plan.release_levels):
            names = [name for name in level if plan.is_selected(name)]
            if not names:
                continue
            self.console.header(f"Level {i}: {', '.join(names)}")
            for name in names:
                released = self._release_project(name)
                if isinstance(released, Err):
                    return self._record_failure(released.error)

        if not self.plan.all_released():
            self.console.warning(
                "tags created locally only; re-run apply with push enabled to publish them"
            )
            return Ok(self.plan)

        parent = self._release_parent()
        if isinstance(parent, Err):
            return self._record_failure(parent.error)

        if self.options.dry_run:
            self.console.info("dry run complete: nothing was changed")
            return Ok(self.plan)

        cleared = self.store.clear()
        if isinstance(cleared, Err):
            self.console.warning(f"plan was not removed: {cleared.error.message}")
        self.console.success(f"released {len(self.plan.selected_names())} project(s)")
        return Ok(self.plan)

    def _approve(self) -> Result[None, ReleaseError]:
        plan = self.plan
        for name in plan.selected_names():
            entry = plan.repos[name]
            if entry.status == "Pending Review":
                plan = plan.with_repo(name, replace(entry, status="Approved"))
        return self._save(plan)

    def _release_project(self, name: str) -> Result[None, ReleaseError]:
        entry = self.plan.repos[name]
        if entry.released:
            self.console.print(f"{name}: {entry.next_version} already released", Style.DIM)
        else:
            ran = run_state_machine(
                initial_state=ProjectRun(plan=self.plan, name=name),
                get_step=lambda run: next_step(run, push=self.options.push),
                handlers=self._handlers,
                save_state=self._save_run,
            )
            if isinstance(ran, Err):
                return ran

        entry = self.plan.repos[name]
        if entry.released or (not self.options.push and entry.tagged):
            return self._propagate(name)
        return Ok(None)

    def _save(self, plan: ReleasePlan) -> Result[None, ReleaseError]:
        self._plan = plan
        if self.options.dry_run:
            return Ok(None)
        return self.store.save(plan)

    def _save_run(self, run: ProjectRun) -> Result[ProjectRun, ReleaseError]:
        saved = self._save(run.plan)
        if isinstance(saved, Err):
            return saved
        return Ok(run)

    def _record_failure(self, error: ReleaseError) -> Result[ReleasePlan, ReleaseError]:
        name = error.project
        if name is not None and name in self.plan.repos:
            entry = replace(self.plan.repos[name], last_failed_operation=error.step or "unknown")
            saved = self._save(self.plan.with_repo(name, entry))
            if isinstance(saved, Err):
                self.console.warning(f"could not record the failure: {saved.error.message}")
        return Err(error)

    def _dry(self, action: str) -> None:
        self.console.print(f"[dry-run] {action}", Style.DIM)

    def _repo(self, name: str) -> VcsPort:
        return self.ports.vcs(self._projects[name].path)

    # -------------------------------------------------------------------------
    # State machine steps
    # -------------------------------------------------------------------------

    def _step_tag(self, run: ProjectRun) -> Result[StepOutcome[ProjectRun], ReleaseError]:
        name = run.name
        tag = run.entry.next_version

        if self.options.run_tests:
            tested = self._run_tests(name)
            if isinstance(tested, Err):
                return tested

        committed = self._commit_changelog(name, run.entry)
        if isinstance(committed, Err):
            return committed

        tagged = self._create_tag(name, tag)
        if isinstance(tagged, Err):
            return tagged

        entry = replace(committed.value, tagged=True, last_failed_operation="")
        return Ok(advance(run.with_entry(entry)))

    def _run_tests(self, name: str) -> Result[None, ReleaseError]:
        project = self._projects[name]
        cmd = kind_by_name(project.kind).test_command()
        if cmd is None:
            return Ok(None)
        if self.options.dry_run:
            self._dry(f"{' '.join(cmd)} in {name}")
            return Ok(None)

        self.console.print(f"{name}: {' '.join(cmd)}", Style.DIM)
        result = self.ports.runner(cmd, project.path, timeout=TOOL_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            error = tool_failed("tests failed", result.error)
            return Err(error.at(project=name, step="tests"))
        return Ok(None)

    def _commit_changelog(
        self, name: str, entry: RepoReleasePlan
    ) -> Result[RepoReleasePlan, ReleaseError]:
        if not entry.changelog_path:
            return Ok(entry)

        project = self._projects[name]
        message = f"docs(changelog): update {self.options.changelog_file} for {entry.next_version}"
        if self.options.dry_run:
            self._dry(f"prepend staged changelog to {self.stager.working_path(project.path)}")
            self._dry(f"git commit -m '{message}' in {name}")
            return Ok(replace(entry, changelog_promoted=True))

        promoted = self.stager.promote(entry, project.path, entry.next_version)
        if isinstance(promoted, Err):
            return Err(promoted.error.at(project=name, step="changelog_commit"))
        entry = promoted.value

        repo = self._repo(name)
        added = repo.add([self.options.changelog_file])
        if isinstance(added, Err):
            error = tool_failed("failed to stage changelog", added.error)
            return Err(error.at(project=name, step="changelog_commit"))
        if not repo.has_staged_changes():
            return Ok(entry)

        commit = repo.commit(message)
        if isinstance(commit, Err):
            error = tool_failed("failed to commit changelog", commit.error)
            return Err(error.at(project=name, step="changelog_commit"))
        self.console.print(f"{name}: committed changelog ({commit.value[:7]})", Style.DIM)
        return Ok(replace(entry, changelog_commit=commit.value))

    def _create_tag(self, name: str, tag: str) -> Result[None, ReleaseError]:
        if self.options.dry_run:
            self._dry(f"git tag -a {tag} -m 'Release {tag}' in {name}")
            return Ok(None)

        repo = self._repo(name)
        if repo.tag_exists(tag):
            self.console.warning(f"{name}: tag {tag} already exists locally, reusing it")
            return Ok(None)
        created = repo.create_tag(tag, f"Release {tag}")
        if isinstance(created, Err):
            error = tool_failed(f"failed to create tag {tag}", created.error)
            return Err(error.at(project=name, step="tag_creation"))
        self.console.success(f"{name}: tagged {tag}")
        return Ok(None)

    def _step_push(self, run: ProjectRun) -> Result[StepOutcome[ProjectRun], ReleaseError]:
        name = run.name
        tag = run.entry.next_version
        remote, branch = self.options.remote, self.options.branch

        if self.options.dry_run:
            self._dry(f"git push {remote} HEAD:{branch} in {name}")
            self._dry(f"git push {remote} refs/tags/{tag} in {name}")
        else:
            repo = self._repo(name)
            pushed = repo.push_branch(remote, branch)
            if isinstance(pushed, Err):
                error = tool_failed(f"failed to push {branch}", pushed.error)
                return Err(error.at(project=name, step="push"))
            pushed = repo.push_tag(remote, tag)
            if isinstance(pushed, Err):
                error = tool_failed(f"failed to push tag {tag}", pushed.error)
                return Err(error.at(project=name, step="push"))
            self.console.print(f"{name}: pushed {branch} and {tag} to {remote}", Style.DIM)

        return Ok(advance(run.with_entry(replace(run.entry, changelog_pushed=True))))

    def _step_ci(self, run: ProjectRun) -> Result[StepOutcome[ProjectRun], ReleaseError]:
        name = run.name
        tag = run.entry.next_version
        project = self._projects[name]
        passed = run.with_entry(replace(run.entry, ci_passed=True))

        if self.options.skip_ci or not (project.path / ".github" / "workflows").is_dir():
            self.console.print(f"{name}: no CI gate", Style.DIM)
            return Ok(advance(passed))
        if self.options.dry_run:
            self._dry(f"wait for the CI run triggered by {tag} in {name}")
            return Ok(advance(passed))

        slug = self._repo(name).remote_slug(self.options.remote)
        if isinstance(slug, Err):
            error = tool_failed("cannot locate the CI repository", slug.error)
            return Err(error.at(project=name, step="ci_wait"))

        self.console.print(f"{name}: waiting for CI on {tag}", Style.INFO)
        gated = gate_tag(
            self.ports.ci(project.path),
            slug=slug.value,
            tag=tag,
            workflow=self.options.ci_workflow,
            discovery=self.options.ci_discovery,
            completion=self.options.ci_completion,
            console=self.console,
            clock=self.ports.clock,
        )
        if isinstance(gated, Err):
            return Err(gated.error.at(project=name, step="ci_wait"))
        self.console.success(f"{name}: CI passed for {tag}")
        return Ok(advance(passed))

    def _step_registry(self, run: ProjectRun) -> Result[StepOutcome[ProjectRun], ReleaseError]:
        name = run.name
        tag = run.entry.next_version
        project = self._projects[name]
        released = run.with_entry(replace(run.entry, tag_pushed=True, last_failed_operation=""))

        version = _version_of(name, tag, step="registry_wait")
        if isinstance(version, Err):
            return version
        if self.options.dry_run:
            self._dry(f"wait until {project.identity} {tag} is resolvable")
            return Ok(advance(released))

        waited = wait_for_availability(
            self.ports.availability,
            kind_by_name(project.kind),
            project=name,
            project_dir=project.path,
            identity=project.identity,
            version=version.value,
            policy=self.options.registry,
            clock=self.ports.clock,
        )
        if isinstance(waited, Err):
            return Err(waited.error.at(project=name, step="registry_wait"))
        self.console.success(f"{name}: released {tag}")
        return Ok(advance(released))

    def _step_done(self, run: ProjectRun) -> Result[StepOutcome[ProjectRun], ReleaseError]:
        return Ok(FINISH)

    # -------------------------------------------------------------------------
    # Propagation and ecosystem release
    # -------------------------------------------------------------------------

    def _propagate(self, name: str) -> Result[None, ReleaseError]:
        """Pin every not-yet-tagged dependent of name to its new version."""
        if self.plan.kind == "rc":
            return Ok(None)

        released = self._projects[name]
        tag = self.plan.repos[name].next_version
        for dependent in self._graph.dependents_of(name):
            if self.plan.repos[dependent].tagged:
                continue
            synced = self._sync_dependent(dependent, released, tag)
            if isinstance(synced, Err):
                return Err(synced.error.at(project=dependent, step="dependency_sync"))
        return Ok(None)

    def _sync_dependent(
        self, dependent: str, released: ProjectDescriptor, tag: str
    ) -> Result[None, ReleaseError]:
        project = self._projects[dependent]
        kind = kind_by_name(project.kind)
        scheduled = self.plan.is_selected(dependent)

        version = _version_of(released.name, tag, step="dependency_sync")
        if isinstance(version, Err):
            return version

        if self.options.dry_run:
            self._dry(f"pin {released.identity} {tag} in {dependent}/{kind.manifest}")
            if not scheduled and self.options.push:
                self._dry(f"git push {self.options.remote} {self.options.branch} in {dependent}")
            return Ok(None)

        rewritten = kind.rewrite_requirement(project.path, released.identity, version.value)
        if isinstance(rewritten, Err):
            return rewritten

        tidy = kind.tidy_command()
        if rewritten.value and tidy is not None and self.options.push:
            tidied = self.ports.runner(tidy, project.path, timeout=TOOL_TIMEOUT_SECONDS)
            if isinstance(tidied, Err):
                return Err(tool_failed(f"{' '.join(tidy)} failed", tidied.error))

        repo = self.ports.vcs(project.path)
        added = repo.add(kind.manifest_files(project.path))
        if isinstance(added, Err):
            return Err(tool_failed("failed to stage manifest", added.error))
        if not repo.has_staged_changes():
            return Ok(None)

        commit = repo.commit(f"chore(deps): bump {released.name} to {tag}")
        if isinstance(commit, Err):
            return Err(tool_failed("failed to commit manifest", commit.error))
        self.console.print(f"{dependent}: pinned {released.identity} {tag}", Style.DIM)

        if not scheduled and self.options.push:
            pushed = repo.push_branch(self.options.remote, self.options.branch)
            if isinstance(pushed, Err):
                return Err(tool_failed(f"failed to push {self.options.branch}", pushed.error))
        return Ok(None)

    def _release_parent(self) -> Result[None, ReleaseError]:
        """Record the released component versions in the root repository and tag it."""
        plan = self.plan
        if plan.kind == "rc" or self.options.skip_parent or not plan.parent_version:
            return Ok(None)

        root = Path(plan.root_dir)
        repo = self.ports.vcs(root)
        if not repo.exists():
            self.console.print("workspace root is not a git repository", Style.DIM)
            return Ok(None)

        names = plan.selected_names()
        summary = ", ".join(f"{n}@{plan.repos[n].next_version}" for n in names)
        message = f"chore: release components ({summary})"
        tag = plan.parent_version
        relative = [_relative_to(self._projects[n].path, root) for n in names]
        paths = [p for p in relative if p is not None]

        def failed(what: str, detail: str) -> Result[None, ReleaseError]:
            err = ReleaseError(kind="tool_failed", message=what, hint=detail or None)
            return Err(err.at(project=root.name, step="parent_release"))

        if self.options.dry_run:
            self._dry(f"git commit -m '{message}' in the workspace root")
            self._dry(f"git tag -a {tag}")
            return Ok(None)

        if paths:
            added = repo.add(paths)
            if isinstance(added, Err):
                return failed("failed to stage released components", added.error.message)
        if repo.has_staged_changes():
            commit = repo.commit(message)
            if isinstance(commit, Err):
                return failed("failed to commit the ecosystem release", commit.error.message)
        if not repo.tag_exists(tag):
            created = repo.create_tag(tag, f"Release {tag}")
            if isinstance(created, Err):
                return failed(f"failed to create tag {tag}", created.error.message)
        if self.options.push:
            pushed = repo.push_branch(self.options.remote, self.options.branch)
            if isinstance(pushed, Err):
                return failed("failed to push the workspace root", pushed.error.message)
            pushed = repo.push_tag(self.options.remote, tag)
            if isinstance(pushed, Err):
                return failed(f"failed to push tag {tag}", pushed.error.message)
        self.console.success(f"ecosystem released as {tag}")
        return Ok(None)


def _version_of(name: str, tag: str, *, step: str) -> Result[SemVer, ReleaseError]:
    version = parse_tag(tag)
    if version is None:
        error = ReleaseError(kind="invalid_input", message=f"not a semantic version: {tag}")
        return Err(error.at(project=name, step=step))
    return Ok(version)


def _relative_to(path: Path, root: Path) -> str | None:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return None


# -----------------------------------------------------------------------------
# Recovery operations
# -----------------------------------------------------------------------------


def undo_tags(
    *,
    plan: ReleasePlan,
    store: ReleasePlanStore,
    console: ConsoleProtocol,
    projects: list[str] | None = None,
    remote: str = "origin",
    delete_remote: bool = True,
    vcs: VcsFactory = Repository,
) -> Result[ReleasePlan, ReleaseError]:
    """Delete the tags the last apply attempt created, locally then on the remote.

    Only the plan's ``next_version`` tag of a project the apply actually
    tagged is touched, so earlier historical tags are never removed. Without
    explicit projects, every tagged-but-unreleased project is undone. The
    affected entries are reset so the next apply starts them over.
    """
    if projects:
        unknown = sorted(set(projects) - set(plan.repos))
        if unknown:
            return Err(
                ReleaseError(
                    kind="project_not_found",
                    message=f"not in the release plan: {', '.join(unknown)}",
                    hint=f"planned: {', '.join(sorted(plan.repos))}",
                )
            )
        targets = list(projects)
    else:
        targets = [
            n for n in plan.selected_names() if plan.repos[n].tagged and not plan.repos[n].released
        ]

    if not targets:
        console.info("no tags to undo")
        return Ok(plan)

    for name in targets:
        entry = plan.repos[name]
        if not entry.tagged:
            console.info(f"{name}: apply did not tag {entry.next_version}; nothing to undo")
            continue

        tag = entry.next_version
        path = Path(entry.project_path) if entry.project_path else Path(plan.root_dir) / name
        repo = vcs(path)

        deleted = repo.delete_tag(tag)
        if isinstance(deleted, Err):
            error = tool_failed(f"failed to delete tag {tag}", deleted.error)
            return Err(error.at(project=name, step="undo_tag"))
        if deleted.value:
            console.success(f"{name}: deleted local tag {tag}")
        else:
            console.print(f"{name}: local tag {tag} not found", Style.DIM)

        if delete_remote:
            remote_deleted = repo.delete_remote_tag(remote, tag)
            if isinstance(remote_deleted, Err):
                error = tool_failed(f"failed to delete {tag} on {remote}", remote_deleted.error)
                return Err(error.at(project=name, step="undo_tag"))
            if remote_deleted.value:
                console.success(f"{name}: deleted {tag} on {remote}")
            else:
                console.print(f"{name}: {tag} not found on {remote}", Style.DIM)

        plan = plan.with_repo(name, entry.reset_progress())
        saved = store.save(plan)
        if isinstance(saved, Err):
            return saved

    return Ok(plan)


def clear_plan(*, store: ReleasePlanStore, console: ConsoleProtocol) -> Result[None, ReleaseError]:
    existed = store.exists()
    cleared = store.clear()
    if isinstance(cleared, Err):
        return cleared
    if existed:
        console.success("release plan cleared")
    else:
        console.info("no active release plan")
    return Ok(None)
