from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

BumpKind = Literal["major", "minor", "patch", "none"]
ReleaseBump = Literal["major", "minor", "patch"]
ChangelogState = Literal["clean", "dirty", "none"]
ReviewStatus = Literal["Pending Review", "Approved", "-"]
PlanKind = Literal["full", "rc"]
ProjectKindName = Literal["go", "python", "template"]
ProjectState = Literal["pending", "tagged", "changelog_pushed", "ci_passed", "released", "failed"]

# Apply steps, as recorded in last_failed_operation
ApplyStep = Literal[
    "dependency_sync",
    "tests",
    "changelog_commit",
    "tag_creation",
    "push",
    "ci_wait",
    "registry_wait",
    "parent_release",
]

BUMP_ORDER: dict[BumpKind, int] = {"none": 0, "patch": 1, "minor": 2, "major": 3}


def max_bump(a: BumpKind, b: BumpKind) -> BumpKind:
    return a if BUMP_ORDER[a] >= BUMP_ORDER[b] else b


@dataclass(frozen=True, slots=True)
class ProjectDescriptor:
    """A sub-project as supplied by discovery; immutable for one planning pass.

    ``identity`` is the name other manifests use to reference this project
    (a Go module path, a canonical Python distribution name, ...).
    ``dependencies`` are the raw identifiers declared in the manifest; the
    graph builder keeps only the ones that resolve to ecosystem projects.
    """

    name: str
    path: Path
    manifest_path: Path
    kind: ProjectKindName
    identity: str
    current_tag: str | None
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, order=True)
class DependencyEdge:
    dependent: str
    dependency: str


@dataclass(frozen=True, slots=True)
class GitSnapshot:
    branch: str = ""
    is_dirty: bool = False
    has_upstream: bool = False
    ahead: int = 0
    behind: int = 0
    modified: int = 0
    staged: int = 0
    untracked: int = 0
    commits_since_tag: int = 0


@dataclass(frozen=True, slots=True)
class RepoReleasePlan:
    current_version: str
    suggested_bump: BumpKind
    suggestion_reasoning: str
    selected_bump: BumpKind
    next_version: str
    status: ReviewStatus = "-"
    selected: bool = False
    project_kind: ProjectKindName = "template"
    project_path: str = ""
    changelog_path: str = ""
    changelog_commit: str = ""
    changelog_hash: str = ""
    changelog_generated_hash: str = ""
    changelog_state: ChangelogState = "none"
    changelog_promoted: bool = False
    tagged: bool = False
    changelog_pushed: bool = False
    ci_passed: bool = False
    tag_pushed: bool = False
    last_failed_operation: str = ""
    git: GitSnapshot = field(default_factory=GitSnapshot)

    @property
    def released(self) -> bool:
        return self.tag_pushed

    def reset_progress(self) -> RepoReleasePlan:
        """Forget apply progress so the project is retried from the start."""
        return replace(
            self,
            tagged=False,
            changelog_pushed=False,
            ci_passed=False,
            tag_pushed=False,
            last_failed_operation="",
        )


def project_state(entry: RepoReleasePlan) -> ProjectState:
    if entry.tag_pushed:
        return "released"
    if entry.last_failed_operation:
        return "failed"
    if entry.ci_passed:
        return "ci_passed"
    if entry.changelog_pushed:
        return "changelog_pushed"
    if entry.tagged:
        return "tagged"
    return "pending"


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    """The release plan aggregate.

    It is created by planning, passed explicitly through apply (every step
    produces a new plan via ``with_repo``), and persisted after each step.
    """

    created_at: str
    repos: dict[str, RepoReleasePlan]
    release_levels: tuple[tuple[str, ...], ...]
    root_dir: str
    kind: PlanKind = "full"
    parent_version: str = ""
    parent_current_version: str = ""

    def with_repo(self, name: str, entry: RepoReleasePlan) -> ReleasePlan:
        repos = dict(self.repos)
        repos[name] = entry
        return replace(self, repos=repos)

    def selected_names(self) -> list[str]:
        """Selected projects in release order."""
        return [name for level in self.release_levels for name in level if self.is_selected(name)]

    def is_selected(self, name: str) -> bool:
        entry = self.repos.get(name)
        return entry is not None and entry.selected

    def all_released(self) -> bool:
        return all(self.repos[name].released for name in self.selected_names())
