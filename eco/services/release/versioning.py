"""Bump classification and next-version computation.

Commits since a project's last tag are classified with the conventional
commit rules: a breaking marker (``type!:`` or a ``BREAKING CHANGE`` footer)
means major, ``feat`` means minor, ``fix`` and ``perf`` mean patch, and
anything else does not warrant a release on its own. Operator overrides win
over the suggestion, and the optional propagate mode pulls every transitive
dependent of a bumped project in at patch level.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from eco.core.result import Err, Ok, Result
from eco.git.repository import LogEntry
from eco.services.release.errors import ReleaseError
from eco.services.release.graph import DependencyGraph
from eco.services.release.model import BumpKind, PlanKind, ProjectDescriptor, max_bump
from eco.services.release.semver import ZERO_TAG, SemVer, parse_tag

_HEADER_RE = re.compile(
    r"^(?P<type>[A-Za-z]+)(?:\((?P<scope>[^)]*)\))?(?P<breaking>!)?:\s*(?P<description>.+)$"
)
_BREAKING_FOOTER_RE = re.compile(r"^BREAKING[ -]CHANGE:", re.MULTILINE)

PATCH_TYPES = frozenset({"fix", "perf"})


@dataclass(frozen=True, slots=True)
class ConventionalCommit:
    sha: str
    date: str
    type: str
    scope: str | None
    description: str
    breaking: bool


def parse_commit(entry: LogEntry) -> ConventionalCommit | None:
    """Parse a conventional commit header; None for free-form messages."""
    m = _HEADER_RE.match(entry.subject)
    if m is None:
        return None
    return ConventionalCommit(
        sha=entry.sha,
        date=entry.date,
        type=m.group("type").lower(),
        scope=(m.group("scope") or "").strip() or None,
        description=m.group("description").strip(),
        breaking=bool(m.group("breaking")) or bool(_BREAKING_FOOTER_RE.search(entry.body)),
    )


def classify_commit(entry: LogEntry) -> BumpKind:
    commit = parse_commit(entry)
    if commit is None:
        return "none"
    if commit.breaking:
        return "major"
    if commit.type == "feat":
        return "minor"
    if commit.type in PATCH_TYPES:
        return "patch"
    return "none"


def suggest_bump(commits: list[LogEntry], *, since: str | None) -> tuple[BumpKind, str]:
    """Suggested bump plus a one-line human explanation."""
    if not commits:
        return ("none", f"no commits since {since or 'repository start'}")

    counts: dict[BumpKind, int] = {"major": 0, "minor": 0, "patch": 0, "none": 0}
    for entry in commits:
        counts[classify_commit(entry)] += 1

    parts: list[str] = []
    if counts["major"]:
        parts.append(f"{counts['major']} breaking")
    if counts["minor"]:
        parts.append(f"{counts['minor']} feat")
    if counts["patch"]:
        parts.append(f"{counts['patch']} fix/perf")
    if counts["none"]:
        parts.append(f"{counts['none']} other")
    reasoning = ", ".join(parts)

    for bump in ("major", "minor", "patch"):
        if counts[bump]:
            return (bump, reasoning)
    return ("none", f"no releasable commits ({reasoning})")


@dataclass(frozen=True, slots=True)
class BumpOverrides:
    major: frozenset[str] = frozenset()
    minor: frozenset[str] = frozenset()
    patch: frozenset[str] = frozenset()

    def forced(self, name: str) -> BumpKind | None:
        if name in self.major:
            return "major"
        if name in self.minor:
            return "minor"
        if name in self.patch:
            return "patch"
        return None

    def names(self) -> set[str]:
        return set(self.major | self.minor | self.patch)


@dataclass(frozen=True, slots=True)
class VersionDecision:
    name: str
    current_version: str
    suggested_bump: BumpKind
    reasoning: str
    selected_bump: BumpKind
    next_version: str
    commits: tuple[LogEntry, ...]

    @property
    def selected(self) -> bool:
        return self.selected_bump != "none"


def next_version(
    current: SemVer,
    bump: BumpKind,
    *,
    plan_kind: PlanKind,
    short_sha: str,
) -> SemVer:
    if bump == "none":
        return current
    if plan_kind == "rc":
        return current.candidate(short_sha)
    if current.is_prerelease:
        # v1.2.0-rc.x released as a patch is v1.2.0 itself
        return current.base() if bump == "patch" else current.base().bump(bump)
    return current.bump(bump)


def plan_versions(
    projects: Iterable[ProjectDescriptor],
    commits: Mapping[str, list[LogEntry]],
    graph: DependencyGraph,
    *,
    overrides: BumpOverrides = BumpOverrides(),
    restrict: frozenset[str] | None = None,
    propagate: bool = False,
    plan_kind: PlanKind = "full",
    head_shas: Mapping[str, str] | None = None,
) -> Result[dict[str, VersionDecision], ReleaseError]:
    """Decide bump and next version for every project.

    The result is a pure function of its inputs: re-planning with the same
    commits yields the same decisions.
    """
    projects = list(projects)
    known = {p.name for p in projects}
    unknown = sorted((overrides.names() | set(restrict or ())) - known)
    if unknown:
        return Err(
            ReleaseError(
                kind="project_not_found",
                message=f"unknown project(s): {', '.join(unknown)}",
                hint=f"known: {', '.join(sorted(known))}",
            )
        )

    selected: dict[str, BumpKind] = {}
    suggested: dict[str, tuple[BumpKind, str]] = {}
    for project in projects:
        suggestion = suggest_bump(commits.get(project.name, []), since=project.current_tag)
        suggested[project.name] = suggestion
        bump = suggestion[0]
        if restrict is not None and project.name not in restrict:
            bump = "none"
        forced = overrides.forced(project.name)
        if forced is not None:
            bump = forced
        selected[project.name] = bump

    reasons = {name: s[1] for name, s in suggested.items()}
    if propagate:
        bumped = [name for name, bump in selected.items() if bump != "none"]
        for name in sorted(graph.transitive_dependents(bumped)):
            if selected[name] == "none":
                reasons[name] = f"{reasons[name]}; depends on a released project"
            selected[name] = max_bump(selected[name], "patch")

    decisions: dict[str, VersionDecision] = {}
    for project in projects:
        tag = project.current_tag or ZERO_TAG
        current = parse_tag(tag)
        if current is None:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"{project.name}: last tag is not a semantic version: {tag}",
                    hint="tags must look like v1.2.3",
                )
            )
        bump = selected[project.name]
        nxt = next_version(
            current,
            bump,
            plan_kind=plan_kind,
            short_sha=(head_shas or {}).get(project.name, "")[:7] or "unknown",
        )
        decisions[project.name] = VersionDecision(
            name=project.name,
            current_version=current.to_tag(),
            suggested_bump=suggested[project.name][0],
            reasoning=reasons[project.name],
            selected_bump=bump,
            next_version=nxt.to_tag(),
            commits=tuple(commits.get(project.name, [])),
        )

    return Ok(decisions)
