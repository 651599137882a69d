"""Ecosystem dependency graph and release leveling.

Edges point from a dependent to the project it depends on. Leveling peels
the graph layer by layer (Kahn): level 0 holds projects with no ecosystem
dependencies, level k holds projects whose dependencies all sit in earlier
levels. Projects inside one level have no edges between them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from eco.core.result import Err, Ok, Result
from eco.services.release.errors import ReleaseError
from eco.services.release.model import DependencyEdge, ProjectDescriptor


@dataclass(frozen=True, slots=True)
class DependencyGraph:
    nodes: tuple[str, ...]
    edges: tuple[DependencyEdge, ...]

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        return tuple(sorted(e.dependency for e in self.edges if e.dependent == name))

    def dependents_of(self, name: str) -> tuple[str, ...]:
        return tuple(sorted(e.dependent for e in self.edges if e.dependency == name))

    def transitive_dependents(self, names: Iterable[str]) -> set[str]:
        """Every project that depends, directly or not, on one of names (names excluded)."""
        return self._reach(names, self.dependents_of)

    def transitive_dependencies(self, names: Iterable[str]) -> set[str]:
        return self._reach(names, self.dependencies_of)

    def _reach(
        self, names: Iterable[str], step: Callable[[str], tuple[str, ...]]
    ) -> set[str]:
        start = set(names)
        seen: set[str] = set()
        stack = list(start)
        while stack:
            current = stack.pop()
            for nxt in step(current):
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return seen - start


def build_graph(projects: Iterable[ProjectDescriptor]) -> DependencyGraph:
    """Resolve declared dependency identifiers to ecosystem projects.

    Identifiers that match no project's identity (third-party libraries)
    are dropped, as are self references.
    """
    projects = list(projects)
    by_identity = {p.identity: p.name for p in projects}

    edges: set[DependencyEdge] = set()
    for project in projects:
        for ident in project.dependencies:
            target = by_identity.get(ident)
            if target is None or target == project.name:
                continue
            edges.add(DependencyEdge(dependent=project.name, dependency=target))

    return DependencyGraph(
        nodes=tuple(sorted(p.name for p in projects)),
        edges=tuple(sorted(edges)),
    )


def compute_levels(
    graph: DependencyGraph,
    subset: Iterable[str] | None = None,
) -> Result[list[list[str]], ReleaseError]:
    """Level the graph, optionally restricted to subset.

    When restricted, only edges between members of the subset constrain the
    ordering. Each level is sorted by name for deterministic plans.
    """
    members = set(graph.nodes) if subset is None else set(subset) & set(graph.nodes)

    pending: dict[str, set[str]] = {
        name: {d for d in graph.dependencies_of(name) if d in members} for name in members
    }

    levels: list[list[str]] = []
    while pending:
        ready = sorted(name for name, deps in pending.items() if not deps)
        if not ready:
            cycle = _cycle_members(pending)
            blocked = sorted(set(pending) - set(cycle))
            return Err(
                ReleaseError(
                    kind="graph_cycle",
                    message=f"dependency cycle detected among projects: {', '.join(cycle)}",
                    hint=f"also blocked: {', '.join(blocked)}" if blocked else None,
                )
            )
        levels.append(ready)
        for name in ready:
            del pending[name]
        for deps in pending.values():
            deps.difference_update(ready)

    return Ok(levels)


def _cycle_members(pending: dict[str, set[str]]) -> list[str]:
    """Nodes of the stuck remainder that can reach themselves."""
    members: list[str] = []
    for start in sorted(pending):
        seen: set[str] = set()
        stack = list(pending[start])
        while stack:
            current = stack.pop()
            if current == start:
                members.append(start)
                break
            if current in seen:
                continue
            seen.add(current)
            stack.extend(pending.get(current, ()))
    return members
