"""Registry availability wait.

A freshly pushed tag is not immediately resolvable by dependents: module
proxies and package indexes take a while to pick it up. Before a dependent's
manifest is pointed at the new version, the engine polls the kind-specific
lookup with exponential backoff until the version shows up.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from eco.core.result import Err, Ok, Result
from eco.platform.process import run as run_process
from eco.services.release.errors import ReleaseError
from eco.services.release.kinds import ProjectKind
from eco.services.release.poll import (
    SYSTEM_CLOCK,
    Clock,
    Deadline,
    Done,
    Pending,
    PollPolicy,
    poll_until,
)
from eco.services.release.ports import ToolRunner
from eco.services.release.semver import SemVer
from eco.services.release.timeouts import REGISTRY_LOOKUP_TIMEOUT_SECONDS


class AvailabilityPort(Protocol):
    def lookup(
        self,
        kind: ProjectKind,
        *,
        project_dir: Path,
        identity: str,
        version: SemVer,
        timeout: float,
    ) -> Result[bool, str]:
        """Ok(True) once resolvable; Err carries a diagnostic for a failed lookup."""
        ...


@dataclass(frozen=True, slots=True)
class RegistryLookup:
    """Look up through the kind's resolver command (``go list -m``, ``pip index``)."""

    runner: ToolRunner = run_process

    def lookup(
        self,
        kind: ProjectKind,
        *,
        project_dir: Path,
        identity: str,
        version: SemVer,
        timeout: float,
    ) -> Result[bool, str]:
        cmd = kind.availability_command(identity, version)
        if cmd is None:
            return Ok(True)

        # Resolve outside the module itself so a local replace cannot answer for the registry
        result = self.runner(cmd, project_dir.parent, timeout=timeout)
        if isinstance(result, Err):
            err = result.error
            return Err(err.stderr.strip().splitlines()[-1] if err.stderr.strip() else str(err))
        return Ok(kind.is_available(result.value, version))


def wait_for_availability(
    availability: AvailabilityPort,
    kind: ProjectKind,
    *,
    project: str,
    project_dir: Path,
    identity: str,
    version: SemVer,
    policy: PollPolicy,
    clock: Clock = SYSTEM_CLOCK,
    parent: Deadline | None = None,
) -> Result[None, ReleaseError]:
    if kind.availability_command(identity, version) is None:
        return Ok(None)

    def check(deadline: Deadline) -> Done[None] | Pending:
        listed = availability.lookup(
            kind,
            project_dir=project_dir,
            identity=identity,
            version=version,
            timeout=deadline.bound(REGISTRY_LOOKUP_TIMEOUT_SECONDS),
        )
        if isinstance(listed, Err):
            return Pending(listed.error)
        if listed.value:
            return Done(None)
        return Pending(f"{identity} {version.to_tag()} not listed yet")

    return poll_until(
        check,
        policy=policy,
        clock=clock,
        parent=parent,
        on_timeout=lambda attempts, detail: ReleaseError(
            kind="registry_timeout",
            message=(
                f"{project} {version.to_tag()} not available from the registry "
                f"after {attempts} attempt(s)"
            ),
            hint=detail or None,
        ),
    )
