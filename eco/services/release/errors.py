from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

from eco.git.repository import GitError
from eco.platform.process import ProcessError

ReleaseErrorKind = Literal[
    "graph_cycle",
    "plan_not_found",
    "plan_corrupt",
    "changelog_dirty_conflict",
    "ci_run_not_found",
    "ci_failed",
    "ci_timeout",
    "registry_timeout",
    "tool_failed",
    "invalid_input",
    "project_not_found",
    "no_changes",
    "lock_held",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    kind: ReleaseErrorKind
    message: str
    hint: str | None = None
    project: str | None = None
    step: str | None = None

    def at(self, *, project: str, step: str) -> ReleaseError:
        """Attach the project and apply step the failure happened in."""
        return replace(self, project=project, step=step)

    def pretty(self) -> str:
        prefix = ""
        if self.project is not None:
            prefix = f"{self.project}: "
            if self.step is not None:
                prefix = f"{self.project} [{self.step}]: "
        text = f"{prefix}{self.message}"
        if self.hint:
            text += f" (hint: {self.hint})"
        return text


def tool_failed(message: str, error: ProcessError | GitError) -> ReleaseError:
    """Wrap a failed git/gh/go/pip invocation, keeping its diagnostic output."""
    if isinstance(error, ProcessError):
        return ReleaseError(kind="tool_failed", message=message, hint=error.diagnostic)
    return ReleaseError(kind="tool_failed", message=message, hint=error.message or None)
