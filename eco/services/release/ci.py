"""CI gate: find the run a pushed tag triggered and wait for its verdict.

Discovery has its own short deadline and first asks the provider for runs
filtered by the tag itself; providers report tag pushes inconsistently, so
when that filter comes back empty the most recent runs are scanned by head
reference instead. The found run is then polled until it completes, under
the longer completion deadline.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from eco.core.result import Err, Ok, Result
from eco.core.structured import as_obj_list, as_str_dict, get_int, get_str
from eco.output.console import ConsoleProtocol, Style
from eco.services.release.errors import ReleaseError
from eco.services.release.gh import gh_json
from eco.services.release.poll import (
    SYSTEM_CLOCK,
    Clock,
    Deadline,
    Done,
    Failed,
    Pending,
    PollPolicy,
    poll_until,
)
from eco.services.release.timeouts import GH_TIMEOUT_SECONDS

CiOutcome = Literal["success", "failure", "cancelled", "timed_out"]

_RUN_FIELDS = "databaseId,url,status,conclusion,headBranch,workflowName,event"
_EXACT_LIMIT = 10
_SCAN_LIMIT = 50


@dataclass(frozen=True, slots=True)
class CiRun:
    id: int
    url: str
    status: str
    conclusion: str | None
    head_branch: str
    workflow: str = ""
    event: str = ""

    @property
    def completed(self) -> bool:
        return self.status == "completed"


class CiPort(Protocol):
    def list_runs(
        self,
        *,
        slug: str,
        branch: str | None,
        workflow: str | None,
        limit: int,
        timeout: float,
    ) -> Result[list[CiRun], ReleaseError]: ...

    def view_run(
        self, *, slug: str, run_id: int, timeout: float
    ) -> Result[CiRun, ReleaseError]: ...


def _parse_run(obj: object) -> CiRun | None:
    d = as_str_dict(obj)
    if d is None:
        return None
    run_id = get_int(d, "databaseId")
    if run_id is None:
        return None
    return CiRun(
        id=run_id,
        url=get_str(d, "url") or "",
        status=(get_str(d, "status") or "").lower(),
        conclusion=(get_str(d, "conclusion") or "").lower() or None,
        head_branch=get_str(d, "headBranch") or "",
        workflow=get_str(d, "workflowName") or "",
        event=get_str(d, "event") or "",
    )


class GhCi:
    """CiPort over the GitHub CLI."""

    def __init__(self, cwd: Path) -> None:
        self.cwd = cwd

    def list_runs(
        self,
        *,
        slug: str,
        branch: str | None,
        workflow: str | None,
        limit: int,
        timeout: float,
    ) -> Result[list[CiRun], ReleaseError]:
        cmd = ["gh", "run", "list", "--repo", slug, "--limit", str(limit), "--json", _RUN_FIELDS]
        if branch is not None:
            cmd.extend(["--branch", branch])
        if workflow is not None:
            cmd.extend(["--workflow", workflow])

        message = f"failed to list CI runs for {slug}"
        obj = gh_json(cwd=self.cwd, cmd=cmd, message=message, timeout=timeout)
        if isinstance(obj, Err):
            return obj
        items = as_obj_list(obj.value)
        if items is None:
            return Err(ReleaseError(kind="tool_failed", message="unexpected gh run list payload"))
        return Ok([r for r in (_parse_run(item) for item in items) if r is not None])

    def view_run(self, *, slug: str, run_id: int, timeout: float) -> Result[CiRun, ReleaseError]:
        cmd = ["gh", "run", "view", str(run_id), "--repo", slug, "--json", _RUN_FIELDS]
        message = f"failed to view CI run {run_id}"
        obj = gh_json(cwd=self.cwd, cmd=cmd, message=message, timeout=timeout)
        if isinstance(obj, Err):
            return obj
        run = _parse_run(obj.value)
        if run is None:
            return Err(ReleaseError(kind="tool_failed", message="unexpected gh run view payload"))
        return Ok(run)


def classify(conclusion: str | None) -> CiOutcome:
    match conclusion:
        case "success" | "neutral" | "skipped":
            return "success"
        case "cancelled":
            return "cancelled"
        case "timed_out":
            return "timed_out"
        case _:
            return "failure"


def _matches_tag(run: CiRun, tag: str) -> bool:
    return run.head_branch in (tag, f"refs/tags/{tag}")


def find_tag_run(
    ci: CiPort,
    *,
    slug: str,
    tag: str,
    workflow: str | None,
    policy: PollPolicy,
    clock: Clock = SYSTEM_CLOCK,
    parent: Deadline | None = None,
) -> Result[CiRun, ReleaseError]:
    def check(deadline: Deadline) -> Done[CiRun] | Pending:
        timeout = deadline.bound(GH_TIMEOUT_SECONDS)
        detail = "no run for tag yet"

        exact = ci.list_runs(
            slug=slug, branch=tag, workflow=workflow, limit=_EXACT_LIMIT, timeout=timeout
        )
        if isinstance(exact, Ok):
            for run in exact.value:
                if _matches_tag(run, tag):
                    return Done(run)
        else:
            detail = exact.error.message

        recent = ci.list_runs(
            slug=slug, branch=None, workflow=workflow, limit=_SCAN_LIMIT, timeout=timeout
        )
        if isinstance(recent, Ok):
            for run in recent.value:
                if _matches_tag(run, tag):
                    return Done(run)
        else:
            detail = recent.error.message

        return Pending(detail)

    return poll_until(
        check,
        policy=policy,
        clock=clock,
        parent=parent,
        on_timeout=lambda attempts, detail: ReleaseError(
            kind="ci_run_not_found",
            message=f"no CI run appeared for {tag} after {attempts} attempt(s)",
            hint=detail or f"check the Actions tab of {slug}",
        ),
    )


def wait_for_run(
    ci: CiPort,
    *,
    slug: str,
    run: CiRun,
    policy: PollPolicy,
    clock: Clock = SYSTEM_CLOCK,
    parent: Deadline | None = None,
) -> Result[CiRun, ReleaseError]:
    def check(deadline: Deadline) -> Done[CiRun] | Pending | Failed:
        viewed = ci.view_run(slug=slug, run_id=run.id, timeout=deadline.bound(GH_TIMEOUT_SECONDS))
        if isinstance(viewed, Err):
            return Pending(viewed.error.message)
        if not viewed.value.completed:
            return Pending(f"status {viewed.value.status or 'unknown'}")
        return Done(viewed.value)

    return poll_until(
        check,
        policy=policy,
        clock=clock,
        parent=parent,
        on_timeout=lambda attempts, detail: ReleaseError(
            kind="ci_timeout",
            message=f"CI run {run.id} did not finish in time",
            hint=f"{run.url} ({detail})" if detail else run.url or None,
        ),
    )


def gate_tag(
    ci: CiPort,
    *,
    slug: str,
    tag: str,
    workflow: str | None,
    discovery: PollPolicy,
    completion: PollPolicy,
    console: ConsoleProtocol,
    clock: Clock = SYSTEM_CLOCK,
    parent: Deadline | None = None,
) -> Result[CiRun, ReleaseError]:
    """Block until the CI run for tag succeeds; any other verdict is an error."""
    found = find_tag_run(
        ci,
        slug=slug,
        tag=tag,
        workflow=workflow,
        policy=discovery,
        clock=clock,
        parent=parent,
    )
    if isinstance(found, Err):
        return found

    run = found.value
    console.print(f"CI run {run.id}: {run.url}", Style.DIM)
    finished = wait_for_run(ci, slug=slug, run=run, policy=completion, clock=clock, parent=parent)
    if isinstance(finished, Err):
        return finished

    outcome = classify(finished.value.conclusion)
    if outcome != "success":
        return Err(
            ReleaseError(
                kind="ci_failed",
                message=f"CI {outcome} for {tag} (conclusion: {finished.value.conclusion})",
                hint=finished.value.url or None,
            )
        )
    return Ok(finished.value)
