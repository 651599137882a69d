from __future__ import annotations

from typing import NoReturn, cast, get_args

import typer

from eco.cli.context import build_context
from eco.core.errors import ErrorCode
from eco.core.result import Err
from eco.git.repository import ResetMode
from eco.output.console import ConsoleProtocol, Style
from eco.services.release.applier import ApplyOptions, ReleaseApplier, clear_plan, undo_tags
from eco.services.release.errors import ReleaseError, ReleaseErrorKind
from eco.services.release.model import ReleasePlan, project_state
from eco.services.release.planner import PlanRequest, create_plan
from eco.services.release.rollback import rollback_commits
from eco.services.release.versioning import BumpOverrides


release_app = typer.Typer(add_completion=False, no_args_is_help=True)


_EXIT_CODES: dict[ReleaseErrorKind, ErrorCode] = {
    "graph_cycle": ErrorCode.RELEASE_ERROR,
    "plan_not_found": ErrorCode.USER_ERROR,
    "plan_corrupt": ErrorCode.IO_ERROR,
    "changelog_dirty_conflict": ErrorCode.RELEASE_ERROR,
    "ci_run_not_found": ErrorCode.NETWORK_ERROR,
    "ci_failed": ErrorCode.NETWORK_ERROR,
    "ci_timeout": ErrorCode.NETWORK_ERROR,
    "registry_timeout": ErrorCode.NETWORK_ERROR,
    "tool_failed": ErrorCode.RELEASE_ERROR,
    "invalid_input": ErrorCode.USER_ERROR,
    "project_not_found": ErrorCode.USER_ERROR,
    "no_changes": ErrorCode.USER_ERROR,
    "lock_held": ErrorCode.ENV_ERROR,
}


def _exit(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def _fail(error: ReleaseError) -> NoReturn:
    _exit(error.pretty(), code=_EXIT_CODES.get(error.kind, ErrorCode.RELEASE_ERROR))


def _print_plan(*, plan: ReleasePlan, console: ConsoleProtocol) -> None:
    title = "Release Plan" if plan.kind == "full" else "Release Plan (release candidate)"
    rows: list[list[str]] = []
    for i, level in enumerate(plan.release_levels):
        for name in level:
            entry = plan.repos[name]
            if not entry.selected:
                continue
            rows.append(
                [
                    str(i),
                    name,
                    entry.current_version,
                    entry.selected_bump,
                    entry.next_version,
                    entry.changelog_state,
                    entry.status,
                    project_state(entry),
                    entry.last_failed_operation or "-",
                ]
            )

    console.table(
        title,
        ["Level", "Project", "Current", "Bump", "Next", "Changelog", "Status", "State", "Failed"],
        rows,
    )

    skipped = sorted(name for name, entry in plan.repos.items() if not entry.selected)
    if skipped:
        console.print(f"unchanged: {', '.join(skipped)}", Style.DIM)
    if plan.parent_version:
        current = plan.parent_current_version or "none"
        console.print(f"ecosystem: {current} -> {plan.parent_version}", Style.DIM)
    console.print(f"created: {plan.created_at}", Style.DIM)


def _print_reasoning(*, plan: ReleasePlan, console: ConsoleProtocol) -> None:
    for name in plan.selected_names():
        entry = plan.repos[name]
        console.print(f"{name}: suggested {entry.suggested_bump} ({entry.suggestion_reasoning})")


@release_app.command("plan")
def plan_cmd(
    project: list[str] = typer.Option([], "--project", "-p", help="Restrict to project (repeat)"),
    major: list[str] = typer.Option([], "--major", help="Force a major bump for project"),
    minor: list[str] = typer.Option([], "--minor", help="Force a minor bump for project"),
    patch: list[str] = typer.Option([], "--patch", help="Force a patch bump for project"),
    with_dependents: bool = typer.Option(
        False, "--with-dependents", help="Also release every transitive dependent (patch)"
    ),
    with_deps: bool = typer.Option(
        False, "--with-deps", help="Also plan the ecosystem dependencies of --project"
    ),
    external_changelog: bool = typer.Option(
        False, "--external-changelog", help="Use [changelog].generator from eco.toml"
    ),
    rc: bool = typer.Option(False, "--rc", help="Plan a release candidate (no changelog)"),
) -> None:
    """Compute a release plan and stage changelogs for review."""
    ctx = build_context()
    if with_deps and not project:
        ctx.console.warning("--with-deps has no effect without --project")

    request = PlanRequest(
        projects=frozenset(project) if project else None,
        overrides=BumpOverrides(
            major=frozenset(major),
            minor=frozenset(minor),
            patch=frozenset(patch),
        ),
        with_dependents=with_dependents,
        with_deps=with_deps,
        external_changelog=external_changelog,
        rc=rc,
    )
    plan_r = create_plan(
        root=ctx.workspace.root,
        config=ctx.config,
        store=ctx.store,
        request=request,
        console=ctx.console,
    )
    if isinstance(plan_r, Err):
        _fail(plan_r.error)

    plan = plan_r.value
    _print_reasoning(plan=plan, console=ctx.console)
    _print_plan(plan=plan, console=ctx.console)
    ctx.console.success(f"plan written to {ctx.store.plan_path}")
    if plan.kind == "full":
        ctx.console.print(f"review staged changelogs in {ctx.store.staging_dir}", Style.DIM)
    ctx.console.print("next: eco release apply", Style.DIM)


@release_app.command("apply")
def apply_cmd(
    dry_run: bool = typer.Option(False, "--dry-run", help="Print actions without mutating"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    push: bool | None = typer.Option(
        None, "--push/--no-push", help="Push branches and tags (default: [release].push)"
    ),
    skip_ci: bool = typer.Option(False, "--skip-ci", help="Do not wait for CI runs"),
    skip_parent: bool = typer.Option(
        False, "--skip-parent", help="Do not commit and tag the workspace root"
    ),
    run_tests: bool = typer.Option(False, "--run-tests", help="Run project tests before tagging"),
) -> None:
    """Execute the active release plan (resumable)."""
    ctx = build_context()

    loaded = ctx.store.load()
    if isinstance(loaded, Err):
        _fail(loaded.error)
    plan = loaded.value

    _print_plan(plan=plan, console=ctx.console)
    if not dry_run and not yes:
        if not typer.confirm("Apply this release plan?", default=False):
            _exit("aborted", code=ErrorCode.USER_ERROR)

    options = ApplyOptions.from_config(
        ctx.config,
        dry_run=dry_run,
        push=push,
        skip_ci=skip_ci,
        skip_parent=skip_parent,
        run_tests=run_tests,
    )
    applier = ReleaseApplier(store=ctx.store, console=ctx.console, options=options)
    result = applier.apply(plan)
    if isinstance(result, Err):
        if result.error.kind not in ("lock_held", "project_not_found"):
            ctx.console.print("inspect: eco release status", Style.DIM)
            ctx.console.print("then: eco release undo-tag, or eco release clear-plan", Style.DIM)
        _fail(result.error)

    if not dry_run and not result.value.all_released():
        pending = [n for n in result.value.selected_names() if not result.value.repos[n].released]
        _exit(f"not released: {', '.join(pending)}", code=ErrorCode.RELEASE_ERROR)


@release_app.command("undo-tag")
def undo_tag_cmd(
    projects: list[str] | None = typer.Argument(
        None, help="Projects to undo (default: every tagged, unreleased project)"
    ),
    local_only: bool = typer.Option(False, "--local-only", help="Keep remote tags"),
) -> None:
    """Delete the tags created by the last apply attempt."""
    ctx = build_context()

    loaded = ctx.store.load()
    if isinstance(loaded, Err):
        _fail(loaded.error)

    result = undo_tags(
        plan=loaded.value,
        store=ctx.store,
        console=ctx.console,
        projects=projects or None,
        remote=ctx.config.release.remote,
        delete_remote=not local_only,
    )
    if isinstance(result, Err):
        _fail(result.error)


@release_app.command("clear-plan")
def clear_plan_cmd(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete the release plan and the staged changelogs."""
    ctx = build_context()

    if ctx.store.exists() and not yes:
        if not typer.confirm("Discard the active release plan?", default=False):
            _exit("aborted", code=ErrorCode.USER_ERROR)

    result = clear_plan(store=ctx.store, console=ctx.console)
    if isinstance(result, Err):
        _fail(result.error)


@release_app.command("status")
def status_cmd() -> None:
    """Show the active release plan and per-project progress."""
    ctx = build_context()

    loaded = ctx.store.load()
    if isinstance(loaded, Err):
        if loaded.error.kind == "plan_not_found":
            ctx.console.info("no active release plan")
            return
        _fail(loaded.error)

    _print_plan(plan=loaded.value, console=ctx.console)


@release_app.command("rollback")
def rollback_cmd(
    projects: list[str] | None = typer.Argument(
        None, help="Projects to roll back (default: every selected project)"
    ),
    commits: int = typer.Option(1, "--commits", "-n", help="Number of commits to roll back"),
    mode: str = typer.Option("mixed", "--mode", help="Reset mode: hard, soft or mixed"),
    push: bool = typer.Option(False, "--push", help="Force-push (with lease) the rewound branch"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Reset the plan's repositories by N commits, after tagging a backup."""
    ctx = build_context()

    if mode not in get_args(ResetMode):
        _exit(f"invalid --mode {mode!r}: expected hard, soft or mixed", code=ErrorCode.USER_ERROR)
    reset_mode = cast(ResetMode, mode)

    loaded = ctx.store.load()
    if isinstance(loaded, Err):
        _fail(loaded.error)
    plan = loaded.value

    targets = projects or plan.selected_names()
    ctx.console.warning(f"this rolls back {commits} commit(s) with a {mode} reset")
    if reset_mode == "hard":
        ctx.console.warning("a hard reset discards uncommitted changes")
    ctx.console.print(f"affected: {', '.join(targets) or 'none'}", Style.DIM)
    if not yes:
        if not typer.confirm("Roll back these repositories?", default=False):
            _exit("aborted", code=ErrorCode.USER_ERROR)

    result = rollback_commits(
        plan=plan,
        console=ctx.console,
        commits=commits,
        mode=reset_mode,
        push=push,
        remote=ctx.config.release.remote,
        projects=projects or None,
    )
    if isinstance(result, Err):
        _fail(result.error)
