from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

import eco.cli.commands.release_cmd as release_cmd
from eco import __version__
from eco.cli.app import app
from eco.cli.context import CLIContext
from eco.core.config import Config
from eco.core.errors import ErrorCode
from eco.core.result import Err, Ok
from eco.core.workspace import WORKSPACE_ENV_VAR, Workspace
from eco.output.console import MockConsole
from eco.platform.paths import STATE_DIR_ENV_VAR, clear_caches
from eco.services.release.plan_store import ReleasePlanStore
from eco.services.release.errors import ReleaseError
from eco.services.release.planner import PlanRequest, create_plan
from eco.test.services._fakes import FakeGit, lib_and_app, write_workspace


def _ctx(tmp_path: Path, root: Path | None = None) -> CLIContext:
    return CLIContext(
        workspace=Workspace(root=root or write_workspace(tmp_path / "ws")),
        config=Config(),
        console=MockConsole(),
        store=ReleasePlanStore(tmp_path / "state"),
    )


def _use(monkeypatch: pytest.MonkeyPatch, ctx: CLIContext) -> MockConsole:
    monkeypatch.setattr(release_cmd, "build_context", lambda: ctx)
    assert isinstance(ctx.console, MockConsole)
    return ctx.console


def _seed_plan(ctx: CLIContext) -> None:
    git = FakeGit()
    lib_and_app(ctx.workspace.root, git)
    result = create_plan(
        root=ctx.workspace.root,
        config=ctx.config,
        store=ctx.store,
        request=PlanRequest(),
        console=MockConsole(),
        vcs=git,
        now=datetime(2026, 10, 1, 12, 0, tzinfo=UTC),
    )
    assert isinstance(result, Ok)


def test_status_without_plan_is_informational(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    console = _use(monkeypatch, _ctx(tmp_path))

    release_cmd.status_cmd()

    assert console.messages == ["info: no active release plan"]


def test_status_prints_selected_projects(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ctx = _ctx(tmp_path, root=tmp_path / "ws")
    _seed_plan(ctx)
    console = _use(monkeypatch, ctx)

    release_cmd.status_cmd()

    assert console.messages[0] == "Release Plan"
    assert console.find("0 | lib-a | v0.1.0 | patch | v0.1.1 | clean | Pending Review | pending")
    assert console.find("unchanged: app-b")


def test_status_with_corrupt_plan_exits_io_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    ctx = _ctx(tmp_path)
    ctx.store.plan_path.parent.mkdir(parents=True)
    ctx.store.plan_path.write_text("{not json", encoding="utf-8")
    _use(monkeypatch, ctx)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.status_cmd()

    assert exc.value.exit_code == int(ErrorCode.IO_ERROR)


def test_clear_plan_with_yes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ctx = _ctx(tmp_path, root=tmp_path / "ws")
    _seed_plan(ctx)
    console = _use(monkeypatch, ctx)

    release_cmd.clear_plan_cmd(yes=True)

    assert not ctx.store.exists()
    assert not ctx.store.staging_dir.exists()
    assert console.find("release plan cleared")


def test_clear_plan_declined_keeps_plan(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ctx = _ctx(tmp_path, root=tmp_path / "ws")
    _seed_plan(ctx)
    _use(monkeypatch, ctx)
    monkeypatch.setattr(release_cmd.typer, "confirm", lambda *_a, **_k: False)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.clear_plan_cmd(yes=False)

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert ctx.store.exists()


def test_plan_without_projects_exits_user_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    ctx = _ctx(tmp_path)
    _use(monkeypatch, ctx)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.plan_cmd(
            project=[],
            major=[],
            minor=[],
            patch=[],
            with_dependents=False,
            with_deps=False,
            external_changelog=False,
            rc=False,
        )

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert not ctx.store.exists()


def test_plan_with_deps_is_forwarded(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    requests: list[PlanRequest] = []

    def fake_create_plan(*, request: PlanRequest, **_: object) -> Err[ReleaseError]:
        requests.append(request)
        return Err(ReleaseError(kind="no_changes", message="nothing to release"))

    _use(monkeypatch, _ctx(tmp_path))
    monkeypatch.setattr(release_cmd, "create_plan", fake_create_plan)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.plan_cmd(
            project=["app-b"],
            major=[],
            minor=[],
            patch=[],
            with_dependents=False,
            with_deps=True,
            external_changelog=False,
            rc=False,
        )

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert requests[0].with_deps
    assert requests[0].projects == frozenset({"app-b"})


def test_rollback_rejects_unknown_mode(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ctx = _ctx(tmp_path, root=tmp_path / "ws")
    _seed_plan(ctx)
    _use(monkeypatch, ctx)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.rollback_cmd(projects=None, commits=1, mode="keep", push=False, yes=True)

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)


def test_rollback_forwards_options(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ctx = _ctx(tmp_path, root=tmp_path / "ws")
    _seed_plan(ctx)
    console = _use(monkeypatch, ctx)
    calls: list[dict[str, object]] = []

    def fake_rollback(**kwargs: object) -> Ok[dict[str, str]]:
        calls.append(kwargs)
        return Ok({})

    monkeypatch.setattr(release_cmd, "rollback_commits", fake_rollback)

    release_cmd.rollback_cmd(projects=None, commits=2, mode="hard", push=True, yes=True)

    assert len(calls) == 1
    call = calls[0]
    assert (call["commits"], call["mode"], call["push"]) == (2, "hard", True)
    assert call["remote"] == "origin"
    assert call["projects"] is None
    assert console.find("affected: lib-a")
    assert console.find("a hard reset discards uncommitted changes")


def test_rollback_without_plan_exits_user_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use(monkeypatch, _ctx(tmp_path))

    with pytest.raises(typer.Exit) as exc:
        release_cmd.rollback_cmd(projects=None, commits=1, mode="mixed", push=False, yes=True)

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)


def test_apply_without_plan_exits_user_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use(monkeypatch, _ctx(tmp_path))

    with pytest.raises(typer.Exit) as exc:
        release_cmd.apply_cmd(
            dry_run=True,
            yes=True,
            push=None,
            skip_ci=False,
            skip_parent=False,
            run_tests=False,
        )

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)


def test_version_flag() -> None:
    result = CliRunner().invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_invalid_workspace_flag(tmp_path: Path) -> None:
    result = CliRunner().invoke(app, ["--workspace", str(tmp_path), "release", "status"])

    assert result.exit_code == int(ErrorCode.ENV_ERROR)


def test_state_dir_flag_selects_plan_location(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = write_workspace(tmp_path / "ws")
    monkeypatch.setenv(WORKSPACE_ENV_VAR, str(root))
    monkeypatch.setenv(STATE_DIR_ENV_VAR, str(tmp_path / "unused"))
    clear_caches()
    state = tmp_path / "state"
    (state / "release").mkdir(parents=True)
    (state / "release" / "release_plan.json").write_text("[]", encoding="utf-8")

    result = CliRunner().invoke(app, ["--state-dir", str(state), "release", "status"])
    clear_caches()

    assert result.exit_code == int(ErrorCode.IO_ERROR)
    assert "release_plan.json" in result.output
