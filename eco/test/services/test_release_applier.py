from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from eco.core.config import Config
from eco.core.result import Err, Ok
from eco.git.repository import GitError
from eco.output.console import MockConsole
from eco.services.release.applier import (
    ApplyOptions,
    ApplyPorts,
    ProjectRun,
    ReleaseApplier,
    clear_plan,
    next_step,
    undo_tags,
)
from eco.services.release.model import ReleasePlan, RepoReleasePlan
from eco.services.release.plan_store import ReleasePlanStore
from eco.services.release.planner import PlanRequest, create_plan
from eco.services.release.poll import Backoff, PollPolicy
from eco.test.services._fakes import (
    FakeAvailability,
    FakeCi,
    FakeClock,
    FakeGit,
    FakeRunner,
    lib_and_app,
)

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)
GREEN = {"example/lib-a@v0.1.1": "success", "example/app-b@v0.1.1": "success"}


class _Env:
    def __init__(self, tmp_path: Path, *, with_dependents: bool = True) -> None:
        self.root = tmp_path / "ws"
        self.git = FakeGit()
        self.events = self.git.events
        lib_and_app(self.root, self.git)
        self.store = ReleasePlanStore(tmp_path / "state")
        self.console = MockConsole()
        self.ci = FakeCi(conclusions=dict(GREEN), events=self.events)
        self.availability = FakeAvailability(events=self.events)
        self.clock = FakeClock()
        self.runner = FakeRunner()

        planned = create_plan(
            root=self.root,
            config=Config(),
            store=self.store,
            request=PlanRequest(with_dependents=with_dependents),
            console=self.console,
            vcs=self.git,
            now=NOW,
        )
        assert isinstance(planned, Ok)
        self.plan = planned.value

    def applier(self, **overrides: object) -> ReleaseApplier:
        fast = PollPolicy(backoff=Backoff(1.0), timeout=5.0)
        options = ApplyOptions(
            ci_discovery=fast,
            ci_completion=fast,
            registry=PollPolicy(
                backoff=Backoff(1.0, multiplier=2.0, cap=4.0), timeout=30.0, max_attempts=5
            ),
        )
        options = replace(options, **overrides)  # type: ignore[arg-type]
        ports = ApplyPorts(
            vcs=self.git,
            ci=lambda _path: self.ci,
            availability=self.availability,
            runner=self.runner,
            clock=self.clock,
        )
        return ReleaseApplier(store=self.store, console=self.console, options=options, ports=ports)

    def stored(self) -> ReleasePlan:
        loaded = self.store.load()
        assert isinstance(loaded, Ok)
        return loaded.value


def _entry(**kwargs: object) -> RepoReleasePlan:
    base = RepoReleasePlan(
        current_version="v0.1.0",
        suggested_bump="patch",
        suggestion_reasoning="1 fix/perf",
        selected_bump="patch",
        next_version="v0.1.1",
        selected=True,
    )
    return replace(base, **kwargs)  # type: ignore[arg-type]


def _run(entry: RepoReleasePlan) -> ProjectRun:
    plan = ReleasePlan(created_at="", repos={"x": entry}, release_levels=(("x",),), root_dir="")
    return ProjectRun(plan=plan, name="x")


def test_next_step_follows_progress_flags() -> None:
    assert next_step(_run(_entry())) == "tag"
    assert next_step(_run(_entry(tagged=True))) == "push"
    assert next_step(_run(_entry(tagged=True, changelog_pushed=True))) == "ci_wait"
    assert (
        next_step(_run(_entry(tagged=True, changelog_pushed=True, ci_passed=True)))
        == "registry_wait"
    )
    done = _entry(tagged=True, changelog_pushed=True, ci_passed=True, tag_pushed=True)
    assert next_step(_run(done)) == "done"


def test_next_step_without_push_stops_after_tag() -> None:
    assert next_step(_run(_entry()), push=False) == "tag"
    assert next_step(_run(_entry(tagged=True)), push=False) == "done"


def test_apply_releases_levels_in_order_and_bumps_dependent(tmp_path: Path) -> None:
    env = _Env(tmp_path)

    result = env.applier().apply(env.plan)

    assert isinstance(result, Ok)
    assert result.value.all_released()
    events = env.events
    lib_tag = events.index("lib-a: tag v0.1.1")
    lib_available = events.index("available example.com/lib-a v0.1.1")
    bump = events.index("app-b: commit chore(deps): bump lib-a to v0.1.1")
    app_tag = events.index("app-b: tag v0.1.1")
    assert lib_tag < events.index("ci example/lib-a v0.1.1 success") < lib_available
    assert lib_available < bump < app_tag

    go_mod = (env.root / "app-b" / "go.mod").read_text(encoding="utf-8")
    assert "example.com/lib-a v0.1.1" in go_mod
    assert "ws: tag v2026.10.01" in events
    assert "ws: push tag v2026.10.01" in events
    assert not env.store.exists()
    assert env.console.find("OK released 2 project(s)")


def test_apply_commits_promoted_changelog_before_tagging(tmp_path: Path) -> None:
    env = _Env(tmp_path)

    result = env.applier().apply(env.plan)

    assert isinstance(result, Ok)
    message = "lib-a: commit docs(changelog): update CHANGELOG.md for v0.1.1"
    assert env.events.index(message) < env.events.index("lib-a: tag v0.1.1")
    changelog = (env.root / "lib-a" / "CHANGELOG.md").read_text(encoding="utf-8")
    assert changelog.startswith("## v0.1.1 (2026-10-01)")
    assert "handle empty input" in changelog


def test_apply_runs_tidy_after_rewriting_dependent(tmp_path: Path) -> None:
    env = _Env(tmp_path)

    result = env.applier().apply(env.plan)

    assert isinstance(result, Ok)
    assert (["go", "mod", "tidy"], env.root / "app-b") in env.runner.calls


def test_ci_failure_halts_before_dependents(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.ci.conclusions["example/lib-a@v0.1.1"] = "failure"

    result = env.applier().apply(env.plan)

    assert isinstance(result, Err)
    assert result.error.kind == "ci_failed"
    assert result.error.project == "lib-a"
    assert result.error.step == "ci_wait"
    assert "app-b: tag v0.1.1" not in env.events
    assert "example.com/lib-a v0.1.0" in (env.root / "app-b" / "go.mod").read_text(
        encoding="utf-8"
    )

    stored = env.stored()
    lib = stored.repos["lib-a"]
    assert lib.tagged and lib.changelog_pushed
    assert not lib.ci_passed
    assert lib.last_failed_operation == "ci_wait"
    assert not stored.repos["app-b"].tagged


def test_undo_tag_and_clear_plan_after_failure(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.ci.conclusions["example/lib-a@v0.1.1"] = "failure"
    assert isinstance(env.applier().apply(env.plan), Err)

    undone = undo_tags(plan=env.stored(), store=env.store, console=env.console, vcs=env.git)

    assert isinstance(undone, Ok)
    lib = env.git(env.root / "lib-a")
    assert lib.tags == ["v0.1.0"]
    assert lib.remote_tags == {"v0.1.0"}
    assert not env.stored().repos["lib-a"].tagged

    cleared = clear_plan(store=env.store, console=env.console)
    assert isinstance(cleared, Ok)
    assert not env.store.exists()
    assert not env.store.staging_dir.exists()
    assert env.console.find("OK release plan cleared")


def test_undo_tag_leaves_untagged_projects_alone(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.ci.conclusions["example/lib-a@v0.1.1"] = "failure"
    assert isinstance(env.applier().apply(env.plan), Err)

    undone = undo_tags(
        plan=env.stored(),
        store=env.store,
        console=env.console,
        projects=["app-b"],
        vcs=env.git,
    )

    assert isinstance(undone, Ok)
    assert env.git(env.root / "lib-a").tags == ["v0.1.0", "v0.1.1"]
    assert env.console.find("app-b: apply did not tag v0.1.1; nothing to undo")


def test_undo_tag_rejects_unknown_project(tmp_path: Path) -> None:
    env = _Env(tmp_path)

    undone = undo_tags(
        plan=env.plan, store=env.store, console=env.console, projects=["nope"], vcs=env.git
    )

    assert isinstance(undone, Err)
    assert undone.error.kind == "project_not_found"


def test_apply_resumes_from_first_incomplete_step(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.ci.conclusions["example/lib-a@v0.1.1"] = "failure"
    assert isinstance(env.applier().apply(env.plan), Err)

    env.ci.conclusions["example/lib-a@v0.1.1"] = "success"
    result = env.applier().apply(env.stored())

    assert isinstance(result, Ok)
    assert result.value.all_released()
    assert env.events.count("lib-a: tag v0.1.1") == 1
    assert env.events.count("lib-a: push tag v0.1.1") == 1
    assert "app-b: tag v0.1.1" in env.events


def test_apply_skips_already_released_projects(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.availability.delay = 100
    first = env.applier().apply(env.plan)
    assert isinstance(first, Err)
    assert first.error.kind == "registry_timeout"

    plan = env.stored()
    lib = plan.repos["lib-a"]
    plan = plan.with_repo("lib-a", replace(lib, ci_passed=True, tag_pushed=True))
    env.availability.delay = 0
    env.events.clear()

    result = env.applier().apply(plan)

    assert isinstance(result, Ok)
    assert not any(e.startswith("lib-a: tag") for e in env.events)
    assert env.console.find("lib-a: v0.1.1 already released")


def test_registry_wait_backs_off_before_dependents(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.availability.delay = 2

    result = env.applier().apply(env.plan)

    assert isinstance(result, Ok)
    assert env.clock.sleeps == [1.0, 2.0]


def test_registry_timeout_keeps_dependents_untouched(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.availability.delay = 100

    result = env.applier().apply(env.plan)

    assert isinstance(result, Err)
    assert result.error.kind == "registry_timeout"
    assert result.error.step == "registry_wait"
    assert env.availability.lookups == 5
    assert not any(e.startswith("app-b: commit") for e in env.events)
    assert env.stored().repos["lib-a"].ci_passed
    assert not env.stored().repos["lib-a"].tag_pushed


def test_push_failure_is_recorded(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    lib = env.git(env.root / "lib-a")
    lib.failures["push"] = GitError(command="push", message="rejected (non-fast-forward)")

    result = env.applier().apply(env.plan)

    assert isinstance(result, Err)
    assert result.error.step == "push"
    assert result.error.hint == "rejected (non-fast-forward)"
    stored = env.stored().repos["lib-a"]
    assert stored.tagged
    assert not stored.changelog_pushed
    assert stored.last_failed_operation == "push"


def test_dry_run_changes_nothing(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    before = env.store.plan_path.read_text(encoding="utf-8")
    go_mod = (env.root / "app-b" / "go.mod").read_text(encoding="utf-8")

    result = env.applier(dry_run=True).apply(env.plan)

    assert isinstance(result, Ok)
    assert env.events == []
    assert env.runner.calls == []
    assert env.store.plan_path.read_text(encoding="utf-8") == before
    assert (env.root / "app-b" / "go.mod").read_text(encoding="utf-8") == go_mod
    assert not (env.root / "lib-a" / "CHANGELOG.md").exists()
    assert env.console.find("[dry-run] git tag -a v0.1.1 -m 'Release v0.1.1' in lib-a")
    assert env.console.find("info: dry run complete: nothing was changed")


def test_no_push_tags_locally_and_pins_dependents(tmp_path: Path) -> None:
    env = _Env(tmp_path)

    result = env.applier(push=False).apply(env.plan)

    assert isinstance(result, Ok)
    assert not result.value.all_released()
    assert "lib-a: tag v0.1.1" in env.events
    assert "app-b: commit chore(deps): bump lib-a to v0.1.1" in env.events
    assert "app-b: tag v0.1.1" in env.events
    assert not any(" push" in e for e in env.events)
    assert env.runner.calls == []
    assert env.store.exists()
    assert env.console.has_warning()


def test_unselected_dependent_is_pinned_and_pushed(tmp_path: Path) -> None:
    env = _Env(tmp_path, with_dependents=False)
    assert not env.plan.is_selected("app-b")

    result = env.applier().apply(env.plan)

    assert isinstance(result, Ok)
    assert "app-b: commit chore(deps): bump lib-a to v0.1.1" in env.events
    assert "app-b: push main" in env.events
    assert "app-b: tag v0.1.1" not in env.events


def test_failing_tests_stop_before_tagging(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.runner.failing["go test ./..."] = "FAIL example.com/lib-a"

    result = env.applier(run_tests=True).apply(env.plan)

    assert isinstance(result, Err)
    assert result.error.step == "tests"
    assert result.error.hint == "FAIL example.com/lib-a"
    assert env.events == []
    assert env.stored().repos["lib-a"].last_failed_operation == "tests"


def test_skip_ci_does_not_query_runs(tmp_path: Path) -> None:
    env = _Env(tmp_path)

    result = env.applier(skip_ci=True).apply(env.plan)

    assert isinstance(result, Ok)
    assert env.ci.list_calls == 0
    assert env.console.find("lib-a: no CI gate")


def test_skip_parent_leaves_root_untagged(tmp_path: Path) -> None:
    env = _Env(tmp_path)

    result = env.applier(skip_parent=True).apply(env.plan)

    assert isinstance(result, Ok)
    assert not any(e.startswith("ws:") for e in env.events)


def test_apply_approves_pending_entries(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    env.ci.conclusions["example/lib-a@v0.1.1"] = "failure"

    env.applier().apply(env.plan)

    stored = env.stored()
    assert stored.repos["lib-a"].status == "Approved"
    assert stored.repos["app-b"].status == "Approved"


def test_apply_refuses_while_lock_is_held(tmp_path: Path) -> None:
    env = _Env(tmp_path)
    lock = env.store.state_dir / "apply.lock"
    lock.write_text('{"pid": 1, "host": "build-server", "started_at": "x"}', encoding="utf-8")

    result = env.applier().apply(env.plan)

    assert isinstance(result, Err)
    assert result.error.kind == "lock_held"
    assert env.events == []
