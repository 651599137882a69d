"""Tests for eco.git.repository module.

git itself is never run: ``run_process`` is replaced with a scripted fake
keyed by the git subcommand arguments.
"""

from __future__ import annotations

from pathlib import Path

import pytest

import eco.git.repository as repo_mod
from eco.core.result import Err, Ok, Result
from eco.git.repository import Repository
from eco.platform.process import ProcessError

_FS = "\x1f"
_RS = "\x1e"


class ScriptedGit:
    """Answers `git -C <path> <args...>` from a table of canned outputs."""

    def __init__(self) -> None:
        self.replies: dict[tuple[str, ...], Result[str, ProcessError]] = {}
        self.calls: list[tuple[str, ...]] = []

    def ok(self, *args: str, stdout: str = "") -> None:
        self.replies[args] = Ok(stdout)

    def fail(self, *args: str, stderr: str, returncode: int = 1) -> None:
        self.replies[args] = Err(ProcessError(("git", *args), returncode, "", stderr))

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        assert cmd[:3] == ["git", "-C", str(cwd)]
        args = tuple(cmd[3:])
        self.calls.append(args)
        return self.replies.get(args, Ok(""))


@pytest.fixture
def git(monkeypatch: pytest.MonkeyPatch) -> ScriptedGit:
    scripted = ScriptedGit()
    monkeypatch.setattr(repo_mod, "run_process", scripted)
    return scripted


@pytest.fixture
def repo(tmp_path: Path) -> Repository:
    return Repository(tmp_path)


class TestStatus:
    def test_parse_branch_and_entries(self, git: ScriptedGit, repo: Repository) -> None:
        git.ok(
            "status",
            "--porcelain=v1",
            "-b",
            stdout="## main...origin/main [ahead 2, behind 1]\nM  go.mod\n M CHANGELOG.md\n?? x\n",
        )

        result = repo.status()

        assert isinstance(result, Ok)
        status = result.value
        assert status.branch == "main"
        assert status.upstream == "origin/main"
        assert (status.ahead, status.behind) == (2, 1)
        assert status.staged_count == 1
        assert status.modified_count == 1
        assert status.untracked_count == 1
        assert not status.is_clean

    def test_clean_without_upstream(self, git: ScriptedGit, repo: Repository) -> None:
        git.ok("status", "--porcelain=v1", "-b", stdout="## No commits yet on main\n")

        result = repo.status()

        assert isinstance(result, Ok)
        assert result.value.branch == "main"
        assert result.value.upstream is None
        assert result.value.is_clean

    def test_failure(self, git: ScriptedGit, repo: Repository) -> None:
        git.fail("status", "--porcelain=v1", "-b", stderr="fatal: not a git repository")

        result = repo.status()

        assert isinstance(result, Err)
        assert result.error.message == "fatal: not a git repository"


class TestTags:
    def test_last_tag(self, git: ScriptedGit, repo: Repository) -> None:
        git.ok("describe", "--tags", "--abbrev=0", stdout="v1.2.0\n")

        assert repo.last_tag() == Ok("v1.2.0")

    def test_last_tag_never_released(self, git: ScriptedGit, repo: Repository) -> None:
        git.fail(
            "describe",
            "--tags",
            "--abbrev=0",
            stderr="fatal: No names found, cannot describe anything.",
            returncode=128,
        )

        assert repo.last_tag() == Ok(None)

    def test_last_tag_other_failure(self, git: ScriptedGit, repo: Repository) -> None:
        git.fail("describe", "--tags", "--abbrev=0", stderr="fatal: bad object", returncode=128)

        result = repo.last_tag()

        assert isinstance(result, Err)
        assert result.error.returncode == 128

    def test_list_tags_with_pattern(self, git: ScriptedGit, repo: Repository) -> None:
        git.ok("tag", "--list", "v2026.*", stdout="v2026.09.12\nv2026.10.01\n\n")

        assert repo.list_tags("v2026.*") == Ok(["v2026.09.12", "v2026.10.01"])
        assert repo.tag_exists("v2026.*") is False

    def test_create_annotated_tag(self, git: ScriptedGit, repo: Repository) -> None:
        assert repo.create_tag("v1.0.0", "core v1.0.0") == Ok(None)
        assert git.calls == [("tag", "-a", "v1.0.0", "-m", "core v1.0.0")]

    def test_delete_missing_tag(self, git: ScriptedGit, repo: Repository) -> None:
        git.fail("tag", "-d", "v1.0.0", stderr="error: tag 'v1.0.0' not found.")

        assert repo.delete_tag("v1.0.0") == Ok(False)

    def test_delete_tag(self, git: ScriptedGit, repo: Repository) -> None:
        assert repo.delete_tag("v1.0.0") == Ok(True)

    def test_delete_remote_tag_missing(self, git: ScriptedGit, repo: Repository) -> None:
        git.fail(
            "push",
            "origin",
            ":refs/tags/v1.0.0",
            stderr="error: unable to delete 'v1.0.0': remote ref does not exist",
        )

        assert repo.delete_remote_tag("origin", "v1.0.0") == Ok(False)

    def test_remote_tag_exists(self, git: ScriptedGit, repo: Repository) -> None:
        git.ok(
            "ls-remote",
            "--tags",
            "origin",
            "refs/tags/v1.0.0",
            stdout="abc123\trefs/tags/v1.0.0\n",
        )

        assert repo.remote_tag_exists("origin", "v1.0.0") == Ok(True)
        assert repo.remote_tag_exists("origin", "v9.9.9") == Ok(False)


class TestLog:
    def test_parse_records(self, git: ScriptedGit, repo: Repository) -> None:
        stdout = (
            f"aaaaaaa111{_FS}2026-10-01T10:00:00+00:00{_FS}feat: retries\n\nBody line\n{_RS}\n"
            f"bbbbbbb222{_FS}2026-09-30T10:00:00+00:00{_FS}fix: close handles\n{_RS}\n"
        )
        git.ok("log", "v1.0.0..HEAD", f"--format=%H{_FS}%cI{_FS}%B{_RS}", stdout=stdout)

        result = repo.log_since("v1.0.0")

        assert isinstance(result, Ok)
        first, second = result.value
        assert first.sha == "aaaaaaa111"
        assert first.short_sha == "aaaaaaa"
        assert first.subject == "feat: retries"
        assert first.body == "Body line"
        assert second.subject == "fix: close handles"
        assert second.body == ""

    def test_all_history_without_tag(self, git: ScriptedGit, repo: Repository) -> None:
        assert repo.log_since(None) == Ok([])
        assert git.calls[0][:2] == ("log", "HEAD")

    def test_empty_repository(self, git: ScriptedGit, repo: Repository) -> None:
        git.fail(
            "log",
            "HEAD",
            f"--format=%H{_FS}%cI{_FS}%B{_RS}",
            stderr="fatal: your current branch 'main' does not have any commits yet",
            returncode=128,
        )

        assert repo.log_since(None) == Ok([])


class TestCommit:
    def test_commit_returns_head(self, git: ScriptedGit, repo: Repository) -> None:
        git.ok("rev-parse", "HEAD", stdout="0123456789abcdef\n")

        assert repo.commit("chore(release): v1.0.0") == Ok("0123456789abcdef")

    def test_has_staged_changes(self, git: ScriptedGit, repo: Repository) -> None:
        assert repo.has_staged_changes() is False

        git.fail("diff", "--cached", "--quiet", stderr="", returncode=1)
        assert repo.has_staged_changes() is True

    def test_current_branch_detached(self, git: ScriptedGit, repo: Repository) -> None:
        git.ok("rev-parse", "--abbrev-ref", "HEAD", stdout="HEAD\n")

        assert repo.current_branch() is None


class TestRemoteSlug:
    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/example/core.git",
            "https://github.com/example/core",
            "git@github.com:example/core.git",
            "ssh://git@github.com/example/core.git",
        ],
    )
    def test_github_urls(self, git: ScriptedGit, repo: Repository, url: str) -> None:
        git.ok("remote", "get-url", "origin", stdout=url + "\n")

        assert repo.remote_slug("origin") == Ok("example/core")

    def test_non_github_remote(self, git: ScriptedGit, repo: Repository) -> None:
        git.ok("remote", "get-url", "origin", stdout="https://gitlab.com/example/core.git\n")

        result = repo.remote_slug("origin")

        assert isinstance(result, Err)
        assert "not a GitHub remote" in result.error.message
