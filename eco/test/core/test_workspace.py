"""Tests for eco.core.workspace module."""

from __future__ import annotations

from pathlib import Path

import pytest

from eco.core.result import Err, Ok
from eco.core.workspace import (
    WORKSPACE_ENV_VAR,
    Workspace,
    detect_workspace,
    find_workspace_upward,
    is_workspace_root,
)


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "ecosystem"
    (root / "core" / "internal").mkdir(parents=True)
    (root / "eco.toml").write_text("", encoding="utf-8")
    return root


@pytest.fixture(autouse=True)
def no_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(WORKSPACE_ENV_VAR, raising=False)


class TestMarker:
    def test_is_workspace_root(self, workspace_root: Path) -> None:
        assert is_workspace_root(workspace_root)
        assert not is_workspace_root(workspace_root / "core")

    def test_workspace_properties(self, workspace_root: Path) -> None:
        ws = Workspace(root=workspace_root)
        assert ws.config_path == workspace_root / "eco.toml"
        assert ws.exists()
        assert str(ws) == str(workspace_root)


class TestUpwardSearch:
    def test_finds_from_nested_directory(self, workspace_root: Path) -> None:
        assert find_workspace_upward(workspace_root / "core" / "internal") == workspace_root

    def test_none_outside_workspace(self, tmp_path: Path) -> None:
        outside = tmp_path / "elsewhere"
        outside.mkdir()
        assert find_workspace_upward(outside) is None


class TestDetectWorkspace:
    def test_from_start_dir(self, workspace_root: Path) -> None:
        result = detect_workspace(start_dir=workspace_root / "core")

        assert isinstance(result, Ok)
        assert result.value.root == workspace_root.resolve()

    def test_env_var_takes_precedence(
        self, workspace_root: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(WORKSPACE_ENV_VAR, str(workspace_root))
        other = tmp_path / "other"
        other.mkdir()

        result = detect_workspace(start_dir=other)

        assert isinstance(result, Ok)
        assert result.value.root == workspace_root.resolve()

    def test_invalid_env_var_is_an_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A set but invalid override never falls back to searching."""
        monkeypatch.setenv(WORKSPACE_ENV_VAR, str(tmp_path))

        result = detect_workspace(start_dir=tmp_path)

        assert isinstance(result, Err)
        assert WORKSPACE_ENV_VAR in result.error.message

    def test_not_found(self, tmp_path: Path) -> None:
        result = detect_workspace(start_dir=tmp_path)

        assert isinstance(result, Err)
        assert "eco.toml not found" in result.error.message
        assert result.error.searched_from == tmp_path.resolve()
