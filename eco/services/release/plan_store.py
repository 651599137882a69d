"""Persistence of the release plan and its staging directory.

The plan is one JSON document at a fixed per-user location. Loading is
forward-only and tolerant: unknown fields are ignored and fields missing
from documents written by older versions take their defaults, so the
schema can only grow by adding optional fields.
"""

from __future__ import annotations

import json
import shutil
from dataclasses import asdict
from pathlib import Path
from typing import TypeVar, get_args

from eco.core.result import Err, Ok, Result
from eco.core.structured import (
    StrDict,
    as_obj_list,
    as_str_dict,
    get_bool,
    get_int,
    get_str,
    get_table,
)
from eco.platform.files import atomic_write_text
from eco.platform.paths import release_state_dir
from eco.services.release.errors import ReleaseError
from eco.services.release.model import (
    BumpKind,
    ChangelogState,
    GitSnapshot,
    PlanKind,
    ProjectKindName,
    ReleasePlan,
    RepoReleasePlan,
    ReviewStatus,
)

PLAN_SCHEMA = 1
PLAN_FILE = "release_plan.json"
STAGING_DIR = "staging"


_T = TypeVar("_T", bound=str)


def _choice(value: str | None, allowed: tuple[_T, ...], default: _T) -> _T:
    for item in allowed:
        if value == item:
            return item
    return default


def _repo_to_dict(entry: RepoReleasePlan) -> StrDict:
    data = asdict(entry)
    git = data.pop("git")
    data.update(
        {
            "branch": git["branch"],
            "is_dirty": git["is_dirty"],
            "has_upstream": git["has_upstream"],
            "ahead_count": git["ahead"],
            "behind_count": git["behind"],
            "modified_count": git["modified"],
            "staged_count": git["staged"],
            "untracked_count": git["untracked"],
            "commits_since_last_tag": git["commits_since_tag"],
        }
    )
    return data


def plan_to_dict(plan: ReleasePlan) -> StrDict:
    return {
        "schema": PLAN_SCHEMA,
        "created_at": plan.created_at,
        "type": plan.kind,
        "root_dir": plan.root_dir,
        "parent_version": plan.parent_version,
        "parent_current_version": plan.parent_current_version,
        "release_levels": [list(level) for level in plan.release_levels],
        "repos": {name: _repo_to_dict(entry) for name, entry in sorted(plan.repos.items())},
    }


def _repo_from_dict(d: StrDict) -> RepoReleasePlan:
    def flag(key: str) -> bool:
        return bool(get_bool(d, key))

    def count(key: str) -> int:
        return get_int(d, key) or 0

    return RepoReleasePlan(
        current_version=get_str(d, "current_version") or "",
        suggested_bump=_choice(get_str(d, "suggested_bump"), get_args(BumpKind), "none"),
        suggestion_reasoning=get_str(d, "suggestion_reasoning") or "",
        selected_bump=_choice(get_str(d, "selected_bump"), get_args(BumpKind), "none"),
        next_version=get_str(d, "next_version") or "",
        status=_choice(get_str(d, "status"), get_args(ReviewStatus), "-"),
        selected=flag("selected"),
        project_kind=_choice(get_str(d, "project_kind"), get_args(ProjectKindName), "template"),
        project_path=get_str(d, "project_path") or "",
        changelog_path=get_str(d, "changelog_path") or "",
        changelog_commit=get_str(d, "changelog_commit") or "",
        changelog_hash=get_str(d, "changelog_hash") or "",
        changelog_generated_hash=get_str(d, "changelog_generated_hash") or "",
        changelog_state=_choice(get_str(d, "changelog_state"), get_args(ChangelogState), "none"),
        changelog_promoted=flag("changelog_promoted"),
        tagged=flag("tagged"),
        changelog_pushed=flag("changelog_pushed"),
        ci_passed=flag("ci_passed"),
        tag_pushed=flag("tag_pushed"),
        last_failed_operation=get_str(d, "last_failed_operation") or "",
        git=GitSnapshot(
            branch=get_str(d, "branch") or "",
            is_dirty=flag("is_dirty"),
            has_upstream=flag("has_upstream"),
            ahead=count("ahead_count"),
            behind=count("behind_count"),
            modified=count("modified_count"),
            staged=count("staged_count"),
            untracked=count("untracked_count"),
            commits_since_tag=count("commits_since_last_tag"),
        ),
    )


def plan_from_dict(data: StrDict) -> Result[ReleasePlan, str]:
    repos_obj = get_table(data, "repos")
    if repos_obj is None:
        return Err("repos must be an object")

    repos: dict[str, RepoReleasePlan] = {}
    for name, raw in repos_obj.items():
        d = as_str_dict(raw)
        if d is None:
            return Err(f"repos.{name} must be an object")
        repos[name] = _repo_from_dict(d)

    levels: list[tuple[str, ...]] = []
    for raw_level in as_obj_list(data.get("release_levels")) or []:
        level = as_obj_list(raw_level)
        if level is None:
            return Err("release_levels must be a list of lists")
        levels.append(tuple(str(n) for n in level if isinstance(n, str)))

    return Ok(
        ReleasePlan(
            created_at=get_str(data, "created_at") or "",
            repos=repos,
            release_levels=tuple(levels),
            root_dir=get_str(data, "root_dir") or "",
            kind=_choice(get_str(data, "type"), get_args(PlanKind), "full"),
            parent_version=get_str(data, "parent_version") or "",
            parent_current_version=get_str(data, "parent_current_version") or "",
        )
    )


class ReleasePlanStore:
    """The plan document, staging directory and apply lock under one state dir."""

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir

    @property
    def plan_path(self) -> Path:
        return self.state_dir / PLAN_FILE

    @property
    def staging_dir(self) -> Path:
        return self.state_dir / STAGING_DIR

    def exists(self) -> bool:
        return self.plan_path.is_file()

    def save(self, plan: ReleasePlan) -> Result[None, ReleaseError]:
        payload = json.dumps(plan_to_dict(plan), indent=2) + "\n"
        try:
            atomic_write_text(self.plan_path, payload, encoding="utf-8")
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="tool_failed",
                    message=f"failed to write release plan: {e}",
                    hint=str(self.plan_path),
                )
            )
        return Ok(None)

    def load(self) -> Result[ReleasePlan, ReleaseError]:
        """Load the plan.

        Err(kind="plan_not_found") when there is no active plan, which callers
        treat as information rather than failure; Err(kind="plan_corrupt")
        when the document cannot be understood.
        """
        try:
            text = self.plan_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Err(
                ReleaseError(
                    kind="plan_not_found",
                    message="no active release plan",
                    hint="run: eco release plan",
                )
            )
        except OSError as e:
            return Err(self._corrupt(f"failed to read release plan: {e}"))

        try:
            obj: object = json.loads(text)
        except json.JSONDecodeError as e:
            return Err(self._corrupt(f"invalid JSON in release plan: {e}"))

        data = as_str_dict(obj)
        if data is None:
            return Err(self._corrupt("release plan root must be a JSON object"))

        parsed = plan_from_dict(data)
        if isinstance(parsed, Err):
            return Err(self._corrupt(f"malformed release plan: {parsed.error}"))
        return Ok(parsed.value)

    def clear(self) -> Result[None, ReleaseError]:
        """Delete the plan and the staging directory; missing paths are fine."""
        try:
            self.plan_path.unlink(missing_ok=True)
            if self.staging_dir.exists():
                shutil.rmtree(self.staging_dir)
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="tool_failed",
                    message=f"failed to clear release plan: {e}",
                    hint=str(self.state_dir),
                )
            )
        return Ok(None)

    def _corrupt(self, message: str) -> ReleaseError:
        return ReleaseError(
            kind="plan_corrupt",
            message=message,
            hint=f"inspect or remove {self.plan_path} (eco release clear-plan)",
        )


def default_store() -> ReleasePlanStore:
    return ReleasePlanStore(release_state_dir())
