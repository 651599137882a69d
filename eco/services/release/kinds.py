"""Project kinds.

A project's kind is decided once, by which manifest file it carries, and
from then on the engine only talks to it through the narrow ``ProjectKind``
capability interface: read the identity and declared dependencies, pin a
dependency to a released version, tidy after a rewrite, and query the
package registry for a published version.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any, ClassVar, Protocol, cast

import tomlkit
from tomlkit.exceptions import ParseError
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from eco.core.result import Err, Ok, Result
from eco.services.release.errors import ReleaseError
from eco.services.release.model import ProjectKindName
from eco.services.release.semver import SemVer

__all__ = [
    "GoModule",
    "KINDS",
    "ProjectKind",
    "PythonPackage",
    "TemplateProject",
    "detect_kind",
    "kind_by_name",
]


class ProjectKind(Protocol):
    name: ClassVar[ProjectKindName]
    manifest: ClassVar[str]

    def identity(self, project_dir: Path) -> Result[str, ReleaseError]: ...

    def parse_dependencies(self, project_dir: Path) -> Result[tuple[str, ...], ReleaseError]: ...

    def rewrite_requirement(
        self, project_dir: Path, dependency: str, version: SemVer
    ) -> Result[bool, ReleaseError]:
        """Pin ``dependency`` to ``version``; Ok(False) when nothing changed."""
        ...

    def tidy_command(self) -> list[str] | None: ...

    def test_command(self) -> list[str] | None: ...

    def manifest_files(self, project_dir: Path) -> list[str]:
        """Files a requirement rewrite (plus tidy) may touch, relative to project_dir."""
        ...

    def availability_command(self, identity: str, version: SemVer) -> list[str] | None:
        """Command that succeeds once ``version`` is resolvable; None means always available."""
        ...

    def is_available(self, output: str, version: SemVer) -> bool: ...


def _read_text(path: Path) -> Result[str, ReleaseError]:
    try:
        return Ok(path.read_text(encoding="utf-8"))
    except OSError as e:
        return Err(ReleaseError(kind="invalid_input", message=f"cannot read {path}: {e}"))


def _write_text(path: Path, text: str) -> Result[None, ReleaseError]:
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        return Err(ReleaseError(kind="tool_failed", message=f"cannot write {path}: {e}"))
    return Ok(None)


# -----------------------------------------------------------------------------
# Go modules (go.mod)
# -----------------------------------------------------------------------------

_MODULE_RE = re.compile(r"^\s*module\s+(\S+)")
_REQUIRE_LINE_RE = re.compile(
    r"^(?P<indent>\s*)(?P<path>[^\s()]+)\s+(?P<version>v\S+)(?P<rest>.*)$"
)


def _iter_go_requires(lines: list[str]) -> Iterator[tuple[int, str, bool]]:
    """Yield (line index, requirement text, in_block) for every require entry."""
    in_block = False
    for i, line in enumerate(lines):
        stripped = line.strip()
        if in_block:
            if stripped.startswith(")"):
                in_block = False
                continue
            if stripped and not stripped.startswith("//"):
                yield (i, line, True)
            continue
        if stripped.startswith("require ("):
            in_block = True
        elif stripped.startswith("require "):
            yield (i, line.replace("require", "", 1), False)


def _drop_go_replace(lines: list[str], module: str) -> list[str]:
    out: list[str] = []
    in_block = False
    for line in lines:
        stripped = line.strip()
        if in_block:
            if stripped.startswith(")"):
                in_block = False
            elif stripped.split(" ", 1)[0] == module:
                continue
        elif stripped.startswith("replace ("):
            in_block = True
        elif stripped.startswith("replace ") and stripped.split()[1] == module:
            continue
        out.append(line)
    return out


class GoModule:
    name: ClassVar[ProjectKindName] = "go"
    manifest: ClassVar[str] = "go.mod"

    def identity(self, project_dir: Path) -> Result[str, ReleaseError]:
        text = _read_text(project_dir / self.manifest)
        if isinstance(text, Err):
            return text
        for line in text.value.splitlines():
            m = _MODULE_RE.match(line)
            if m is not None:
                return Ok(m.group(1))
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"missing module directive in {project_dir / self.manifest}",
            )
        )

    def parse_dependencies(self, project_dir: Path) -> Result[tuple[str, ...], ReleaseError]:
        text = _read_text(project_dir / self.manifest)
        if isinstance(text, Err):
            return text
        deps: list[str] = []
        for _, entry, _ in _iter_go_requires(text.value.splitlines()):
            m = _REQUIRE_LINE_RE.match(entry)
            if m is not None:
                deps.append(m.group("path"))
        return Ok(tuple(deps))

    def rewrite_requirement(
        self, project_dir: Path, dependency: str, version: SemVer
    ) -> Result[bool, ReleaseError]:
        path = project_dir / self.manifest
        text = _read_text(path)
        if isinstance(text, Err):
            return text

        lines = text.value.splitlines()
        changed = False
        for i, entry, in_block in _iter_go_requires(lines):
            m = _REQUIRE_LINE_RE.match(entry)
            if m is None or m.group("path") != dependency:
                continue
            if m.group("version") == version.to_tag():
                continue
            body = f"{m.group('path')} {version.to_tag()}{m.group('rest')}"
            lines[i] = f"{m.group('indent')}{body}" if in_block else f"require {body}"
            changed = True

        without_replace = _drop_go_replace(lines, dependency)
        changed = changed or len(without_replace) != len(lines)
        if not changed:
            return Ok(False)

        trailing = "\n" if text.value.endswith("\n") else ""
        written = _write_text(path, "\n".join(without_replace) + trailing)
        if isinstance(written, Err):
            return written
        return Ok(True)

    def tidy_command(self) -> list[str] | None:
        return ["go", "mod", "tidy"]

    def test_command(self) -> list[str] | None:
        return ["go", "test", "./..."]

    def manifest_files(self, project_dir: Path) -> list[str]:
        files = [self.manifest]
        if (project_dir / "go.sum").is_file():
            files.append("go.sum")
        return files

    def availability_command(self, identity: str, version: SemVer) -> list[str] | None:
        return ["go", "list", "-m", f"{identity}@{version.to_tag()}"]

    def is_available(self, output: str, version: SemVer) -> bool:
        return version.to_tag() in output.split()


# -----------------------------------------------------------------------------
# Python packages (pyproject.toml)
# -----------------------------------------------------------------------------


def _requirement_name(dep: object) -> str | None:
    if not isinstance(dep, str):
        return None
    try:
        return canonicalize_name(Requirement(dep).name)
    except InvalidRequirement:
        return None


def _pin(dep: str, version: SemVer) -> str:
    req = Requirement(dep)
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker is not None else ""
    return f"{req.name}{extras}=={version.to_plain()}{marker}"


def _dependency_lists(doc: Any) -> Iterator[list[Any]]:
    """Every PEP 508 list in a pyproject: dependencies, optional groups, dependency-groups."""
    project = doc.get("project")
    if isinstance(project, dict):
        deps = project.get("dependencies")
        if isinstance(deps, list):
            yield cast(list[Any], deps)
        optional = project.get("optional-dependencies")
        if isinstance(optional, dict):
            for group in cast(dict[str, Any], optional).values():
                if isinstance(group, list):
                    yield cast(list[Any], group)
    groups = doc.get("dependency-groups")
    if isinstance(groups, dict):
        for group in cast(dict[str, Any], groups).values():
            if isinstance(group, list):
                yield cast(list[Any], group)


class PythonPackage:
    name: ClassVar[ProjectKindName] = "python"
    manifest: ClassVar[str] = "pyproject.toml"

    def _load(self, project_dir: Path) -> Result[Any, ReleaseError]:
        text = _read_text(project_dir / self.manifest)
        if isinstance(text, Err):
            return text
        try:
            return Ok(tomlkit.parse(text.value))
        except ParseError as e:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"invalid TOML in {project_dir / self.manifest}: {e}",
                )
            )

    def identity(self, project_dir: Path) -> Result[str, ReleaseError]:
        doc = self._load(project_dir)
        if isinstance(doc, Err):
            return doc
        project = doc.value.get("project")
        name = project.get("name") if isinstance(project, dict) else None
        if not isinstance(name, str) or not name.strip():
            return Ok(canonicalize_name(project_dir.name))
        return Ok(canonicalize_name(name))

    def parse_dependencies(self, project_dir: Path) -> Result[tuple[str, ...], ReleaseError]:
        doc = self._load(project_dir)
        if isinstance(doc, Err):
            return doc
        names: list[str] = []
        for deps in _dependency_lists(doc.value):
            for dep in deps:
                name = _requirement_name(dep)
                if name is not None and name not in names:
                    names.append(name)
        return Ok(tuple(names))

    def rewrite_requirement(
        self, project_dir: Path, dependency: str, version: SemVer
    ) -> Result[bool, ReleaseError]:
        doc = self._load(project_dir)
        if isinstance(doc, Err):
            return doc

        target = canonicalize_name(dependency)
        changed = False
        for deps in _dependency_lists(doc.value):
            for i, dep in enumerate(deps):
                if _requirement_name(dep) != target:
                    continue
                pinned = _pin(str(dep), version)
                if pinned != str(dep):
                    deps[i] = pinned
                    changed = True

        if not changed:
            return Ok(False)
        written = _write_text(project_dir / self.manifest, tomlkit.dumps(doc.value))
        if isinstance(written, Err):
            return written
        return Ok(True)

    def tidy_command(self) -> list[str] | None:
        return None

    def test_command(self) -> list[str] | None:
        return ["python", "-m", "pytest", "-q"]

    def manifest_files(self, project_dir: Path) -> list[str]:
        return [self.manifest]

    def availability_command(self, identity: str, version: SemVer) -> list[str] | None:
        return ["python", "-m", "pip", "index", "versions", identity]

    def is_available(self, output: str, version: SemVer) -> bool:
        for line in output.splitlines():
            if line.strip().lower().startswith("available versions:"):
                listed = line.split(":", 1)[1]
                return version.to_plain() in [v.strip() for v in listed.split(",")]
        return False


# -----------------------------------------------------------------------------
# Templates (template.toml)
# -----------------------------------------------------------------------------


class TemplateProject:
    """Templates are versioned and tagged but declare no managed dependencies."""

    name: ClassVar[ProjectKindName] = "template"
    manifest: ClassVar[str] = "template.toml"

    def identity(self, project_dir: Path) -> Result[str, ReleaseError]:
        return Ok(project_dir.name)

    def parse_dependencies(self, project_dir: Path) -> Result[tuple[str, ...], ReleaseError]:
        return Ok(())

    def rewrite_requirement(
        self, project_dir: Path, dependency: str, version: SemVer
    ) -> Result[bool, ReleaseError]:
        return Ok(False)

    def tidy_command(self) -> list[str] | None:
        return None

    def test_command(self) -> list[str] | None:
        return None

    def manifest_files(self, project_dir: Path) -> list[str]:
        return [self.manifest]

    def availability_command(self, identity: str, version: SemVer) -> list[str] | None:
        return None

    def is_available(self, output: str, version: SemVer) -> bool:
        return True


# Detection order matters: a Go module with a helper pyproject is still a Go module.
KINDS: tuple[ProjectKind, ...] = (GoModule(), PythonPackage(), TemplateProject())


def detect_kind(project_dir: Path) -> ProjectKind | None:
    for kind in KINDS:
        if (project_dir / kind.manifest).is_file():
            return kind
    return None


def kind_by_name(name: ProjectKindName) -> ProjectKind:
    for kind in KINDS:
        if kind.name == name:
            return kind
    raise AssertionError(f"unexpected project kind: {name}")
