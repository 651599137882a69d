from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from eco.services.release.model import ReleaseBump

_TAG_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_DATE_TAG_RE = re.compile(r"^v(\d{4})\.(\d{2})\.(\d{2})(?:\.(\d+))?$")

ZERO_TAG = "v0.0.0"


@dataclass(frozen=True, slots=True, order=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: str = ""

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def to_tag(self) -> str:
        base = f"v{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base

    def to_plain(self) -> str:
        """Version without the leading v (Python requirement pins)."""
        return self.to_tag()[1:]

    def base(self) -> SemVer:
        return SemVer(self.major, self.minor, self.patch)

    def bump(self, kind: ReleaseBump) -> SemVer:
        match kind:
            case "major":
                return SemVer(self.major + 1, 0, 0)
            case "minor":
                return SemVer(self.major, self.minor + 1, 0)
            case "patch":
                return SemVer(self.major, self.minor, self.patch + 1)
            case _:
                raise AssertionError(f"unexpected bump kind: {kind}")

    def candidate(self, short_sha: str) -> SemVer:
        """Release-candidate version: next patch (or the current prerelease's base) + rc.<sha>."""
        base = self.base() if self.is_prerelease else self.bump("patch")
        return SemVer(base.major, base.minor, base.patch, f"rc.{short_sha}")


def parse_tag(tag: str) -> SemVer | None:
    m = _TAG_RE.match(tag.strip())
    if m is None:
        return None
    return SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3)), m.group(4) or "")


def next_parent_version(today: date, existing_tags: list[str]) -> str:
    """Date-based ecosystem version: vYYYY.MM.DD, then vYYYY.MM.DD.N for same-day re-releases."""
    base = f"v{today.year:04d}.{today.month:02d}.{today.day:02d}"
    if base not in existing_tags:
        return base

    highest = 0
    for tag in existing_tags:
        m = _DATE_TAG_RE.match(tag)
        if m is None or f"v{m.group(1)}.{m.group(2)}.{m.group(3)}" != base:
            continue
        highest = max(highest, int(m.group(4) or 0))
    return f"{base}.{highest + 1}"


def latest_parent_version(existing_tags: list[str]) -> str:
    """Newest date-based tag, or empty when the root was never released."""
    dated: list[tuple[int, int, int, int, str]] = []
    for tag in existing_tags:
        m = _DATE_TAG_RE.match(tag)
        if m is None:
            continue
        dated.append((int(m.group(1)), int(m.group(2)), int(m.group(3)), int(m.group(4) or 0), tag))
    if not dated:
        return ""
    return max(dated)[4]
