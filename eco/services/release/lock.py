"""Advisory lock guarding the lifetime of an apply.

Only one apply may drive the shared plan document at a time. The lock is a
small JSON file, written aside and hard-linked into place; a lock whose owning
PID is gone is stale and gets cleared.
"""

from __future__ import annotations

import json
import os
import socket
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from eco.core.result import Err, Ok, Result
from eco.core.structured import as_str_dict, get_int, get_str
from eco.services.release.errors import ReleaseError

LOCK_FILE = "apply.lock"
MAX_LOCK_RETRIES = 3


@dataclass(frozen=True, slots=True)
class ApplyLock:
    path: Path
    pid: int
    host: str
    started_at: str


def _is_pid_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    except OSError:
        return False
    return True


def read_lock(path: Path) -> ApplyLock | None:
    """Current lock holder, or None when missing or unreadable."""
    try:
        obj: object = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    data = as_str_dict(obj)
    if data is None:
        return None
    pid = get_int(data, "pid")
    if pid is None:
        return None
    return ApplyLock(
        path=path,
        pid=pid,
        host=get_str(data, "host") or "",
        started_at=get_str(data, "started_at") or "",
    )


def _is_stale(lock: ApplyLock) -> bool:
    if lock.host and lock.host != socket.gethostname():
        # Cannot check a PID on another machine
        return False
    return not _is_pid_running(lock.pid)


def _try_atomic_create(path: Path, lock: ApplyLock) -> bool:
    """Publish a fully written lock file at path; False when one already exists.

    The payload goes to a temporary file first and is then hard-linked into
    place, so a reader never sees an empty or half-written lock.
    """
    payload = json.dumps({"pid": lock.pid, "host": lock.host, "started_at": lock.started_at})
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.link(tmp_name, path)
    except FileExistsError:
        return False
    finally:
        os.unlink(tmp_name)
    return True


def acquire_apply_lock(state_dir: Path) -> Result[ApplyLock, ReleaseError]:
    path = state_dir / LOCK_FILE
    try:
        state_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return Err(ReleaseError(kind="tool_failed", message=f"cannot create {state_dir}: {e}"))

    lock = ApplyLock(
        path=path,
        pid=os.getpid(),
        host=socket.gethostname(),
        started_at=datetime.now(UTC).isoformat(timespec="seconds"),
    )

    for _ in range(MAX_LOCK_RETRIES):
        if _try_atomic_create(path, lock):
            return Ok(lock)

        existing = read_lock(path)
        if existing is None or _is_stale(existing):
            path.unlink(missing_ok=True)
            continue

        if existing.pid == lock.pid and existing.host == lock.host:
            return Ok(existing)

        return Err(
            ReleaseError(
                kind="lock_held",
                message=f"another apply is running (pid {existing.pid} on {existing.host})",
                hint=f"started {existing.started_at}; remove {path} if that process is gone",
            )
        )

    return Err(
        ReleaseError(
            kind="lock_held",
            message="failed to acquire the apply lock after multiple attempts",
            hint=str(path),
        )
    )


def release_apply_lock(lock: ApplyLock) -> None:
    """Remove the lock file if this process still owns it."""
    existing = read_lock(lock.path)
    if existing is not None and existing.pid == lock.pid and existing.host == lock.host:
        lock.path.unlink(missing_ok=True)
