"""Read-only GitHub CLI queries.

A single call makes a single attempt. Callers that need to ride out
transient failures run these inside a poll check, where the retry
schedule and the overall deadline live.
"""

from __future__ import annotations

import json
from pathlib import Path

from eco.core.result import Err, Ok, Result
from eco.platform.process import run as run_process
from eco.services.release.errors import ReleaseError, tool_failed
from eco.services.release.timeouts import GH_TIMEOUT_SECONDS


def run_gh_read(
    *,
    cwd: Path,
    cmd: list[str],
    message: str,
    timeout: float = GH_TIMEOUT_SECONDS,
) -> Result[str, ReleaseError]:
    result = run_process(cmd, cwd=cwd, timeout=timeout)
    if isinstance(result, Err):
        return Err(tool_failed(message, result.error))
    return result


def gh_json(
    *,
    cwd: Path,
    cmd: list[str],
    message: str,
    timeout: float = GH_TIMEOUT_SECONDS,
) -> Result[object, ReleaseError]:
    result = run_gh_read(cwd=cwd, cmd=cmd, message=message, timeout=timeout)
    if isinstance(result, Err):
        return result

    try:
        obj: object = json.loads(result.value or "null")
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="tool_failed",
                message=f"{message}: invalid JSON from gh: {e}",
                hint=" ".join(cmd[:4]),
            )
        )
    return Ok(obj)
