"""Bounded polling with backoff.

``poll_until`` is the one retry loop of the engine. It calls a check until
the check reports a value, reports a permanent failure, or the deadline
(its own timeout, bounded further by an optional parent deadline) runs
out. Time is read and spent through a ``Clock`` so tests drive it with a
fake clock instead of sleeping.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar, Union

from eco.core.result import Err, Ok, Result
from eco.services.release.errors import ReleaseError


class Clock:
    """Monotonic time source; the production implementation really sleeps."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


SYSTEM_CLOCK = Clock()


@dataclass(frozen=True, slots=True)
class Backoff:
    """Delay before retry n (0-based): initial * multiplier**n, capped."""

    initial: float
    multiplier: float = 1.0
    cap: float | None = None

    def delay(self, retry: int) -> float:
        value = self.initial * (self.multiplier**retry)
        if self.cap is not None:
            value = min(value, self.cap)
        return max(0.0, value)


@dataclass(frozen=True, slots=True)
class PollPolicy:
    backoff: Backoff
    timeout: float
    max_attempts: int | None = None


@dataclass(frozen=True, slots=True)
class Deadline:
    clock: Clock
    expires_at: float

    @classmethod
    def after(cls, clock: Clock, seconds: float) -> Deadline:
        return cls(clock=clock, expires_at=clock.monotonic() + seconds)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock.monotonic())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def earliest(self, other: Deadline | None) -> Deadline:
        if other is None or other.expires_at >= self.expires_at:
            return self
        return other

    def bound(self, timeout: float) -> float:
        """A subprocess timeout that never outlives this deadline."""
        return max(1.0, min(timeout, self.remaining()))


@dataclass(frozen=True, slots=True)
class Pending:
    """Not there yet; ``detail`` describes what was observed."""

    detail: str = ""


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Done(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Failed:
    """Permanent failure; polling stops immediately."""

    error: ReleaseError


CheckOutcome: TypeAlias = Union[Pending, Done[T], Failed]

# (attempts made, last pending detail) -> timeout error
TimeoutFactory = Callable[[int, str], ReleaseError]
WaitHook = Callable[[int, float, str], None]


def poll_until(
    check: Callable[[Deadline], CheckOutcome[T]],
    *,
    policy: PollPolicy,
    on_timeout: TimeoutFactory,
    clock: Clock = SYSTEM_CLOCK,
    parent: Deadline | None = None,
    on_wait: WaitHook | None = None,
) -> Result[T, ReleaseError]:
    """Poll check until it is Done or Failed, or the deadline passes.

    The check receives the effective deadline so it can bound its own
    blocking calls. ``on_wait`` is called before every sleep with the
    attempt count, the delay and the last pending detail.
    """
    deadline = Deadline.after(clock, policy.timeout).earliest(parent)
    attempts = 0
    detail = ""

    while True:
        outcome = check(deadline)
        attempts += 1
        match outcome:
            case Done(value):
                return Ok(value)
            case Failed(error):
                return Err(error)
            case Pending(pending_detail):
                detail = pending_detail

        if policy.max_attempts is not None and attempts >= policy.max_attempts:
            break
        remaining = deadline.remaining()
        if remaining <= 0:
            break

        delay = min(policy.backoff.delay(attempts - 1), remaining)
        if on_wait is not None:
            on_wait(attempts, delay, detail)
        clock.sleep(delay)

    return Err(on_timeout(attempts, detail))
