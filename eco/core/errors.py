"""Error codes for CLI exit status.

Exit codes map the outcome of a release command to a shell status. A
release command exits non-zero whenever any selected project did not
reach the released state.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success (every selected project released)
    - 1: User error (bad flags, unknown project, aborted confirmation)
    - 2: Environment error (no workspace, missing git/gh, lock held)
    - 3: Release error (apply halted, dependency cycle, dirty conflict)
    - 4: Network error (CI run missing/failed, registry timeout)
    - 5: I/O error (plan unreadable or unwritable)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    RELEASE_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        """Return human-readable name."""
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        """Check if this code indicates success."""
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        """Check if this code indicates an error."""
        return self != ErrorCode.OK
