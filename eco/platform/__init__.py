"""Platform abstraction layer."""

from .files import atomic_write_text, sha256_file, sha256_text
from .paths import (
    clear_caches,
    home,
    release_state_dir,
    user_state_dir,
)
from .process import (
    ProcessError,
    run,
)

__all__ = [
    # files
    "atomic_write_text",
    "sha256_file",
    "sha256_text",
    # paths
    "clear_caches",
    "home",
    "release_state_dir",
    "user_state_dir",
    # process
    "ProcessError",
    "run",
]
