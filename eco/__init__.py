"""Release orchestration for polyrepo ecosystems."""

__version__ = "0.1.0"
