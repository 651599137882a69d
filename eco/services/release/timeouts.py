from __future__ import annotations

# GH / API reads (run list, run view)
GH_TIMEOUT_SECONDS = 60.0

# Local git operations (status, describe, log, add, commit, tag)
GIT_TIMEOUT_SECONDS = 30.0

# Network-bound git operations (push, ls-remote)
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Ecosystem tools (go mod tidy, changelog generator)
TOOL_TIMEOUT_SECONDS = 5 * 60.0

# A single registry lookup (go list -m, pip index versions)
REGISTRY_LOOKUP_TIMEOUT_SECONDS = 60.0
