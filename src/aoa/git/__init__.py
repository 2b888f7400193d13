"""Git operations and repository management.

This package provides async git operations:
    - AsyncRepo: Non-blocking git commands routed through a ProcessRunner
    - Worktree management
    - Staging, commit and fast-forward merge operations
"""

from __future__ import annotations

from .client import (
    AsyncRepo,
    CommitIdentity,
    WorktreeInfo,
)

__all__ = [
    "AsyncRepo",
    "CommitIdentity",
    "WorktreeInfo",
]
