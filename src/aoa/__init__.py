"""aoa - dispatch an army of coding agents over isolated git worktrees.

This package provides the orchestration core behind the `aoa` command-line
tool: a bounded worker pool that runs an external agent once per task inside
its own worktree and fast-forwards the result back into the shared checkout.

Exports:
    __version__: Package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "1.0.0"
