"""
Result types and error hierarchy for aoa.

This module provides:
1. Result[T, E] type for explicit error handling
2. The orchestration error hierarchy

Usage:
    from aoa.core.result import Ok, Err, Result, GitError

    async def current_branch() -> Result[str, GitError]:
        if detached:
            return Err(GitError("HEAD is detached"))
        return Ok("main")

    match await current_branch():
        case Ok(branch):
            ...
        case Err(err):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

if TYPE_CHECKING:
    from aoa.swarm.types import PoolReport

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound=Exception)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Return the contained value."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply a function to the contained value."""
        return Ok(fn(self.value))


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E

    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Raise the contained error."""
        raise self.error

    def map(self, fn: Callable[[T], U]) -> Err[E]:
        """No-op for Err - returns self unchanged."""
        return self


# Type alias for Result
Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class AoaError(Exception):
    """Base exception for all aoa errors.

    Carries a human-readable message plus a context mapping that is rendered
    after the message, so log lines keep the argv, cwd or exit code that
    produced the failure.
    """

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationError(AoaError):
    """Raised for configuration issues detected before any worker starts.

    Examples:
    - Worker count below one
    - Missing or malformed tasks file
    - Target directory that is not a directory
    """


class ProcessError(AoaError):
    """Raised when an external command cannot start or exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class GitError(AoaError):
    """Raised when a git command fails."""

    @property
    def returncode(self) -> int | None:
        code = self.context.get("returncode")
        return int(code) if code is not None else None


class WorkspaceError(AoaError):
    """Raised for isolated workspace provisioning and teardown issues.

    Examples:
    - Shared workspace is not a git repository
    - A workspace already exists at the derived path
    - Worktree removal failed
    """


class AgentExecutionError(AoaError):
    """Raised when the external agent exits with a non-zero status."""


class MergeError(GitError):
    """Raised when a workspace branch cannot be fast-forwarded into the shared checkout."""


class TaskFailureError(AoaError):
    """Raised (or returned) when at least one task in a pool run failed.

    The full per-task report is attached so callers can show successes
    alongside the failures.
    """

    def __init__(
        self,
        message: str,
        *,
        report: PoolReport,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.report = report


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "AoaError",
    "AgentExecutionError",
    "ConfigurationError",
    "GitError",
    "MergeError",
    "ProcessError",
    "TaskFailureError",
    "WorkspaceError",
]
