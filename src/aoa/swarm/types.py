"""Data types for swarm execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


def worker_label(worker_id: int) -> str:
    """Name shared by a worker's branch, workspace directory and log prefix."""
    return f"agent-{worker_id}"


@dataclass(frozen=True, slots=True)
class Task:
    """One opaque instruction and its position in the submitted sequence."""

    index: int
    instruction: str


@dataclass(frozen=True, slots=True)
class Workspace:
    """An isolated worktree bound to one worker identity."""

    worker_id: int
    path: Path
    branch: str


class TaskState(str, Enum):
    """States of the per-task state machine."""

    PROVISIONING = "provisioning"
    SYNCING = "syncing"
    EXECUTING = "executing"
    STAGING = "staging"
    NO_CHANGE = "no_change"
    COMMITTING = "committing"
    MERGING_BACK = "merging_back"
    TEARING_DOWN = "tearing_down"
    DONE = "done"
    FAILED = "failed"


class TaskOutcome(str, Enum):
    """Final result of one task."""

    SUCCESS = "success"
    NO_CHANGE = "no_change"
    FAILURE = "failure"


class SyncStatus(str, Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class SyncOutcome:
    """Tagged result of the best-effort remote sync step.

    A sync problem is reported as WARNING with a message; it is never raised.
    """

    status: SyncStatus
    message: str = ""

    @classmethod
    def synced(cls, branch: str) -> SyncOutcome:
        return cls(SyncStatus.SYNCED, f"pulled origin/{branch}")

    @classmethod
    def skipped(cls, reason: str) -> SyncOutcome:
        return cls(SyncStatus.SKIPPED, reason)

    @classmethod
    def warning(cls, reason: str) -> SyncOutcome:
        return cls(SyncStatus.WARNING, reason)


@dataclass
class TaskResult:
    """Result of running a single task through the state machine.

    Attributes:
        task: The task that was run
        worker_id: Worker identity that ran it
        outcome: SUCCESS, NO_CHANGE or FAILURE
        error_message: Failure reason when outcome is FAILURE
        failed_state: State in which the failure happened
        sync: Outcome of the best-effort sync step, if it ran
        commit_sha: Shared checkout HEAD after a successful merge
        states: Every state visited, in order
        torn_down: Whether workspace teardown succeeded
    """

    task: Task
    worker_id: int
    outcome: TaskOutcome
    error_message: str | None = None
    failed_state: TaskState | None = None
    sync: SyncOutcome | None = None
    commit_sha: str | None = None
    states: list[TaskState] = field(default_factory=list)
    torn_down: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome is not TaskOutcome.FAILURE


@dataclass
class PoolReport:
    """All task results of one pool run, ordered by task index."""

    results: list[TaskResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[TaskResult]:
        return [r for r in self.results if r.outcome is TaskOutcome.SUCCESS]

    @property
    def unchanged(self) -> list[TaskResult]:
        return [r for r in self.results if r.outcome is TaskOutcome.NO_CHANGE]

    @property
    def failures(self) -> list[TaskResult]:
        return [r for r in self.results if r.outcome is TaskOutcome.FAILURE]

    @property
    def first_failure(self) -> TaskResult | None:
        failures = self.failures
        return failures[0] if failures else None

    @property
    def ok(self) -> bool:
        return not self.failures


class TaskSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    index: int
    task: str
    worker: int
    outcome: TaskOutcome
    error: str | None = None
    sync: SyncStatus | None = None
    commit: str | None = None


class RunSummary(BaseModel):
    """JSON-serialisable summary of a pool run.

    Attributes:
        working_directory: Shared checkout the tasks merged into
        workers: Worker count used for the run
        succeeded: Number of tasks merged back
        unchanged: Number of tasks that produced no changes
        failed: Number of failed tasks
        tasks: Per-task summaries in index order
    """

    model_config = ConfigDict(extra="forbid")

    working_directory: str
    workers: int
    succeeded: int
    unchanged: int
    failed: int
    tasks: list[TaskSummary] = Field(default_factory=list)

    @classmethod
    def from_report(
        cls, report: PoolReport, *, working_directory: Path, workers: int
    ) -> RunSummary:
        return cls(
            working_directory=str(working_directory),
            workers=workers,
            succeeded=len(report.succeeded),
            unchanged=len(report.unchanged),
            failed=len(report.failures),
            tasks=[
                TaskSummary(
                    index=r.task.index,
                    task=r.task.instruction,
                    worker=r.worker_id,
                    outcome=r.outcome,
                    error=r.error_message,
                    sync=r.sync.status if r.sync else None,
                    commit=r.commit_sha,
                )
                for r in report.results
            ],
        )


__all__ = [
    "PoolReport",
    "RunSummary",
    "SyncOutcome",
    "SyncStatus",
    "Task",
    "TaskOutcome",
    "TaskResult",
    "TaskState",
    "TaskSummary",
    "Workspace",
    "worker_label",
]
