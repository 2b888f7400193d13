"""Per-task state machine.

PROVISIONING -> SYNCING -> EXECUTING -> STAGING -> (NO_CHANGE | COMMITTING ->
MERGING_BACK) -> TEARING_DOWN -> DONE, with FAILED reachable from every
non-terminal state. Teardown runs whenever provisioning succeeded.
"""

from __future__ import annotations

from typing import TypeVar

from aoa.core.console import get_logger
from aoa.core.result import AoaError, Err, Ok, Result
from aoa.git import AsyncRepo, CommitIdentity
from aoa.swarm.agent import AgentInvoker
from aoa.swarm.gate import MergeGate
from aoa.swarm.sync import sync_workspace
from aoa.swarm.types import (
    SyncStatus,
    Task,
    TaskOutcome,
    TaskResult,
    TaskState,
    Workspace,
    worker_label,
)
from aoa.swarm.worktree import WorktreeManager

logger = get_logger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=AoaError)


class _TaskFailed(Exception):
    """Internal signal carrying the error that ended a task."""

    def __init__(self, error: AoaError) -> None:
        super().__init__(str(error))
        self.error = error


def commit_message(worker_id: int, task: Task) -> str:
    return f"{worker_label(worker_id)}: {task.instruction}"


def fallback_identity(worker_id: int) -> CommitIdentity:
    """Disposable identity used when the workspace has none configured."""
    label = worker_label(worker_id)
    return CommitIdentity(name=label, email=f"{label}@aoa.local")


class TaskRunner:
    """Drives one task from provisioning to teardown.

    Attributes:
        repo: The shared checkout that completed work merges into
        worktrees: Provisions and tears down per-worker workspaces
        agent: Launches the external agent
        gate: Serializes merge-back across all runners
        sync: Attempt the best-effort remote sync before running the agent
    """

    def __init__(
        self,
        repo: AsyncRepo,
        worktrees: WorktreeManager,
        agent: AgentInvoker,
        gate: MergeGate,
        *,
        sync: bool = True,
    ) -> None:
        self.repo = repo
        self.worktrees = worktrees
        self.agent = agent
        self.gate = gate
        self.sync = sync

    async def run(self, task: Task, worker_id: int) -> TaskResult:
        """Run a task under a worker identity.

        Never raises for task-level failures; they are returned as a FAILURE
        result so sibling workers are unaffected.
        """
        result = TaskResult(task=task, worker_id=worker_id, outcome=TaskOutcome.FAILURE)
        label = worker_label(worker_id)

        result.states.append(TaskState.PROVISIONING)
        match await self.worktrees.provision(worker_id):
            case Err(err):
                # Nothing was created, so there is nothing to tear down.
                self._fail(result, TaskState.PROVISIONING, err)
                result.states.append(TaskState.FAILED)
                return result
            case Ok(workspace):
                pass

        try:
            result.outcome = await self._run_in_workspace(task, workspace, result)
        except _TaskFailed as failure:
            self._fail(result, result.states[-1], failure.error)
        finally:
            result.states.append(TaskState.TEARING_DOWN)
            match await self.worktrees.teardown(workspace):
                case Ok(_):
                    result.torn_down = True
                case Err(err):
                    logger.warning("%s teardown failed: %s", label, err)

        if result.outcome is not TaskOutcome.FAILURE:
            result.states.append(TaskState.DONE)
        else:
            result.states.append(TaskState.FAILED)
        return result

    async def _run_in_workspace(
        self, task: Task, workspace: Workspace, result: TaskResult
    ) -> TaskOutcome:
        label = worker_label(workspace.worker_id)
        local = self.repo.at(workspace.path)

        if self.sync:
            result.states.append(TaskState.SYNCING)
            result.sync = await sync_workspace(self.repo, workspace)
            if result.sync.status is SyncStatus.WARNING:
                logger.warning("%s sync skipped: %s", label, result.sync.message)

        result.states.append(TaskState.EXECUTING)
        logger.info("%s running task %d: %s", label, task.index, task.instruction)
        self._check(await self.agent.invoke(task, workspace))

        result.states.append(TaskState.STAGING)
        self._check(await local.add_all())
        if not self._check(await local.has_staged_changes()):
            logger.info("%s produced no changes", label)
            result.states.append(TaskState.NO_CHANGE)
            return TaskOutcome.NO_CHANGE

        result.states.append(TaskState.COMMITTING)
        identity = self._check(await local.get_identity())
        self._check(
            await local.commit(
                commit_message(workspace.worker_id, task),
                identity=None if identity else fallback_identity(workspace.worker_id),
            )
        )

        result.states.append(TaskState.MERGING_BACK)
        async with self.gate.hold(workspace.worker_id):
            result.commit_sha = self._check(await self.repo.merge_ff_only(workspace.branch))

        return TaskOutcome.SUCCESS

    @staticmethod
    def _check(outcome: Result[T, E]) -> T:
        if isinstance(outcome, Err):
            raise _TaskFailed(outcome.error)
        return outcome.value

    @staticmethod
    def _fail(result: TaskResult, state: TaskState, error: AoaError) -> TaskResult:
        result.outcome = TaskOutcome.FAILURE
        result.failed_state = state
        result.error_message = str(error)
        logger.error(
            "%s task %d failed while %s: %s",
            worker_label(result.worker_id),
            result.task.index,
            state.value,
            error,
        )
        return result


__all__ = [
    "TaskRunner",
    "commit_message",
    "fallback_identity",
]
