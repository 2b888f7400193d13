"""Worker pool distributing tasks over a fixed number of agents."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from rich.markup import escape

from aoa.core.config import AgentConfig
from aoa.core.console import get_console, get_logger
from aoa.core.process import AsyncProcessRunner, ProcessRunner, StreamMode
from aoa.core.result import ConfigurationError, Err, Ok, Result, TaskFailureError
from aoa.git import AsyncRepo
from aoa.swarm.agent import AgentInvoker
from aoa.swarm.gate import MergeGate
from aoa.swarm.runner import TaskRunner
from aoa.swarm.types import PoolReport, Task, TaskOutcome, TaskResult, TaskState, worker_label
from aoa.swarm.worktree import WorktreeManager

logger = get_logger(__name__)


class TaskExecutor(Protocol):
    """Anything that can run one task under a worker identity."""

    async def run(self, task: Task, worker_id: int) -> TaskResult: ...


class TaskQueue:
    """Ordered tasks behind a single shared cursor.

    ``claim`` never awaits, so on the event loop each call is an atomic
    fetch-and-increment: tasks come out in index order, each exactly once.
    """

    def __init__(self, instructions: Sequence[str]) -> None:
        self._tasks = tuple(Task(index=i, instruction=text) for i, text in enumerate(instructions))
        self._cursor = itertools.count()
        self._exhausted = False

    def __len__(self) -> int:
        return len(self._tasks)

    def claim(self) -> Task | None:
        """Return the next unclaimed task, or None once all are dispatched."""
        if self._exhausted:
            return None
        index = next(self._cursor)
        if index >= len(self._tasks):
            self._exhausted = True
            return None
        return self._tasks[index]


class WorkerPool:
    """Runs every task exactly once with at most ``workers`` in flight.

    Each worker has a fixed identity and loops: claim the next task, run it
    to completion (teardown included), repeat. A failing task never cancels
    its siblings; failures are collected and surfaced after all workers have
    finished.

    Attributes:
        queue: The shared task queue
        workers: Number of concurrent workers
        executor: Runs one task for one worker
    """

    def __init__(
        self,
        tasks: Sequence[str] | TaskQueue,
        workers: int,
        executor: TaskExecutor,
        *,
        announce: bool = True,
    ) -> None:
        if workers < 1:
            raise ConfigurationError(
                "Worker count must be at least 1", context={"workers": workers}
            )
        self.queue = tasks if isinstance(tasks, TaskQueue) else TaskQueue(tasks)
        self.workers = workers
        self.executor = executor
        self.announce = announce

    async def _worker(self, worker_id: int, results: list[TaskResult]) -> None:
        while (task := self.queue.claim()) is not None:
            if self.announce:
                get_console().print(
                    f"[bold]Agent {worker_id}[/bold] running task: {escape(task.instruction)}",
                    highlight=False,
                )
            try:
                result = await self.executor.run(task, worker_id)
            except Exception as exc:
                logger.exception("%s crashed on task %d", worker_label(worker_id), task.index)
                result = TaskResult(
                    task=task,
                    worker_id=worker_id,
                    outcome=TaskOutcome.FAILURE,
                    error_message=str(exc) or type(exc).__name__,
                    states=[TaskState.FAILED],
                )
            results.append(result)
            if self.announce:
                self._announce_result(result)

    @staticmethod
    def _announce_result(result: TaskResult) -> None:
        label = worker_label(result.worker_id)
        if result.outcome is TaskOutcome.FAILURE:
            reason = escape(result.error_message or "")
            get_console().print(
                f"[red]✗[/red] {label} failed task {result.task.index}: {reason}",
                highlight=False,
            )
        elif result.outcome is TaskOutcome.NO_CHANGE:
            get_console().print(
                f"[yellow]•[/yellow] {label} finished task {result.task.index} (no changes)",
                highlight=False,
            )
        else:
            get_console().print(
                f"[green]✓[/green] {label} finished task {result.task.index}",
                highlight=False,
            )

    async def run(self) -> PoolReport:
        """Run all workers to completion and return every task result."""
        results: list[TaskResult] = []
        async with asyncio.TaskGroup() as tg:
            for worker_id in range(self.workers):
                tg.create_task(self._worker(worker_id, results))

        return PoolReport(results=sorted(results, key=lambda r: r.task.index))


async def run_agents(
    tasks: Sequence[str],
    workers: int,
    *,
    repo_root: Path,
    agent: AgentConfig | None = None,
    interactive: bool = False,
    auto_approve: bool = False,
    worktree_dir: Path | None = None,
    prune_stale: bool = False,
    runner: ProcessRunner | None = None,
    git_mode: StreamMode = StreamMode.INHERIT,
) -> Result[PoolReport, TaskFailureError]:
    """Run every task with an agent in its own worktree and merge the results.

    Args:
        tasks: Task instructions in submission order
        workers: Number of concurrent agents (must be at least 1)
        repo_root: Shared checkout that work is merged into
        agent: Agent binary and model parameters
        interactive: Give agents the terminal instead of prefixing their output
        auto_approve: Let agents skip permission prompts
        worktree_dir: Where workspaces live (default: <repo_root>/.worktrees)
        prune_stale: Remove workspaces left by a previous run before starting
        runner: Process runner for git and the agent
        git_mode: Output mode for state-changing git commands

    Returns:
        Ok(PoolReport) when every task succeeded or made no changes,
        Err(TaskFailureError) carrying the full report otherwise

    Raises:
        ConfigurationError: Before any work starts, if the worker count is
            invalid or repo_root is not a git repository
    """
    if workers < 1:
        raise ConfigurationError(
            "Worker count must be at least 1", context={"workers": workers}
        )
    if not repo_root.is_dir():
        raise ConfigurationError("Target is not a directory", context={"path": str(repo_root)})

    process_runner = runner or AsyncProcessRunner()
    match await AsyncRepo.open(repo_root, process_runner, write_mode=git_mode):
        case Ok(repo):
            pass
        case Err(err):
            raise ConfigurationError(
                "Target is not a git repository",
                context={"path": str(repo_root), "error": err.message},
            )

    get_console().print(f"Working directory: {escape(str(repo.path))}", highlight=False)

    worktrees = WorktreeManager(repo, worktree_dir)
    if prune_stale:
        removed = await worktrees.prune_stale_workspaces()
        if removed:
            logger.info("Removed %d stale workspaces", removed)

    executor = TaskRunner(
        repo=repo,
        worktrees=worktrees,
        agent=AgentInvoker(
            runner=process_runner,
            config=agent or AgentConfig(),
            interactive=interactive,
            auto_approve=auto_approve,
        ),
        gate=MergeGate(),
    )

    report = await WorkerPool(tasks, workers, executor).run()

    first = report.first_failure
    if first is not None:
        failed = [r.task.index for r in report.failures]
        return Err(
            TaskFailureError(
                f"{len(failed)} of {len(report.results)} tasks failed; "
                f"first: task {first.task.index} ({first.error_message})",
                report=report,
                context={"failed_tasks": failed},
            )
        )
    return Ok(report)


__all__ = [
    "TaskExecutor",
    "TaskQueue",
    "WorkerPool",
    "run_agents",
]
