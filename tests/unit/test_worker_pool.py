"""Tests for the task queue, worker pool and run_agents."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from rich.console import Console

from aoa.core.config import AgentConfig
from aoa.core.process import StreamMode
from aoa.core.result import ConfigurationError, Err, Ok, TaskFailureError
from aoa.swarm.pool import TaskQueue, WorkerPool, run_agents
from aoa.swarm.types import Task, TaskOutcome, TaskResult, TaskState
from tests.mocks.fake_runner import FakeProcessRunner


class RecordingExecutor:
    """Executor that records dispatch order and per-worker overlap."""

    def __init__(self, *, fail: set[str] | None = None, crash: set[str] | None = None) -> None:
        self.fail = fail or set()
        self.crash = crash or set()
        self.started: list[tuple[int, int]] = []
        self.busy: set[int] = set()
        self.overlaps: list[int] = []
        self.in_flight = 0
        self.peak = 0

    async def run(self, task: Task, worker_id: int) -> TaskResult:
        if worker_id in self.busy:
            self.overlaps.append(worker_id)
        self.busy.add(worker_id)
        self.started.append((task.index, worker_id))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            for _ in range(task.index % 3 + 1):
                await asyncio.sleep(0)
            if task.instruction in self.crash:
                raise RuntimeError(f"crashed on {task.instruction}")
            outcome = TaskOutcome.FAILURE if task.instruction in self.fail else TaskOutcome.SUCCESS
            return TaskResult(task=task, worker_id=worker_id, outcome=outcome)
        finally:
            self.in_flight -= 1
            self.busy.discard(worker_id)


class TestTaskQueue:
    def test_claims_in_order_then_none(self) -> None:
        queue = TaskQueue(["a", "b"])
        assert queue.claim() == Task(index=0, instruction="a")
        assert queue.claim() == Task(index=1, instruction="b")
        assert queue.claim() is None
        assert queue.claim() is None
        assert len(queue) == 2

    def test_empty_queue(self) -> None:
        assert TaskQueue([]).claim() is None


class TestWorkerPool:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("workers", [1, 2, 5])
    @pytest.mark.parametrize("count", [0, 1, 10])
    async def test_every_task_runs_exactly_once(self, workers: int, count: int) -> None:
        executor = RecordingExecutor()
        tasks = [f"task {i}" for i in range(count)]

        report = await WorkerPool(tasks, workers, executor, announce=False).run()

        assert sorted(index for index, _ in executor.started) == list(range(count))
        assert [r.task.index for r in report.results] == list(range(count))
        assert executor.peak <= workers
        assert {worker for _, worker in executor.started} <= set(range(workers))
        assert executor.overlaps == []

    @pytest.mark.asyncio
    async def test_dispatch_follows_submission_order(self) -> None:
        executor = RecordingExecutor()
        await WorkerPool(["a", "b", "c", "d", "e"], 3, executor, announce=False).run()
        assert [index for index, _ in executor.started] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_single_worker_runs_sequentially(self) -> None:
        executor = RecordingExecutor()

        report = await WorkerPool(["a", "b", "c"], 1, executor, announce=False).run()

        assert executor.started == [(0, 0), (1, 0), (2, 0)]
        assert executor.peak == 1
        assert report.ok

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self) -> None:
        executor = RecordingExecutor(fail={"b"})

        report = await WorkerPool(["a", "b", "c", "d"], 2, executor, announce=False).run()

        assert len(report.results) == 4
        assert [r.task.instruction for r in report.failures] == ["b"]
        assert report.first_failure is not None
        assert report.first_failure.task.index == 1
        assert not report.ok

    @pytest.mark.asyncio
    async def test_executor_exception_becomes_failure(self) -> None:
        executor = RecordingExecutor(crash={"boom"})

        report = await WorkerPool(["ok", "boom", "ok too"], 2, executor, announce=False).run()

        crashed = report.results[1]
        assert crashed.outcome is TaskOutcome.FAILURE
        assert crashed.error_message == "crashed on boom"
        assert crashed.states == [TaskState.FAILED]
        assert len(report.succeeded) == 2

    def test_zero_workers_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            WorkerPool(["a"], 0, RecordingExecutor())

    @pytest.mark.asyncio
    async def test_announces_progress(self, capture_console: Console) -> None:
        executor = RecordingExecutor(fail={"[red]b[/red]"})

        await WorkerPool(["a", "[red]b[/red]"], 1, executor).run()

        output = capture_console.export_text()
        assert "Agent 0 running task: a" in output
        assert "Agent 0 running task: [red]b[/red]" in output
        assert "agent-0 finished task 0" in output
        assert "agent-0 failed task 1" in output


class TestRunAgents:
    @pytest.mark.asyncio
    async def test_mixed_outcomes_report_failure(
        self, tmp_path: Path, capture_console: Console
    ) -> None:
        def agent(argv: list[str], cwd: Path) -> int:
            if argv[-1] == "fail-task":
                return 1
            (cwd / "out.txt").write_text(argv[-1])
            return 0

        fake = FakeProcessRunner(agent=agent)

        outcome = await run_agents(
            ["ok-task", "fail-task"],
            2,
            repo_root=tmp_path,
            runner=fake,
            git_mode=StreamMode.CAPTURE,
        )

        match outcome:
            case Ok(_):
                pytest.fail("Expected a task failure")
            case Err(err):
                assert isinstance(err, TaskFailureError)
                assert "1 of 2 tasks failed" in err.message
                assert "task 1" in err.message
                assert err.context["failed_tasks"] == [1]
                report = err.report

        ok, failed = report.results
        assert ok.outcome is TaskOutcome.SUCCESS
        assert failed.outcome is TaskOutcome.FAILURE
        assert fake.merged_branches == [f"agent-{ok.worker_id}"]
        assert len(fake.git_calls("commit")) == 1
        assert failed.torn_down and ok.torn_down
        assert fake.live_paths == set()
        assert f"Working directory: {tmp_path.resolve()}" in capture_console.export_text()

    @pytest.mark.asyncio
    async def test_all_tasks_succeed(self, tmp_path: Path) -> None:
        fake = FakeProcessRunner()

        outcome = await run_agents(
            [f"task {i}" for i in range(10)],
            5,
            repo_root=tmp_path,
            agent=AgentConfig(model="sonnet"),
            runner=fake,
            git_mode=StreamMode.CAPTURE,
        )

        assert isinstance(outcome, Ok)
        assert len(outcome.value.succeeded) == 10
        assert fake.max_concurrent_merges == 1
        assert fake.overlaps == []
        assert sorted(call.argv[-1] for call in fake.agent_calls()) == sorted(
            f"task {i}" for i in range(10)
        )
        for call in fake.agent_calls():
            assert call.argv[:4] == ["claude", "-p", "--model", "sonnet"]

    @pytest.mark.asyncio
    async def test_empty_task_list(self, tmp_path: Path) -> None:
        fake = FakeProcessRunner()
        outcome = await run_agents([], 3, repo_root=tmp_path, runner=fake)
        assert isinstance(outcome, Ok)
        assert outcome.value.results == []
        assert fake.agent_calls() == []

    @pytest.mark.asyncio
    async def test_zero_workers_rejected_before_any_work(self, tmp_path: Path) -> None:
        fake = FakeProcessRunner()
        with pytest.raises(ConfigurationError):
            await run_agents(["a"], 0, repo_root=tmp_path, runner=fake)
        assert fake.calls == []

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not a directory"):
            await run_agents(["a"], 1, repo_root=tmp_path / "missing")

    @pytest.mark.asyncio
    async def test_not_a_git_repository(self, tmp_path: Path) -> None:
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(ConfigurationError, match="not a git repository"):
            await run_agents(["a"], 1, repo_root=plain)

    @pytest.mark.asyncio
    async def test_prune_clears_previous_run(self, tmp_path: Path) -> None:
        leftover = tmp_path / ".worktrees" / "agent-0"
        leftover.mkdir(parents=True)
        fake = FakeProcessRunner()

        outcome = await run_agents(
            ["a"],
            1,
            repo_root=tmp_path,
            runner=fake,
            prune_stale=True,
            git_mode=StreamMode.CAPTURE,
        )

        assert isinstance(outcome, Ok)
        assert outcome.value.results[0].outcome is TaskOutcome.SUCCESS

    @pytest.mark.asyncio
    async def test_leftover_without_prune_fails_task(self, tmp_path: Path) -> None:
        (tmp_path / ".worktrees" / "agent-0").mkdir(parents=True)
        fake = FakeProcessRunner()

        outcome = await run_agents(["a"], 1, repo_root=tmp_path, runner=fake)

        assert isinstance(outcome, Err)
        assert outcome.error.report.results[0].failed_state is TaskState.PROVISIONING
        assert (tmp_path / ".worktrees" / "agent-0").exists()
