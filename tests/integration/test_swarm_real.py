"""End-to-end swarm runs against real git with a scripted stand-in agent."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from aoa.core.config import AgentConfig
from aoa.core.process import StreamMode
from aoa.core.result import Err, Ok
from aoa.swarm import TaskOutcome, TaskState, run_agents
from tests.mocks.repos import git, init_repo

# The last argument is the task. "fail*" exits non-zero, "noop*" changes
# nothing, anything else writes a file named after the worker directory.
AGENT_SCRIPT = """#!/bin/sh
for last; do :; done
case "$last" in
  fail*) echo "refusing: $last" >&2; exit 3 ;;
  noop*) echo "nothing to do"; exit 0 ;;
esac
name=$(basename "$PWD")
printf '%s\\n' "$last" >> "$name.txt"
echo "wrote $name.txt"
"""


@pytest.fixture
def fake_agent(tmp_path: Path) -> Path:
    script = tmp_path / "bin" / "fake-agent"
    script.parent.mkdir()
    script.write_text(AGENT_SCRIPT)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


def _tracked_files(repo: Path) -> set[str]:
    return set(git(repo, "ls-files").splitlines())


@pytest.mark.local_only
class TestSwarmReal:
    @pytest.mark.asyncio
    async def test_parallel_tasks_merge_back(self, temp_git_repo: Path, fake_agent: Path) -> None:
        outcome = await run_agents(
            ["first task", "noop please"],
            2,
            repo_root=temp_git_repo,
            agent=AgentConfig(binary=str(fake_agent)),
            git_mode=StreamMode.CAPTURE,
        )

        match outcome:
            case Ok(report):
                pass
            case Err(err):
                pytest.fail(f"Run failed: {err}")

        merged, unchanged = report.results
        assert merged.outcome is TaskOutcome.SUCCESS
        assert unchanged.outcome is TaskOutcome.NO_CHANGE
        assert merged.commit_sha == git(temp_git_repo, "rev-parse", "HEAD")
        assert f"agent-{merged.worker_id}.txt" in _tracked_files(temp_git_repo)
        assert git(temp_git_repo, "log", "-1", "--format=%s") == (
            f"agent-{merged.worker_id}: first task"
        )
        assert git(temp_git_repo, "branch", "--list", "agent-*") == ""
        assert not any((temp_git_repo / ".worktrees").iterdir())

    @pytest.mark.asyncio
    async def test_sequential_tasks_build_on_each_other(
        self, temp_git_repo: Path, fake_agent: Path
    ) -> None:
        outcome = await run_agents(
            ["one", "two", "three"],
            1,
            repo_root=temp_git_repo,
            agent=AgentConfig(binary=str(fake_agent)),
            git_mode=StreamMode.CAPTURE,
        )

        assert isinstance(outcome, Ok)
        assert [r.outcome for r in outcome.value.results] == [TaskOutcome.SUCCESS] * 3
        assert (temp_git_repo / "agent-0.txt").read_text() == "one\ntwo\nthree\n"
        subjects = git(temp_git_repo, "log", "--format=%s", "-3").splitlines()
        assert subjects == ["agent-0: three", "agent-0: two", "agent-0: one"]

    @pytest.mark.asyncio
    async def test_failed_agent_leaves_shared_checkout_untouched(
        self, temp_git_repo: Path, fake_agent: Path
    ) -> None:
        before = git(temp_git_repo, "rev-parse", "HEAD")

        outcome = await run_agents(
            ["fail hard"],
            1,
            repo_root=temp_git_repo,
            agent=AgentConfig(binary=str(fake_agent)),
            git_mode=StreamMode.CAPTURE,
        )

        match outcome:
            case Ok(_):
                pytest.fail("Expected failure")
            case Err(err):
                result = err.report.results[0]
                assert result.error_message is not None
                assert "Agent exited with code 3" in result.error_message
                assert result.torn_down
        assert git(temp_git_repo, "rev-parse", "HEAD") == before
        assert git(temp_git_repo, "branch", "--list", "agent-*") == ""

    @pytest.mark.asyncio
    async def test_fallback_identity_does_not_touch_config(
        self, tmp_path: Path, fake_agent: Path
    ) -> None:
        repo = init_repo(tmp_path / "anon", identity=False)

        outcome = await run_agents(
            ["anonymous change"],
            1,
            repo_root=repo,
            agent=AgentConfig(binary=str(fake_agent)),
            git_mode=StreamMode.CAPTURE,
        )

        assert isinstance(outcome, Ok)
        assert git(repo, "log", "-1", "--format=%an <%ae>") == "agent-0 <agent-0@aoa.local>"
        assert "user.name" not in git(repo, "config", "--list", "--local")


@pytest.mark.local_only
@pytest.mark.asyncio
async def test_diverged_workspace_fails_instead_of_merging(
    temp_git_repo: Path, tmp_path: Path
) -> None:
    """Two agents branch from the same tip; only the first to finish can fast-forward."""
    barrier = tmp_path / "barrier"
    barrier.mkdir()
    script = tmp_path / "bin" / "barrier-agent"
    script.parent.mkdir()
    script.write_text(
        "#!/bin/sh\n"
        f'touch "{barrier}/$(basename "$PWD")"\n'
        "i=0\n"
        f'while [ "$(ls "{barrier}" | wc -l)" -lt 2 ] && [ $i -lt 200 ]; do\n'
        "  sleep 0.05; i=$((i+1))\n"
        "done\n"
        'echo change > "$(basename "$PWD").txt"\n'
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR)

    outcome = await run_agents(
        ["left", "right"],
        2,
        repo_root=temp_git_repo,
        agent=AgentConfig(binary=str(script)),
        git_mode=StreamMode.CAPTURE,
    )

    assert isinstance(outcome, Err)
    results = outcome.error.report.results
    assert sorted(r.outcome.value for r in results) == ["failure", "success"]
    (failed,) = outcome.error.report.failures
    assert failed.failed_state is TaskState.MERGING_BACK
    assert git(temp_git_repo, "rev-list", "--merges", "--count", "HEAD") == "0"
    assert git(temp_git_repo, "branch", "--list", "agent-*") == ""
