"""Parallel agent swarm with git worktree isolation.

This package runs one external agent per task, each inside its own git
worktree, and fast-forwards finished work into the shared checkout one
merge at a time.

Key classes:
- TaskQueue: Ordered tasks behind an atomic claim cursor
- WorkerPool: Fixed number of workers pulling from the queue
- TaskRunner: Per-task state machine from provisioning to teardown
- WorktreeManager: Creates and removes per-worker worktrees
- MergeGate: The single lock around merge-back
- AgentInvoker: Builds and launches the agent command
"""

from aoa.swarm.agent import AgentInvoker, build_agent_command
from aoa.swarm.gate import MergeGate
from aoa.swarm.pool import TaskQueue, WorkerPool, run_agents
from aoa.swarm.runner import TaskRunner
from aoa.swarm.sync import sync_workspace
from aoa.swarm.types import (
    PoolReport,
    RunSummary,
    SyncOutcome,
    SyncStatus,
    Task,
    TaskOutcome,
    TaskResult,
    TaskState,
    Workspace,
)
from aoa.swarm.worktree import WorktreeManager

__all__ = [
    "AgentInvoker",
    "MergeGate",
    "PoolReport",
    "RunSummary",
    "SyncOutcome",
    "SyncStatus",
    "Task",
    "TaskOutcome",
    "TaskQueue",
    "TaskResult",
    "TaskRunner",
    "TaskState",
    "WorkerPool",
    "Workspace",
    "WorktreeManager",
    "build_agent_command",
    "run_agents",
    "sync_workspace",
]
