"""Best-effort synchronization of a fresh workspace with its upstream."""

from __future__ import annotations

from aoa.core.console import get_logger
from aoa.core.result import Err, Ok
from aoa.git import AsyncRepo
from aoa.swarm.types import SyncOutcome, Workspace

logger = get_logger(__name__)

REMOTE = "origin"


async def sync_workspace(shared: AsyncRepo, workspace: Workspace) -> SyncOutcome:
    """Fetch and pull the shared checkout's branch into the workspace.

    Runs only when the shared repository has an ``origin`` remote and the
    workspace is itself a repository. Nothing here raises: every problem is
    returned as a WARNING outcome and the task carries on.
    """
    if not await shared.has_remote(REMOTE):
        return SyncOutcome.skipped(f"no '{REMOTE}' remote configured")

    local = shared.at(workspace.path)
    if not await local.is_repo():
        return SyncOutcome.warning(f"{workspace.path} is not a git repository")

    match await shared.current_branch():
        case Ok(branch):
            pass
        case Err(err):
            return SyncOutcome.warning(f"could not determine current branch: {err.message}")

    match await local.fetch(REMOTE):
        case Err(err):
            return SyncOutcome.warning(f"fetch from {REMOTE} failed: {err.message}")
        case Ok(_):
            pass

    match await local.pull(REMOTE, branch):
        case Err(err):
            return SyncOutcome.warning(f"pull of {REMOTE}/{branch} failed: {err.message}")
        case Ok(_):
            pass

    logger.debug("Synced %s with %s/%s", workspace.branch, REMOTE, branch)
    return SyncOutcome.synced(branch)


__all__ = ["sync_workspace"]
