"""Git worktree provisioning for per-worker isolation."""

from __future__ import annotations

import asyncio
import re
import shutil
from pathlib import Path

from aoa.core.console import get_logger
from aoa.core.result import Err, Ok, Result, WorkspaceError
from aoa.git import AsyncRepo
from aoa.swarm.types import Workspace, worker_label

logger = get_logger(__name__)

# Workspace directory and branch names
_WORKSPACE_NAME_PATTERN = re.compile(r"^agent-\d+$")


class WorktreeManager:
    """Creates and destroys one git worktree per worker identity.

    Each workspace lives at ``<worktree_root>/agent-<id>`` on branch
    ``agent-<id>``, starts from the shared checkout's current tip, and has
    its own index and working tree so workers never contend on
    ``index.lock`` or each other's files.

    Attributes:
        repo: The shared repository
        worktree_root: Directory where workspaces are created
    """

    def __init__(self, repo: AsyncRepo, worktree_root: Path | None = None) -> None:
        """Initialize the worktree manager.

        Args:
            repo: The shared git repository
            worktree_root: Directory for workspaces (default: <repo>/.worktrees)
        """
        self._repo = repo
        self._worktree_root = (worktree_root or repo.path / ".worktrees").expanduser()
        self._active: dict[int, Workspace] = {}

    @property
    def worktree_root(self) -> Path:
        """Get the worktree root directory."""
        return self._worktree_root

    @property
    def active(self) -> dict[int, Workspace]:
        """Live workspaces keyed by worker identity."""
        return dict(self._active)

    def path_for(self, worker_id: int) -> Path:
        return self._worktree_root / worker_label(worker_id)

    async def provision(self, worker_id: int) -> Result[Workspace, WorkspaceError]:
        """Create the workspace for a worker identity.

        Fails without side effects if the shared checkout is not a repository,
        if the identity already has a live workspace, or if something already
        occupies the derived path. An existing directory is never reused.
        """
        if worker_id in self._active:
            return Err(
                WorkspaceError(
                    "Worker already holds a live workspace",
                    context={"worker": worker_id, "path": str(self._active[worker_id].path)},
                )
            )

        if not await self._repo.is_repo():
            return Err(
                WorkspaceError(
                    "Shared workspace is not a git repository",
                    context={"path": str(self._repo.path)},
                )
            )

        path = self.path_for(worker_id)
        if path.exists():
            return Err(
                WorkspaceError(
                    "A workspace already exists at this path; remove it or run with --prune",
                    context={"path": str(path)},
                )
            )

        try:
            await asyncio.to_thread(self._worktree_root.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            return Err(
                WorkspaceError(
                    "Failed to create worktree root",
                    context={"path": str(self._worktree_root), "error": str(exc)},
                )
            )

        branch = worker_label(worker_id)
        match await self._repo.worktree_add(path, branch):
            case Err(err):
                return Err(
                    WorkspaceError(
                        f"Failed to create worktree: {err.message}",
                        context={"path": str(path), "branch": branch},
                    )
                )
            case Ok(created):
                workspace = Workspace(worker_id=worker_id, path=created, branch=branch)

        self._active[worker_id] = workspace
        logger.debug("Provisioned %s at %s", branch, workspace.path)
        return Ok(workspace)

    async def teardown(self, workspace: Workspace) -> Result[None, WorkspaceError]:
        """Remove a workspace and its branch.

        Safe to call more than once: tearing down a workspace that is already
        gone logs a warning and returns Err instead of raising.
        """
        if self._active.get(workspace.worker_id) == workspace:
            del self._active[workspace.worker_id]

        errors: list[str] = []

        if not workspace.path.exists():
            logger.warning("Workspace %s is already removed", workspace.path)
            await self._repo.worktree_prune()
            errors.append("workspace already removed")
        else:
            match await self._repo.worktree_remove(workspace.path, force=True):
                case Ok(_):
                    pass
                case Err(err):
                    logger.warning(
                        "git worktree remove failed for %s: %s; deleting directory",
                        workspace.path,
                        err.message,
                    )
                    try:
                        await asyncio.to_thread(shutil.rmtree, workspace.path)
                    except OSError as exc:
                        errors.append(f"could not delete {workspace.path}: {exc}")
                    await self._repo.worktree_prune()

        match await self._repo.delete_branch(workspace.branch, force=True):
            case Ok(_):
                pass
            case Err(err):
                errors.append(f"could not delete branch {workspace.branch}: {err.message}")

        if errors:
            return Err(
                WorkspaceError(
                    "Workspace teardown incomplete: " + "; ".join(errors),
                    context={"path": str(workspace.path)},
                )
            )
        return Ok(None)

    async def find_stale_workspaces(self) -> list[Path]:
        """Detect workspace directories left behind by a previous run.

        Scans worktree_root for ``agent-<n>`` directories that are not live in
        this manager.
        """
        if not self._worktree_root.exists():
            return []

        def _scan() -> list[Path]:
            return [
                d
                for d in self._worktree_root.iterdir()
                if d.is_dir() and _WORKSPACE_NAME_PATTERN.match(d.name)
            ]

        candidates = await asyncio.to_thread(_scan)
        active_paths = {ws.path.resolve() for ws in self._active.values()}
        return sorted(path for path in candidates if path.resolve() not in active_paths)

    async def prune_stale_workspaces(self) -> int:
        """Remove stale workspaces and orphaned ``agent-<n>`` branches.

        A previous run can leave a workspace directory behind, or only its
        branch when the directory was deleted by hand. Branches checked out by
        a registered worktree or held by a live workspace are kept.

        Returns:
            Number of workspaces and orphaned branches removed
        """
        stale = await self.find_stale_workspaces()
        if stale:
            logger.warning(
                "Found %d stale workspaces from a previous run: %s",
                len(stale),
                [p.name for p in stale],
            )

        removed = 0
        for path in stale:
            match await self._repo.worktree_remove(path, force=True):
                case Ok(_):
                    removed += 1
                case Err(_):
                    # Not registered with git any more; delete the directory.
                    try:
                        await asyncio.to_thread(shutil.rmtree, path)
                        removed += 1
                    except OSError as exc:
                        logger.error("Failed to remove stale workspace %s: %s", path, exc)
                        continue
            await self._repo.delete_branch(path.name, force=True)

        await self._repo.worktree_prune()
        return removed + await self._prune_orphan_branches()

    async def _prune_orphan_branches(self) -> int:
        match await self._repo.list_branches("agent-*"):
            case Ok(branches):
                pass
            case Err(err):
                logger.warning("Could not list workspace branches: %s", err.message)
                return 0

        keep = {ws.branch for ws in self._active.values()}
        match await self._repo.worktree_list():
            case Ok(worktrees):
                keep.update(w.branch for w in worktrees)
            case Err(err):
                logger.warning("Could not list worktrees: %s", err.message)
                return 0

        orphans = [b for b in branches if _WORKSPACE_NAME_PATTERN.match(b) and b not in keep]
        if orphans:
            logger.warning("Found %d orphaned workspace branches: %s", len(orphans), orphans)

        deleted = 0
        for branch in orphans:
            match await self._repo.delete_branch(branch, force=True):
                case Ok(_):
                    deleted += 1
                case Err(err):
                    logger.error("Failed to delete branch %s: %s", branch, err.message)
        return deleted


__all__ = [
    "WorktreeManager",
]
