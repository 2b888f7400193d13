"""Merge gate serializing writes to the shared checkout."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from aoa.core.console import get_logger

logger = get_logger(__name__)


class MergeGate:
    """The single lock guarding merge-back into the shared checkout.

    Only the merge itself runs under the gate; staging and committing happen
    in each worker's own worktree and need no synchronization.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._holder: int | None = None
        self._merges = 0

    @property
    def holder(self) -> int | None:
        """Worker currently holding the gate, if any."""
        return self._holder

    @property
    def merges(self) -> int:
        """Number of completed critical sections."""
        return self._merges

    @asynccontextmanager
    async def hold(self, worker_id: int) -> AsyncIterator[None]:
        """Hold the gate for the duration of the block.

        The lock is released when the block exits, including when the merge
        inside it fails or the task is cancelled.
        """
        async with self._lock:
            self._holder = worker_id
            logger.debug("agent-%d acquired merge gate", worker_id)
            try:
                yield
            finally:
                self._holder = None
                self._merges += 1
                logger.debug("agent-%d released merge gate", worker_id)


__all__ = ["MergeGate"]
