"""Tests for the merge gate."""

from __future__ import annotations

import asyncio

import pytest

from aoa.swarm.gate import MergeGate


class TestMergeGate:
    @pytest.mark.asyncio
    async def test_holder_is_tracked(self) -> None:
        gate = MergeGate()
        assert gate.holder is None
        async with gate.hold(3):
            assert gate.holder == 3
        assert gate.holder is None
        assert gate.merges == 1

    @pytest.mark.asyncio
    async def test_critical_sections_never_overlap(self) -> None:
        gate = MergeGate()
        inside = 0
        peak = 0
        order: list[int] = []

        async def merge(worker_id: int) -> None:
            nonlocal inside, peak
            async with gate.hold(worker_id):
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.001)
                order.append(worker_id)
                inside -= 1

        await asyncio.gather(*(merge(i) for i in range(8)))

        assert peak == 1
        assert sorted(order) == list(range(8))
        assert gate.merges == 8

    @pytest.mark.asyncio
    async def test_released_when_block_raises(self) -> None:
        gate = MergeGate()

        with pytest.raises(RuntimeError):
            async with gate.hold(0):
                raise RuntimeError("merge exploded")

        assert gate.holder is None
        async with asyncio.timeout(1):
            async with gate.hold(1):
                assert gate.holder == 1
