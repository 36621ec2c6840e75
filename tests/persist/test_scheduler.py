"""Tests for the asyncio-backed scheduler, on the real event loop."""

import asyncio
import logging

from tabtree.config import PersistSettings
from tabtree.persist.coordinator import PersistCoordinator
from tabtree.persist.scheduler import AsyncioScheduler
from tabtree.tree.store import create_empty_tree


class TestAsyncioScheduler:
    async def test_runs_callback_after_delay(self):
        """The callback runs once the delay has passed."""
        scheduler = AsyncioScheduler()
        fired = asyncio.Event()

        async def callback():
            fired.set()

        started = scheduler.now()
        scheduler.call_later(20, callback)
        await asyncio.wait_for(fired.wait(), timeout=2)

        assert scheduler.now() - started >= 15

    async def test_cancelled_callback_never_runs(self):
        """A cancelled callback never runs, and cancelling twice is fine."""
        scheduler = AsyncioScheduler()
        calls = []

        async def callback():
            calls.append(1)

        handle = scheduler.call_later(10, callback)
        handle.cancel()
        handle.cancel()
        await asyncio.sleep(0.05)

        assert calls == []

    async def test_failing_callback_is_logged(self, caplog):
        """An exception from a callback is logged, not raised."""
        scheduler = AsyncioScheduler()

        async def callback():
            raise ValueError("boom")

        with caplog.at_level(logging.ERROR, logger="tabtree.persist.scheduler"):
            scheduler.call_later(0, callback)
            await asyncio.sleep(0.05)

        assert "Scheduled callback failed" in caplog.text


class TestCoordinatorOnEventLoop:
    async def test_debounced_flush_reaches_storage(self):
        """A mark on the real loop ends in a storage write."""
        state = {1: create_empty_tree(1)}
        written = asyncio.Event()
        writes = []

        async def save_tree(tree):
            writes.append(tree.container_id)

        async def save_snapshot(_state):
            written.set()

        coord = PersistCoordinator(
            save_container_tree=save_tree,
            save_snapshot=save_snapshot,
            get_containers_state=lambda: state,
            settings=PersistSettings(debounce_ms=10, snapshot_min_interval_ms=0),
        )
        for _ in range(3):
            coord.mark_container_dirty(1)

        await asyncio.wait_for(written.wait(), timeout=2)
        assert writes == [1]
        coord.dispose()
