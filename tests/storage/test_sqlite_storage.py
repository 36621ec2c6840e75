"""Tests for SqliteTreeStorage: per-container trees and the compact snapshot slot."""

import logging
from datetime import UTC, datetime

from tabtree.config import SnapshotLimits
from tabtree.models import GroupInfo
from tabtree.storage.sqlite import SNAPSHOT_KEY, SqliteTreeStorage
from tabtree.tree.store import move
from tests.fixtures import make_chain, make_tab, nid, tree_from_tabs


def _stamped(tree, seconds):
    return tree.model_copy(update={"updated_at": datetime.fromtimestamp(seconds, UTC)})


class TestContainerTrees:
    async def test_round_trip(self, storage):
        """A saved tree loads back equal, groups included."""
        tree = make_chain(1, 2, 3)
        tree = move(tree, nid(3), nid(1))
        tree.groups = {4: GroupInfo(title="Work", color="blue", collapsed=True)}

        await storage.save_container_tree(tree)
        loaded = await storage.load_container_tree(tree.container_id)

        assert loaded == tree
        assert loaded.groups[4].title == "Work"

    async def test_missing(self, storage):
        assert await storage.load_container_tree(42) is None

    async def test_save_overwrites(self, storage):
        """Saving again replaces the stored tree."""
        await storage.save_container_tree(tree_from_tabs([make_tab(1)]))
        await storage.save_container_tree(tree_from_tabs([make_tab(1), make_tab(2)]))

        loaded = await storage.load_container_tree(1)
        assert sorted(loaded.nodes) == [nid(1), nid(2)]

    async def test_remove(self, storage):
        """Removing is idempotent."""
        await storage.save_container_tree(tree_from_tabs([make_tab(1)]))
        await storage.remove_container_tree(1)
        await storage.remove_container_tree(1)
        assert await storage.load_container_tree(1) is None

    async def test_load_all_newest_first(self, storage):
        """All stored trees come back newest first."""
        await storage.save_container_tree(_stamped(tree_from_tabs([make_tab(1)], container_id=1), 100))
        await storage.save_container_tree(_stamped(tree_from_tabs([make_tab(2)], container_id=2), 300))
        await storage.save_container_tree(_stamped(tree_from_tabs([make_tab(3)], container_id=3), 200))

        trees = await storage.load_all_container_trees()
        assert [t.container_id for t in trees] == [2, 3, 1]

    async def test_unreadable_rows_are_skipped(self, storage, db, caplog):
        """Rows that fail to parse or validate are logged and skipped."""
        await storage.save_container_tree(tree_from_tabs([make_tab(1)]))
        stamp = datetime.now(UTC).isoformat()
        for container_id, payload in [
            (7, "not json"),
            (8, '{"container_id": 8}'),
            (9, '{"container_id": 9, "nodes": "wrong"}'),
        ]:
            await db.execute(
                "INSERT INTO container_trees (container_id, payload, updated_at) VALUES (?, ?, ?)",
                (container_id, payload, stamp),
            )

        with caplog.at_level(logging.WARNING, logger="tabtree.storage.sqlite"):
            trees = await storage.load_all_container_trees()
            single = await storage.load_container_tree(9)

        assert [t.container_id for t in trees] == [1]
        assert single is None
        assert "container 9 is malformed" in caplog.text


class TestSnapshotSlot:
    async def test_empty_slot(self, storage):
        assert await storage.load_snapshot() is None

    async def test_save_and_load(self, storage):
        """The written snapshot is what loads back."""
        state = {1: make_chain(1, 2)}

        written = await storage.save_snapshot(state)
        loaded = await storage.load_snapshot()

        assert loaded == written
        assert loaded.containers[0].key == "1"
        assert loaded.containers[0].nodes[1].parent_url == "https://example.com/1"

    async def test_save_applies_limits(self, db):
        """The storage's limits apply on save."""
        storage = SqliteTreeStorage(db, SnapshotLimits(max_containers=1, max_nodes_per_container=1))
        state = {
            1: _stamped(make_chain(1, 2), 100),
            2: _stamped(tree_from_tabs([make_tab(5, container_id=2)], container_id=2), 200),
        }

        written = await storage.save_snapshot(state)

        assert [c.key for c in written.containers] == ["2"]
        assert len(written.containers[0].nodes) == 1

    async def test_malformed_slot_is_ignored(self, storage, db):
        """Unparseable snapshot slots load as None."""
        await db.set_value(SNAPSHOT_KEY, '{"containers": 12}')
        assert await storage.load_snapshot() is None

        await db.set_value(SNAPSHOT_KEY, "garbage")
        assert await storage.load_snapshot() is None
