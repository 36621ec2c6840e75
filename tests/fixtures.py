"""Shared test helpers: tab builders, tree builders, and a virtual-clock scheduler."""

from typing import Any

from tabtree.models import ContainerTree, TabInfo, TabNode
from tabtree.persist.scheduler import AsyncCallback, Scheduler, TimerHandle
from tabtree.tree.identity import node_id_for
from tabtree.tree.store import create_empty_tree, move, upsert


def make_tab(tab_id: int, **overrides: Any) -> TabInfo:
    """A TabInfo with sensible defaults; index defaults to tab_id."""
    fields: dict[str, Any] = {
        "id": tab_id,
        "container_id": 1,
        "index": tab_id,
        "title": f"Tab {tab_id}",
        "url": f"https://example.com/{tab_id}",
    }
    fields.update(overrides)
    return TabInfo(**fields)


def nid(tab_id: int) -> str:
    return node_id_for(tab_id)


def tree_from_tabs(tabs: list[TabInfo], container_id: int = 1) -> ContainerTree:
    """Flat tree with one root per tab, inserted in list order."""
    tree = create_empty_tree(container_id)
    for tab in tabs:
        tree = upsert(tree, tab)
    return tree


def make_chain(*tab_ids: int) -> ContainerTree:
    """Tree where each tab is the child of the one before it: a -> b -> c ..."""
    tree = tree_from_tabs([make_tab(i, index=pos) for pos, i in enumerate(tab_ids)])
    for parent, child in zip(tab_ids, tab_ids[1:]):
        tree = move(tree, nid(child), nid(parent))
    return tree


def prior_node(
    node_id: str,
    url: str,
    parent_node_id: str | None = None,
    *,
    title: str = "",
    collapsed: bool = False,
    external_id: int = 0,
) -> TabNode:
    return TabNode(
        node_id=node_id,
        external_id=external_id,
        parent_node_id=parent_node_id,
        url=url,
        title=title,
        collapsed=collapsed,
    )


def prior_tree(nodes: list[TabNode], container_id: int = 1) -> ContainerTree:
    """Stored tree from explicit nodes; roots and child lists are derived."""
    tree = ContainerTree(container_id=container_id)
    for node in nodes:
        tree.nodes[node.node_id] = node
    for node in nodes:
        if node.parent_node_id is None:
            tree.root_node_ids.append(node.node_id)
        else:
            tree.nodes[node.parent_node_id].child_node_ids.append(node.node_id)
    return tree


class _ManualTimer(TimerHandle):
    def __init__(self, when: float, seq: int, callback: AsyncCallback) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler on a virtual clock. advance() fires due callbacks inline, in order."""

    def __init__(self) -> None:
        self.clock = 0.0
        self._timers: list[_ManualTimer] = []
        self._seq = 0
        # Every timer ever handed out, cancelled or not, in creation order.
        self.issued: list[_ManualTimer] = []

    def now(self) -> float:
        return self.clock

    def call_later(self, delay_ms: float, callback: AsyncCallback) -> TimerHandle:
        self._seq += 1
        timer = _ManualTimer(self.clock + max(delay_ms, 0), self._seq, callback)
        self._timers.append(timer)
        self.issued.append(timer)
        return timer

    def pending(self) -> list[float]:
        """Fire times of timers still armed."""
        return sorted(t.when for t in self._timers if not t.cancelled)

    async def advance(self, ms: float) -> None:
        target = self.clock + ms
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.clock = max(self.clock, timer.when)
            await timer.callback()
        self.clock = target
