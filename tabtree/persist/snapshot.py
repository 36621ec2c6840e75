"""Compact snapshot encoding.

The snapshot lives in quota-limited sync storage, so it keeps only what
inference needs (url, parent url, collapsed) for the most recently touched
containers, in depth-first order, with every cap applied.
"""

from collections.abc import Mapping

from tabtree.config import SnapshotLimits
from tabtree.models import CompactSnapshot, ContainerTree, SnapshotContainer, SnapshotNode
from tabtree.tree.identity import normalize_url


def _encode_container(tree: ContainerTree, limits: SnapshotLimits) -> SnapshotContainer:
    nodes: list[SnapshotNode] = []
    max_len = limits.max_url_length

    stack = list(reversed(tree.root_node_ids))
    seen: set[str] = set()
    while stack and len(nodes) < limits.max_nodes_per_container:
        node_id = stack.pop()
        node = tree.nodes.get(node_id)
        if node is None or node_id in seen:
            continue
        seen.add(node_id)
        parent = tree.nodes.get(node.parent_node_id) if node.parent_node_id else None
        nodes.append(
            SnapshotNode(
                url=normalize_url(node.url)[:max_len],
                parent_url=normalize_url(parent.url)[:max_len] if parent else "",
                collapsed=node.collapsed,
            )
        )
        stack.extend(reversed(node.child_node_ids))

    return SnapshotContainer(key=str(tree.container_id), nodes=nodes)


def build_compact_snapshot(
    containers_state: Mapping[int, ContainerTree],
    limits: SnapshotLimits | None = None,
) -> CompactSnapshot:
    """Encode the most recently updated containers into a CompactSnapshot."""
    limits = limits or SnapshotLimits()
    recent = sorted(
        containers_state.values(), key=lambda tree: tree.updated_at, reverse=True
    )[: limits.max_containers]
    return CompactSnapshot(
        version=1,
        containers=[_encode_container(tree, limits) for tree in recent],
    )
