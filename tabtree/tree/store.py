"""Pure mutation primitives for ContainerTree.

Every public function takes a tree and returns a new tree, or the very same
object when nothing changed. Inputs are never mutated: each mutation works on
a clone (fresh id lists, copied node records) and edits that in place.

Structural violations (cycles, missing targets, crossing the pinned or group
boundary) are rejected by returning the input unchanged. Nothing here raises
for bad structure.
"""

import logging
from datetime import datetime

from tabtree.models import ContainerTree, RemovalResult, TabInfo, TabNode, utcnow
from tabtree.tree.identity import node_id_for, normalize_group_id
from tabtree.tree.utils import descendant_node_ids, is_descendant

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers (operate on a clone in place)
# ---------------------------------------------------------------------------


def _clone(tree: ContainerTree) -> ContainerTree:
    return tree.model_copy(
        update={
            "root_node_ids": list(tree.root_node_ids),
            "groups": dict(tree.groups),
            "nodes": {
                node_id: node.model_copy(
                    update={"child_node_ids": list(node.child_node_ids)}
                )
                for node_id, node in tree.nodes.items()
            },
        }
    )


def node_from_item(
    item: TabInfo,
    *,
    parent_node_id: str | None = None,
    collapsed: bool = False,
    stamp: datetime | None = None,
) -> TabNode:
    stamp = stamp or utcnow()
    return TabNode(
        node_id=node_id_for(item.id),
        external_id=item.id,
        parent_node_id=parent_node_id,
        collapsed=collapsed,
        pinned=item.pinned,
        group_id=normalize_group_id(item.group_id),
        container_id=item.container_id,
        external_index=item.index,
        active=item.active,
        title=item.title or "New Tab",
        url=item.initial_url,
        icon_ref=item.fav_icon_url,
        created_at=stamp,
        updated_at=stamp,
    )


def _boundary_allows(child: TabNode, parent: TabNode) -> bool:
    """Pinned and unpinned never mix; a grouped child stays inside its group."""
    if child.pinned != parent.pinned:
        return False
    if child.group_id is not None and child.group_id != parent.group_id:
        return False
    return True


def _sibling_list(tree: ContainerTree, parent_node_id: str | None) -> list[str]:
    if parent_node_id is not None and parent_node_id in tree.nodes:
        return tree.nodes[parent_node_id].child_node_ids
    return tree.root_node_ids


def _index_of(tree: ContainerTree, node_id: str) -> int:
    node = tree.nodes.get(node_id)
    return node.external_index if node is not None else 0


def _sort_ids(tree: ContainerTree, ids: list[str]) -> None:
    ids.sort(key=lambda node_id: _index_of(tree, node_id))


def _remove_id(ids: list[str], node_id: str) -> int:
    """Remove node_id from ids; return where it was, or -1."""
    try:
        position = ids.index(node_id)
    except ValueError:
        return -1
    del ids[position]
    return position


def _insert_at(ids: list[str], node_id: str, index: int | None) -> None:
    if index is None:
        ids.append(node_id)
        return
    ids.insert(max(0, min(index, len(ids))), node_id)


def _detach(tree: ContainerTree, node_id: str) -> None:
    node = tree.nodes[node_id]
    _remove_id(_sibling_list(tree, node.parent_node_id), node_id)


def _detach_to_root(tree: ContainerTree, node_id: str) -> None:
    _detach(tree, node_id)
    tree.nodes[node_id].parent_node_id = None
    tree.root_node_ids.append(node_id)
    _sort_ids(tree, tree.root_node_ids)


def _reparent(
    tree: ContainerTree,
    node_id: str,
    parent_node_id: str | None,
    new_index: int | None,
) -> None:
    _detach(tree, node_id)
    tree.nodes[node_id].parent_node_id = parent_node_id
    _insert_at(_sibling_list(tree, parent_node_id), node_id, new_index)


def _enforce_boundaries(tree: ContainerTree, node_id: str) -> None:
    """Detach node_id and/or its children where an update broke the boundary."""
    node = tree.nodes[node_id]
    if node.parent_node_id is not None:
        parent = tree.nodes.get(node.parent_node_id)
        if parent is not None and not _boundary_allows(node, parent):
            _detach_to_root(tree, node_id)
    for child_id in list(node.child_node_ids):
        child = tree.nodes.get(child_id)
        if child is not None and not _boundary_allows(child, node):
            _detach_to_root(tree, child_id)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def create_empty_tree(container_id: int) -> ContainerTree:
    return ContainerTree(container_id=container_id)


def can_reparent(
    tree: ContainerTree, node_id: str, parent_node_id: str | None
) -> bool:
    """Whether move(tree, node_id, parent_node_id) would be accepted."""
    node = tree.nodes.get(node_id)
    if node is None:
        return False
    if parent_node_id is None:
        return True
    parent = tree.nodes.get(parent_node_id)
    if parent is None or parent_node_id == node_id:
        return False
    if is_descendant(tree, node_id, parent_node_id):
        return False
    return _boundary_allows(node, parent)


def upsert(
    tree: ContainerTree,
    item: TabInfo,
    *,
    parent_node_id: str | None = None,
    new_index: int | None = None,
    collapsed: bool = False,
) -> ContainerTree:
    """Insert a node for item, or refresh the cached state of an existing one.

    A new node goes under parent_node_id when that parent exists and the
    pinned/group boundary allows it, otherwise it becomes a root. An existing
    node is reparented only when parent_node_id names a different, valid
    parent. Empty titles, URLs and icons keep the cached values. If nothing
    but the timestamp would change, tree itself is returned.
    """
    next_tree = _clone(tree)
    stamp = utcnow()
    node_id = node_id_for(item.id)
    existing = next_tree.nodes.get(node_id)

    if existing is None:
        node = node_from_item(item, collapsed=collapsed, stamp=stamp)
        next_tree.nodes[node_id] = node
        parent = next_tree.nodes.get(parent_node_id) if parent_node_id else None
        if parent is not None and parent_node_id != node_id and _boundary_allows(node, parent):
            node.parent_node_id = parent_node_id
            parent.child_node_ids.append(node_id)
            _sort_ids(next_tree, parent.child_node_ids)
        else:
            next_tree.root_node_ids.append(node_id)
            _sort_ids(next_tree, next_tree.root_node_ids)
    else:
        existing.pinned = item.pinned
        existing.group_id = normalize_group_id(item.group_id)
        existing.external_index = item.index
        existing.container_id = item.container_id
        existing.active = item.active
        existing.title = item.title or existing.title
        existing.url = item.url or existing.url
        existing.icon_ref = item.fav_icon_url or existing.icon_ref
        existing.updated_at = stamp

        if parent_node_id and parent_node_id != existing.parent_node_id:
            if can_reparent(next_tree, node_id, parent_node_id):
                _reparent(next_tree, node_id, parent_node_id, new_index)
            else:
                logger.debug("upsert: rejected reparent of %s under %s", node_id, parent_node_id)

        _enforce_boundaries(next_tree, node_id)
        _sort_ids(next_tree, _sibling_list(next_tree, existing.parent_node_id))

    if item.active:
        next_tree.selected_external_id = item.id
    if existing is not None and _unchanged_node(tree, next_tree, node_id):
        return tree
    next_tree.updated_at = stamp
    return next_tree


def _unchanged_node(before: ContainerTree, after: ContainerTree, node_id: str) -> bool:
    """True if only node_id's timestamp differs between the two trees."""
    if _structure(after) != _structure(before):
        return False
    before_node = before.nodes[node_id].model_dump(exclude={"updated_at"})
    return after.nodes[node_id].model_dump(exclude={"updated_at"}) == before_node


def set_active(tree: ContainerTree, external_id: int) -> ContainerTree:
    """Mark exactly one node active and select it. Returns tree as-is if already so."""
    target = node_id_for(external_id)
    selected = external_id if target in tree.nodes else None
    if tree.selected_external_id == selected and all(
        node.active == (node_id == target) for node_id, node in tree.nodes.items()
    ):
        return tree

    next_tree = _clone(tree)
    for node_id, node in next_tree.nodes.items():
        node.active = node_id == target
    next_tree.selected_external_id = selected
    next_tree.updated_at = utcnow()
    return next_tree


def move(
    tree: ContainerTree,
    node_id: str,
    new_parent_node_id: str | None = None,
    new_index: int | None = None,
) -> ContainerTree:
    """Reparent node_id under new_parent_node_id (None = root) at new_index.

    Returns the input unchanged if the node or target is missing, the target
    is the node itself or one of its descendants, or the move would cross the
    pinned or group boundary.
    """
    if not can_reparent(tree, node_id, new_parent_node_id):
        logger.debug("move: rejected %s -> %s", node_id, new_parent_node_id)
        return tree

    next_tree = _clone(tree)
    _reparent(next_tree, node_id, new_parent_node_id, new_index)
    next_tree.updated_at = utcnow()
    return next_tree


def toggle_collapsed(tree: ContainerTree, node_id: str) -> ContainerTree:
    if node_id not in tree.nodes:
        return tree
    next_tree = _clone(tree)
    node = next_tree.nodes[node_id]
    node.collapsed = not node.collapsed
    node.updated_at = next_tree.updated_at = utcnow()
    return next_tree


def remove_node_promote_children(tree: ContainerTree, node_id: str) -> ContainerTree:
    """Remove one node, splicing its children into the slot it occupied."""
    node = tree.nodes.get(node_id)
    if node is None:
        return tree

    next_tree = _clone(tree)
    node = next_tree.nodes[node_id]
    parent_id = node.parent_node_id if node.parent_node_id in next_tree.nodes else None
    siblings = _sibling_list(next_tree, parent_id)
    position = _remove_id(siblings, node_id)
    if position < 0:
        position = len(siblings)

    for offset, child_id in enumerate(node.child_node_ids):
        child = next_tree.nodes.get(child_id)
        if child is None:
            continue
        child.parent_node_id = parent_id
        siblings.insert(position + offset, child_id)

    del next_tree.nodes[node_id]
    if next_tree.selected_external_id == node.external_id:
        next_tree.selected_external_id = None
    next_tree.updated_at = utcnow()
    return next_tree


def remove_subtree(tree: ContainerTree, node_id: str) -> RemovalResult:
    """Remove a node and every descendant.

    The removed external ids are returned so the caller can close the
    corresponding tabs.
    """
    if node_id not in tree.nodes:
        return RemovalResult(tree=tree, removed_external_ids=[])

    next_tree = _clone(tree)
    removal = [node_id, *descendant_node_ids(next_tree, node_id)]
    _detach(next_tree, node_id)

    removed: list[int] = []
    for removing_id in removal:
        removing = next_tree.nodes.pop(removing_id, None)
        if removing is not None:
            removed.append(removing.external_id)

    if next_tree.selected_external_id in removed:
        next_tree.selected_external_id = None
    next_tree.updated_at = utcnow()
    return RemovalResult(tree=next_tree, removed_external_ids=removed)


def sort_by_external_index(tree: ContainerTree) -> ContainerTree:
    """Stable-sort the root list and every child list by external index."""
    next_tree = _clone(tree)
    _sort_ids(next_tree, next_tree.root_node_ids)
    for node in next_tree.nodes.values():
        if node.child_node_ids:
            _sort_ids(next_tree, node.child_node_ids)
    if _structure(next_tree) == _structure(tree):
        return tree
    next_tree.updated_at = utcnow()
    return next_tree


def _structure(tree: ContainerTree) -> tuple:
    return (
        tree.root_node_ids,
        {nid: (n.parent_node_id, n.child_node_ids) for nid, n in tree.nodes.items()},
        tree.selected_external_id,
    )


def ensure_valid(tree: ContainerTree) -> ContainerTree:
    """Repair pass after bulk structural edits.

    Drops dangling, duplicate and self references, re-links children their
    parent forgot, breaks cycles and pinned-boundary crossings by detaching
    to root, gives every parentless node a root slot, and clears a selection
    that points nowhere. The node's own parent_node_id is the source of truth.
    """
    next_tree = _clone(tree)
    nodes = next_tree.nodes

    for node_id, node in nodes.items():
        if node.parent_node_id == node_id or node.parent_node_id not in nodes:
            node.parent_node_id = None

    placed: set[str] = set()
    for node_id, node in nodes.items():
        kept = []
        for child_id in node.child_node_ids:
            if (
                child_id in nodes
                and child_id not in placed
                and nodes[child_id].parent_node_id == node_id
            ):
                kept.append(child_id)
                placed.add(child_id)
        node.child_node_ids = kept

    for node_id, node in nodes.items():
        if node.parent_node_id is not None and node_id not in placed:
            nodes[node.parent_node_id].child_node_ids.append(node_id)
            placed.add(node_id)

    # Anything not reachable from a parentless node sits on a cycle.
    reached: set[str] = set()

    def mark(start: str) -> None:
        stack = [start]
        while stack:
            current = stack.pop()
            if current in reached:
                continue
            reached.add(current)
            stack.extend(nodes[current].child_node_ids)

    for node_id, node in nodes.items():
        if node.parent_node_id is None:
            mark(node_id)
    for node_id, node in nodes.items():
        if node_id not in reached:
            _remove_id(nodes[node.parent_node_id].child_node_ids, node_id)
            node.parent_node_id = None
            mark(node_id)

    for node_id, node in nodes.items():
        parent = nodes.get(node.parent_node_id) if node.parent_node_id else None
        if parent is not None and parent.pinned != node.pinned:
            _remove_id(parent.child_node_ids, node_id)
            node.parent_node_id = None

    roots: list[str] = []
    seen: set[str] = set()
    for root_id in next_tree.root_node_ids:
        if root_id in nodes and nodes[root_id].parent_node_id is None and root_id not in seen:
            roots.append(root_id)
            seen.add(root_id)
    for node_id, node in nodes.items():
        if node.parent_node_id is None and node_id not in seen:
            roots.append(node_id)
            seen.add(node_id)
    next_tree.root_node_ids = roots

    selected = next_tree.selected_external_id
    if selected is not None and node_id_for(selected) not in nodes:
        next_tree.selected_external_id = None

    if _structure(next_tree) == _structure(tree):
        return tree
    next_tree.updated_at = utcnow()
    return next_tree


def normalize_grouped_parents(tree: ContainerTree) -> ContainerTree:
    """Detach grouped nodes whose parent is outside their group.

    The detached node keeps its own subtree. Followed by a validity pass and
    a sort when anything moved.
    """
    next_tree = _clone(tree)
    changed = False

    for node_id, node in next_tree.nodes.items():
        if node.group_id is None or node.parent_node_id is None:
            continue
        parent = next_tree.nodes.get(node.parent_node_id)
        if parent is not None and parent.group_id == node.group_id:
            continue
        if parent is not None:
            _remove_id(parent.child_node_ids, node_id)
        node.parent_node_id = None
        if node_id not in next_tree.root_node_ids:
            next_tree.root_node_ids.append(node_id)
        changed = True

    if not changed:
        return tree
    next_tree.updated_at = utcnow()
    return sort_by_external_index(ensure_valid(next_tree))
