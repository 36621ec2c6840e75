"""Read-only queries over a ContainerTree."""

from tabtree.models import ContainerTree, TabInfo
from tabtree.tree.identity import node_id_for, normalize_group_id


def descendant_node_ids(tree: ContainerTree, node_id: str) -> list[str]:
    """All descendants of node_id (not including it), depth-first."""
    out: list[str] = []
    node = tree.nodes.get(node_id)
    stack = list(reversed(node.child_node_ids)) if node else []
    seen: set[str] = {node_id}
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        out.append(current)
        child = tree.nodes.get(current)
        if child is not None:
            stack.extend(reversed(child.child_node_ids))
    return out


def is_descendant(tree: ContainerTree, ancestor_id: str, node_id: str) -> bool:
    """True if node_id sits somewhere below ancestor_id."""
    return node_id in descendant_node_ids(tree, ancestor_id)


def subtree_external_ids(tree: ContainerTree, root_node_id: str) -> list[int]:
    """External ids of root_node_id and everything beneath it."""
    ids = [root_node_id, *descendant_node_ids(tree, root_node_id)]
    return [tree.nodes[i].external_id for i in ids if i in tree.nodes]


def dedupe_root_node_ids(tree: ContainerTree, node_ids: list[str]) -> list[str]:
    """Drop ids that already have an ancestor in node_ids.

    Batch subtree operations (close, move) act on the topmost picks only.
    """
    picked = set(node_ids)
    out = []
    for node_id in node_ids:
        node = tree.nodes.get(node_id)
        current = node.parent_node_id if node else None
        covered = False
        visited: set[str] = set()
        while current and current not in visited:
            if current in picked:
                covered = True
                break
            visited.add(current)
            parent = tree.nodes.get(current)
            current = parent.parent_node_id if parent else None
        if not covered:
            out.append(node_id)
    return out


def child_insert_index(
    tree: ContainerTree, parent_node_id: str, fallback_index: int
) -> int:
    """External index just past the parent's last descendant.

    Where a new child tab should be placed in the browser's strip so it lands
    after its future siblings.
    """
    parent = tree.nodes.get(parent_node_id)
    if parent is None:
        return fallback_index
    max_index = parent.external_index
    for desc_id in descendant_node_ids(tree, parent_node_id):
        desc = tree.nodes.get(desc_id)
        if desc is not None:
            max_index = max(max_index, desc.external_index)
    return max_index + 1


def should_process_update(tree: ContainerTree, external_id: int, item: TabInfo) -> bool:
    """False when an update event would change nothing we track.

    Browsers fire update events for loading-state churn; skipping them keeps
    the persist coordinator from writing identical trees.
    """
    node = tree.nodes.get(node_id_for(external_id))
    if node is None:
        return True

    if item.active and tree.selected_external_id != external_id:
        return True

    return (
        node.pinned != item.pinned
        or node.group_id != normalize_group_id(item.group_id)
        or node.external_index != item.index
        or node.container_id != item.container_id
        or node.active != item.active
        or node.title != (item.title or node.title)
        or node.url != (item.url or node.url)
        or node.icon_ref != (item.fav_icon_url or node.icon_ref)
    )


def find_violations(tree: ContainerTree) -> list[str]:
    """Describe every structural invariant the tree breaks. Empty means valid."""
    problems: list[str] = []
    nodes = tree.nodes
    placements: dict[str, int] = {}

    for root_id in tree.root_node_ids:
        if root_id not in nodes:
            problems.append(f"root {root_id} missing from nodes")
            continue
        placements[root_id] = placements.get(root_id, 0) + 1
        if nodes[root_id].parent_node_id is not None:
            problems.append(f"root {root_id} has parent {nodes[root_id].parent_node_id}")

    for node_id, node in nodes.items():
        if node.node_id != node_id:
            problems.append(f"node keyed {node_id} carries id {node.node_id}")
        for child_id in node.child_node_ids:
            if child_id not in nodes:
                problems.append(f"{node_id} lists missing child {child_id}")
                continue
            placements[child_id] = placements.get(child_id, 0) + 1
            if nodes[child_id].parent_node_id != node_id:
                problems.append(f"{child_id} listed under {node_id} but points elsewhere")

        parent_id = node.parent_node_id
        if parent_id is None:
            continue
        parent = nodes.get(parent_id)
        if parent is None:
            problems.append(f"{node_id} points at missing parent {parent_id}")
            continue
        if node_id not in parent.child_node_ids:
            problems.append(f"{node_id} missing from parent {parent_id} children")
        if parent.pinned != node.pinned:
            problems.append(f"{node_id} crosses the pinned boundary")
        if node.group_id is not None and parent.group_id != node.group_id:
            problems.append(f"{node_id} in group {node.group_id} under a parent outside it")

    for node_id in nodes:
        count = placements.get(node_id, 0)
        if count != 1:
            problems.append(f"{node_id} placed {count} times")

    for node_id in nodes:
        visited = {node_id}
        current = nodes[node_id].parent_node_id
        while current is not None and current in nodes:
            if current in visited:
                problems.append(f"cycle through {node_id}")
                break
            visited.add(current)
            current = nodes[current].parent_node_id

    selected = tree.selected_external_id
    if selected is not None and node_id_for(selected) not in nodes:
        problems.append(f"selection {selected} has no node")

    return problems
