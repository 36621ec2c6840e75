"""Keep a container tree consistent with the live tab list.

Stale nodes are removed one at a time with their children promoted, so a
missed close event never takes a subtree of live tabs down with it.
"""

from collections.abc import Iterable

from tabtree.models import ContainerTree, ReconcileResult, utcnow
from tabtree.tree.identity import node_id_for
from tabtree.tree.store import remove_node_promote_children


def _has_node_for(tree: ContainerTree, external_id: int | None) -> bool:
    if external_id is None:
        return False
    node = tree.nodes.get(node_id_for(external_id))
    return node is not None and node.external_id == external_id


def reconcile_selection(
    tree: ContainerTree, preferred_external_id: int | None = None
) -> ContainerTree:
    """Pick the preferred tab if it has a node, else keep a valid selection, else None."""
    if _has_node_for(tree, preferred_external_id):
        selected = preferred_external_id
    elif _has_node_for(tree, tree.selected_external_id):
        selected = tree.selected_external_id
    else:
        selected = None

    if selected == tree.selected_external_id:
        return tree
    return tree.model_copy(update={"selected_external_id": selected, "updated_at": utcnow()})


def remove_by_external_ids(
    tree: ContainerTree,
    external_ids: Iterable[int],
    preferred_selection_id: int | None = None,
) -> ReconcileResult:
    """Remove a known batch of closed tabs, promoting their children."""
    unique_ids = list(dict.fromkeys(i for i in external_ids if isinstance(i, int)))

    next_tree = tree
    changed = False
    for external_id in unique_ids:
        stale_node_id = node_id_for(external_id)
        if stale_node_id not in next_tree.nodes:
            continue
        next_tree = remove_node_promote_children(next_tree, stale_node_id)
        changed = True

    if not changed:
        return ReconcileResult(tree=tree, changed=False)
    return ReconcileResult(
        tree=reconcile_selection(next_tree, preferred_selection_id), changed=True
    )


def prune_against_live(
    tree: ContainerTree,
    live_external_ids: Iterable[int],
    preferred_selection_id: int | None = None,
) -> ReconcileResult:
    """Drop every node whose tab is no longer live, then resolve the selection.

    Selection goes to preferred_selection_id when it is live and has a node,
    otherwise the current selection is kept if still valid, otherwise None.
    """
    live = live_external_ids if isinstance(live_external_ids, (set, frozenset)) else set(live_external_ids)

    stale = [
        node_id for node_id, node in tree.nodes.items() if node.external_id not in live
    ]

    next_tree = tree
    changed = False
    for stale_node_id in stale:
        if stale_node_id not in next_tree.nodes:
            continue
        next_tree = remove_node_promote_children(next_tree, stale_node_id)
        changed = True

    preferred = preferred_selection_id if preferred_selection_id in live else None
    reconciled = reconcile_selection(next_tree, preferred)
    if reconciled is not next_tree:
        next_tree = reconciled
        changed = True

    return ReconcileResult(tree=next_tree, changed=changed)
