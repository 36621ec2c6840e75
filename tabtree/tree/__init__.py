"""Tree state: pure mutation, reconciliation and inference over container trees."""

from tabtree.tree.identity import external_id_from, node_id_for, normalize_url
from tabtree.tree.inference import (
    build_from_compact_snapshot,
    build_from_flat_list,
    pick_best_candidate,
    score_against_candidate,
)
from tabtree.tree.reconciler import (
    prune_against_live,
    reconcile_selection,
    remove_by_external_ids,
)
from tabtree.tree.store import (
    can_reparent,
    create_empty_tree,
    ensure_valid,
    move,
    normalize_grouped_parents,
    remove_node_promote_children,
    remove_subtree,
    set_active,
    sort_by_external_index,
    toggle_collapsed,
    upsert,
)

__all__ = [
    "build_from_compact_snapshot",
    "build_from_flat_list",
    "can_reparent",
    "create_empty_tree",
    "ensure_valid",
    "external_id_from",
    "move",
    "node_id_for",
    "normalize_grouped_parents",
    "normalize_url",
    "pick_best_candidate",
    "prune_against_live",
    "reconcile_selection",
    "remove_by_external_ids",
    "remove_node_promote_children",
    "remove_subtree",
    "score_against_candidate",
    "set_active",
    "sort_by_external_index",
    "toggle_collapsed",
    "upsert",
]
