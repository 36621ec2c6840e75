"""Startup hydration: choose the best prior state for a container and rebuild its tree.

Order of preference for a container with live tabs:

1. the tree stored under the container's own id,
2. the best-scoring stored tree from the candidate pool (windows usually
   come back under new ids after a restart),
3. the compact snapshot entry for the container,
4. a flat forest.

A container without tabs gets an empty tree.
"""

import logging

from tabtree.config import InferenceWeights, SnapshotLimits
from tabtree.models import CompactSnapshot, ContainerTree, TabInfo
from tabtree.tree.inference import (
    build_from_compact_snapshot,
    build_from_flat_list,
    pick_best_candidate,
)
from tabtree.tree.store import create_empty_tree

logger = logging.getLogger(__name__)


def restore_container_tree(
    container_id: int,
    items: list[TabInfo],
    *,
    stored_tree: ContainerTree | None = None,
    candidate_pool: list[ContainerTree] | None = None,
    snapshot: CompactSnapshot | None = None,
    weights: InferenceWeights | None = None,
    limits: SnapshotLimits | None = None,
) -> ContainerTree:
    """Rebuild the tree for container_id from whatever prior state is available.

    A candidate taken from candidate_pool is removed from it, so calling this
    for each window in turn hands every stored tree out at most once.
    """
    if not items:
        return create_empty_tree(container_id)

    weights = weights or InferenceWeights()
    prior = stored_tree
    if prior is None and candidate_pool:
        prior = pick_best_candidate(
            items,
            candidate_pool,
            url_weight=weights.url_weight,
            title_weight=weights.title_weight,
        )
        if prior is not None:
            logger.info(
                "Container %s adopts stored tree of former container %s",
                container_id,
                prior.container_id,
            )

    if prior is not None:
        return build_from_flat_list(items, prior, container_id=container_id)

    limits = limits or SnapshotLimits()
    from_snapshot = build_from_compact_snapshot(
        container_id, items, snapshot, max_url_length=limits.max_url_length
    )
    if from_snapshot is not None:
        return from_snapshot.model_copy(update={"container_id": container_id})
    return build_from_flat_list(items, container_id=container_id)
