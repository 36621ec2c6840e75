"""Tree inference: rebuild parent/child links after tab ids were reassigned.

After a browser restart every tab gets a fresh id, so the stored tree can't
be reused directly. We pair each live tab with a previously recorded node by
normalized URL (title when there is no URL), then restore each recorded
"opened from" relation against the live tab that now carries the parent URL.

Matching is greedy and best-effort: ties go to list order and no attempt is
made at a globally optimal assignment.
"""

import logging
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from tabtree.config import SnapshotLimits
from tabtree.models import CompactSnapshot, ContainerTree, GroupInfo, TabInfo, TabNode
from tabtree.tree.identity import match_key, node_id_for, normalize_url
from tabtree.tree.store import (
    can_reparent,
    create_empty_tree,
    ensure_valid,
    node_from_item,
    sort_by_external_index,
)

logger = logging.getLogger(__name__)

DEFAULT_URL_WEIGHT = 2
DEFAULT_TITLE_WEIGHT = 1


@dataclass
class _PriorRecord:
    """What we remember about one node of the prior tree."""

    key: str
    parent_key: str | None
    collapsed: bool


# ---------------------------------------------------------------------------
# Prior tree normalization
# ---------------------------------------------------------------------------


def _field(node: Any, name: str, default: Any = None) -> Any:
    if isinstance(node, Mapping):
        return node.get(name, default)
    return getattr(node, name, default)


def _prior_records(prior_tree: Any) -> list[_PriorRecord]:
    """Flatten a prior tree into match records, tolerating malformed input.

    Accepts a ContainerTree or the equivalent plain dict (as loaded from an
    older or foreign store). Entries that can't be read are skipped.
    """
    nodes = _field(prior_tree, "nodes")
    if not isinstance(nodes, Mapping):
        return []

    records: list[_PriorRecord] = []
    for node in nodes.values():
        if not isinstance(node, (Mapping, TabNode)):
            continue
        key = match_key(_field(node, "url", ""), _field(node, "title", ""))
        parent_key = None
        parent_id = _field(node, "parent_node_id")
        if parent_id is not None:
            parent = nodes.get(parent_id)
            if isinstance(parent, (Mapping, TabNode)):
                parent_key = match_key(_field(parent, "url", ""), _field(parent, "title", "")) or None
        records.append(
            _PriorRecord(key=key, parent_key=parent_key, collapsed=bool(_field(node, "collapsed", False)))
        )
    return records


def _prior_groups(prior_tree: Any) -> dict[int, GroupInfo]:
    groups = _field(prior_tree, "groups")
    if not isinstance(groups, Mapping):
        return {}
    return {
        int(group_id): info if isinstance(info, GroupInfo) else GroupInfo.model_validate(info)
        for group_id, info in groups.items()
    }


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------


def build_from_flat_list(
    items: Iterable[TabInfo],
    prior_tree: ContainerTree | Mapping | None = None,
    *,
    container_id: int | None = None,
) -> ContainerTree:
    """Build a container tree from a flat tab list, restoring what we can.

    Without a prior tree the result is a flat forest in tab order. With one,
    each tab takes the next unmatched prior record with the same key and is
    placed under the live tab that now carries the recorded parent key. When
    two tabs share that key, the first one is used unless it is the tab
    itself, in which case the second is used.
    """
    sorted_items = sorted(items, key=lambda item: item.index)
    if container_id is None:
        container_id = sorted_items[0].container_id if sorted_items else -1

    groups: dict[int, GroupInfo] = {}
    records: list[_PriorRecord] = []
    if prior_tree is not None:
        try:
            groups = _prior_groups(prior_tree)
            records = _prior_records(prior_tree)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring unreadable prior tree for container %s: %s", container_id, exc)
            groups = {}
            records = []

    tree = _link_to_records(container_id, sorted_items, records, match_key)
    tree.groups = groups
    return tree


def _link_to_records(
    container_id: int,
    sorted_items: list[TabInfo],
    records: list[_PriorRecord],
    key_of: Callable[[str, str], str],
) -> ContainerTree:
    """Lay the items out flat, then attach each matched one to its recorded parent.

    key_of maps a live tab's (url, title) to the key space the records use.
    """
    tree = create_empty_tree(container_id)

    # Queue of prior records per key, consumed first come first served.
    prior_by_key: dict[str, deque[_PriorRecord]] = {}
    for record in records:
        if record.key:
            prior_by_key.setdefault(record.key, deque()).append(record)

    live_keys = {item.id: key_of(item.initial_url, item.title) for item in sorted_items}

    matched: dict[int, _PriorRecord] = {}
    for item in sorted_items:
        queue = prior_by_key.get(live_keys[item.id])
        if queue:
            matched[item.id] = queue.popleft()

    # First and second live occurrence per key, for self-match avoidance.
    first_by_key: dict[str, TabInfo] = {}
    second_by_key: dict[str, TabInfo] = {}
    for item in sorted_items:
        key = live_keys[item.id]
        if not key:
            continue
        first = first_by_key.get(key)
        if first is None:
            first_by_key[key] = item
        elif key not in second_by_key and first.id != item.id:
            second_by_key[key] = item

    for item in sorted_items:
        record = matched.get(item.id)
        node = node_from_item(item, collapsed=record.collapsed if record else False)
        tree.nodes[node.node_id] = node
        tree.root_node_ids.append(node.node_id)
        if item.active:
            tree.selected_external_id = item.id

    for item in sorted_items:
        record = matched.get(item.id)
        if record is None or not record.parent_key:
            continue
        first = first_by_key.get(record.parent_key)
        parent_item = first if first is not None and first.id != item.id else second_by_key.get(record.parent_key)
        if parent_item is None or parent_item.id == item.id:
            continue

        node_id = node_id_for(item.id)
        parent_node_id = node_id_for(parent_item.id)
        if not can_reparent(tree, node_id, parent_node_id):
            continue
        tree.root_node_ids.remove(node_id)
        tree.nodes[node_id].parent_node_id = parent_node_id
        tree.nodes[parent_node_id].child_node_ids.append(node_id)

    return sort_by_external_index(ensure_valid(tree))


# ---------------------------------------------------------------------------
# Candidate scoring
# ---------------------------------------------------------------------------


def score_against_candidate(
    prior_tree: ContainerTree | Mapping | None,
    items: list[TabInfo],
    *,
    url_weight: int = DEFAULT_URL_WEIGHT,
    title_weight: int = DEFAULT_TITLE_WEIGHT,
) -> int:
    """How much a stored tree looks like the live tab list.

    url_weight per prior node whose URL matches a live URL; otherwise
    title_weight if its title matches a live title.
    """
    nodes = _field(prior_tree, "nodes") if prior_tree is not None else None
    if not isinstance(nodes, Mapping) or not items:
        return 0

    current_urls = {normalize_url(item.initial_url) for item in items} - {""}
    current_titles = {item.title for item in items if item.title}
    if not current_urls and not current_titles:
        return 0

    score = 0
    for node in nodes.values():
        if not isinstance(node, (Mapping, TabNode)):
            continue
        node_url = normalize_url(_field(node, "url", ""))
        if node_url and node_url in current_urls:
            score += url_weight
            continue
        node_title = _field(node, "title", "") or ""
        if node_title and node_title in current_titles:
            score += title_weight
    return score


def pick_best_candidate(
    items: list[TabInfo],
    pool: list[ContainerTree],
    *,
    url_weight: int = DEFAULT_URL_WEIGHT,
    title_weight: int = DEFAULT_TITLE_WEIGHT,
) -> ContainerTree | None:
    """Take the best-scoring stored tree out of pool, if any scores above zero.

    Used when a window came back under a new id. The winner is removed from
    pool so two windows never claim the same stored tree. Ties keep the
    earliest candidate.
    """
    if not items or not pool:
        return None

    best_index = -1
    best_score = 0
    for index, candidate in enumerate(pool):
        score = score_against_candidate(
            candidate, items, url_weight=url_weight, title_weight=title_weight
        )
        if score > best_score:
            best_score = score
            best_index = index

    if best_index < 0:
        return None
    return pool.pop(best_index)


# ---------------------------------------------------------------------------
# Compact snapshot
# ---------------------------------------------------------------------------


def build_from_compact_snapshot(
    container_key: int | str,
    items: list[TabInfo],
    snapshot: CompactSnapshot | Mapping | None,
    *,
    max_url_length: int | None = None,
) -> ContainerTree | None:
    """Infer a tree from the compact snapshot entry recorded for container_key.

    The snapshot only stores (url, parent_url, collapsed) per node, with both
    URLs normalized and cut to max_url_length when written. Live tabs are
    keyed the same way before matching, so long URLs still pair up.
    Returns None if the snapshot has nothing usable for this container.
    """
    if snapshot is None:
        return None
    if isinstance(snapshot, Mapping):
        try:
            snapshot = CompactSnapshot.model_validate(snapshot)
        except ValueError as exc:
            logger.warning("Ignoring malformed compact snapshot: %s", exc)
            return None

    key = str(container_key)
    entry = next((c for c in snapshot.containers if c.key == key), None)
    if entry is None:
        return None

    if max_url_length is None:
        max_url_length = SnapshotLimits().max_url_length

    # Both sides take the cut the encoder applied, then normalize again since a
    # cut URL can end in a slash.
    def snapshot_key(url: str | None, title: str | None = None) -> str:
        return normalize_url(normalize_url(url)[:max_url_length])

    records = [
        _PriorRecord(
            key=snapshot_key(snap_node.url),
            parent_key=snapshot_key(snap_node.parent_url) or None,
            collapsed=snap_node.collapsed,
        )
        for snap_node in entry.nodes
    ]

    sorted_items = sorted(items, key=lambda item: item.index)
    container_id = sorted_items[0].container_id if sorted_items else -1
    return _link_to_records(container_id, sorted_items, records, snapshot_key)
