"""Canonical data structures for tabtree.

Defined once here, referenced everywhere else. TabInfo is what the browser
transport hands us; TabNode and ContainerTree are the hierarchy we maintain
over it; the snapshot models are the compact, size-bounded encoding used for
best-effort restoration on another device or after a profile reset.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# External items
# ---------------------------------------------------------------------------


class TabInfo(BaseModel):
    """One live browser tab as observed through the transport."""

    id: int
    container_id: int
    index: int = 0
    active: bool = False
    pinned: bool = False
    group_id: int | None = None  # negative values mean "ungrouped"
    title: str = ""
    url: str = ""
    pending_url: str | None = None
    fav_icon_url: str = ""
    opener_id: int | None = None

    @property
    def initial_url(self) -> str:
        """The URL the tab is heading to, falling back to its committed URL."""
        if self.pending_url:
            return self.pending_url
        return self.url


# ---------------------------------------------------------------------------
# Tree state
# ---------------------------------------------------------------------------


class TabNode(BaseModel):
    node_id: str
    external_id: int
    parent_node_id: str | None = None
    child_node_ids: list[str] = Field(default_factory=list)
    collapsed: bool = False

    pinned: bool = False
    group_id: int | None = None
    container_id: int = -1
    external_index: int = 0  # sort tie-breaks only
    active: bool = False

    # Last known display attributes. Used for matching, never authoritative.
    title: str = ""
    url: str = ""
    icon_ref: str = ""

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class GroupInfo(BaseModel):
    title: str = ""
    color: str = "grey"
    collapsed: bool = False


class ContainerTree(BaseModel):
    """The hierarchy for one container (browser window)."""

    container_id: int
    root_node_ids: list[str] = Field(default_factory=list)
    nodes: dict[str, TabNode] = Field(default_factory=dict)
    groups: dict[int, GroupInfo] = Field(default_factory=dict)
    selected_external_id: int | None = None
    updated_at: datetime = Field(default_factory=utcnow)


class RemovalResult(BaseModel):
    tree: ContainerTree
    removed_external_ids: list[int] = Field(default_factory=list)


class ReconcileResult(BaseModel):
    tree: ContainerTree
    changed: bool = False


# ---------------------------------------------------------------------------
# Compact snapshot
# ---------------------------------------------------------------------------


class SnapshotNode(BaseModel):
    url: str
    parent_url: str = ""  # empty string means "no parent"
    collapsed: bool = False


class SnapshotContainer(BaseModel):
    key: str
    nodes: list[SnapshotNode] = Field(default_factory=list)


class CompactSnapshot(BaseModel):
    version: int = 1
    timestamp: datetime = Field(default_factory=utcnow)
    containers: list[SnapshotContainer] = Field(default_factory=list)
