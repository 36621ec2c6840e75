"""Abstract storage contract consumed by the restore path and the persist coordinator."""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from tabtree.models import CompactSnapshot, ContainerTree


class TreeStorage(ABC):
    """Durable home for per-container trees and the compact snapshot.

    Trees live in roomy local storage and are authoritative for restore;
    the snapshot is small, portable, and only a best-effort fallback.
    """

    @abstractmethod
    async def load_container_tree(self, container_id: int) -> ContainerTree | None:
        """Stored tree for container_id, or None if absent or unreadable."""
        ...

    @abstractmethod
    async def load_all_container_trees(self) -> list[ContainerTree]:
        """Every readable stored tree. Feeds the candidate pool at startup."""
        ...

    @abstractmethod
    async def save_container_tree(self, tree: ContainerTree) -> None:
        ...

    @abstractmethod
    async def remove_container_tree(self, container_id: int) -> None:
        ...

    @abstractmethod
    async def load_snapshot(self) -> CompactSnapshot | None:
        ...

    @abstractmethod
    async def save_snapshot(
        self, containers_state: Mapping[int, ContainerTree]
    ) -> CompactSnapshot:
        """Encode containers_state within the configured limits and store it.

        Returns the snapshot as written.
        """
        ...
