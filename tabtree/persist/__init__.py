"""Write-back: debounced persistence of container trees and the compact snapshot."""

from tabtree.persist.coordinator import PersistCoordinator
from tabtree.persist.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from tabtree.persist.snapshot import build_compact_snapshot

__all__ = [
    "AsyncioScheduler",
    "PersistCoordinator",
    "Scheduler",
    "TimerHandle",
    "build_compact_snapshot",
]
