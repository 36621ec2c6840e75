"""Debounced, coalescing, single-flight write-back of container trees.

Callers mark containers (and the compact snapshot) dirty as often as they
like; the coordinator turns bursts into one flush per debounce window, never
runs two flushes at once, throttles snapshot writes to a minimum interval,
and retries failed flushes with capped exponential backoff. Dirty marks are
never dropped by a failure, only by dispose() or forget_container().
"""

import logging
from collections.abc import Awaitable, Callable, Mapping

from tabtree.config import PersistSettings
from tabtree.models import CompactSnapshot, ContainerTree
from tabtree.persist.scheduler import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

SaveContainerTree = Callable[[ContainerTree], Awaitable[None]]
SaveSnapshot = Callable[[Mapping[int, ContainerTree]], Awaitable[CompactSnapshot | None]]
ContainersState = Callable[[], Mapping[int, ContainerTree]]
ErrorHook = Callable[[BaseException], None]


def _ignore_error(error: BaseException) -> None:
    pass


class PersistCoordinator:
    """Schedules durable writes of container trees and the compact snapshot."""

    def __init__(
        self,
        *,
        save_container_tree: SaveContainerTree,
        save_snapshot: SaveSnapshot,
        get_containers_state: ContainersState,
        error_hook: ErrorHook = _ignore_error,
        settings: PersistSettings | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._save_container_tree = save_container_tree
        self._save_snapshot = save_snapshot
        self._get_containers_state = get_containers_state
        self._error_hook = error_hook
        self._settings = settings or PersistSettings()
        self._scheduler = scheduler or AsyncioScheduler()

        self._dirty_container_ids: set[int] = set()
        self._snapshot_dirty = False
        self._timer: TimerHandle | None = None
        self._flush_in_flight = False
        self._retry_delay_ms = self._settings.retry_base_ms
        self._last_snapshot_write_at: float | None = None

    # -- state inspection ---------------------------------------------------

    @property
    def dirty_container_ids(self) -> frozenset[int]:
        return frozenset(self._dirty_container_ids)

    @property
    def snapshot_dirty(self) -> bool:
        return self._snapshot_dirty

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    @property
    def flush_in_flight(self) -> bool:
        return self._flush_in_flight

    @property
    def retry_delay_ms(self) -> int:
        return self._retry_delay_ms

    @property
    def last_snapshot_write_at(self) -> float | None:
        return self._last_snapshot_write_at

    # -- public operations --------------------------------------------------

    def mark_container_dirty(self, container_id: int) -> None:
        """Queue a write of one container. The snapshot summarizes every
        container, so it goes dirty too."""
        self._dirty_container_ids.add(container_id)
        self._snapshot_dirty = True
        self._schedule_flush(self._settings.debounce_ms)

    def mark_snapshot_dirty(self) -> None:
        self._snapshot_dirty = True
        self._schedule_flush(self._settings.debounce_ms)

    def forget_container(self, container_id: int) -> None:
        """Drop a destroyed container from the pending writes.

        Its tree is not written; the snapshot is refreshed so it stops
        listing the container.
        """
        self._dirty_container_ids.discard(container_id)
        self._snapshot_dirty = True
        self._schedule_flush(self._settings.debounce_ms)

    def flush_soon(self) -> None:
        self._schedule_flush(self._settings.debounce_ms)

    async def flush_now(self) -> None:
        """Cancel the pending timer and flush immediately."""
        self._cancel_timer()
        await self._flush_pending()

    def dispose(self) -> None:
        """Cancel the timer and forget all dirty state without writing."""
        self._cancel_timer()
        self._dirty_container_ids.clear()
        self._snapshot_dirty = False

    # -- internals ----------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_flush(self, delay_ms: float) -> None:
        self._cancel_timer()
        handle: TimerHandle | None = None

        async def on_timer() -> None:
            # Superseded handles may still fire once their callback is queued.
            if self._timer is not handle:
                return
            self._timer = None
            await self._flush_pending()

        handle = self._timer = self._scheduler.call_later(delay_ms, on_timer)

    async def _flush_pending(self) -> None:
        if self._flush_in_flight:
            self._schedule_flush(self._settings.debounce_ms)
            return

        self._flush_in_flight = True
        pending = list(self._dirty_container_ids)
        self._dirty_container_ids.clear()
        try:
            state = self._get_containers_state()
            for container_id in pending:
                tree = state.get(container_id)
                if tree is not None:
                    await self._save_container_tree(tree)

            if self._snapshot_dirty:
                wait_ms = self._snapshot_wait_ms()
                if wait_ms > 0:
                    self._schedule_flush(wait_ms)
                else:
                    await self._save_snapshot(state)
                    self._snapshot_dirty = False
                    self._last_snapshot_write_at = self._scheduler.now()

            self._retry_delay_ms = self._settings.retry_base_ms
        except Exception as exc:
            self._dirty_container_ids.update(pending)
            logger.warning(
                "Flush failed for containers %s, retrying in %d ms: %s",
                sorted(pending),
                min(self._retry_delay_ms * 2, self._settings.retry_max_ms),
                exc,
            )
            self._report(exc)
            self._retry_delay_ms = min(self._retry_delay_ms * 2, self._settings.retry_max_ms)
            self._schedule_flush(self._retry_delay_ms)
        finally:
            self._flush_in_flight = False
            if (self._dirty_container_ids or self._snapshot_dirty) and self._timer is None:
                self._schedule_flush(self._settings.debounce_ms)

    def _snapshot_wait_ms(self) -> float:
        if self._last_snapshot_write_at is None:
            return 0
        elapsed = self._scheduler.now() - self._last_snapshot_write_at
        return self._settings.snapshot_min_interval_ms - elapsed

    def _report(self, error: Exception) -> None:
        try:
            self._error_hook(error)
        except Exception:
            logger.exception("Persist error hook raised")
