from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from chartkit.render.ports import LayoutContainer, Size, SizeObserver
from chartkit.render.scheduler import CancelToken, Scheduler

LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 100


class ResizeState(str, Enum):
    idle = "idle"
    observing = "observing"
    timer_pending = "timer-pending"
    disconnected = "disconnected"


class DebouncedResizeHandler:
    """Collapse bursts of size notifications into one callback with the latest size."""

    def __init__(
        self,
        container: LayoutContainer,
        callback: Callable[[Size], None],
        scheduler: Scheduler,
        observer: SizeObserver | None = None,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        self.container = container
        self.callback = callback
        self.scheduler = scheduler
        self.observer = observer
        self.debounce_ms = debounce_ms
        self.state = ResizeState.idle
        self._latest: Size | None = None
        self._timer: CancelToken | None = None

    def observe(self) -> None:
        """Start observing and report the current size once; repeated calls do nothing."""
        if self.state is not ResizeState.idle:
            return
        self.state = ResizeState.observing
        if self.observer is not None:
            self.observer.observe(self.notify)
        self.callback(self.container.get_size())

    def notify(self, size: Size) -> None:
        if self.state in (ResizeState.idle, ResizeState.disconnected):
            return
        self._latest = size
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.scheduler.schedule(self.debounce_ms, self._fire)
        self.state = ResizeState.timer_pending

    def _fire(self) -> None:
        self._timer = None
        if self.state is not ResizeState.timer_pending or self._latest is None:
            return
        self.state = ResizeState.observing
        self.callback(self._latest)

    def disconnect(self) -> None:
        if self.state is ResizeState.disconnected:
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.observer is not None and self.state is not ResizeState.idle:
            self.observer.disconnect()
        self.state = ResizeState.disconnected
        LOGGER.debug("Resize handler disconnected")
