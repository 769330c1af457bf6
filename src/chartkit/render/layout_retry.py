from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from chartkit.render.ports import LayoutContainer
from chartkit.render.scheduler import CancelToken, Scheduler

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 60


class RetryState(str, Enum):
    polling = "polling"
    resolved = "resolved"
    cancelled = "cancelled"
    exhausted = "exhausted"


class LayoutRetry:
    """Poll a container once per frame until it reports a non-zero width.

    ``on_layout`` runs at most once. After ``max_attempts`` further frames without
    layout the loop stops quietly and the callback never runs.
    """

    def __init__(
        self,
        container: LayoutContainer,
        on_layout: Callable[[float], None],
        scheduler: Scheduler,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.container = container
        self.on_layout = on_layout
        self.scheduler = scheduler
        self.max_attempts = max_attempts
        self.state = RetryState.polling
        self.attempts = 0
        self._frame: CancelToken | None = self.scheduler.schedule_frame(lambda: self._check(0))

    @property
    def active(self) -> bool:
        return self.state is RetryState.polling

    def _check(self, attempt: int) -> None:
        self._frame = None
        if self.state is not RetryState.polling:
            return
        self.attempts = attempt + 1
        width = self.container.get_size().width
        if width > 0:
            self.state = RetryState.resolved
            self.on_layout(width)
            return
        if attempt >= self.max_attempts:
            self.state = RetryState.exhausted
            LOGGER.debug("Container never reported a width after %s attempts", self.attempts)
            return
        self._frame = self.scheduler.schedule_frame(lambda: self._check(attempt + 1))

    def cancel(self) -> None:
        if self._frame is not None:
            self._frame.cancel()
            self._frame = None
        if self.state is RetryState.polling:
            self.state = RetryState.cancelled
