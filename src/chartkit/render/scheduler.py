from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol

FRAME_INTERVAL_MS = 1000.0 / 60.0

Callback = Callable[[], None]


class CancelToken(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay_ms: float, callback: Callback) -> CancelToken: ...

    def schedule_frame(self, callback: Callback) -> CancelToken: ...


class AsyncioScheduler:
    """Timers and frame ticks on the running asyncio loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        frame_interval_ms: float = FRAME_INTERVAL_MS,
    ) -> None:
        self._loop = loop
        self.frame_interval_ms = frame_interval_ms

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def schedule(self, delay_ms: float, callback: Callback) -> CancelToken:
        return self.loop.call_later(max(0.0, delay_ms) / 1000.0, callback)

    def schedule_frame(self, callback: Callback) -> CancelToken:
        return self.loop.call_later(self.frame_interval_ms / 1000.0, callback)


class ManualTimer:
    def __init__(self, callback: Callback) -> None:
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class ManualScheduler:
    """Deterministic scheduler driven by an explicit virtual clock.

    Timers fire from :meth:`advance`; frame callbacks fire from :meth:`run_frames`,
    one queued batch per frame.
    """

    def __init__(self) -> None:
        self.now_ms = 0.0
        self.frames_run = 0
        self.frames_scheduled = 0
        self.timers_scheduled = 0
        self._timers: list[tuple[float, int, ManualTimer]] = []
        self._frames: list[ManualTimer] = []
        self._sequence = itertools.count()

    def schedule(self, delay_ms: float, callback: Callback) -> ManualTimer:
        timer = ManualTimer(callback)
        heapq.heappush(
            self._timers, (self.now_ms + max(0.0, delay_ms), next(self._sequence), timer)
        )
        self.timers_scheduled += 1
        return timer

    def schedule_frame(self, callback: Callback) -> ManualTimer:
        timer = ManualTimer(callback)
        self._frames.append(timer)
        self.frames_scheduled += 1
        return timer

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, timer in self._timers if timer.pending)

    @property
    def pending_frames(self) -> int:
        return sum(1 for timer in self._frames if timer.pending)

    def advance(self, ms: float) -> int:
        """Move the clock forward, firing due timers in order; returns how many fired."""
        target = self.now_ms + ms
        fired = 0
        while self._timers and self._timers[0][0] <= target:
            due, _, timer = heapq.heappop(self._timers)
            self.now_ms = max(self.now_ms, due)
            if timer.pending:
                timer.fired = True
                timer.callback()
                fired += 1
        self.now_ms = target
        return fired

    def run_frames(self, count: int = 1) -> int:
        fired = 0
        for _ in range(count):
            batch, self._frames = self._frames, []
            self.frames_run += 1
            for timer in batch:
                if timer.pending:
                    timer.fired = True
                    timer.callback()
                    fired += 1
        return fired

    def run_until_idle(self, max_frames: int = 10_000) -> int:
        """Run frames until none are pending or ``max_frames`` is reached."""
        ran = 0
        while self.pending_frames and ran < max_frames:
            self.run_frames(1)
            ran += 1
        return ran
