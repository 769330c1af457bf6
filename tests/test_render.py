from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from chartkit.config import RenderConfig
from chartkit.render.coordinator import RenderCoordinator
from chartkit.render.layout_retry import LayoutRetry, RetryState
from chartkit.render.ports import Size
from chartkit.render.resize import DebouncedResizeHandler, ResizeState
from chartkit.render.scheduler import AsyncioScheduler, ManualScheduler
from chartkit.render.tooltip import Tooltip, build_tooltip_content


class FakeContainer:
    def __init__(self, width: float = 0.0, height: float = 300.0) -> None:
        self.size = Size(width, height)
        self.children: list[Any] = []
        self.node_size = Size(80.0, 30.0)
        self.width_reads = 0

    def get_size(self) -> Size:
        self.width_reads += 1
        return self.size

    def append_child(self, node: Any) -> None:
        self.children.append(node)

    def remove_child(self, node: Any) -> None:
        self.children.remove(node)

    def contains(self, node: Any) -> bool:
        return any(child is node for child in self.children)

    def measure(self, node: Any) -> Size:
        return self.node_size


class FakeObserver:
    def __init__(self) -> None:
        self.callback: Callable[[Size], None] | None = None
        self.disconnects = 0

    def observe(self, callback: Callable[[Size], None]) -> None:
        self.callback = callback

    def disconnect(self) -> None:
        self.disconnects += 1

    def emit(self, width: float) -> None:
        assert self.callback is not None
        self.callback(Size(width, 300.0))


def test_resize_burst_fires_once_with_latest_size() -> None:
    scheduler = ManualScheduler()
    observer = FakeObserver()
    seen: list[float] = []
    handler = DebouncedResizeHandler(
        FakeContainer(500.0),
        lambda size: seen.append(size.width),
        scheduler,
        observer=observer,
        debounce_ms=100,
    )

    handler.observe()
    assert seen == [500.0]

    for step, width in enumerate([510.0, 520.0, 530.0, 540.0]):
        observer.emit(width)
        scheduler.advance(10 if step < 3 else 0)
    assert handler.state is ResizeState.timer_pending
    scheduler.advance(99)
    assert seen == [500.0]
    scheduler.advance(1)

    assert seen == [500.0, 540.0]
    assert handler.state is ResizeState.observing


def test_resize_observe_twice_reports_once() -> None:
    scheduler = ManualScheduler()
    seen: list[float] = []
    handler = DebouncedResizeHandler(
        FakeContainer(200.0), lambda s: seen.append(s.width), scheduler
    )

    handler.observe()
    handler.observe()

    assert seen == [200.0]


def test_resize_disconnect_cancels_pending_timer_and_is_idempotent() -> None:
    scheduler = ManualScheduler()
    observer = FakeObserver()
    seen: list[float] = []
    handler = DebouncedResizeHandler(
        FakeContainer(300.0), lambda s: seen.append(s.width), scheduler, observer=observer
    )
    handler.observe()
    observer.emit(320.0)

    handler.disconnect()
    handler.disconnect()
    scheduler.advance(500)
    observer.emit(340.0)
    scheduler.advance(500)

    assert seen == [300.0]
    assert observer.disconnects == 1
    assert handler.state is ResizeState.disconnected


def test_resize_ignores_notifications_before_observe() -> None:
    scheduler = ManualScheduler()
    seen: list[float] = []
    handler = DebouncedResizeHandler(
        FakeContainer(300.0), lambda s: seen.append(s.width), scheduler
    )

    handler.notify(Size(999.0, 1.0))
    scheduler.advance(1000)

    assert seen == []
    assert scheduler.timers_scheduled == 0


def test_layout_retry_fires_on_third_attempt() -> None:
    scheduler = ManualScheduler()
    container = FakeContainer(0.0)
    widths: list[float] = []
    retry = LayoutRetry(container, widths.append, scheduler, max_attempts=60)

    scheduler.run_frames(2)
    container.size = Size(640.0, 300.0)
    scheduler.run_frames(1)
    scheduler.run_frames(5)

    assert widths == [640.0]
    assert retry.attempts == 3
    assert scheduler.frames_scheduled == 3
    assert retry.state is RetryState.resolved
    assert not retry.active


def test_layout_retry_gives_up_after_max_attempts() -> None:
    scheduler = ManualScheduler()
    widths: list[float] = []
    retry = LayoutRetry(FakeContainer(0.0), widths.append, scheduler, max_attempts=5)

    scheduler.run_until_idle()

    assert widths == []
    assert retry.state is RetryState.exhausted
    assert retry.attempts == 6
    assert scheduler.pending_frames == 0


def test_layout_retry_cancel_stops_polling() -> None:
    scheduler = ManualScheduler()
    container = FakeContainer(0.0)
    widths: list[float] = []
    retry = LayoutRetry(container, widths.append, scheduler)

    scheduler.run_frames(1)
    retry.cancel()
    retry.cancel()
    container.size = Size(100.0, 100.0)
    scheduler.run_frames(3)

    assert widths == []
    assert retry.state is RetryState.cancelled
    assert scheduler.pending_frames == 0


def test_tooltip_clamps_inside_container() -> None:
    container = FakeContainer(300.0)
    tooltip = Tooltip(container)

    tooltip.show("hello", x=10.0, y=5.0)
    assert tooltip.node.visible
    assert tooltip.node.left == 0.0
    assert tooltip.node.top == 0.0

    tooltip.show("hello", x=295.0, y=100.0)
    assert tooltip.node.left == pytest.approx(220.0)
    assert tooltip.node.top == pytest.approx(60.0)

    tooltip.show("hello", x=150.0, y=100.0)
    assert tooltip.node.left == pytest.approx(110.0)

    tooltip.hide()
    assert not tooltip.node.visible


def test_tooltip_destroy_twice_is_a_no_op() -> None:
    container = FakeContainer(300.0)
    tooltip = Tooltip(container)
    assert container.children == [tooltip.node]

    tooltip.destroy()
    tooltip.destroy()

    assert container.children == []
    assert tooltip.destroyed


def test_tooltip_destroy_tolerates_node_already_detached() -> None:
    container = FakeContainer(300.0)
    tooltip = Tooltip(container)
    container.children.clear()

    tooltip.destroy()

    assert tooltip.destroyed


def test_tooltip_content_escapes_label_and_formats_value() -> None:
    content = build_tooltip_content("<b>West</b>", 1500, prefix="$")

    assert "&lt;b&gt;West&lt;/b&gt;" in content
    assert "$1.5K" in content
    assert "<div>7</div>" in build_tooltip_content("x", 7, formatter=None)


def test_coordinator_renders_immediately_when_laid_out() -> None:
    scheduler = ManualScheduler()
    container = FakeContainer(400.0)
    observer = FakeObserver()
    renders: list[float] = []
    coordinator = RenderCoordinator(container, scheduler, observer=observer)

    assert coordinator.render_when_ready(renders.append)

    assert renders == [400.0, 400.0]
    observer.emit(450.0)
    scheduler.advance(100)
    assert renders[-1] == 450.0
    assert coordinator.layout_retry is None


def test_coordinator_defers_until_layout_and_reuses_running_retry() -> None:
    scheduler = ManualScheduler()
    container = FakeContainer(0.0)
    renders: list[float] = []
    coordinator = RenderCoordinator(container, scheduler, RenderConfig(max_layout_attempts=10))

    assert not coordinator.render_when_ready(renders.append)
    first = coordinator.layout_retry
    coordinator.render_when_ready(renders.append)
    assert coordinator.layout_retry is first

    container.size = Size(250.0, 200.0)
    scheduler.run_until_idle()

    assert renders[0] == 250.0
    assert coordinator.rendered
    assert coordinator.tooltip is not None


def test_coordinator_teardown_is_idempotent_and_isolated() -> None:
    scheduler = ManualScheduler()
    left_container = FakeContainer(300.0)
    right_container = FakeContainer(300.0)
    left_observer = FakeObserver()
    right_observer = FakeObserver()
    left_renders: list[float] = []
    right_renders: list[float] = []
    left = RenderCoordinator(left_container, scheduler, observer=left_observer)
    right = RenderCoordinator(right_container, scheduler, observer=right_observer)
    left.initialize(left_renders.append)
    right.initialize(right_renders.append)

    left.teardown()
    left.teardown()
    right_observer.emit(333.0)
    scheduler.advance(100)

    assert left_container.children == []
    assert len(right_container.children) == 1
    assert left_observer.disconnects == 1
    assert right_observer.disconnects == 0
    assert right_renders[-1] == 333.0


def test_coordinator_teardown_before_layout_cancels_retry() -> None:
    scheduler = ManualScheduler()
    container = FakeContainer(0.0)
    renders: list[float] = []
    coordinator = RenderCoordinator(container, scheduler)

    coordinator.render_when_ready(renders.append)
    coordinator.teardown()
    container.size = Size(500.0, 500.0)
    scheduler.run_until_idle()

    assert renders == []
    assert scheduler.pending_frames == 0


def test_coordinator_failed_render_leaves_no_tooltip_behind() -> None:
    scheduler = ManualScheduler()
    container = FakeContainer(300.0)
    coordinator = RenderCoordinator(container, scheduler)

    def broken_render(_width: float) -> None:
        raise RuntimeError("draw failed")

    for _ in range(2):
        with pytest.raises(RuntimeError, match="draw failed"):
            coordinator.initialize(broken_render)
    coordinator.teardown()

    assert container.children == []
    assert not coordinator.rendered


def test_asyncio_scheduler_fires_timers_and_honours_cancel() -> None:
    fired: list[str] = []

    async def scenario() -> None:
        scheduler = AsyncioScheduler(frame_interval_ms=1.0)
        scheduler.schedule(5, lambda: fired.append("timer"))
        cancelled = scheduler.schedule(5, lambda: fired.append("cancelled"))
        scheduler.schedule_frame(lambda: fired.append("frame"))
        cancelled.cancel()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert sorted(fired) == ["frame", "timer"]
