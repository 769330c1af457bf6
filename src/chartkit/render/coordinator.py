from __future__ import annotations

from collections.abc import Callable

from chartkit.config import RenderConfig
from chartkit.render.layout_retry import LayoutRetry
from chartkit.render.ports import LayoutContainer, Size, SizeObserver
from chartkit.render.resize import DebouncedResizeHandler
from chartkit.render.scheduler import Scheduler
from chartkit.render.tooltip import Tooltip


class RenderCoordinator:
    """Owns the resize handler, layout retry and tooltip of a single chart.

    Nothing is shared between coordinators, so tearing one chart down never
    touches another's handles.
    """

    def __init__(
        self,
        container: LayoutContainer,
        scheduler: Scheduler,
        config: RenderConfig | None = None,
        observer: SizeObserver | None = None,
    ) -> None:
        self.container = container
        self.scheduler = scheduler
        self.config = config or RenderConfig()
        self.observer = observer
        self.tooltip: Tooltip | None = None
        self.resize_handler: DebouncedResizeHandler | None = None
        self.layout_retry: LayoutRetry | None = None
        self.rendered = False
        self.torn_down = False

    def initialize(self, render: Callable[[float], None]) -> bool:
        """Render at the current width; ``False`` when the container has no layout yet."""
        if self.torn_down or self.rendered:
            return self.rendered
        width = self.container.get_size().width
        if width <= 0:
            return False

        self.tooltip = Tooltip(self.container)
        try:
            render(width)
        except Exception:
            self.tooltip.destroy()
            self.tooltip = None
            raise

        def on_resize(size: Size) -> None:
            if size.width > 0:
                render(size.width)

        self.resize_handler = DebouncedResizeHandler(
            self.container,
            on_resize,
            self.scheduler,
            observer=self.observer,
            debounce_ms=self.config.debounce_ms,
        )
        self.resize_handler.observe()
        self.rendered = True
        return True

    def ensure_layout_retry(self, on_layout: Callable[[float], None]) -> LayoutRetry:
        """Start polling for layout unless a loop for this container is already running."""
        if self.layout_retry is not None and self.layout_retry.active:
            return self.layout_retry
        self.layout_retry = LayoutRetry(
            self.container,
            on_layout,
            self.scheduler,
            max_attempts=self.config.max_layout_attempts,
        )
        return self.layout_retry

    def render_when_ready(self, render: Callable[[float], None]) -> bool:
        """Render now if laid out, otherwise once the container acquires a width."""
        if self.initialize(render):
            return True
        if self.torn_down:
            return False

        def on_layout(_width: float) -> None:
            self.layout_retry = None
            if not self.rendered and not self.torn_down:
                self.initialize(render)

        self.ensure_layout_retry(on_layout)
        return False

    def teardown(self) -> None:
        if self.layout_retry is not None:
            self.layout_retry.cancel()
            self.layout_retry = None
        if self.resize_handler is not None:
            self.resize_handler.disconnect()
            self.resize_handler = None
        if self.tooltip is not None:
            self.tooltip.destroy()
            self.tooltip = None
        self.torn_down = True
