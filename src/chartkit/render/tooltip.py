from __future__ import annotations

import html
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from chartkit.formatting import format_number
from chartkit.render.ports import LayoutContainer

TOOLTIP_OFFSET_PX = 10


@dataclass
class TooltipNode:
    """Floating element state handed to the host for drawing."""

    content: str = ""
    left: float = 0.0
    top: float = 0.0
    visible: bool = False
    role: str = "tooltip"
    css_class: str = "slds-popover slds-popover_tooltip slds-nubbin_bottom"


class Tooltip:
    def __init__(self, container: LayoutContainer) -> None:
        self.container = container
        self.node = TooltipNode()
        self.destroyed = False
        container.append_child(self.node)

    def show(self, content: str, x: float, y: float) -> None:
        """Set content and place the tooltip centred above ``(x, y)`` inside the container."""
        if self.destroyed:
            return
        self.node.content = content
        self.node.visible = True

        box = self.container.measure(self.node)
        bounds = self.container.get_size()
        left = x - box.width / 2
        top = y - box.height - TOOLTIP_OFFSET_PX
        self.node.left = max(0.0, min(left, bounds.width - box.width))
        self.node.top = max(0.0, top)

    def hide(self) -> None:
        self.node.visible = False

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.destroyed = True
        self.node.visible = False
        # The host may already have dropped the node with the container.
        if self.container.contains(self.node):
            self.container.remove_child(self.node)


def build_tooltip_content(
    label: Any,
    value: Any,
    formatter: Callable[[Any], str] | None = format_number,
    prefix: str = "",
    suffix: str = "",
) -> str:
    formatted = formatter(value) if formatter else str(value)
    return (
        f'<div style="font-weight: bold; margin-bottom: 4px;">{html.escape(str(label))}</div>'
        f"<div>{prefix}{formatted}{suffix}</div>"
    )
