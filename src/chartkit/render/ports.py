from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class Size:
    width: float
    height: float


class LayoutContainer(Protocol):
    """Host element a chart draws into."""

    def get_size(self) -> Size: ...

    def append_child(self, node: Any) -> None: ...

    def remove_child(self, node: Any) -> None: ...

    def contains(self, node: Any) -> bool: ...

    def measure(self, node: Any) -> Size: ...


class SizeObserver(Protocol):
    """Native element-size notifications for one container."""

    def observe(self, callback: Callable[[Size], None]) -> None: ...

    def disconnect(self) -> None: ...
