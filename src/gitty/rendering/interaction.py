"""
Click and hover regions of a rendered document.

Regions are registered in render order. Lookups return the first region
whose range contains the position, so on overlap the earliest registration
wins. Click and hover handlers may be plain functions or coroutines; hover
handlers are only invoked when the UI asks, which keeps expensive lookups
(full commit details) off the render path.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, List, Optional, Union

from .ranges import Position, Range

logger = logging.getLogger(__name__)

ClickHandler = Callable[["Region"], Any]
HoverHandler = Callable[["Region"], Union[str, None, Awaitable[Optional[str]]]]


@dataclass(eq=False)
class Region:
    """A span of the document bound to click and/or hover behavior."""

    on_click: Optional[ClickHandler] = None
    on_hover: Optional[HoverHandler] = None
    range: Optional[Range] = None


class InteractionIndex:
    """Regions of the active render, queried by buffer position."""

    def __init__(self) -> None:
        self._regions: List[Region] = []

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self) -> Iterator[Region]:
        return iter(list(self._regions))

    @property
    def ranges(self) -> List[Range]:
        return [region.range for region in self._regions if region.range is not None]

    def add(self, region: Region) -> None:
        self._regions.append(region)

    def remove(self, region: Region) -> None:
        self._regions = [item for item in self._regions if item is not region]

    def clear(self) -> None:
        self._regions = []

    def region_at(self, position: Position) -> Optional[Region]:
        for region in self._regions:
            if region.range is not None and region.range.contains(position):
                return region
        return None

    def shift_lines(self, after_line: int, delta: int) -> None:
        """Move regions that start below ``after_line`` by ``delta`` lines."""
        for region in self._regions:
            if region.range is not None and region.range.start.line > after_line:
                region.range = region.range.shifted(delta)

    async def click(self, position: Position) -> bool:
        """Run the click handler at ``position``; ``True`` if one ran."""
        region = self.region_at(position)
        if region is None or region.on_click is None:
            return False

        result = region.on_click(region)
        if inspect.isawaitable(result):
            await result
        return True

    async def hover(self, position: Position) -> Optional[str]:
        """Resolve hover text at ``position``, ``None`` if there is none."""
        region = self.region_at(position)
        if region is None or region.on_hover is None:
            return None

        result = region.on_hover(region)
        if inspect.isawaitable(result):
            result = await result
        return result
