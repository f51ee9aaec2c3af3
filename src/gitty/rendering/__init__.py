"""Incremental history document rendering."""

from .buffer import RenderBuffer
from .history_view import HistoryView
from .interaction import InteractionIndex, Region
from .ranges import Position, Range

__all__ = [
    "HistoryView",
    "InteractionIndex",
    "Position",
    "Range",
    "Region",
    "RenderBuffer",
]
