"""
Append-only styled text buffer.

The buffer is a list of lines plus, per style name, the ranges that carry
that style, plus the interactive regions. Text is only ever appended at the
end of the last line; the single exception is :meth:`RenderBuffer.replace_line`
which the pagination controls use to swap themselves for a separator.
"""

import logging
import re
from collections import defaultdict
from typing import Dict, List, Optional

from .interaction import InteractionIndex, Region
from .ranges import Position, Range

logger = logging.getLogger(__name__)

WHITESPACE_RUNS = re.compile(r"(\s+)")


class RenderBuffer:
    """Lines, named style ranges and interactive regions of one render."""

    def __init__(self, regions: Optional[InteractionIndex] = None):
        self.lines: List[str] = [""]
        self.styles: Dict[str, List[Range]] = defaultdict(list)
        self.regions = regions if regions is not None else InteractionIndex()

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def cursor(self) -> Position:
        return Position(len(self.lines) - 1, len(self.lines[-1]))

    def ranges(self, style: str) -> List[Range]:
        return list(self.styles.get(style, []))

    def set_ranges(self, style: str, ranges: List[Range]) -> None:
        self.styles[style] = list(ranges)

    def clear(self) -> None:
        self.lines = [""]
        self.styles = defaultdict(list)
        self.regions.clear()

    def append(
        self,
        text: str,
        style: Optional[str] = None,
        split_on_whitespace: bool = False,
        region: Optional[Region] = None,
    ) -> Range:
        """Write ``text`` at the cursor and return the span it occupies.

        The span is recorded under ``style`` and bound to ``region`` when
        given. With ``split_on_whitespace`` only the non-whitespace tokens get
        the style; each token is bound to ``region`` in turn, so the region
        ends up covering the last token.
        """
        current = len(self.lines) - 1
        new_lines = text.split("\n")
        start = len(self.lines[current])
        if len(new_lines) > 1:
            end = len(new_lines[-1])
        else:
            end = start + len(text)
        span = Range.of(current, start, current + len(new_lines) - 1, end)

        if split_on_whitespace:
            for segment in WHITESPACE_RUNS.split(text):
                if not segment:
                    continue
                if segment.strip():
                    self.append(segment, style, False, region)
                else:
                    self.append(segment)
            return span

        self.lines[current] += new_lines[0]
        self.lines.extend(new_lines[1:])

        if style is not None:
            self.styles[style].append(span)

        if region is not None:
            if region.range is None:
                self.regions.add(region)
            region.range = span
        return span

    def replace_line(self, index: int, replacement: List[str]) -> None:
        """Replace line ``index`` with ``replacement`` lines.

        Style ranges touching the line are dropped; ranges and regions below
        it move by the change in line count.
        """
        delta = len(replacement) - 1
        self.lines[index:index + 1] = list(replacement)

        for style, ranges in self.styles.items():
            kept = []
            for span in ranges:
                if span.start.line <= index <= span.end.line:
                    continue
                kept.append(span.shifted(delta) if span.start.line > index else span)
            self.styles[style] = kept

        self.regions.shift_lines(index, delta)
