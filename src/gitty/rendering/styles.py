"""
Named styles of the history document and their terminal rendering.

The renderer only records *names*; a UI shell decides what they look like.
For the terminal, :func:`to_rich_text` maps each name to a ``rich`` style.
"""

from itertools import accumulate
from typing import Dict, Iterable, List, Optional

from rich.style import Style
from rich.text import Text

from .buffer import RenderBuffer
from .ranges import Position

INFO = "info"
OLD_LINE = "old_line"
NEW_LINE = "new_line"
TITLE = "title"
BRANCH = "branch"
SUBJECT = "subject"
BODY = "body"
HASH = "hash"
REF = "ref"
AUTHOR = "author"
EMAIL = "email"
DATE = "date"
FILE = "file"
MORE = "more"
CLICKABLE = "clickable"
SELECTED = "selected"
LOADING = "loading"

STYLE_NAMES = [
    INFO, OLD_LINE, NEW_LINE, TITLE, BRANCH, SUBJECT, BODY, HASH, REF,
    AUTHOR, EMAIL, DATE, FILE, MORE, CLICKABLE, SELECTED, LOADING,
]

TERMINAL_STYLES: Dict[str, Style] = {
    INFO: Style(color="grey62"),
    OLD_LINE: Style(color="red"),
    NEW_LINE: Style(color="green"),
    TITLE: Style(color="#4EC9B0"),
    BRANCH: Style(color="#C586C0"),
    SUBJECT: Style(color="#569cd6"),
    BODY: Style(bold=True),
    HASH: Style(color="#ce9178"),
    REF: Style(color="#dddddd", bgcolor="#1c7801"),
    AUTHOR: Style(color="#9CDCFE"),
    EMAIL: Style(color="#DCDCAA"),
    DATE: Style(),
    FILE: Style(color="#d16969"),
    MORE: Style(color="#9cdcfe"),
    CLICKABLE: Style(underline=True),
    SELECTED: Style(bgcolor="dark_green"),
    LOADING: Style(blink=True),
}


def _offset(line_starts: List[int], position: Position) -> int:
    return line_starts[position.line] + position.character


def to_rich_text(
    buffer: RenderBuffer,
    styles: Optional[Dict[str, Style]] = None,
    order: Iterable[str] = STYLE_NAMES,
) -> Text:
    """Build a ``rich`` Text carrying the buffer's styles.

    Regions are underlined through the ``clickable`` style.
    """
    styles = styles or TERMINAL_STYLES
    text = Text(buffer.text, no_wrap=True)

    # offset of each line start, counting the joining newlines
    line_starts = [0] + list(accumulate(len(line) + 1 for line in buffer.lines))

    decorations = {name: buffer.ranges(name) for name in order}
    decorations[CLICKABLE] = buffer.regions.ranges

    for name in order:
        style = styles.get(name)
        if style is None:
            continue
        for span in decorations.get(name, []):
            if span.end.line >= len(buffer.lines):
                continue
            text.stylize(style, _offset(line_starts, span.start), _offset(line_starts, span.end))
    return text
