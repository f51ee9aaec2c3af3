"""Small text helpers: separators, label templates, dates and paths."""

import os
import re
import secrets
import string
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional, Union

_ALPHABET = string.ascii_lowercase + string.digits
_PLACEHOLDER = re.compile(r"\$\{(\w+)(?::(.+?))?\}")

DEFAULT_DATE_FORMAT = "%a %b %d %Y (%N)"


def random_string(length: int = 64) -> str:
    """Random lowercase alphanumeric string, used as a record separator."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def format_placeholders(template: str, values: Mapping[str, Any]) -> str:
    """Expand ``${name}`` and ``${name:arg}`` placeholders.

    Callable values receive the optional argument. Unknown placeholders are
    replaced by their own name.
    """

    def replace(match: "re.Match[str]") -> str:
        name, argument = match.group(1), match.group(2)
        if name not in values or values[name] is None:
            return name
        value = values[name]
        if callable(value):
            return str(value(argument))
        return str(value)

    return _PLACEHOLDER.sub(replace, template)


def format_date(
    timestamp: Optional[int],
    date_format: Optional[str] = None,
    relative: str = "",
) -> str:
    """Format a commit timestamp with strftime codes.

    ``%N`` expands to the relative date reported by git (``%cr``), e.g.
    ``3 days ago``. Returns an empty string when no timestamp is known.
    """
    if timestamp is None:
        return ""

    moment = datetime.fromtimestamp(timestamp)
    fmt = date_format or DEFAULT_DATE_FORMAT

    # split out %N and %% so strftime never sees them
    parts = re.split(r"(%N|%%)", fmt)
    rendered = []
    for part in parts:
        if part == "%N":
            rendered.append(relative)
        elif part == "%%":
            rendered.append("%")
        elif part:
            rendered.append(moment.strftime(part))
    return "".join(rendered)


def normalize_path(path: Union[str, Path, None]) -> str:
    """Absolute, normalized, forward-slash separated form of ``path``."""
    if path is None or str(path) == "":
        return ""
    return os.path.normpath(os.path.abspath(str(path))).replace("\\", "/")
