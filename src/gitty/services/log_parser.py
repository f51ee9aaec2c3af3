"""
Parsers for the delimited output of ``git log``, ``git show`` and friends.

Log queries ask git for one record per commit, each record prefixed with a
per-call random separator and its fields joined by the unit separator byte
``\\x1f``::

    <sep>subject\\x1fbody\\x1fhash\\x1frefs\\x1fauthor\\x1femail\\x1fts\\x1freldate\\x1f<detail>

The detail blob is whatever git appends after the formatted header: a
``--stat``/``--shortstat`` block, an ``-L`` line diff, or nothing.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional

from ..models import (
    GitAuthor,
    GitCommittedFile,
    GitLogEntry,
    GitRef,
    GitRefType,
    StatLine,
)
from ..utils.text import format_date

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\x1f"

# git pretty-format placeholders in record order
LOG_FIELDS = ["%s", "%B", "%h", "%D", "%aN", "%ae", "%ct", "%cr"]

LINES = re.compile(r"\s*\r?\n\s*")
DECORATION = re.compile(r"refs/(head|remote|tag)s/([^\s,]+)")
FOR_EACH_REF = re.compile(r"^refs/(head|remote|tag)s/([^\s,]+) ([0-9a-f]+)$")
SHORTLOG = re.compile(r"(\d+)\s(.+)<(.+)>")
STAT_LINE = re.compile(r"^(?P<path>.*?)(?P<count>\|\s*\d+)(?P<changes>.*)$")
NAME_STATUS = re.compile(r"^([MADT])\S*\t([^\t]+)$")
RENAME_STATUS = re.compile(r"^([RC]\d*)\t([^\t]+)\t([^\t]+)$")


def log_format(record_separator: str = "") -> str:
    """Pretty-format string producing one parseable record per commit."""
    return record_separator + "%x1f".join(LOG_FIELDS) + "%x1f"


class LogParser:
    """Turns raw git output into :mod:`gitty.models` records."""

    def __init__(self, date_format: Optional[str] = None):
        """Initialize the parser.

        Args:
            date_format: strftime pattern for ``GitLogEntry.date``, ``%N``
                expands to git's relative date
        """
        self.date_format = date_format

    def parse_log(
        self, output: str, record_separator: str, info_type: str = "stat"
    ) -> List[GitLogEntry]:
        """Split log output on the record separator and parse each record.

        Candidates without a hash (such as the empty chunk before the first
        separator) are dropped.
        """
        entries = []
        for chunk in output.split(record_separator):
            entry = self.parse_commit(chunk, info_type)
            if entry is not None:
                entries.append(entry)
        return entries

    def parse_commit(self, content: str, info_type: str = "stat") -> Optional[GitLogEntry]:
        """Parse one record; ``info_type`` names the field receiving the detail."""
        fields = content.split(FIELD_SEPARATOR)
        if len(fields) < 3 or not fields[2].strip():
            return None

        # pad so short records still unpack
        fields += [""] * (len(LOG_FIELDS) + 1 - len(fields))
        subject, body, commit_hash, refstr, author, email, timestamp, reldate = fields[:8]
        info = FIELD_SEPARATOR.join(fields[8:])

        try:
            epoch: Optional[int] = int(timestamp.strip())
        except ValueError:
            epoch = None

        entry = GitLogEntry(
            hash=commit_hash.strip(),
            subject=subject,
            body=body,
            author=author,
            email=email,
            timestamp=epoch,
            relative_date=reldate,
            date=format_date(epoch, self.date_format, reldate),
            refs=self.parse_decorations(refstr),
        )

        if info_type == "diff":
            entry.diff = info.strip("\r\n")
        else:
            entry.stat = LINES.sub("\n", info).strip()
        return entry

    def parse_decorations(self, refstr: str) -> List[GitRef]:
        """Extract heads, remotes and tags from ``%D`` with ``--decorate=full``.

        Fragments such as ``HEAD`` that are not fully qualified are ignored.
        """
        refs = []
        for fragment in refstr.split(", "):
            match = DECORATION.search(fragment)
            if match:
                refs.append(GitRef(type=GitRefType(match.group(1)), name=match.group(2)))
        return refs

    def parse_stat_line(self, line: str) -> Optional[StatLine]:
        """Split ``path | count +-run`` into its path and change runs.

        The runs are split at the first ``-``: ``" +++++"`` is all insertions
        while ``" +-"`` yields ``" +"`` and ``"-"``. Lines that are not file
        stats (summary lines, binary files) return ``None``.
        """
        match = STAT_LINE.match(line)
        if not match:
            return None

        prefix = match.group("path") + match.group("count")
        changes = match.group("changes")
        minus = changes.find("-")
        if minus < 0:
            return StatLine(prefix=prefix, insertions=changes)
        return StatLine(prefix=prefix, insertions=changes[:minus], deletions=changes[minus:])

    def parse_name_status(
        self,
        output: str,
        root: Optional[Path] = None,
        left_ref: Optional[str] = None,
        right_ref: Optional[str] = None,
    ) -> List[GitCommittedFile]:
        """Parse ``--name-status`` output, including two-path rename lines."""
        files = []
        for line in LINES.split(output):
            previous_path = None
            match = RENAME_STATUS.match(line)
            if match:
                status, previous_path, current = match.groups()
            else:
                match = NAME_STATUS.match(line)
                if not match:
                    continue
                status, current = match.groups()

            files.append(
                GitCommittedFile(
                    git_relative_path=current,
                    status=status,
                    previous_path=previous_path,
                    left_ref=left_ref,
                    right_ref=right_ref,
                    path=(root / current) if root is not None else None,
                )
            )
        return files

    def parse_refs(self, output: str) -> List[GitRef]:
        """Parse ``for-each-ref --format '%(refname) %(objectname:short)'``."""
        refs = []
        for line in LINES.split(output):
            match = FOR_EACH_REF.match(line)
            if match:
                refs.append(
                    GitRef(
                        type=GitRefType(match.group(1)),
                        name=match.group(2),
                        commit=match.group(3),
                    )
                )
        return refs

    def parse_authors(self, output: str) -> List[GitAuthor]:
        """Parse ``git shortlog -se`` lines of the form ``count name <email>``."""
        authors = []
        for line in LINES.split(output):
            match = SHORTLOG.match(line.strip())
            if match:
                authors.append(
                    GitAuthor(
                        name=match.group(2).strip(),
                        email=match.group(3),
                        commits=int(match.group(1)),
                    )
                )
        return authors
