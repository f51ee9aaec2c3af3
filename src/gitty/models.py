"""
Data model shared by the git query layer and the history renderer.

Records are plain dataclasses. They are produced by the parsers in
``gitty.services`` and consumed read-only by ``gitty.rendering``.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .services.repository import GitRepository


class StatMode(str, Enum):
    """Level of per-commit detail requested from ``git log``."""

    NONE = "none"
    SHORT = "short"
    FULL = "full"

    def next(self) -> "StatMode":
        """Cycle none -> short -> full -> none."""
        order = [StatMode.NONE, StatMode.SHORT, StatMode.FULL]
        return order[(order.index(self) + 1) % len(order)]


class GitRefType(str, Enum):
    """Kind of named pointer; values match the ``refs/<type>s/`` namespace."""

    HEAD = "head"
    REMOTE_HEAD = "remote"
    TAG = "tag"


class FileStatus(str, Enum):
    """Name-status codes reported by ``git diff --name-status``."""

    MODIFIED = "M"
    ADDED = "A"
    DELETED = "D"
    RENAMED = "R"
    COPIED = "C"


@dataclass
class GitRef:
    """A branch head, remote-tracking head or tag."""

    type: GitRefType
    name: str
    commit: Optional[str] = None


@dataclass
class GitAuthor:
    """Commit author aggregated by ``git shortlog``."""

    name: str
    email: str
    commits: int = 0


@dataclass
class GitCommittedFile:
    """A file touched by a commit or by a range diff."""

    git_relative_path: str
    status: Optional[str] = None
    previous_path: Optional[str] = None
    left_ref: Optional[str] = None
    right_ref: Optional[str] = None
    path: Optional[Path] = None

    @property
    def file_status(self) -> Optional[FileStatus]:
        """Status as an enum, ignoring the rename/copy similarity score."""
        if not self.status:
            return None
        try:
            return FileStatus(self.status[0].upper())
        except ValueError:
            return None


@dataclass
class GitLogEntry:
    """One commit parsed from ``git log`` / ``git show`` output.

    Exactly one of ``stat``, ``diff`` or ``files`` carries the detail blob,
    depending on what was requested.
    """

    hash: str
    subject: str = ""
    body: str = ""
    author: str = ""
    email: str = ""
    date: str = ""
    timestamp: Optional[int] = None
    relative_date: str = ""
    refs: List[GitRef] = field(default_factory=list)
    stat: Optional[str] = None
    diff: Optional[str] = None
    files: Optional[List[GitCommittedFile]] = None


@dataclass
class StatLine:
    """One `path | count +-run` line of `git log --stat` output.

    ``prefix`` holds the path and the count column; ``insertions`` and
    ``deletions`` are the `+` and `-` runs, split at the first `-`.
    """

    prefix: str
    insertions: str = ""
    deletions: str = ""

    @property
    def insertions_offset(self) -> int:
        return len(self.prefix)

    @property
    def deletions_offset(self) -> int:
        return len(self.prefix) + len(self.insertions)


@dataclass
class GraphNode:
    """Graph lane glyph lines belonging to a single commit, top to bottom."""

    glyphs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ViewContext:
    """What a history view shows: repository plus optional filters."""

    repo: Optional["GitRepository"] = None
    branch: Optional[str] = None
    specified_path: Optional[Path] = None
    line: Optional[int] = None
    author: Optional[str] = None
