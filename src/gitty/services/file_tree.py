"""
Committed-file listings for the commit explorer.

Files changed by a commit (or between two refs) are grouped into a folder
tree, or listed flat, and a file's recent history is turned into labelled
entries that a UI can open as diffs.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from ..models import GitCommittedFile
from ..utils.text import format_placeholders
from .repository import GitRepository

logger = logging.getLogger(__name__)

SELECTION_LABEL = "(Selection)"
UNCOMMITTED_LABEL = "(Uncommitted changes)"
NO_HISTORY_LABEL = "No current file history"
DEFAULT_LABEL_TEMPLATE = "${hash} • ${subject}"


@dataclass
class FileNode:
    """A leaf of the tree, optionally backed by a committed file."""

    label: str
    file: Optional[GitCommittedFile] = None
    tooltip: str = ""
    left_ref: Optional[str] = None
    right_ref: Optional[str] = None
    kind: str = "file"


@dataclass
class FolderNode:
    """A folder with its subfolders first, then its files."""

    label: str
    git_relative_path: str = ""
    folders: List["FolderNode"] = field(default_factory=list)
    files: List[FileNode] = field(default_factory=list)
    kind: str = "folder"

    @property
    def children(self) -> List[Union["FolderNode", FileNode]]:
        return [*self.folders, *self.files]

    def folder(self, label: str, git_relative_path: str) -> "FolderNode":
        for existing in self.folders:
            if existing.label == label:
                return existing
        created = FolderNode(label=label, git_relative_path=git_relative_path)
        self.folders.append(created)
        return created


def _short_label(git_relative_path: str) -> str:
    """``name  (dir)`` for flat listings."""
    directory, name = os.path.split(git_relative_path)
    return f"{name}  ({directory})" if directory else name


def _fill(folder: FolderNode, files: List[GitCommittedFile], tree_view: bool) -> None:
    for committed in files:
        if not tree_view:
            folder.files.append(FileNode(label=_short_label(committed.git_relative_path), file=committed))
            continue

        *directories, name = committed.git_relative_path.split("/")
        parent = folder
        prefix = ""
        for segment in directories:
            prefix += segment + "/"
            parent = parent.folder(segment, prefix)
        parent.files.append(FileNode(label=name, file=committed))


def build_file_tree(
    files: List[GitCommittedFile],
    right_ref: str,
    left_ref: Optional[str] = None,
    tree_view: bool = True,
    selection_path: Optional[str] = None,
) -> FolderNode:
    """Group committed files under a root folder labelled after the refs.

    With ``selection_path`` (relative to the repository root) the files under
    it are repeated in a ``(Selection)`` subfolder placed first.
    """
    if left_ref:
        label = f"Comparing {left_ref} and {right_ref}  ({len(files)} files)"
    else:
        label = f"Commit {right_ref}  ({len(files)} files changed)"
    root = FolderNode(label=label)

    if selection_path is not None:
        prefix = "" if selection_path == "." else selection_path
        selection = FolderNode(label=SELECTION_LABEL)
        _fill(selection, [f for f in files if f.git_relative_path.startswith(prefix)], tree_view)
        root.folders.append(selection)

    _fill(root, files, tree_view)
    return root


async def file_history_items(
    repo: GitRepository,
    path: Union[str, Path],
    limit: int = 25,
    label_template: str = DEFAULT_LABEL_TEMPLATE,
) -> FolderNode:
    """Recent commits touching ``path`` as diffable entries.

    Each entry compares a commit with the one before it. When the working
    copy differs from HEAD an ``(Uncommitted changes)`` entry comes first.
    """
    relative = repo.relative_path(path)
    entries = await repo.file_history(path, 0, limit)
    working_diff = await repo.exec(["diff", "--shortstat", "--", relative])

    folder = FolderNode(label=relative if entries else NO_HISTORY_LABEL, git_relative_path=relative)
    committed = GitCommittedFile(git_relative_path=relative, path=Path(path))

    if working_diff and entries:
        tooltip = working_diff.strip().replace("1 file changed, ", "")
        try:
            changed = datetime.fromtimestamp(os.stat(path).st_mtime)
            tooltip += "\n" + changed.strftime("%c")
        except OSError:
            logger.debug(f"Cannot stat {path}")
        folder.files.append(
            FileNode(
                label=UNCOMMITTED_LABEL,
                file=committed,
                tooltip=tooltip,
                left_ref=entries[0].hash,
                kind="uncommitted",
            )
        )

    for index, entry in enumerate(entries):
        previous = entries[index + 1].hash if index + 1 < len(entries) else None
        label = format_placeholders(label_template, vars(entry))
        folder.files.append(
            FileNode(
                label=label,
                file=committed,
                tooltip=f"{label}\n{entry.date}",
                left_ref=previous,
                right_ref=entry.hash,
            )
        )

    logger.debug(f"File history for {relative}: {len(entries)} commits")
    return folder
