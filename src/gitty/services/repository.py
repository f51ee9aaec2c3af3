"""
Query surface and caches for a single git repository.

All queries are coroutines that run git through :class:`GitCommandRunner`
and parse the output with :class:`LogParser` / :class:`GraphBuilder`. A cache
entry is written only when the call that produced it completes.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from ..models import (
    GitAuthor,
    GitCommittedFile,
    GitLogEntry,
    GitRef,
    GraphNode,
    StatMode,
)
from ..utils.git_runner import CancellationToken, GitCommandRunner
from ..utils.text import normalize_path, random_string
from .graph_builder import GRAPH_FORMAT, GraphBuilder
from .log_parser import LogParser, log_format

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
ChangeListener = Callable[["GitRepository"], None]

DEFAULT_FILE_HISTORY_LIMIT = 50


class GitRepository:
    """One git checkout: its root, its queries and its caches."""

    def __init__(
        self,
        root: PathLike,
        runner: Optional[GitCommandRunner] = None,
        parser: Optional[LogParser] = None,
        graph_builder: Optional[GraphBuilder] = None,
    ):
        """Initialize the repository.

        Args:
            root: Top-level working directory of the checkout
            runner: Command runner shared with the registry
            parser: Log parser carrying the configured date format
            graph_builder: Graph glyph aligner
        """
        self.root = normalize_path(root)
        self.runner = runner or GitCommandRunner()
        self.parser = parser or LogParser()
        self.graph_builder = graph_builder or GraphBuilder()

        self._commit_details: Dict[str, GitLogEntry] = {}
        self._file_histories: Dict[str, List[GitLogEntry]] = {}
        self._authors: Optional[List[GitAuthor]] = None
        self._refs: Optional[List[GitRef]] = None
        self._listeners: List[ChangeListener] = []

    def __repr__(self) -> str:
        return f"GitRepository({self.root!r})"

    @property
    def root_path(self) -> Path:
        return Path(self.root)

    @property
    def git_dir(self) -> Path:
        return self.root_path / ".git"

    # -- change notification ------------------------------------------------

    def on_did_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Subscribe to invalidation events; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _fire_change(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception(f"Change listener failed for {self.root}")

    def clear_cache(self) -> None:
        """Drop commit, file-history and author caches."""
        self._commit_details = {}
        self._file_histories = {}
        self._authors = None

    def clear_refs_cache(self) -> None:
        self._refs = None

    def handle_log_changed(self) -> None:
        """History under ``.git/logs`` changed."""
        logger.info(f"Commit history changed in {self.root}")
        self.clear_cache()
        self._fire_change()

    def handle_refs_changed(self) -> None:
        """``.git/packed-refs`` changed."""
        logger.info(f"Refs changed in {self.root}")
        self.clear_refs_cache()
        self._fire_change()

    def handle_file_saved(self, path: PathLike) -> None:
        """A working-tree file was written; its cached history is stale."""
        if self._file_histories.pop(normalize_path(path), None) is not None:
            logger.debug(f"Dropped cached history of {path}")

    # -- helpers ------------------------------------------------------------

    async def exec(
        self, args: Sequence[str], cancellation: Optional[CancellationToken] = None
    ) -> str:
        """Run git in the repository root, returning ``""`` on failure."""
        return await self.runner.execute(args, self.root, cancellation=cancellation)

    def relative_path(self, path: PathLike) -> str:
        """Forward-slash path of ``path`` relative to the root, ``.`` for the root."""
        relative = os.path.relpath(normalize_path(path), self.root).replace("\\", "/")
        return "." if relative in ("", ".") else relative

    def _history_args(
        self,
        start: int,
        count: int,
        ref: Optional[str],
        path: Optional[PathLike],
        line: Optional[int],
        author: Optional[str],
    ) -> List[str]:
        args: List[str] = []
        if start:
            args.append(f"--skip={start}")
        if count:
            args.append(f"--max-count={count}")
        if author:
            args.append(f"--author={author}")
        if ref:
            args.append(ref)
        if path:
            relative = self.relative_path(path)
            if line:
                # -L takes its own path and rejects pathspecs
                args.append(f"-L{line},{line}:{relative}")
            else:
                args.extend(["--follow", "--", relative])
        return args

    # -- queries ------------------------------------------------------------

    async def current_branch(self) -> str:
        return await self.exec(["rev-parse", "--abbrev-ref", "HEAD"])

    async def commits_count(
        self,
        path: Optional[PathLike] = None,
        author: Optional[str] = None,
        ref: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> int:
        """Number of commits reachable from ``ref`` (HEAD), optionally filtered."""
        args = ["rev-list", "--simplify-merges", "--count", ref or "HEAD"]
        if author:
            args.append(f"--author={author}")
        if path:
            args.extend(["--", self.relative_path(path)])

        output = await self.exec(args, cancellation)
        try:
            return int(output)
        except ValueError:
            return 0

    async def committed_files(
        self, left_ref: Optional[str], right_ref: str
    ) -> List[GitCommittedFile]:
        """Files changed by ``right_ref``, or between ``left_ref..right_ref``."""
        if left_ref:
            args = ["diff", "--name-status", f"{left_ref}..{right_ref}"]
        else:
            args = ["show", "--format=%h", "--name-status", right_ref]

        output = await self.exec(args)
        return self.parser.parse_name_status(
            output, root=self.root_path, left_ref=left_ref, right_ref=right_ref
        )

    async def file_history(
        self,
        path: PathLike,
        start: int = 0,
        limit: int = DEFAULT_FILE_HISTORY_LIMIT,
    ) -> List[GitLogEntry]:
        """Commits touching ``path``, cached per absolute path."""
        key = normalize_path(path)
        if key not in self._file_histories:
            entries = await self.log_entries(StatMode.NONE, start, limit, path=key)
            self._file_histories[key] = entries
        return self._file_histories[key]

    async def log_entries(
        self,
        stat_mode: Optional[StatMode],
        start: int = 0,
        count: int = 0,
        ref: Optional[str] = None,
        path: Optional[PathLike] = None,
        line: Optional[int] = None,
        author: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[GitLogEntry]:
        """Parsed ``git log`` page; ``count == 0`` loads everything remaining.

        With ``line`` the entries carry a line-level diff instead of a stat.
        """
        separator = random_string()
        args = ["log", f"--format={log_format(separator)}", "--decorate=full", "--simplify-merges"]

        if not line:
            if stat_mode == StatMode.SHORT:
                args.append("--shortstat")
            elif stat_mode == StatMode.FULL:
                args.append("--stat")

        args.extend(self._history_args(start, count, ref, path, line, author))

        output = await self.exec(args, cancellation)
        return self.parser.parse_log(output, separator, "diff" if line else "stat")

    async def graph(
        self,
        start: int = 0,
        count: int = 0,
        ref: Optional[str] = None,
        path: Optional[PathLike] = None,
        line: Optional[int] = None,
        author: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> Dict[str, GraphNode]:
        """Graph lane glyphs per short hash for the same page as :meth:`log_entries`."""
        args = ["log", f"--format={GRAPH_FORMAT}", "--graph", "--simplify-merges"]
        args.extend(self._history_args(start, count, ref, path, line, author))

        output = await self.exec(args, cancellation)
        return self.graph_builder.build(output)

    async def commit_details(self, commit_hash: str) -> Optional[GitLogEntry]:
        """Single commit with full stat and file list, cached per hash."""
        if commit_hash in self._commit_details:
            return self._commit_details[commit_hash]

        output = await self.exec(
            ["show", f"--format={log_format()}", "--stat=60", commit_hash]
        )
        entry = self.parser.parse_commit(output, "stat")
        if entry is None:
            return None

        entry.files = await self.committed_files(None, commit_hash)
        self._commit_details[commit_hash] = entry
        return entry

    async def refs(self) -> List[GitRef]:
        if self._refs is None:
            output = await self.exec(
                ["for-each-ref", "--format", "%(refname) %(objectname:short)"]
            )
            self._refs = self.parser.parse_refs(output)
        return self._refs

    async def authors(self) -> List[GitAuthor]:
        if self._authors is None:
            output = await self.exec(["shortlog", "-se", "HEAD"])
            self._authors = self.parser.parse_authors(output)
        return self._authors
