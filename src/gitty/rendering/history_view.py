"""
History document renderer.

:class:`HistoryView` turns a :class:`ViewContext` into a styled, clickable
document. Rendering is incremental: :meth:`HistoryView.open` clears the buffer
and prints the header plus the first page, and each pagination continuation
appends the next page below the previous ones without reprinting the header.

Every render pass first runs all of its git queries and only then writes to
the buffer. Opening a new context cancels the previous pass's token, which
kills its running git command and stops its results from being applied.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from ..config import ConfigService
from ..models import GitLogEntry, GitRefType, GraphNode, StatMode, ViewContext
from ..services.graph_builder import GraphBuilder
from ..services.log_parser import LogParser
from ..services.repository import GitRepository
from ..services.repository_watch_handler import RepositoryWatchHandler
from ..utils.git_runner import CancellationToken
from . import styles
from .buffer import RenderBuffer
from .interaction import Region
from .ranges import Position, Range

logger = logging.getLogger(__name__)

TITLE = "Git History"
SEPARATOR = "-" * 60
REF_ICONS = {GitRefType.HEAD: "▶", GitRefType.TAG: "☖", GitRefType.REMOTE_HEAD: ""}
DIFF_STYLES = {"-": styles.OLD_LINE, "+": styles.NEW_LINE, "@": styles.INFO}


class HistoryViewActions:
    """Hooks into the hosting UI for actions outside the document.

    The defaults do nothing; a UI shell subclasses this to open pickers or a
    commit file browser.
    """

    def select_repository(self) -> None:
        pass

    def select_ref(self, context: ViewContext) -> None:
        pass

    def select_author(self, context: ViewContext) -> None:
        pass

    def select_commit(
        self, repo: GitRepository, commit_hash: str, context: ViewContext
    ) -> None:
        pass


class _LanePrefixes:
    """Hands out graph glyphs line by line, repeating the last one."""

    def __init__(self, node: Optional[GraphNode]):
        self.prefixes = GraphBuilder.lane_prefixes(node)
        self.repeat = self.prefixes.pop()

    def next(self) -> str:
        return self.prefixes.pop(0) if self.prefixes else self.repeat

    def remaining(self) -> List[str]:
        rest, self.prefixes = self.prefixes, []
        return rest


class HistoryView:
    """Renders commit history for one context at a time."""

    def __init__(
        self,
        config: ConfigService,
        actions: Optional[HistoryViewActions] = None,
        parser: Optional[LogParser] = None,
    ):
        self.config = config
        self.actions = actions or HistoryViewActions()
        self.parser = parser or LogParser()
        self.buffer = RenderBuffer()

        self.log_count = 0
        self.total_count = 0
        self.has_more = False
        self.needs_refresh = False

        self._context: Optional[ViewContext] = None
        self._cancellation: Optional[CancellationToken] = None
        self._controls: List[Region] = []
        self._listeners: List[Callable[[], None]] = []
        self._pending: Optional["asyncio.Task[bool]"] = None
        self._on_refreshed: Optional[Callable[[], None]] = None
        self._unsubscribe_config = config.on_did_change(self._on_config_changed)

    # -- UI shell surface -----------------------------------------------------

    @property
    def context(self) -> ViewContext:
        return self._context or ViewContext()

    @property
    def text(self) -> str:
        return self.buffer.text

    def decorations(self) -> Dict[str, List[Range]]:
        """Current ranges per style name, with regions as ``clickable``."""
        ranges = {name: self.buffer.ranges(name) for name in styles.STYLE_NAMES}
        ranges[styles.CLICKABLE] = self.buffer.regions.ranges
        return ranges

    async def click(self, position: Position) -> bool:
        return await self.buffer.regions.click(position)

    async def hover(self, position: Position) -> Optional[str]:
        return await self.buffer.regions.hover(position)

    def on_did_change(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _fire_change(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("History view listener failed")

    def dispose(self) -> None:
        if self._cancellation is not None:
            self._cancellation.cancel()
        self._unsubscribe_config()
        self._listeners = []
        self._on_refreshed = None

    def follow(
        self,
        handler: RepositoryWatchHandler,
        on_refreshed: Optional[Callable[[], None]] = None,
    ) -> Callable[[], None]:
        """Re-render whenever the shown repository reports a change.

        ``on_refreshed`` runs after each re-render that was applied to the
        buffer. Returns a function that stops following.
        """
        self._on_refreshed = on_refreshed

        def repository_changed(repo: Optional[GitRepository]) -> None:
            if repo is not None and repo is self.context.repo:
                self._schedule_refresh()

        unsubscribe = handler.registry.on_did_change(repository_changed)

        def stop() -> None:
            unsubscribe()
            self._on_refreshed = None

        return stop

    def _on_config_changed(self, keys: List[str]) -> None:
        if self._context is None or not any(k.startswith("history.") for k in keys):
            return
        self._apply_history_settings(keys)
        self._schedule_refresh()

    def _apply_history_settings(self, keys: List[str]) -> None:
        history = self.config.history
        repo = self.context.repo

        if "history.date_format" in keys:
            self.parser.date_format = history.date_format
            if repo is not None:
                repo.parser.date_format = history.date_format
                # cached commit details carry dates in the old format
                repo.clear_cache()
        if "history.command_timeout" in keys and repo is not None:
            repo.runner.timeout = history.command_timeout

    def _schedule_refresh(self) -> None:
        if self._context is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.needs_refresh = True
            return
        self._pending = loop.create_task(self.open(self._context))
        self._pending.add_done_callback(self._on_refresh_done)

    def _on_refresh_done(self, task: "asyncio.Task[bool]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.exception("History re-render failed", exc_info=error)
            return
        if task.result() and self._on_refreshed is not None:
            try:
                self._on_refreshed()
            except Exception:
                logger.exception("History refresh callback failed")

    # -- entry points -------------------------------------------------------

    async def open(self, context: ViewContext) -> bool:
        """Switch to ``context`` and render it from scratch.

        Returns ``False`` when a newer context superseded this one before its
        results could be applied.
        """
        if self._cancellation is not None:
            self._cancellation.cancel()
        token = CancellationToken()
        self._cancellation = token
        self.needs_refresh = False

        if context.repo is not None and not context.branch:
            branch = await context.repo.current_branch()
            if token.is_cancelled:
                return False
            if branch:
                context = replace(context, branch=branch)

        self._context = context
        self.log_count = 0
        self.total_count = 0
        self.has_more = False
        self._controls = []
        self.buffer.clear()
        self._fire_change()

        if context.repo is None:
            return False
        return await self._render(token, print_header=True, load_all=bool(context.line))

    async def load_more(self) -> bool:
        """Append the next page; ``False`` if nothing remains to load."""
        return await self._consume_controls(load_all=False)

    async def load_all(self) -> bool:
        """Append every remaining commit."""
        return await self._consume_controls(load_all=True)

    async def _consume_controls(self, load_all: bool) -> bool:
        if not self._controls or self._cancellation is None:
            return False

        line = self._controls[0].range.start.line if self._controls[0].range else None
        for control in self._controls:
            self.buffer.regions.remove(control)
        self._controls = []

        if line is not None:
            self.buffer.replace_line(line, [SEPARATOR, " "])
        return await self._render(self._cancellation, print_header=False, load_all=load_all)

    # -- rendering ----------------------------------------------------------

    async def _render(
        self, token: CancellationToken, print_header: bool, load_all: bool
    ) -> bool:
        context = self._context
        if context is None or context.repo is None:
            return False
        repo = context.repo
        history = self.config.history

        loading_line = len(self.buffer.lines)
        self.buffer.set_ranges(styles.LOADING, [Range.of(loading_line, 0, loading_line, 1)])
        self._fire_change()

        stat_mode = history.stat_mode
        load_count = 0 if load_all else history.commits_count

        entries = await repo.log_entries(
            stat_mode,
            self.log_count,
            load_count,
            context.branch,
            context.specified_path,
            context.line,
            context.author,
            cancellation=token,
        )

        commits_count = self.log_count + len(entries)
        has_more = False
        if load_count and len(entries) >= load_count:
            commits_count = await repo.commits_count(
                context.specified_path, context.author, ref=context.branch, cancellation=token
            )
            has_more = commits_count > len(entries) + self.log_count

        graph: Dict[str, GraphNode] = {}
        if not context.specified_path and history.graph:
            graph = await repo.graph(
                self.log_count,
                load_count,
                context.branch,
                None,
                context.line,
                context.author,
                cancellation=token,
            )

        if token.is_cancelled or context is not self._context:
            logger.debug(f"Discarding superseded render of {repo.root}")
            return False

        if print_header:
            self.buffer.clear()
            self._print_header(context, stat_mode, history.graph)

        if not entries and self.log_count == 0:
            self.buffer.append("No History")

        for entry in entries:
            self._print_entry(context, entry, graph.get(entry.hash), stat_mode)

        self.has_more = has_more
        self.total_count = commits_count
        if has_more:
            self._print_controls()

        self.buffer.set_ranges(styles.LOADING, [])
        logger.debug(
            f"Rendered {len(entries)} commits of {repo.root} "
            f"({self.log_count}/{self.total_count} loaded)"
        )
        self._fire_change()
        return True

    def _print_header(self, context: ViewContext, stat_mode: StatMode, graph_enabled: bool) -> None:
        append = self.buffer.append
        repo = context.repo

        append(TITLE, styles.TITLE)
        append(" (")
        append(repo.root, styles.INFO, False, Region(
            on_click=lambda _: self.actions.select_repository(),
        ))
        append(")\n")

        if context.specified_path:
            append("File: ", styles.TITLE)
            append(repo.relative_path(context.specified_path), styles.FILE)
            append("  ")

        if context.line:
            append(f"at line {context.line}")
            append("  ")

        append("Branch: ", styles.TITLE)
        append(context.branch or "HEAD", styles.BRANCH, False, Region(
            on_click=lambda _: self.actions.select_ref(context),
            on_hover=lambda _: "Select a branch to see its history",
        ))
        append("  ")

        append("Author: ", styles.TITLE)
        append(context.author or "all authors", styles.EMAIL, False, Region(
            on_click=lambda _: self.actions.select_author(context),
            on_hover=lambda _: "Select an author to see the commits",
        ))
        append("  ")

        append("Graph: ", styles.INFO)
        append("enabled" if graph_enabled else "disabled", styles.INFO, False, Region(
            on_click=lambda _: self.config.toggle_graph(),
            on_hover=lambda _: "Graph is a work in progress, it may break or be slow",
        ))
        append("  ")

        append("Stat: ", styles.INFO)
        append(stat_mode.value, styles.INFO, False, Region(
            on_click=lambda _: self.config.toggle_stat_mode(),
            on_hover=lambda _: "Stat changes the level of details displayed. None is the fastest.",
        ))
        append("  ")
        append("\n\n")

    def _print_entry(
        self,
        context: ViewContext,
        entry: GitLogEntry,
        node: Optional[GraphNode],
        stat_mode: StatMode,
    ) -> None:
        append = self.buffer.append
        lanes = _LanePrefixes(node)

        append(lanes.next())
        append(entry.subject, styles.SUBJECT)
        append("  ")
        if entry.subject.strip() != entry.body.strip():
            append("...", styles.BODY, False, Region(on_hover=lambda _: entry.body))
        append("\n")

        append(lanes.next())
        append(entry.hash, styles.HASH, False, Region(
            on_click=lambda _: self._select_commit(context, entry),
            on_hover=lambda _: self._describe_commit(context.repo, entry, stat_mode),
        ))

        for ref in entry.refs:
            append(" ")
            append(REF_ICONS.get(ref.type, "") + ref.name, styles.REF, True, Region(
                on_click=lambda _, name=ref.name: self._open_ref(context, name),
            ))

        if entry.author:
            append(" by ")
            append(entry.author, styles.AUTHOR)
        if entry.email:
            append(" <")
            append(entry.email, styles.EMAIL)
            append(">")
        if entry.date:
            append(", ")
            append(entry.date, styles.DATE)
        append("\n")

        if entry.stat:
            for line in entry.stat.split("\n"):
                append(lanes.next())
                self._print_stat_line(line)
                append("\n")
        elif entry.diff:
            diff_started = False
            for line in entry.diff.split("\n"):
                diff_started = diff_started or line.startswith("@")
                style = DIFF_STYLES.get(line[:1])
                if diff_started and style:
                    append(lanes.next())
                    append(line, style)
                    append("\n")
        else:
            append(lanes.next() + "\n")

        self.log_count += 1

        for glyph in lanes.remaining():
            append(glyph + "\n")
        append(lanes.repeat + "\n")

    def _print_stat_line(self, line: str) -> None:
        stat = self.parser.parse_stat_line(line)
        if stat is None:
            self.buffer.append(line)
            return
        self.buffer.append(" " + stat.prefix, styles.INFO)
        if stat.insertions:
            self.buffer.append(stat.insertions, styles.NEW_LINE)
        if stat.deletions:
            self.buffer.append(stat.deletions, styles.OLD_LINE)

    def _print_controls(self) -> None:
        more = Region(on_hover=lambda _: "Load more commits")
        everything = Region(on_hover=lambda _: "Load all remaining commits")
        more.on_click = lambda _: self.load_more()
        everything.on_click = lambda _: self.load_all()

        self.buffer.append("\n")
        self.buffer.append("···", styles.MORE, False, more)
        self.buffer.append(" / ")
        self.buffer.append("Load all", styles.MORE, False, everything)
        self.buffer.append("\n")
        self._controls = [more, everything]

    # -- region callbacks ---------------------------------------------------

    def _select_commit(self, context: ViewContext, entry: GitLogEntry) -> None:
        for span in self.buffer.ranges(styles.HASH):
            line = self.buffer.lines[span.start.line]
            if line[span.start.character:span.end.character] == entry.hash:
                self.buffer.set_ranges(
                    styles.SELECTED, [Range.of(span.start.line, 0, span.start.line, len(line))]
                )
                break
        self.actions.select_commit(context.repo, entry.hash, context)
        self._fire_change()

    async def _open_ref(self, context: ViewContext, name: str) -> None:
        self.actions.select_commit(context.repo, name, context)
        await self.open(replace(context, branch=name))

    async def _describe_commit(
        self, repo: GitRepository, entry: GitLogEntry, stat_mode: StatMode
    ) -> str:
        """Hover text for a commit, fetching full details on demand."""
        details: Optional[GitLogEntry] = entry
        if stat_mode != StatMode.FULL:
            details = await repo.commit_details(entry.hash) or entry

        lines = [
            f"Commit:    {details.hash}",
            f"Author:    {details.author} <{details.email}>",
            f"Date:      {details.date}",
            "---",
            details.body.strip(),
            "---",
            details.stat or "",
        ]
        if details.files:
            lines.append("---")
            lines.extend(f"{f.status}\t{f.git_relative_path}" for f in details.files)
        return "\n".join(lines)
