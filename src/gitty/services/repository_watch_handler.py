"""
Filesystem change signals for known repositories.

A watchdog observer watches the workspace folders and translates raw events
into repository invalidations:

* anything under ``.git/logs`` means the commit history changed,
* ``.git/packed-refs`` means the ref set changed,
* a new ``.git`` directory means the set of repository roots changed,
* any other file write drops that file's cached history and is reported to
  file-save listeners.

Events arrive on the observer thread. When an event loop is supplied they are
handed over to it with ``call_soon_threadsafe``; invalidation is idempotent,
so bursts of events are harmless.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler

from ..utils.text import normalize_path
from .registry import RepositoryRegistry

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
FileSavedListener = Callable[[Path], None]


class RepositoryWatchHandler(FileSystemEventHandler):
    """Routes watchdog events to the registry and its repositories."""

    def __init__(
        self,
        registry: RepositoryRegistry,
        workspace_folders: Sequence[PathLike] = (),
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """Initialize the watch handler.

        Args:
            registry: Registry whose repositories are invalidated
            workspace_folders: Folders to observe and rescan
            loop: Event loop owning the registry, ``None`` to dispatch inline
        """
        super().__init__()
        self.registry = registry
        self.workspace_folders = [normalize_path(f) for f in workspace_folders]
        self.loop = loop
        self.observer: Optional[Any] = None
        self._file_saved_listeners: List[FileSavedListener] = []

    def on_file_saved(self, listener: FileSavedListener) -> Callable[[], None]:
        self._file_saved_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._file_saved_listeners:
                self._file_saved_listeners.remove(listener)

        return unsubscribe

    def start_watching(self) -> None:
        """Start observing every workspace folder recursively."""
        from watchdog.observers import Observer

        self.observer = Observer()
        for folder in self.workspace_folders:
            self.observer.schedule(self, folder, recursive=True)
        self.observer.start()
        logger.info(f"Watching {len(self.workspace_folders)} workspace folders")

    def stop_watching(self) -> None:
        if self.observer and self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=5.0)
            logger.info("File system observer stopped")
        self.observer = None

    # -- watchdog callbacks -------------------------------------------------

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory and Path(str(event.src_path)).name == ".git":
            self._dispatch(self._rescan)
            return
        self._route(str(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._route(str(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        # ref updates are written to a lock file and renamed into place
        if not event.is_directory:
            self._route(str(event.dest_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory and Path(str(event.src_path)).name == ".git":
            self._dispatch(self._rescan)

    # -- routing ------------------------------------------------------------

    def _route(self, src_path: str) -> None:
        path = normalize_path(src_path)
        marker = "/.git/"

        if marker in path:
            repo_root = path.split(marker, 1)[0]
            inner = path.split(marker, 1)[1]
            repo = self.registry.find_known(repo_root)
            if repo is None:
                return
            if inner == "logs" or inner.startswith("logs/"):
                self._dispatch(repo.handle_log_changed)
            elif inner == "packed-refs":
                self._dispatch(repo.handle_refs_changed)
            return

        repo = self.registry.find_known(path)
        if repo is not None:
            self._dispatch(lambda: repo.handle_file_saved(path))
        self._dispatch(lambda: self._notify_file_saved(Path(path)))

    def _notify_file_saved(self, path: Path) -> None:
        for listener in list(self._file_saved_listeners):
            try:
                listener(path)
            except Exception:
                logger.exception(f"File-save listener failed for {path}")

    def _rescan(self) -> None:
        if self.loop is None:
            logger.debug("No event loop attached, skipping repository rescan")
            return
        self.loop.create_task(self.registry.scan(self.workspace_folders))

    def _dispatch(self, callback: Callable[[], None]) -> None:
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(callback)
        else:
            callback()
