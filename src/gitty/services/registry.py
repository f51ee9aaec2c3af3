"""
Repository discovery across a workspace.

Known roots are kept sorted by descending length so that, for nested
checkouts, the innermost repository wins a prefix lookup. The root table is
an immutable snapshot replaced wholesale on every change, so a reader sees
either the old table or the new one.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..utils.git_runner import GitCommandRunner
from ..utils.text import normalize_path
from .graph_builder import GraphBuilder
from .log_parser import LogParser
from .repository import GitRepository

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
RegistryListener = Callable[[Optional[GitRepository]], None]

GIT_MARKER = ".git"

# directories never worth descending into while looking for checkouts
SKIP_DIRS = {"node_modules", "__pycache__", ".venv", "venv", ".tox", ".mypy_cache"}


class RepositoryRegistry:
    """Maps arbitrary paths to the repository that owns them."""

    def __init__(
        self,
        runner: Optional[GitCommandRunner] = None,
        parser: Optional[LogParser] = None,
        graph_builder: Optional[GraphBuilder] = None,
    ):
        self.runner = runner or GitCommandRunner()
        self.parser = parser or LogParser()
        self.graph_builder = graph_builder or GraphBuilder()

        # (roots sorted by descending length, root -> repository)
        self._table: Tuple[Tuple[str, ...], Dict[str, GitRepository]] = ((), {})
        self._listeners: List[RegistryListener] = []

    # -- change notification ------------------------------------------------

    def on_did_change(self, listener: RegistryListener) -> Callable[[], None]:
        """Subscribe to root-table and per-repository change events."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _fire_change(self, repo: Optional[GitRepository] = None) -> None:
        for listener in list(self._listeners):
            try:
                listener(repo)
            except Exception:
                logger.exception("Registry change listener failed")

    # -- table access -------------------------------------------------------

    @property
    def known_roots(self) -> List[str]:
        return list(self._table[0])

    def repositories(self) -> List[GitRepository]:
        roots, repos = self._table
        return [repos[root] for root in roots]

    def _publish(self, repos: Dict[str, GitRepository]) -> None:
        roots = tuple(sorted(repos, key=len, reverse=True))
        self._table = (roots, repos)

    def _create_repository(self, root: str) -> GitRepository:
        repo = GitRepository(root, self.runner, self.parser, self.graph_builder)
        repo.on_did_change(self._fire_change)
        return repo

    def find_known(self, path: PathLike) -> Optional[GitRepository]:
        """Longest known root containing ``path``, without running git."""
        fs_path = normalize_path(path)
        roots, repos = self._table
        for root in roots:
            if self._contains(root, fs_path):
                return repos[root]
        return None

    @staticmethod
    def _contains(root: str, path: str) -> bool:
        return path == root or path.startswith(root.rstrip("/") + "/")

    # -- operations ---------------------------------------------------------

    def find_marker_roots(self, folders: Iterable[PathLike]) -> List[str]:
        """Directories below ``folders`` that contain a ``.git`` marker."""
        found = []
        for folder in folders:
            for dirpath, dirnames, _ in os.walk(str(folder)):
                if GIT_MARKER in dirnames:
                    found.append(normalize_path(dirpath))
                    dirnames.remove(GIT_MARKER)
                dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
        return found

    async def scan(self, workspace_folders: Iterable[PathLike]) -> List[GitRepository]:
        """Rediscover every repository in the workspace and swap the table."""
        folders = [normalize_path(folder) for folder in workspace_folders]
        # the directory walk runs off the loop thread
        loop = asyncio.get_running_loop()
        markers = await loop.run_in_executor(None, self.find_marker_roots, folders)
        candidates = markers + folders

        previous = self._table[1]
        repos: Dict[str, GitRepository] = {}
        for candidate in candidates:
            root = await self._discover_root(candidate)
            if root is None or root in repos:
                continue
            repos[root] = previous.get(root) or self._create_repository(root)

        self._publish(repos)
        logger.info(f"Workspace scan found {len(repos)} repositories")

        if repos:
            self._fire_change()
        return self.repositories()

    async def _discover_root(self, path: str) -> Optional[str]:
        if not os.path.exists(path):
            return None
        if os.path.isfile(path):
            path = os.path.dirname(path)

        root = await self.runner.execute(["rev-parse", "--show-toplevel"], path)
        return normalize_path(root) if root else None

    async def resolve(
        self, path: PathLike, use_known_roots: bool = True
    ) -> Optional[GitRepository]:
        """Repository owning ``path``, discovering it on demand.

        Returns ``None`` when ``path`` does not exist or is not inside a
        git working tree.
        """
        fs_path = normalize_path(path)

        if use_known_roots:
            known = self.find_known(fs_path)
            if known is not None:
                return known

        root = await self._discover_root(fs_path)
        if root is None:
            return None

        roots, repos = self._table
        if root in repos:
            return repos[root]

        repo = self._create_repository(root)
        self._publish({**repos, root: repo})
        logger.info(f"Registered repository {root}")
        self._fire_change(repo)
        return repo
