"""Repository discovery, git queries and output parsing."""

from .graph_builder import GraphBuilder
from .log_parser import LogParser
from .registry import RepositoryRegistry
from .repository import GitRepository

__all__ = ["GitRepository", "GraphBuilder", "LogParser", "RepositoryRegistry"]
