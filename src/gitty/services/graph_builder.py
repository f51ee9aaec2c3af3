"""
Aligns ``git log --graph`` glyph output with commit hashes.

The graph query prints each commit's short hash as the only payload on
several consecutive lines (``--format=%h%n%h%n%h%n%h``), interleaved with
pure connector lines that carry lane glyphs only::

    * 1a2b3c4
    | 1a2b3c4
    | 1a2b3c4
    | 1a2b3c4
    |\\
    | * 9f8e7d6

Each line ending in a hash yields its glyph prefix for that hash; connector
lines belong to the most recently seen hash.
"""

import logging
import re
from typing import Dict, List, Optional

from ..models import GraphNode

logger = logging.getLogger(__name__)

GRAPH_FORMAT = "%h%n%h%n%h%n%h"
TRAILING_HASH = re.compile(r"^(.*?) ?([0-9a-f]{4,})$")

NODE_GLYPH = "●"
LANE_GLYPH = "│"
DEFAULT_GLYPHS = [NODE_GLYPH, " ", " ", " "]


def prettify(glyphs: str) -> str:
    """Swap git's ASCII node and lane markers for box-drawing glyphs."""
    return glyphs.replace("*", NODE_GLYPH).replace("|", LANE_GLYPH)


class GraphBuilder:
    """Builds per-commit :class:`GraphNode` glyph lists from graph output."""

    def build(self, output: str) -> Dict[str, GraphNode]:
        nodes: Dict[str, GraphNode] = {}
        current: Optional[GraphNode] = None

        for line in output.split("\n"):
            match = TRAILING_HASH.match(line.rstrip())
            if match:
                prefix, commit_hash = match.groups()
                current = nodes.setdefault(commit_hash, GraphNode())
                current.glyphs.append(prefix)
            elif current is not None:
                current.glyphs.append(line.rstrip())
            elif line.strip():
                logger.debug(f"Dropping graph line before first commit: {line!r}")

        logger.debug(f"Built graph with {len(nodes)} nodes")
        return nodes

    @staticmethod
    def lane_prefixes(node: Optional[GraphNode]) -> List[str]:
        """Display prefixes for a commit, one per rendered line.

        Falls back to a solid node followed by blank lanes when no graph
        data exists for the commit. Each glyph is padded with one space.
        """
        glyphs = node.glyphs if node is not None and node.glyphs else DEFAULT_GLYPHS
        return [prettify(glyph) + " " for glyph in glyphs]
