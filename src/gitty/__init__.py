"""
gitty - git history extraction and interactive history documents.

Parses delimited ``git log`` output into typed commit records and renders
them into a styled, paginated document with clickable and hoverable regions
and an ASCII branch graph.
"""

__version__ = "0.4.0"
