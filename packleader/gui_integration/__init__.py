"""
packleader Session Integration Module
=====================================

Bridge between a front end (or the CLI) and the analysis core.

Key Functions:
- initialize_environment(): Three-wave session bootstrap
- ExploreSession: Canvas graph, search, paths, queries, chat and remediation
"""

from .bridge import (
    ExploreSession,
    InitSnapshot,
    LatestRequestGate,
    QueryOutcome,
    initialize_environment,
    initialize_with_retry,
    parse_search_text,
)
