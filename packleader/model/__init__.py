"""
packleader Model Module
=======================

Contains the data models, the canonical visual graph and its layout.

Key Components:
- schemas.py: Typed dataclasses for BloodHound payloads and graph records
- graph_builder.py: VisualGraph, the deduplicated canvas graph
- layout.py: NetworkX-based left-to-right layered layout

Design Philosophy:
- Raw payload records parse tolerantly; canonical records are strict
- The canonical graph has exactly one mutation path (VisualGraph.merge)
"""

from .schemas import (
    NodeKind,
    RiskLevel,
    ImpactLevel,
    Severity,
    Position,
    RawGraphNode,
    RawGraphEdge,
    Literal,
    GraphPayload,
    CanonicalNode,
    CanonicalEdge,
    SearchResult,
    DomainInfo,
    NodeEntity,
    RemediationItem,
    ContextChip,
    EnvironmentStats,
)
from .graph_builder import VisualGraph, MergeResult, transform_graph
from .layout import compute_layout
