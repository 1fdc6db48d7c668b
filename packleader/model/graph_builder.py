"""
packleader Graph Builder
========================

The canonical visual graph: deduplicated, typed and positioned nodes and edges
accumulated from any number of BloodHound cypher responses.

Design Decisions:
-----------------
1. Nodes are keyed by external object id; the query-local graph id is only
   used to resolve edges inside the response that carried them
2. merge() is the single mutation path and enforces first-writer-wins:
   a node or edge already present is never overwritten
3. Edge identity is the composite (source, kind, target), so the same logical
   relationship from two queries collapses into one edge
4. After every merge the layout is recomputed over the full graph; the
   layout is a pure function of the graph, so re-merging the same payload
   leaves positions untouched
5. Highlight and selection are transient view flags kept beside the graph

Example Usage:
    graph = VisualGraph()
    result = graph.merge(GraphPayload.from_response(response["data"]))
    graph.highlight(node_ids=result.added_node_ids)
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

import networkx as nx

from .layout import compute_layout
from .schemas import (
    CanonicalEdge,
    CanonicalNode,
    GraphPayload,
    NodeKind,
    Position,
)


logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Ids inserted by one merge."""
    added_node_ids: list = field(default_factory=list)
    added_edge_ids: list = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added_node_ids or self.added_edge_ids)


class VisualGraph:
    """Canonical graph shown on the canvas.

    Insertion order is preserved for both nodes and edges; the layout uses it
    to break ties so positions are reproducible.
    """

    def __init__(self):
        self._nodes: dict[str, CanonicalNode] = {}
        self._edges: dict[str, CanonicalEdge] = {}
        self._highlighted_nodes: set[str] = set()
        self._highlighted_edges: set[str] = set()
        self._selected_node_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge(self, payload: GraphPayload) -> MergeResult:
        """Merge one cypher response into the graph.

        Args:
            payload: Parsed cypher response

        Returns:
            MergeResult listing the node and edge ids that were new
        """
        result = MergeResult()

        # graph id -> object id, only valid inside this response
        lookup = {
            graph_id: raw.external_id for graph_id, raw in payload.nodes.items()
        }

        for raw in payload.nodes.values():
            node_id = raw.external_id
            if node_id in self._nodes:
                continue
            kind = NodeKind.from_string(raw.kind)
            if raw.kind and raw.kind != kind.value:
                logger.debug("Unknown node kind %r for %s, using Container", raw.kind, node_id)
            self._nodes[node_id] = CanonicalNode(
                id=node_id,
                kind=kind,
                label=raw.label,
                domain=str(raw.properties.get("domain") or ""),
                properties=raw.properties,
                is_tier_zero=raw.is_tier_zero,
                highlighted=node_id in self._highlighted_nodes,
                selected=node_id == self._selected_node_id,
            )
            result.added_node_ids.append(node_id)

        for raw in payload.edges:
            source = lookup.get(raw.source)
            target = lookup.get(raw.target)
            if source is None or target is None:
                logger.debug(
                    "Edge %s -> %s references a node outside its response",
                    raw.source, raw.target
                )
            source = source or raw.source
            target = target or raw.target
            edge_id = CanonicalEdge.make_id(source, raw.kind, target)
            if edge_id in self._edges:
                continue
            self._edges[edge_id] = CanonicalEdge(
                id=edge_id,
                source=source,
                target=target,
                label=raw.label,
                kind=raw.kind,
                highlighted=edge_id in self._highlighted_edges,
            )
            result.added_edge_ids.append(edge_id)

        if result.changed:
            self._relayout()
        return result

    def _relayout(self) -> None:
        """Recompute positions over the complete graph."""
        try:
            positions = compute_layout(
                list(self._nodes),
                [(e.source, e.target) for e in self._edges.values()],
            )
        except (nx.NetworkXException, ValueError) as e:
            logger.warning("Layout failed, keeping previous positions: %s", e)
            return

        for node_id, node in self._nodes.items():
            position = positions.get(node_id)
            if position is not None:
                node.position = Position(position.x, position.y)

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    def highlight(
        self,
        node_ids: Optional[Iterable[str]] = None,
        edge_ids: Optional[Iterable[str]] = None,
        clear: bool = False
    ) -> None:
        """Add ids to the highlight sets, optionally clearing them first."""
        if clear:
            self._highlighted_nodes.clear()
            self._highlighted_edges.clear()
        self._highlighted_nodes.update(node_ids or ())
        self._highlighted_edges.update(edge_ids or ())
        self._sync_flags()

    def clear_highlights(self) -> None:
        self.highlight(clear=True)

    def select(self, node_id: Optional[str]) -> Optional[CanonicalNode]:
        """Select a node (or nothing) and return it."""
        self._selected_node_id = node_id if node_id in self._nodes else None
        self._sync_flags()
        return self._nodes.get(node_id) if node_id else None

    def _sync_flags(self) -> None:
        for node_id, node in self._nodes.items():
            node.highlighted = node_id in self._highlighted_nodes
            node.selected = node_id == self._selected_node_id
        for edge_id, edge in self._edges.items():
            edge.highlighted = edge_id in self._highlighted_edges

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list:
        return list(self._nodes.values())

    @property
    def edges(self) -> list:
        return list(self._edges.values())

    @property
    def node_ids(self) -> list:
        return list(self._nodes)

    @property
    def edge_ids(self) -> list:
        return list(self._edges)

    @property
    def highlighted_node_ids(self) -> set:
        return set(self._highlighted_nodes)

    @property
    def highlighted_edge_ids(self) -> set:
        return set(self._highlighted_edges)

    @property
    def selected_node_id(self) -> Optional[str]:
        return self._selected_node_id

    @property
    def is_empty(self) -> bool:
        return not self._nodes

    def get_node(self, node_id: str) -> Optional[CanonicalNode]:
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[CanonicalEdge]:
        return self._edges.get(edge_id)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def summary(self) -> dict:
        """Compact node/edge listing for tool results."""
        return {
            "nodes": [n.summary() for n in self._nodes.values()],
            "edges": [e.summary() for e in self._edges.values()],
        }

    def to_dict(self) -> dict:
        return {
            "nodes": [n.to_dict() for n in self._nodes.values()],
            "edges": [e.to_dict() for e in self._edges.values()],
        }


def transform_graph(
    payload: GraphPayload,
    existing: Optional[VisualGraph] = None
) -> VisualGraph:
    """Convert one payload into a canonical graph, merging into `existing`.

    Args:
        payload: Parsed cypher response
        existing: Graph to merge into; a new graph is created when omitted

    Returns:
        The merged graph (the same object as `existing` when given)
    """
    graph = existing if existing is not None else VisualGraph()
    graph.merge(payload)
    return graph
