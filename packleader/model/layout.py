"""
Layered Graph Layout
====================

Left-to-right hierarchical layout for the canonical graph, built on NetworkX.

Algorithm:
1. Build a DiGraph of the nodes and the edges between known nodes
2. Break cycles by dropping the closing edge of each cycle found
3. Rank nodes with topological generations (longest path from a source)
4. Order nodes inside each rank by the barycenter of their predecessors
5. Assign fixed-size slots: ranks are columns, order is the row

The layout is a pure function of (node ids, edges): the same graph always
produces the same positions.
"""

import networkx as nx

from .schemas import Position


NODE_WIDTH = 200
NODE_HEIGHT = 80
NODE_SEP = 60
RANK_SEP = 120
MARGIN_X = 40
MARGIN_Y = 40

BARYCENTER_SWEEPS = 2


def compute_layout(node_ids: list, edges: list) -> dict:
    """Compute top-left positions for every node.

    Args:
        node_ids: Node ids in insertion order (ties keep this order)
        edges: (source, target) pairs; pairs touching unknown ids are ignored

    Returns:
        Dictionary mapping node id to Position

    Raises:
        networkx.NetworkXException: if the layering fails
    """
    graph = nx.DiGraph()
    graph.add_nodes_from(node_ids)
    for source, target in edges:
        if source != target and source in graph and target in graph:
            graph.add_edge(source, target)

    _break_cycles(graph)

    ranks = [list(generation) for generation in nx.topological_generations(graph)]
    insertion_index = {node_id: i for i, node_id in enumerate(node_ids)}
    ranks = [sorted(rank, key=insertion_index.__getitem__) for rank in ranks]
    _order_ranks(graph, ranks, insertion_index)

    return _assign_positions(ranks)


def _break_cycles(graph: nx.DiGraph) -> None:
    """Remove edges until the graph is acyclic."""
    while True:
        try:
            cycle = nx.find_cycle(graph)
        except nx.NetworkXNoCycle:
            return
        source, target = cycle[-1][0], cycle[-1][1]
        graph.remove_edge(source, target)


def _order_ranks(graph: nx.DiGraph, ranks: list, insertion_index: dict) -> None:
    """Reduce crossings with barycenter sweeps from left to right."""
    for _ in range(BARYCENTER_SWEEPS):
        for r in range(1, len(ranks)):
            previous = {node_id: i for i, node_id in enumerate(ranks[r - 1])}
            current = {node_id: i for i, node_id in enumerate(ranks[r])}

            def barycenter(node_id):
                slots = [previous[p] for p in graph.predecessors(node_id) if p in previous]
                if not slots:
                    return float(current[node_id])
                return sum(slots) / len(slots)

            ranks[r].sort(key=lambda n: (barycenter(n), insertion_index[n]))


def _assign_positions(ranks: list) -> dict:
    """Place ranks in columns, centering shorter columns vertically."""
    positions = {}
    if not ranks:
        return positions

    row_step = NODE_HEIGHT + NODE_SEP
    column_step = NODE_WIDTH + RANK_SEP
    tallest = max(len(rank) for rank in ranks)

    for r, rank in enumerate(ranks):
        offset = (tallest - len(rank)) * row_step / 2
        for i, node_id in enumerate(rank):
            positions[node_id] = Position(
                x=float(MARGIN_X + r * column_step),
                y=float(MARGIN_Y + offset + i * row_step),
            )
    return positions
