"""
Tool Result Types
=================

Dataclasses returned by the analytical tools. Each serializes with to_dict()
into the JSON handed back to the LLM or printed by the CLI; optional fields
left as None are omitted.
"""

from dataclasses import dataclass, field
from typing import Optional

from ..model.graph_builder import VisualGraph
from ..model.schemas import ImpactLevel, RiskLevel, to_serializable


@dataclass
class ToolResult:
    """Base class for all tool results."""

    def to_dict(self) -> dict:
        return {k: v for k, v in to_serializable(self).items() if v is not None}


@dataclass
class GraphResult(ToolResult):
    """A result carrying a laid-out graph for the canvas.

    Attributes:
        found: False when the query returned no graph nodes
        message: Explanation for a not-found result
        nodes / edges: Compact listings for the LLM
        node_ids / edge_ids: Ids to pass to highlight_graph_elements
        graph: Full positioned graph for rendering
    """
    found: bool = False
    message: Optional[str] = None
    nodes: list = field(default_factory=list)
    edges: list = field(default_factory=list)
    node_ids: list = field(default_factory=list)
    edge_ids: list = field(default_factory=list)
    graph: Optional[dict] = None

    def attach(self, visual: Optional[VisualGraph]) -> None:
        """Fill the graph fields from a VisualGraph (None means not found)."""
        if visual is None or visual.is_empty:
            self.found = False
            return
        summary = visual.summary()
        self.found = True
        self.nodes = summary["nodes"]
        self.edges = summary["edges"]
        self.node_ids = visual.node_ids
        self.edge_ids = visual.edge_ids
        self.graph = visual.to_dict()


@dataclass
class SearchNodesResult(ToolResult):
    results: list = field(default_factory=list)  # List of SearchResult
    count: int = 0


@dataclass
class NodeDetailsResult(ToolResult):
    object_id: str = ""
    kind: str = ""
    properties: dict = field(default_factory=dict)


@dataclass
class AttackPathResult(GraphResult):
    path_length: int = 0


@dataclass
class DomainInventoryResult(ToolResult):
    domains: list = field(default_factory=list)
    total_domains: int = 0
    collected_domains: int = 0


@dataclass
class UserEnumerationResult(ToolResult):
    count: int = 0
    users: list = field(default_factory=list)
    risk_context: str = ""
    mitre: dict = field(default_factory=dict)


@dataclass
class ComputerEnumerationResult(ToolResult):
    count: int = 0
    computers: list = field(default_factory=list)
    risk_context: str = ""
    mitre: dict = field(default_factory=dict)


@dataclass
class TierZeroAssetsResult(ToolResult):
    count: int = 0
    assets: list = field(default_factory=list)
    context: str = ""


@dataclass
class DAPathsResult(GraphResult):
    path_count: int = 0
    node_count: int = 0


@dataclass
class TierZeroPathsResult(GraphResult):
    path_count: int = 0
    tier_zero_targets_reached: int = 0
    targets: list = field(default_factory=list)


@dataclass
class ChokePoint:
    name: str
    object_id: str
    paths_through: int
    percentage: int


@dataclass
class ChokePointsResult(ToolResult):
    total_da_paths: int = 0
    choke_points: list = field(default_factory=list)  # List of ChokePoint
    analysis_context: str = ""


@dataclass
class BlastRadiusResult(ToolResult):
    object_id: str = ""
    blast_radius: int = 0
    max_depth_used: int = 0
    tier_zero_assets_reachable: int = 0
    risk_level: RiskLevel = RiskLevel.INFO
    risk_assessment: str = ""


@dataclass
class DangerousPermission:
    source: str
    source_object_id: str
    permission: str
    target: str
    target_object_id: str


@dataclass
class DangerousPermissionsResult(ToolResult):
    count: int = 0
    permissions: list = field(default_factory=list)  # List of DangerousPermission
    risk_context: str = ""


@dataclass
class RemediationSimulationResult(ToolResult):
    object_id: str = ""
    total_da_paths: int = 0
    paths_through: int = 0
    percentage: int = 0
    paths_remaining: int = 0
    impact_level: ImpactLevel = ImpactLevel.NONE
    impact_assessment: str = ""


@dataclass
class CypherQueryResult(ToolResult):
    description: str = ""
    has_graph: bool = False
    nodes: Optional[list] = None
    edges: Optional[list] = None
    graph: Optional[dict] = None
    literals: Optional[list] = None
    rows: Optional[list] = None


@dataclass
class ClientToolResult(ToolResult):
    """Acknowledgement for tools the caller applies (highlight, remediation)."""
    acknowledged: bool = True
    tool: str = ""
    message: str = ""
    arguments: dict = field(default_factory=dict)
