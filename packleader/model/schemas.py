"""
packleader Data Schemas
=======================

Typed dataclasses for BloodHound payloads and the canonical visual graph.

Design Decisions:
-----------------
1. Raw* classes mirror the BloodHound CE wire format and parse tolerantly:
   missing fields become fallback ids/labels instead of exceptions
2. Canonical* classes are keyed by the external object id (SID/GUID), never by
   the query-local graph id, which changes between queries
3. NodeKind is a closed enum; unknown upstream kinds fall back to Container
4. RemediationItem is frozen: findings are replaced, never edited in place

Schema Overview:
- RawGraphNode / RawGraphEdge / Literal / GraphPayload: one cypher response
- CanonicalNode / CanonicalEdge: the deduplicated, positioned visual graph
- SearchResult / DomainInfo / NodeEntity: other API responses
- RemediationItem / Severity: analyst findings
- EnvironmentStats / ContextChip: session context
"""

import uuid
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Optional


TIER_ZERO_TAG = "admin_tier_0"


def to_serializable(value: Any) -> Any:
    """Recursively convert dataclasses, enums and tuples to JSON-ready values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_serializable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_serializable(v) for v in value]
    return value


def has_tier_zero_tag(properties: Optional[dict], tag: str = TIER_ZERO_TAG) -> bool:
    """Check the system_tags property for the Tier Zero marker.

    BloodHound stores system_tags as a space separated string, but older
    exports carry a list.
    """
    if not properties:
        return False
    tags = properties.get("system_tags")
    if tags is None:
        return False
    if isinstance(tags, (list, tuple)):
        tags = " ".join(str(t) for t in tags)
    return tag in str(tags)


class NodeKind(Enum):
    """Types of objects rendered on the canvas.

    Maps 1:1 to BloodHound node kinds. Anything else becomes CONTAINER so
    new upstream taxonomy never breaks rendering.
    """
    USER = "User"
    COMPUTER = "Computer"
    GROUP = "Group"
    DOMAIN = "Domain"
    OU = "OU"
    GPO = "GPO"
    CONTAINER = "Container"
    AIACA = "AIACA"
    ROOT_CA = "RootCA"
    ENTERPRISE_CA = "EnterpriseCA"
    NT_AUTH_STORE = "NTAuthStore"
    CERT_TEMPLATE = "CertTemplate"

    @classmethod
    def from_string(cls, s: Optional[str]) -> "NodeKind":
        """Convert a raw BloodHound kind to NodeKind (exact match only)."""
        for kind in cls:
            if kind.value == s:
                return kind
        return cls.CONTAINER


class RiskLevel(Enum):
    """Risk severity levels for blast radius assessments."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"


class ImpactLevel(Enum):
    """Impact of remediating one object on the privileged-group paths."""
    CRITICAL = "Critical"
    SIGNIFICANT = "Significant"
    MODERATE = "Moderate"
    NONE = "None"


class Severity(Enum):
    """Severity of a remediation finding, totally ordered for display."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: 0 is most severe."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]


@dataclass
class Position:
    """Top-left corner of a node on the canvas."""
    x: float = 0.0
    y: float = 0.0


@dataclass
class RawGraphNode:
    """A node exactly as one cypher response describes it.

    Attributes:
        graph_id: Query-local id (the key of the response's node map)
        label: Display name
        kind: Raw BloodHound kind string
        object_id: Stable external identifier (SID or GUID), may be empty
        is_tier_zero: Tier Zero flag reported by BloodHound
        properties: Open property bag
    """
    graph_id: str
    label: str
    kind: str
    object_id: str = ""
    is_tier_zero: bool = False
    properties: dict = field(default_factory=dict)

    @property
    def external_id(self) -> str:
        """Object id, falling back to the graph id when absent."""
        return self.object_id or self.graph_id

    @classmethod
    def from_dict(cls, graph_id: str, data: Any) -> "RawGraphNode":
        """Parse one entry of the response node map, tolerating gaps."""
        if not isinstance(data, dict):
            data = {}
        properties = data.get("properties")
        if not isinstance(properties, dict):
            properties = {}
        object_id = str(data.get("objectId") or properties.get("objectid") or "")
        label = data.get("label") or properties.get("name") or object_id or str(graph_id)
        return cls(
            graph_id=str(graph_id),
            label=str(label),
            kind=str(data.get("kind") or ""),
            object_id=object_id,
            is_tier_zero=bool(data.get("isTierZero")) or has_tier_zero_tag(properties),
            properties=properties,
        )


@dataclass
class RawGraphEdge:
    """An edge exactly as one cypher response describes it.

    Source and target are query-local graph ids.
    """
    source: str
    target: str
    label: str
    kind: str

    @classmethod
    def from_dict(cls, data: Any) -> "RawGraphEdge":
        """Parse one response edge, tolerating gaps."""
        if not isinstance(data, dict):
            data = {}
        kind = str(data.get("kind") or data.get("label") or "Unknown")
        return cls(
            source=str(data.get("source", "")),
            target=str(data.get("target", "")),
            label=str(data.get("label") or kind),
            kind=kind,
        )


@dataclass
class Literal:
    """One (column key, value) pair of a tabular cypher result."""
    key: str
    value: Any = None


@dataclass
class GraphPayload:
    """One cypher response: graph-shaped, tabular, or both.

    Attributes:
        nodes: Query-local graph id -> RawGraphNode
        edges: Raw edges referencing graph ids
        literals: Flat key/value stream of a tabular result
    """
    nodes: dict = field(default_factory=dict)
    edges: list = field(default_factory=list)
    literals: list = field(default_factory=list)

    @property
    def is_graph(self) -> bool:
        """True when the response contains at least one node."""
        return len(self.nodes) > 0

    @classmethod
    def from_response(cls, data: Any) -> "GraphPayload":
        """Build a payload from the `data` member of a cypher response.

        Some BloodHound versions wrap the graph in a one-element list; that
        shape is unwrapped here.
        """
        if isinstance(data, list):
            data = data[0] if data and isinstance(data[0], dict) else {}
        if not isinstance(data, dict):
            return cls()

        raw_nodes = data.get("nodes") or {}
        if isinstance(raw_nodes, list):
            raw_nodes = {str(i): n for i, n in enumerate(raw_nodes)}
        nodes = {
            str(graph_id): RawGraphNode.from_dict(graph_id, node)
            for graph_id, node in raw_nodes.items()
        }
        edges = [RawGraphEdge.from_dict(e) for e in (data.get("edges") or [])]
        literals = [
            Literal(key=str(item.get("key", "")), value=item.get("value"))
            for item in (data.get("literals") or [])
            if isinstance(item, dict)
        ]
        return cls(nodes=nodes, edges=edges, literals=literals)


@dataclass
class CanonicalNode:
    """A node of the visual graph, keyed by external object id.

    Attributes:
        id: External object id (identical to object_id)
        kind: Canonical node kind
        label: Display name
        domain: Domain taken from the property bag
        properties: Full property bag from the first query that saw the node
        position: Top-left layout position
        is_tier_zero: Whether the node is a Tier Zero asset
        highlighted: Transient highlight flag
        selected: Transient selection flag
    """
    id: str
    kind: NodeKind
    label: str
    domain: str = ""
    properties: dict = field(default_factory=dict)
    position: Position = field(default_factory=Position)
    is_tier_zero: bool = False
    highlighted: bool = False
    selected: bool = False

    @property
    def object_id(self) -> str:
        return self.id

    def to_dict(self) -> dict:
        return to_serializable(self)

    def summary(self) -> dict:
        """Compact form handed to the LLM."""
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind.value,
            "is_tier_zero": self.is_tier_zero,
        }


@dataclass
class CanonicalEdge:
    """A relationship of the visual graph.

    The id is the composite (source, kind, target) so the same logical edge
    from two different queries collapses into one.
    """
    id: str
    source: str
    target: str
    label: str
    kind: str
    highlighted: bool = False

    @staticmethod
    def make_id(source: str, kind: str, target: str) -> str:
        return f"{source}-{kind}-{target}"

    def to_dict(self) -> dict:
        return to_serializable(self)

    def summary(self) -> dict:
        return {"source": self.source, "target": self.target, "label": self.label}


@dataclass
class SearchResult:
    """One hit of the free-text object search."""
    name: str
    kind: str
    object_id: str
    distinguished_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "SearchResult":
        return cls(
            name=str(data.get("name", "")),
            kind=str(data.get("type", "")),
            object_id=str(data.get("objectid", "")),
            distinguished_name=data.get("distinguishedname"),
        )

    def to_dict(self) -> dict:
        return to_serializable(self)


@dataclass
class DomainInfo:
    """A domain known to BloodHound and its collection status."""
    id: str
    name: str
    kind: str = ""
    collected: bool = False
    impact_value: float = 0

    @classmethod
    def from_dict(cls, data: dict) -> "DomainInfo":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            kind=str(data.get("type", "")),
            collected=bool(data.get("collected", False)),
            impact_value=data.get("impact_value") or 0,
        )

    def to_dict(self) -> dict:
        return to_serializable(self)


@dataclass
class NodeEntity:
    """Full kind and property bag of one object, fetched by object id."""
    kind: str
    properties: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "NodeEntity":
        return cls(kind=str(data.get("kind", "")), properties=data.get("props") or {})


@dataclass(frozen=True)
class RemediationItem:
    """A security finding and its remediation.

    Created by the add_remediation_item tool or by the analyst, deleted
    individually, never edited.
    """
    id: str
    title: str
    severity: Severity
    description: str
    recommendation: str
    affected_objects: tuple = ()
    blast_radius: Optional[int] = None
    paths_eliminated: Optional[int] = None
    total_da_paths: Optional[int] = None
    mitre_technique: Optional[str] = None
    mitre_id: Optional[str] = None
    verification_query: Optional[str] = None

    @classmethod
    def create(cls, **kwargs) -> "RemediationItem":
        """Create an item with a fresh id."""
        kwargs["affected_objects"] = tuple(kwargs.get("affected_objects") or ())
        kwargs["severity"] = Severity(kwargs["severity"])
        return cls(id=str(uuid.uuid4())[:8], **kwargs)

    def to_dict(self) -> dict:
        return to_serializable(self)


@dataclass
class ContextChip:
    """An object the analyst pinned as context for the chat."""
    object_id: str
    label: str
    kind: str


@dataclass
class EnvironmentStats:
    """Baseline statistics gathered at session start."""
    domains: list = field(default_factory=list)  # List of DomainInfo
    total_users: int = 0
    total_computers: int = 0
    total_groups: int = 0
    kerberoastable_users: int = 0
    asrep_roastable_users: int = 0
    unconstrained_delegation: int = 0
    da_path_count: int = 0

    @property
    def collected_domains(self) -> list:
        return [d for d in self.domains if d.collected]

    def to_dict(self) -> dict:
        return to_serializable(self)
