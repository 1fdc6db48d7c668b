"""
Analytical Tool Catalog
=======================

The fixed set of named analysis operations the chat agent (or the CLI) can
call. Each tool validates its arguments, builds Cypher through QueryBuilder,
executes it through the BloodHound client and interprets the result into a
typed result object.

Tool Categories:
- Core: search_nodes, get_node_details, find_attack_paths, get_domain_info
- Enumeration: find_kerberoastable_users, find_asrep_roastable_users,
  find_unconstrained_delegation, list_tier_zero_assets
- Path analysis: find_da_paths, find_paths_to_tier_zero
- Analysis: find_choke_points, calculate_blast_radius,
  find_dangerous_permissions, simulate_remediation
- Advanced: run_cypher_query (read-only escape hatch)
- Client side: highlight_graph_elements, add_remediation_item

Design Decisions:
-----------------
1. Tools never mutate shared state; highlighting and remediation recording are
   acknowledged here and applied by the caller, and graph payloads reach the
   caller's canvas only through the on_graph hook
2. Multi-query tools run their queries one after another to limit load on
   the BloodHound instance
3. An empty result is a typed "not found" result; a failed request raises
   ToolExecutionError carrying the tool name and the query
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from ..config import AnalysisConfig
from ..errors import BloodHoundAPIError, ToolExecutionError, ToolInputError
from ..ingestion.literals import literal_count, reconstruct_rows, to_int
from ..model.graph_builder import VisualGraph, transform_graph
from ..model.schemas import GraphPayload
from . import tool_schemas as schemas
from .queries import QueryBuilder, assert_read_only
from .results import (
    AttackPathResult,
    BlastRadiusResult,
    ChokePoint,
    ChokePointsResult,
    ClientToolResult,
    ComputerEnumerationResult,
    CypherQueryResult,
    DangerousPermission,
    DangerousPermissionsResult,
    DAPathsResult,
    DomainInventoryResult,
    NodeDetailsResult,
    RemediationSimulationResult,
    SearchNodesResult,
    TierZeroAssetsResult,
    TierZeroPathsResult,
    ToolResult,
    UserEnumerationResult,
)
from .risk_scoring import (
    MITRE_TECHNIQUES,
    RISK_CONTEXT,
    assess_blast_radius,
    assess_remediation_impact,
    percentage,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """Registry entry for one tool.

    Attributes:
        name: Tool name exposed to the LLM
        description: Tool description exposed to the LLM
        args_model: Pydantic model validating the arguments
        handler: Name of the ToolCatalog coroutine implementing the tool
        client_side: True when the caller applies the effect
    """
    name: str
    description: str
    args_model: type
    handler: str
    client_side: bool = False

    def definition(self) -> dict:
        """Provider-neutral tool definition with a JSON schema."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.args_model.model_json_schema(),
        }


TOOL_SPECS = {spec.name: spec for spec in [
    ToolSpec(
        "search_nodes",
        "Search BloodHound for Active Directory objects (users, computers, groups, "
        "domains, OUs, GPOs) by name. Returns matching objects with their type and "
        "objectId. Use this first to identify objects before deeper analysis.",
        schemas.SearchNodesArgs, "search_nodes",
    ),
    ToolSpec(
        "get_node_details",
        "Get all properties of one AD object by objectId: memberships, SPNs, "
        "delegation settings, enabled status, admin count, tier zero status.",
        schemas.GetNodeDetailsArgs, "get_node_details",
    ),
    ToolSpec(
        "find_attack_paths",
        "Find the shortest attack path between two AD objects given both objectIds. "
        "Returns the path as nodes and edges for the canvas.",
        schemas.FindAttackPathsArgs, "find_attack_paths",
    ),
    ToolSpec(
        "get_domain_info",
        "List all domains in the BloodHound database with their collection status.",
        schemas.GetDomainInfoArgs, "get_domain_info",
    ),
    ToolSpec(
        "find_kerberoastable_users",
        "Find enabled users with Service Principal Names set. Their service tickets "
        "can be requested and cracked offline. MITRE ATT&CK: T1558.003",
        schemas.DomainFilterArgs, "find_kerberoastable_users",
    ),
    ToolSpec(
        "find_asrep_roastable_users",
        "Find enabled users that do not require Kerberos pre-authentication. Their "
        "AS-REP can be requested and cracked without credentials. MITRE ATT&CK: T1558.004",
        schemas.DomainFilterArgs, "find_asrep_roastable_users",
    ),
    ToolSpec(
        "find_unconstrained_delegation",
        "Find computers with Unconstrained Delegation. They cache the TGT of every "
        "authenticating user, including Domain Admins. MITRE ATT&CK: T1558.001",
        schemas.DomainFilterArgs, "find_unconstrained_delegation",
    ),
    ToolSpec(
        "list_tier_zero_assets",
        "List Tier Zero assets, the most privileged objects tagged admin_tier_0 "
        "(Domain Admins, Enterprise Admins, Domain Controllers and similar).",
        schemas.ListTierZeroArgs, "list_tier_zero_assets",
    ),
    ToolSpec(
        "find_da_paths",
        "Find shortest attack paths from enabled users to Domain Admins. Returns the "
        "paths as a graph for the canvas.",
        schemas.FindDAPathsArgs, "find_da_paths",
    ),
    ToolSpec(
        "find_paths_to_tier_zero",
        "Find shortest attack paths from one source object to any Tier Zero asset, "
        "to measure how far an attacker could reach from that position.",
        schemas.FindPathsToTierZeroArgs, "find_paths_to_tier_zero",
    ),
    ToolSpec(
        "find_choke_points",
        "Rank intermediate objects by how many Domain Admin attack paths flow through "
        "them. Remediating a choke point eliminates every path through it.",
        schemas.FindChokePointsArgs, "find_choke_points",
    ),
    ToolSpec(
        "calculate_blast_radius",
        "Count the objects reachable from one AD object through outbound relationships "
        "and how many of them are Tier Zero.",
        schemas.BlastRadiusArgs, "calculate_blast_radius",
    ),
    ToolSpec(
        "find_dangerous_permissions",
        "Find dangerous ACL permissions (GenericAll, GenericWrite, WriteDacl, WriteOwner, "
        "Owns, ForceChangePassword, AddMember, AllExtendedRights) on Tier Zero assets "
        "or on one specific object.",
        schemas.DangerousPermissionsArgs, "find_dangerous_permissions",
    ),
    ToolSpec(
        "simulate_remediation",
        "Count how many Domain Admin attack paths flow through one object, to quantify "
        "the impact of remediating it before recommending changes.",
        schemas.SimulateRemediationArgs, "simulate_remediation",
    ),
    ToolSpec(
        "run_cypher_query",
        "ADVANCED FALLBACK: execute a read-only Cypher query. Only use this when none "
        "of the structured tools cover the analysis needed.",
        schemas.RunCypherArgs, "run_cypher_query",
    ),
    ToolSpec(
        "highlight_graph_elements",
        "Highlight nodes and/or edges on the graph canvas. Use this after finding "
        "attack paths or identifying risky objects.",
        schemas.HighlightArgs, "highlight_graph_elements", client_side=True,
    ),
    ToolSpec(
        "add_remediation_item",
        "Add a security finding and its remediation to the remediation plan. Include "
        "quantitative impact and MITRE mapping when available.",
        schemas.AddRemediationArgs, "add_remediation_item", client_side=True,
    ),
]}


class ToolCatalog:
    """Executes analytical tools against one BloodHound client.

    Usage:
        catalog = ToolCatalog(client, config.analysis)
        result = await catalog.invoke("find_choke_points", {"limit": 5})
    """

    def __init__(
        self,
        client,
        config: Optional[AnalysisConfig] = None,
        on_graph: Optional[Callable[[GraphPayload], None]] = None
    ):
        """Initialize the catalog.

        Args:
            client: BloodHoundClient (or any object with the same coroutines)
            config: Analysis configuration for group prefixes and tags
            on_graph: Called with every graph-shaped payload a tool receives,
                so a session can merge it into its canvas
        """
        self.client = client
        self.config = config or AnalysisConfig()
        self.queries = QueryBuilder.from_config(self.config)
        self.on_graph = on_graph

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @staticmethod
    def names() -> list:
        return list(TOOL_SPECS)

    @staticmethod
    def get_spec(name: str) -> ToolSpec:
        spec = TOOL_SPECS.get(name)
        if spec is None:
            raise ToolInputError(name, "unknown tool")
        return spec

    @staticmethod
    def definitions() -> list:
        """Definitions of every tool, for the LLM."""
        return [spec.definition() for spec in TOOL_SPECS.values()]

    def validate(self, name: str, arguments: Optional[dict]) -> BaseModel:
        """Validate raw arguments against the tool's model.

        Raises:
            ToolInputError: unknown tool or invalid arguments
        """
        spec = self.get_spec(name)
        try:
            return spec.args_model.model_validate(arguments or {})
        except ValidationError as e:
            raise ToolInputError(name, str(e)) from e

    async def execute(self, name: str, arguments: Optional[dict] = None) -> ToolResult:
        """Validate and run one tool, returning its typed result."""
        args = self.validate(name, arguments)
        handler = getattr(self, self.get_spec(name).handler)
        logger.info("Running tool %s", name)
        return await handler(args)

    async def invoke(self, name: str, arguments: Optional[dict] = None) -> dict:
        """Validate and run one tool, returning its JSON-ready result."""
        result = await self.execute(name, arguments)
        return result.to_dict()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call(self, tool: str, awaitable, query: Optional[str] = None) -> Any:
        try:
            return await awaitable
        except BloodHoundAPIError as e:
            logger.error("Tool %s failed: %s", tool, e)
            raise ToolExecutionError(tool, str(e), query) from e

    async def _cypher(self, tool: str, query: str) -> GraphPayload:
        return await self._call(tool, self.client.run_cypher(query), query)

    async def _rows(self, tool: str, query: str) -> list:
        payload = await self._cypher(tool, query)
        return reconstruct_rows(payload.literals)

    async def _count(self, tool: str, query: str) -> int:
        payload = await self._cypher(tool, query)
        return literal_count(payload.literals)

    def _graph(self, payload: GraphPayload) -> Optional[VisualGraph]:
        if not payload.is_graph:
            return None
        if self.on_graph is not None:
            self.on_graph(payload)
        return transform_graph(payload)

    # ------------------------------------------------------------------
    # Core tools
    # ------------------------------------------------------------------

    async def search_nodes(self, args: schemas.SearchNodesArgs) -> SearchNodesResult:
        results = await self._call("search_nodes", self.client.search(args.query, args.limit))
        results = results[:args.limit]
        return SearchNodesResult(results=results, count=len(results))

    async def get_node_details(self, args: schemas.GetNodeDetailsArgs) -> NodeDetailsResult:
        entity = await self._call("get_node_details", self.client.get_node(args.object_id))
        return NodeDetailsResult(
            object_id=args.object_id, kind=entity.kind, properties=entity.properties
        )

    async def find_attack_paths(self, args: schemas.FindAttackPathsArgs) -> AttackPathResult:
        query = self.queries.shortest_path(args.start_object_id, args.end_object_id)
        visual = self._graph(await self._cypher("find_attack_paths", query))

        result = AttackPathResult()
        result.attach(visual)
        if not result.found:
            result.message = "No path found between these objects."
        else:
            result.path_length = len(result.edges)
        return result

    async def get_domain_info(self, args: schemas.GetDomainInfoArgs) -> DomainInventoryResult:
        domains = await self._call("get_domain_info", self.client.get_domains())
        return DomainInventoryResult(
            domains=[
                {"name": d.name, "id": d.id, "kind": d.kind, "collected": d.collected}
                for d in domains
            ],
            total_domains=len(domains),
            collected_domains=sum(1 for d in domains if d.collected),
        )

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    async def find_kerberoastable_users(self, args: schemas.DomainFilterArgs) -> UserEnumerationResult:
        rows = await self._rows(
            "find_kerberoastable_users", self.queries.kerberoastable_users(args.domain)
        )
        return UserEnumerationResult(
            count=len(rows),
            users=[
                {"name": r.get("name"), "object_id": r.get("objectid"), "spns": r.get("spns") or []}
                for r in rows
            ],
            risk_context=RISK_CONTEXT["kerberoasting"],
            mitre=MITRE_TECHNIQUES["kerberoasting"],
        )

    async def find_asrep_roastable_users(self, args: schemas.DomainFilterArgs) -> UserEnumerationResult:
        rows = await self._rows(
            "find_asrep_roastable_users", self.queries.asrep_roastable_users(args.domain)
        )
        return UserEnumerationResult(
            count=len(rows),
            users=[{"name": r.get("name"), "object_id": r.get("objectid")} for r in rows],
            risk_context=RISK_CONTEXT["asrep_roasting"],
            mitre=MITRE_TECHNIQUES["asrep_roasting"],
        )

    async def find_unconstrained_delegation(self, args: schemas.DomainFilterArgs) -> ComputerEnumerationResult:
        rows = await self._rows(
            "find_unconstrained_delegation", self.queries.unconstrained_delegation(args.domain)
        )
        return ComputerEnumerationResult(
            count=len(rows),
            computers=[{"name": r.get("name"), "object_id": r.get("objectid")} for r in rows],
            risk_context=RISK_CONTEXT["unconstrained_delegation"],
            mitre=MITRE_TECHNIQUES["unconstrained_delegation"],
        )

    async def list_tier_zero_assets(self, args: schemas.ListTierZeroArgs) -> TierZeroAssetsResult:
        rows = await self._rows(
            "list_tier_zero_assets", self.queries.tier_zero_assets(args.domain, args.limit)
        )
        return TierZeroAssetsResult(
            count=len(rows),
            assets=[{"name": r.get("name"), "object_id": r.get("objectid")} for r in rows],
            context=RISK_CONTEXT["tier_zero"],
        )

    # ------------------------------------------------------------------
    # Path analysis
    # ------------------------------------------------------------------

    async def find_da_paths(self, args: schemas.FindDAPathsArgs) -> DAPathsResult:
        query = self.queries.privileged_paths(args.domain, args.limit)
        visual = self._graph(await self._cypher("find_da_paths", query))

        result = DAPathsResult()
        result.attach(visual)
        if not result.found:
            result.message = "No paths to Domain Admins found."
        else:
            result.path_count = len(result.edges)
            result.node_count = len(result.nodes)
        return result

    async def find_paths_to_tier_zero(self, args: schemas.FindPathsToTierZeroArgs) -> TierZeroPathsResult:
        query = self.queries.paths_to_tier_zero(args.source_object_id, args.limit)
        visual = self._graph(await self._cypher("find_paths_to_tier_zero", query))

        result = TierZeroPathsResult()
        result.attach(visual)
        if not result.found:
            result.message = "No paths to Tier Zero assets from this object."
            return result

        targets = [
            n for n in visual.nodes
            if n.is_tier_zero and n.id != args.source_object_id
        ]
        result.path_count = len(result.edges)
        result.tier_zero_targets_reached = len(targets)
        result.targets = [{"name": n.label, "object_id": n.id} for n in targets]
        return result

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def find_choke_points(self, args: schemas.FindChokePointsArgs) -> ChokePointsResult:
        total = await self._count(
            "find_choke_points", self.queries.privileged_path_count(args.domain)
        )
        rows = await self._rows(
            "find_choke_points", self.queries.choke_points(args.domain, args.limit)
        )

        choke_points = []
        for row in rows:
            paths_through = to_int(row.get("pathCount"))
            choke_points.append(ChokePoint(
                name=row.get("name") or "",
                object_id=row.get("objectid") or "",
                paths_through=paths_through,
                percentage=percentage(paths_through, total),
            ))

        return ChokePointsResult(
            total_da_paths=total,
            choke_points=choke_points,
            analysis_context=RISK_CONTEXT["choke_points"],
        )

    async def calculate_blast_radius(self, args: schemas.BlastRadiusArgs) -> BlastRadiusResult:
        depth = args.max_depth
        reachable = await self._count(
            "calculate_blast_radius", self.queries.reachable_count(args.object_id, depth)
        )
        tier_zero = await self._count(
            "calculate_blast_radius",
            self.queries.reachable_tier_zero_count(args.object_id, depth),
        )
        level, assessment = assess_blast_radius(reachable, tier_zero, depth)
        return BlastRadiusResult(
            object_id=args.object_id,
            blast_radius=reachable,
            max_depth_used=depth,
            tier_zero_assets_reachable=tier_zero,
            risk_level=level,
            risk_assessment=assessment,
        )

    async def find_dangerous_permissions(
        self, args: schemas.DangerousPermissionsArgs
    ) -> DangerousPermissionsResult:
        query = self.queries.dangerous_permissions(
            args.target_object_id, args.domain, args.limit
        )
        rows = await self._rows("find_dangerous_permissions", query)
        context = "permissions_on_target" if args.target_object_id else "permissions_on_tier_zero"
        return DangerousPermissionsResult(
            count=len(rows),
            permissions=[
                DangerousPermission(
                    source=r.get("sourceName") or "",
                    source_object_id=r.get("sourceId") or "",
                    permission=r.get("permission") or "",
                    target=r.get("targetName") or "",
                    target_object_id=r.get("targetId") or "",
                )
                for r in rows
            ],
            risk_context=RISK_CONTEXT[context],
        )

    async def simulate_remediation(
        self, args: schemas.SimulateRemediationArgs
    ) -> RemediationSimulationResult:
        total = await self._count(
            "simulate_remediation", self.queries.privileged_path_count(args.domain)
        )
        through = await self._count(
            "simulate_remediation", self.queries.paths_through(args.object_id, args.domain)
        )
        level, pct, assessment = assess_remediation_impact(through, total)
        return RemediationSimulationResult(
            object_id=args.object_id,
            total_da_paths=total,
            paths_through=through,
            percentage=pct,
            paths_remaining=max(total - through, 0),
            impact_level=level,
            impact_assessment=assessment,
        )

    # ------------------------------------------------------------------
    # Advanced
    # ------------------------------------------------------------------

    async def run_cypher_query(self, args: schemas.RunCypherArgs) -> CypherQueryResult:
        query = assert_read_only(args.query)
        payload = await self._cypher("run_cypher_query", query)

        result = CypherQueryResult(description=args.description)
        visual = self._graph(payload)
        if visual is not None:
            summary = visual.summary()
            result.has_graph = True
            result.nodes = summary["nodes"]
            result.edges = summary["edges"]
            result.graph = visual.to_dict()
        if payload.literals:
            result.literals = [{"key": l.key, "value": l.value} for l in payload.literals]
            result.rows = reconstruct_rows(payload.literals)
        return result

    # ------------------------------------------------------------------
    # Client side
    # ------------------------------------------------------------------

    async def highlight_graph_elements(self, args: schemas.HighlightArgs) -> ClientToolResult:
        return ClientToolResult(
            tool="highlight_graph_elements",
            message=f"Highlighted {len(args.node_ids)} node(s) and {len(args.edge_ids)} edge(s)",
            arguments=args.model_dump(),
        )

    async def add_remediation_item(self, args: schemas.AddRemediationArgs) -> ClientToolResult:
        return ClientToolResult(
            tool="add_remediation_item",
            message=f"Added to remediation plan: {args.title}",
            arguments=args.model_dump(),
        )
