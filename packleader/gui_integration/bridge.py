"""
Session Bridge Module
=====================

High-level interface for a front end (or the CLI) exploring one BloodHound
instance.

This module orchestrates:
1. Session start: the three-wave initialization aggregator
2. Node search, path lookup and raw read-only queries for the canvas
3. Client-side effects of chat tools (highlights, remediation items)
4. The analyst chat, with selected objects pinned as context

Design Decisions:
-----------------
1. Initialization is all-or-nothing: any failure becomes one
   InitializationError and no partial snapshot is returned
2. Requests inside a wave run concurrently; the waves run one after another.
   A failed wave cancels its unfinished requests before the error is raised
3. A newer search, path or query request supersedes an older one of the same
   kind; the superseded call returns None
4. The canonical graph is only ever changed through VisualGraph.merge, or
   replaced by a freshly merged graph
5. Progress updates go through a callback, in the [*]/[+]/[!] format
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..ai_engine.llm_client import LLMClient
from ..ai_engine.reasoner import AgentReply, AttackPathAgent
from ..analysis.queries import QueryBuilder, assert_read_only
from ..analysis.results import AttackPathResult
from ..analysis.summarizer import EnvironmentSummarizer
from ..analysis.tool_catalog import ToolCatalog
from ..analysis.tool_schemas import DomainFilterArgs
from ..config import AnalysisConfig, PackLeaderConfig
from ..errors import InitializationError, LLMError, PackLeaderError, ToolInputError
from ..ingestion.literals import literal_count, reconstruct_rows
from ..model.graph_builder import VisualGraph
from ..model.schemas import ContextChip, EnvironmentStats, GraphPayload, NodeKind
from ..reporting.report_builder import RemediationPlan


logger = logging.getLogger(__name__)

SEARCH_PREFIX = re.compile(r"^(user|computer|group|domain|ou|gpo):(.+)$", re.IGNORECASE)

_PREFIX_KINDS = {
    "user": NodeKind.USER,
    "computer": NodeKind.COMPUTER,
    "group": NodeKind.GROUP,
    "domain": NodeKind.DOMAIN,
    "ou": NodeKind.OU,
    "gpo": NodeKind.GPO,
}


# ----------------------------------------------------------------------
# Initialization
# ----------------------------------------------------------------------

@dataclass
class InitSnapshot:
    """Everything the explorer shows before the first question.

    Attributes:
        domains: DomainInfo for every domain in the database
        stats: Aggregated environment statistics
        graph: Shortest Domain Admin paths (empty when there are none)
        findings: One line per non-zero risk category
        greeting: Markdown greeting for the chat pane
    """
    domains: list = field(default_factory=list)
    stats: EnvironmentStats = field(default_factory=EnvironmentStats)
    graph: VisualGraph = field(default_factory=VisualGraph)
    findings: list = field(default_factory=list)
    greeting: str = ""

    def to_dict(self) -> dict:
        return {
            "domains": [d.to_dict() for d in self.domains],
            "stats": self.stats.to_dict(),
            "graph": self.graph.to_dict(),
            "findings": list(self.findings),
            "greeting": self.greeting,
        }


async def _run_wave(*requests):
    """Run one wave of requests concurrently and return their results in order.

    If any request fails, the unfinished ones are cancelled and awaited
    before the error propagates, so nothing from this wave outlives it.
    """
    tasks = [asyncio.ensure_future(r) for r in requests]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def initialize_environment(
    client,
    config: Optional[AnalysisConfig] = None,
    progress_callback: Optional[Callable[[str], None]] = None
) -> InitSnapshot:
    """Bootstrap a session in three waves.

    Wave 1 loads the domains and the initial Domain Admin path graph, wave 2
    the Kerberos exposure counts, wave 3 the object totals.

    Args:
        client: BloodHoundClient (or any object with the same coroutines)
        config: Analysis configuration; defaults are used when omitted
        progress_callback: Optional function receiving progress lines

    Returns:
        InitSnapshot

    Raises:
        InitializationError: any request failed; no partial result
    """
    config = config or AnalysisConfig()
    queries = QueryBuilder.from_config(config)
    catalog = ToolCatalog(client, config)

    def log(msg: str):
        if progress_callback:
            progress_callback(msg)
        logger.info(msg)

    try:
        log("[*] Loading domains and Domain Admin paths...")
        domains, paths = await _run_wave(
            client.get_domains(),
            client.run_cypher(queries.privileged_paths(limit=config.init_path_limit)),
        )

        log("[*] Enumerating Kerberos exposure...")
        kerberoastable, asrep, unconstrained = await _run_wave(
            catalog.find_kerberoastable_users(DomainFilterArgs()),
            catalog.find_asrep_roastable_users(DomainFilterArgs()),
            catalog.find_unconstrained_delegation(DomainFilterArgs()),
        )

        log("[*] Counting users, computers and groups...")
        users, computers, groups = await _run_wave(
            client.run_cypher(queries.count_kind("User")),
            client.run_cypher(queries.count_kind("Computer")),
            client.run_cypher(queries.count_kind("Group")),
        )
    except PackLeaderError as e:
        log(f"[!] Initialization failed: {e}")
        raise InitializationError(f"Failed to initialize: {e}") from e

    graph = VisualGraph()
    if paths.is_graph:
        graph.merge(paths)

    stats = EnvironmentStats(
        domains=domains,
        total_users=literal_count(users.literals),
        total_computers=literal_count(computers.literals),
        total_groups=literal_count(groups.literals),
        kerberoastable_users=kerberoastable.count,
        asrep_roastable_users=asrep.count,
        unconstrained_delegation=unconstrained.count,
        da_path_count=len(graph) if graph.edges else 0,
    )

    summarizer = EnvironmentSummarizer(stats, graph_node_count=stats.da_path_count)
    findings = summarizer.findings()
    log(f"[+] Connected: {len(stats.collected_domains)} collected domain(s), "
        f"{len(findings)} initial finding(s)")

    return InitSnapshot(
        domains=domains,
        stats=stats,
        graph=graph,
        findings=findings,
        greeting=summarizer.greeting(findings),
    )


def _is_server_error(error: BaseException) -> bool:
    """True unless the root HTTP cause is a 4xx response."""
    cause = error
    while cause is not None:
        status = getattr(cause, "status", None)
        if status is not None:
            return status >= 500 or status == 429
        cause = cause.__cause__
    return True


async def initialize_with_retry(
    client,
    config: Optional[AnalysisConfig] = None,
    sleep: Callable[[float], Awaitable] = asyncio.sleep,
    progress_callback: Optional[Callable[[str], None]] = None
) -> InitSnapshot:
    """Run initialize_environment, retrying after a fixed delay on server errors.

    Client errors (bad credentials, bad requests) are raised immediately.
    """
    config = config or AnalysisConfig()
    attempt = 0
    while True:
        try:
            return await initialize_environment(client, config, progress_callback)
        except InitializationError as e:
            if attempt >= config.init_retries or not _is_server_error(e):
                raise
            attempt += 1
            logger.warning(
                "Initialization failed, retrying in %.1fs (%d/%d)",
                config.init_retry_delay, attempt, config.init_retries
            )
            await sleep(config.init_retry_delay)


# ----------------------------------------------------------------------
# Request supersession
# ----------------------------------------------------------------------

class LatestRequestGate:
    """Keeps at most one in-flight request per kind.

    Starting a request cancels the previous one of the same kind; the
    cancelled caller gets None back instead of an exception.

    Usage:
        gate = LatestRequestGate()
        results = await gate.run("search", client.search("adm"))
    """

    def __init__(self):
        self._tasks: dict = {}

    def in_flight(self, kind: str) -> bool:
        task = self._tasks.get(kind)
        return task is not None and not task.done()

    async def run(self, kind: str, awaitable):
        previous = self._tasks.get(kind)
        if previous is not None and not previous.done():
            logger.debug("Superseding in-flight %s request", kind)
            previous.cancel()

        task = asyncio.ensure_future(awaitable)
        self._tasks[kind] = task
        try:
            return await task
        except asyncio.CancelledError:
            # Only a newer request of this kind swallows the cancellation
            if task.cancelled() and self._tasks.get(kind) is not task:
                return None
            raise
        finally:
            if self._tasks.get(kind) is task:
                del self._tasks[kind]


def parse_search_text(text: str) -> tuple:
    """Split an optional kind prefix from search text.

    "user:admin" -> ("admin", "User"); "admin" -> ("admin", None)
    """
    text = (text or "").strip()
    match = SEARCH_PREFIX.match(text)
    if not match:
        return text, None
    return match.group(2).strip(), _PREFIX_KINDS[match.group(1).lower()].value


# ----------------------------------------------------------------------
# Session
# ----------------------------------------------------------------------

@dataclass
class QueryOutcome:
    """Result of a raw read-only query.

    Attributes:
        has_graph: True when the response contained graph nodes
        graph: The positioned canvas graph when has_graph is set
        rows: Tabular rows rebuilt from literal columns
        literals: Raw literal columns as returned by BloodHound
    """
    has_graph: bool = False
    graph: Optional[dict] = None
    rows: list = field(default_factory=list)
    literals: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "has_graph": self.has_graph,
            "graph": self.graph,
            "rows": self.rows,
            "literals": self.literals,
        }


class ExploreSession:
    """One analyst's exploration state over a BloodHound instance.

    Owns the canvas graph, the remediation plan and the pinned context, and
    routes chat tool effects into them.

    Usage:
        async with BloodHoundClient(config.bloodhound) as client:
            session = ExploreSession(client, config, LLMClient(config.llm))
            snapshot = await session.initialize()
            result = await session.find_path(start_id, end_id)
            reply = await session.chat("What is the fastest way to DA?")
    """

    def __init__(
        self,
        client,
        config: Optional[PackLeaderConfig] = None,
        llm: Optional[LLMClient] = None,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize the session.

        Args:
            client: BloodHoundClient (or any object with the same coroutines)
            config: Full configuration; defaults are used when omitted
            llm: LLM client for chat; chat is unavailable without one
            progress_callback: Optional function receiving progress lines
        """
        self.client = client
        self.config = config or PackLeaderConfig()
        self.llm = llm
        self.progress_callback = progress_callback

        self.queries = QueryBuilder.from_config(self.config.analysis)
        self.catalog = ToolCatalog(client, self.config.analysis, on_graph=self._merge_tool_graph)
        self.graph = VisualGraph()
        self.remediation = RemediationPlan()
        self.context_chips: list = []
        self.snapshot: Optional[InitSnapshot] = None
        self.gate = LatestRequestGate()
        self.messages: list = []

    async def initialize(self) -> InitSnapshot:
        """Load the initial snapshot and put its graph on the canvas."""
        self.snapshot = await initialize_with_retry(
            self.client, self.config.analysis, progress_callback=self.progress_callback
        )
        self.graph = self.snapshot.graph
        return self.snapshot

    # ------------------------------------------------------------------
    # Canvas operations
    # ------------------------------------------------------------------

    async def search(self, text: str, limit: int = 10, kind: Optional[str] = None):
        """Search nodes by name.

        Args:
            text: Search text, optionally prefixed with a kind ("user:adm")
            limit: Maximum results requested from BloodHound
            kind: Kind filter, matched case-insensitively

        Returns:
            List of SearchResult, or None when superseded by a newer search
        """
        text, prefix_kind = parse_search_text(text)
        if not text:
            # Empty search answers with no results rather than an error
            return []
        kind = kind or prefix_kind

        results = await self.gate.run("search", self.client.search(text, limit))
        if results is None:
            return None
        if kind:
            results = [r for r in results if r.kind.lower() == kind.lower()]
        return results

    async def find_path(self, start_object_id: str, end_object_id: str) -> Optional[AttackPathResult]:
        """Find the shortest path and show it highlighted on a fresh canvas.

        When no path exists the canvas and its highlights are left untouched.

        Returns:
            AttackPathResult, or None when superseded by a newer path request
        """
        args = self.catalog.validate("find_attack_paths", {
            "start_object_id": start_object_id,
            "end_object_id": end_object_id,
        })
        query = self.queries.shortest_path(args.start_object_id, args.end_object_id)
        payload = await self.gate.run("path", self.client.run_cypher(query))
        if payload is None:
            return None

        result = AttackPathResult()
        if not payload.is_graph:
            result.message = "No path found between these objects."
            return result

        graph = VisualGraph()
        graph.merge(payload)
        graph.highlight(graph.node_ids, graph.edge_ids)
        self.graph = graph

        result.attach(graph)
        result.path_length = len(result.edges)
        return result

    async def run_query(self, query: str, include_properties: bool = True) -> Optional[QueryOutcome]:
        """Run a raw read-only Cypher query.

        Graph results replace the canvas; tabular results come back as rows.

        Raises:
            QueryValidationError: empty query
            ReadOnlyViolation: the query contains a write keyword

        Returns:
            QueryOutcome, or None when superseded by a newer query
        """
        query = assert_read_only(query)
        payload = await self.gate.run(
            "query", self.client.run_cypher(query, include_properties)
        )
        if payload is None:
            return None

        outcome = QueryOutcome()
        if payload.is_graph:
            graph = VisualGraph()
            graph.merge(payload)
            graph.highlight(graph.node_ids)
            self.graph = graph
            outcome.has_graph = True
            outcome.graph = graph.to_dict()
        if payload.literals:
            outcome.literals = [{"key": l.key, "value": l.value} for l in payload.literals]
            outcome.rows = reconstruct_rows(payload.literals)
        return outcome

    def _merge_tool_graph(self, payload: GraphPayload) -> None:
        merged = self.graph.merge(payload)
        if merged.changed:
            self.graph.highlight(merged.added_node_ids, merged.added_edge_ids)

    def apply_client_tool(self, name: str, arguments: dict):
        """Apply the effect of a client-side tool call.

        Returns:
            The RemediationItem for add_remediation_item, None for highlights
        """
        args = self.catalog.validate(name, arguments)
        if name == "highlight_graph_elements":
            self.graph.highlight(args.node_ids, args.edge_ids, clear=args.clear)
            return None
        if name == "add_remediation_item":
            return self.remediation.add_from_arguments(args.model_dump())
        raise ToolInputError(name, "not a client-side tool")

    # ------------------------------------------------------------------
    # Selection and context
    # ------------------------------------------------------------------

    def select_node(self, node_id: Optional[str]) -> Optional[ContextChip]:
        """Select a canvas node and pin it as chat context."""
        node = self.graph.select(node_id)
        if node is None:
            return None
        for chip in self.context_chips:
            if chip.object_id == node.id:
                return chip
        chip = ContextChip(object_id=node.id, label=node.label, kind=node.kind.value)
        self.context_chips.append(chip)
        return chip

    def remove_context_chip(self, object_id: str) -> bool:
        before = len(self.context_chips)
        self.context_chips = [c for c in self.context_chips if c.object_id != object_id]
        return len(self.context_chips) < before

    def clear_context(self) -> None:
        self.context_chips = []
        self.graph.select(None)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, question: str) -> AgentReply:
        """Ask the analyst agent one question, keeping the conversation.

        Raises:
            LLMError: no LLM is configured
        """
        if self.llm is None or not self.llm.is_available:
            raise LLMError("No LLM is configured; set an API key to use chat")

        agent = AttackPathAgent(
            self.catalog,
            self.llm,
            max_steps=self.config.llm.max_steps,
            on_client_tool=self.apply_client_tool,
        )
        messages = self.messages + [{"role": "user", "content": question}]
        reply = await agent.run(messages, self.context_chips)
        self.messages = reply.messages
        return reply
