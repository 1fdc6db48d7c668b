"""
Tests for the session bridge: initialization waves, retry, request
supersession and the canvas operations of ExploreSession.
"""

import asyncio

import pytest

from conftest import FakeClient, graph_payload, literal_payload

from packleader.config import AnalysisConfig
from packleader.errors import (
    BloodHoundAPIError,
    InitializationError,
    LoginError,
    QueryValidationError,
    ReadOnlyViolation,
    ToolInputError,
)
from packleader.gui_integration.bridge import (
    ExploreSession,
    LatestRequestGate,
    initialize_environment,
    initialize_with_retry,
    parse_search_text,
)
from packleader.model.schemas import SearchResult, Severity


class FlakyClient(FakeClient):
    """Fails get_domains a fixed number of times, then behaves normally."""

    def __init__(self, failures, error):
        super().__init__()
        self.failures = failures
        self.error = error

    async def get_domains(self):
        self.calls.append(("get_domains", ()))
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        return list(self.domains)


class BlockingClient(FakeClient):
    """Search and cypher calls for marked inputs wait until released."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.blocking = set()

    async def search(self, query, limit=10):
        self.calls.append(("search", (query, limit)))
        if query in self.blocking:
            await self.release.wait()
        return [SearchResult(name=query.upper(), kind="User", object_id=f"S-{query}")]

    async def run_cypher(self, query, include_properties=True):
        if any(marker in query for marker in self.blocking):
            await self.release.wait()
        return await super().run_cypher(query, include_properties)


class SlowPathClient(FakeClient):
    """Cypher calls never complete on their own; records whether they were cancelled."""

    def __init__(self):
        super().__init__()
        self.path_started = False
        self.path_finished = False
        self.path_cancelled = False

    async def run_cypher(self, query, include_properties=True):
        self.path_started = True
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.path_cancelled = True
            raise
        self.path_finished = True
        return await super().run_cypher(query, include_properties)


@pytest.fixture
def delays():
    return []


@pytest.fixture
def fake_sleep(delays):
    async def sleep(delay):
        delays.append(delay)
    return sleep


# ----------------------------------------------------------------------
# Initialization
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_initialize_environment_aggregates_three_waves(populated_client):
    progress = []

    snapshot = await initialize_environment(populated_client, progress_callback=progress.append)

    stats = snapshot.stats
    assert [d.name for d in stats.collected_domains] == ["CORP.LOCAL"]
    assert stats.total_users == 120
    assert stats.total_computers == 30
    assert stats.total_groups == 45
    assert stats.kerberoastable_users == 2
    assert stats.asrep_roastable_users == 1
    assert stats.unconstrained_delegation == 0
    assert stats.da_path_count == 3
    assert len(snapshot.graph) == 3

    assert snapshot.findings == [
        "2 Kerberoastable user(s)",
        "1 AS-REP Roastable user(s)",
        "3 nodes in shortest paths to Domain Admins",
    ]
    assert "**CORP.LOCAL**" in snapshot.greeting
    assert "LAB.LOCAL" not in snapshot.greeting
    assert progress[0].startswith("[*]")
    assert progress[-1].startswith("[+]")


@pytest.mark.asyncio
async def test_waves_run_in_order(populated_client):
    await initialize_environment(populated_client)

    names = [name for name, _ in populated_client.calls]
    queries = populated_client.cypher_queries
    assert names[0] == "get_domains"
    assert queries[0].endswith("RETURN p LIMIT 5")
    assert "u.hasspn" in queries[1]
    assert "u.dontreqpreauth" in queries[2]
    assert "c.unconstraineddelegation" in queries[3]
    assert queries[4:] == [
        "MATCH (n:User) RETURN count(n) AS total",
        "MATCH (n:Computer) RETURN count(n) AS total",
        "MATCH (n:Group) RETURN count(n) AS total",
    ]


@pytest.mark.asyncio
async def test_init_path_limit_is_configurable(populated_client):
    await initialize_environment(populated_client, AnalysisConfig(init_path_limit=2))

    assert populated_client.cypher_queries[0].endswith("RETURN p LIMIT 2")


@pytest.mark.asyncio
async def test_empty_environment_has_no_path_finding(fake_client):
    snapshot = await initialize_environment(fake_client)

    assert snapshot.graph.is_empty
    assert snapshot.stats.da_path_count == 0
    assert snapshot.findings == []


@pytest.mark.asyncio
async def test_any_failure_is_one_initialization_error(populated_client):
    populated_client.fail("run_cypher", BloodHoundAPIError("boom", status=500))
    progress = []

    with pytest.raises(InitializationError) as exc:
        await initialize_environment(populated_client, progress_callback=progress.append)

    assert exc.value.status_code == 500
    assert isinstance(exc.value.__cause__, BloodHoundAPIError)
    assert progress[-1].startswith("[!]")


@pytest.mark.asyncio
async def test_failed_wave_cancels_its_other_requests():
    client = SlowPathClient()
    client.fail("get_domains", BloodHoundAPIError("BloodHound API error 500", status=500))

    with pytest.raises(InitializationError):
        await initialize_environment(client)

    assert client.path_started
    assert client.path_cancelled
    assert not client.path_finished
    assert [c[0] for c in client.calls] == ["get_domains"]


@pytest.mark.asyncio
async def test_retry_once_after_server_error(da_path_payload, fake_sleep, delays):
    client = FlakyClient(failures=1, error=BloodHoundAPIError("BloodHound API error 500", status=500))
    client.on_cypher("RETURN p LIMIT", da_path_payload)

    snapshot = await initialize_with_retry(client, sleep=fake_sleep)

    assert delays == [2.0]
    assert len(snapshot.graph) == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_configured_attempts(fake_sleep, delays):
    client = FlakyClient(failures=5, error=BloodHoundAPIError("rate limited", status=429))

    with pytest.raises(InitializationError):
        await initialize_with_retry(client, sleep=fake_sleep)

    assert delays == [2.0]
    assert len([c for c in client.calls if c[0] == "get_domains"]) == 2


@pytest.mark.asyncio
async def test_no_retry_on_rejected_login(fake_sleep, delays):
    client = FlakyClient(failures=1, error=LoginError("login failed", status=401))

    with pytest.raises(InitializationError):
        await initialize_with_retry(client, sleep=fake_sleep)

    assert delays == []


# ----------------------------------------------------------------------
# Request supersession
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_newer_search_supersedes_older():
    client = BlockingClient()
    client.blocking = {"first"}
    session = ExploreSession(client)

    first = asyncio.ensure_future(session.search("first"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    second = await session.search("second")
    client.release.set()

    assert await first is None
    assert [r.name for r in second] == ["SECOND"]


@pytest.mark.asyncio
async def test_different_kinds_do_not_supersede_each_other(da_path_payload):
    client = BlockingClient()
    client.blocking = {"slow"}
    client.on_cypher("shortestPath((s)", da_path_payload)
    session = ExploreSession(client)

    search = asyncio.ensure_future(session.search("slow"))
    await asyncio.sleep(0)
    path = await session.find_path("S-1-5-21-1001", "S-1-5-21-512")
    client.release.set()

    assert path.found
    assert [r.name for r in await search] == ["SLOW"]


@pytest.mark.asyncio
async def test_gate_propagates_errors():
    gate = LatestRequestGate()

    async def failing():
        raise BloodHoundAPIError("boom", status=500)

    with pytest.raises(BloodHoundAPIError):
        await gate.run("query", failing())
    assert not gate.in_flight("query")


# ----------------------------------------------------------------------
# Search
# ----------------------------------------------------------------------

@pytest.mark.parametrize("text, expected", [
    ("user:admin", ("admin", "User")),
    ("GPO: default policy", ("default policy", "GPO")),
    ("ou:servers", ("servers", "OU")),
    ("admin", ("admin", None)),
    ("http://x", ("http://x", None)),
])
def test_parse_search_text(text, expected):
    assert parse_search_text(text) == expected


@pytest.mark.asyncio
async def test_empty_search_makes_no_call(fake_client):
    session = ExploreSession(fake_client)

    assert await session.search("   ") == []
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_search_kind_filter_is_case_insensitive(populated_client):
    session = ExploreSession(populated_client)

    results = await session.search("admin", kind="group")

    assert [r.name for r in results] == ["ADMINS@CORP.LOCAL"]


@pytest.mark.asyncio
async def test_search_prefix_filters_kind(populated_client):
    session = ExploreSession(populated_client)

    results = await session.search("user:admin", limit=5)

    assert [r.kind for r in results] == ["User"]
    assert populated_client.calls == [("search", ("admin", 5))]


# ----------------------------------------------------------------------
# Paths and queries
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_find_path_replaces_canvas_and_highlights(fake_client, da_path_payload):
    fake_client.on_cypher("shortestPath((s)", da_path_payload)
    session = ExploreSession(fake_client)
    session.graph.merge(graph_payload([("9", "OLD", "User", "S-OLD")]))

    result = await session.find_path("S-1-5-21-1001", "S-1-5-21-512")

    assert result.found
    assert result.path_length == 2
    assert "S-OLD" not in session.graph
    assert session.graph.highlighted_node_ids == set(session.graph.node_ids)
    assert session.graph.highlighted_edge_ids == set(session.graph.edge_ids)


@pytest.mark.asyncio
async def test_find_path_not_found_leaves_canvas_untouched(fake_client, da_path_payload):
    session = ExploreSession(fake_client)
    session.graph.merge(da_path_payload)
    session.graph.highlight(["S-1-5-21-1001"])
    before = session.graph.to_dict()

    result = await session.find_path("S-1", "S-2")

    assert not result.found
    assert result.message == "No path found between these objects."
    assert session.graph.to_dict() == before
    assert session.graph.highlighted_node_ids == {"S-1-5-21-1001"}


@pytest.mark.asyncio
async def test_find_path_validates_ids(fake_client):
    session = ExploreSession(fake_client)

    with pytest.raises(ToolInputError):
        await session.find_path("", "S-2")
    assert fake_client.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("query", [
    "MATCH (n) DETACH DELETE n",
    "match (u:User) set u.owned = true",
    "MATCH (a),(b) MERGE (a)-[:AdminTo]->(b)",
])
async def test_run_query_rejects_writes_without_calling_client(fake_client, query):
    session = ExploreSession(fake_client)

    with pytest.raises(ReadOnlyViolation):
        await session.run_query(query)
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_run_query_rejects_empty(fake_client):
    session = ExploreSession(fake_client)

    with pytest.raises(QueryValidationError):
        await session.run_query("  ")
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_run_query_graph_result_replaces_canvas(fake_client, da_path_payload):
    fake_client.on_cypher("MATCH p=", da_path_payload)
    session = ExploreSession(fake_client)

    outcome = await session.run_query("MATCH p=(u:User)-[*1..2]->(g:Group) RETURN p", False)

    assert outcome.has_graph
    assert len(outcome.graph["nodes"]) == 3
    assert session.graph.highlighted_node_ids == set(session.graph.node_ids)
    assert fake_client.calls[0] == (
        "run_cypher", ("MATCH p=(u:User)-[*1..2]->(g:Group) RETURN p", False)
    )


@pytest.mark.asyncio
async def test_run_query_tabular_result_returns_rows(fake_client):
    fake_client.on_cypher("AS name", literal_payload(("name", ["A", "B"])))
    session = ExploreSession(fake_client)

    outcome = await session.run_query("MATCH (n:User) RETURN n.name AS name")

    assert not outcome.has_graph
    assert outcome.rows == [{"name": "A"}, {"name": "B"}]
    assert session.graph.is_empty


# ----------------------------------------------------------------------
# Client tools, selection and context
# ----------------------------------------------------------------------

def test_apply_highlight(fake_client, da_path_payload):
    session = ExploreSession(fake_client)
    session.graph.merge(da_path_payload)

    session.apply_client_tool("highlight_graph_elements", {"node_ids": ["S-1-5-21-1001"]})
    session.apply_client_tool("highlight_graph_elements", {"node_ids": ["S-1-5-21-512"]})
    assert session.graph.highlighted_node_ids == {"S-1-5-21-1001", "S-1-5-21-512"}

    session.apply_client_tool("highlight_graph_elements", {"node_ids": [], "clear": True})
    assert session.graph.highlighted_node_ids == set()


def test_apply_add_remediation(fake_client):
    session = ExploreSession(fake_client)

    item = session.apply_client_tool("add_remediation_item", {
        "title": "Remove SPN from SVC_SQL",
        "severity": "high",
        "description": "SVC_SQL is kerberoastable and reaches Domain Admins.",
        "recommendation": "Use a gMSA.",
        "affected_objects": ["SVC_SQL@CORP.LOCAL"],
        "mitre_id": "T1558.003",
    })

    assert item.severity == Severity.HIGH
    assert session.remediation.items == [item]


def test_apply_rejects_server_tools(fake_client):
    session = ExploreSession(fake_client)

    with pytest.raises(ToolInputError):
        session.apply_client_tool("find_da_paths", {})


@pytest.mark.asyncio
async def test_tool_graphs_merge_into_canvas(fake_client, da_path_payload):
    """Graphs produced by chat tools are merged, not swapped in."""
    fake_client.on_cypher("RETURN p LIMIT", da_path_payload)
    session = ExploreSession(fake_client)
    session.graph.merge(graph_payload([("9", "OLD", "User", "S-OLD")]))

    await session.catalog.invoke("find_da_paths", {})

    assert "S-OLD" in session.graph
    assert len(session.graph) == 4
    assert "S-OLD" not in session.graph.highlighted_node_ids
    assert "S-1-5-21-512" in session.graph.highlighted_node_ids


def test_select_node_pins_context_once(fake_client, da_path_payload):
    session = ExploreSession(fake_client)
    session.graph.merge(da_path_payload)

    chip = session.select_node("S-1-5-21-1001")
    session.select_node("S-1-5-21-1001")

    assert chip.label == "ALICE@CORP.LOCAL"
    assert chip.kind == "User"
    assert session.context_chips == [chip]
    assert session.graph.selected_node_id == "S-1-5-21-1001"

    assert session.select_node("missing") is None
    assert session.remove_context_chip("S-1-5-21-1001")
    assert session.context_chips == []
