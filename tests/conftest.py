"""
Shared fixtures: an in-memory BloodHound client and payload builders.
"""

import pytest

from packleader.model.schemas import (
    DomainInfo,
    GraphPayload,
    Literal,
    NodeEntity,
    SearchResult,
)


def graph_payload(nodes, edges=()):
    """Build a GraphPayload from (graph_id, label, kind, object_id[, props]) tuples
    and (source_graph_id, kind, target_graph_id) tuples."""
    raw_nodes = {}
    for node in nodes:
        graph_id, label, kind, object_id = node[:4]
        properties = node[4] if len(node) > 4 else {}
        raw_nodes[graph_id] = {
            "label": label,
            "kind": kind,
            "objectId": object_id,
            "properties": properties,
        }
    raw_edges = [
        {"source": source, "target": target, "label": kind, "kind": kind}
        for source, kind, target in edges
    ]
    return GraphPayload.from_response({"nodes": raw_nodes, "edges": raw_edges})


def literal_payload(*columns):
    """Build a tabular payload from (key, [values]) column pairs, row-interleaved."""
    literals = []
    row_count = max(len(values) for _, values in columns) if columns else 0
    for i in range(row_count):
        for key, values in columns:
            if i < len(values):
                literals.append(Literal(key=key, value=values[i]))
    return GraphPayload(literals=literals)


def count_payload(key, value):
    return GraphPayload(literals=[Literal(key=key, value=value)])


class FakeClient:
    """Scripted stand-in for BloodHoundClient.

    Cypher responses are matched by substring, first match wins; unmatched
    queries return an empty payload. Every call is recorded.
    """

    def __init__(self):
        self.cypher_responses = []
        self.search_results = []
        self.domains = []
        self.entities = {}
        self.errors = {}
        self.calls = []

    def on_cypher(self, fragment, payload):
        self.cypher_responses.append((fragment, payload))
        return self

    def fail(self, operation, error):
        self.errors[operation] = error
        return self

    def _check(self, operation):
        error = self.errors.get(operation)
        if error is not None:
            raise error

    @property
    def cypher_queries(self):
        return [args[0] for name, args in self.calls if name == "run_cypher"]

    async def search(self, query, limit=10):
        self.calls.append(("search", (query, limit)))
        self._check("search")
        return list(self.search_results)

    async def run_cypher(self, query, include_properties=True):
        self.calls.append(("run_cypher", (query, include_properties)))
        self._check("run_cypher")
        for fragment, payload in self.cypher_responses:
            if fragment in query:
                return payload
        return GraphPayload()

    async def get_domains(self):
        self.calls.append(("get_domains", ()))
        self._check("get_domains")
        return list(self.domains)

    async def get_node(self, object_id):
        self.calls.append(("get_node", (object_id,)))
        self._check("get_node")
        return self.entities.get(object_id, NodeEntity(kind=""))


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def da_path_payload():
    """alice -MemberOf-> helpdesk -GenericAll-> Domain Admins."""
    return graph_payload(
        [
            ("1", "ALICE@CORP.LOCAL", "User", "S-1-5-21-1001", {"domain": "CORP.LOCAL"}),
            ("2", "HELPDESK@CORP.LOCAL", "Group", "S-1-5-21-2001", {"domain": "CORP.LOCAL"}),
            (
                "3", "DOMAIN ADMINS@CORP.LOCAL", "Group", "S-1-5-21-512",
                {"domain": "CORP.LOCAL", "system_tags": "admin_tier_0"},
            ),
        ],
        [("1", "MemberOf", "2"), ("2", "GenericAll", "3")],
    )


@pytest.fixture
def populated_client(fake_client, da_path_payload):
    """A client answering every initialization query."""
    fake_client.domains = [
        DomainInfo(id="S-1-5-21", name="CORP.LOCAL", kind="active-directory", collected=True),
        DomainInfo(id="S-1-5-22", name="LAB.LOCAL", kind="active-directory", collected=False),
    ]
    fake_client.search_results = [
        SearchResult(name="ADMIN@CORP.LOCAL", kind="User", object_id="S-1-5-21-500"),
        SearchResult(name="ADMINS@CORP.LOCAL", kind="Group", object_id="S-1-5-21-3001"),
    ]
    fake_client.on_cypher("RETURN p LIMIT", da_path_payload)
    fake_client.on_cypher("u.hasspn = true", literal_payload(
        ("name", ["SVC_SQL@CORP.LOCAL", "SVC_WEB@CORP.LOCAL"]),
        ("objectid", ["S-1-5-21-1101", "S-1-5-21-1102"]),
        ("spns", [["MSSQLSvc/db01"], ["HTTP/web01"]]),
    ))
    fake_client.on_cypher("u.dontreqpreauth = true", literal_payload(
        ("name", ["LEGACY@CORP.LOCAL"]),
        ("objectid", ["S-1-5-21-1201"]),
    ))
    fake_client.on_cypher("c.unconstraineddelegation = true", GraphPayload())
    fake_client.on_cypher("MATCH (n:User) RETURN count", count_payload("total", 120))
    fake_client.on_cypher("MATCH (n:Computer) RETURN count", count_payload("total", 30))
    fake_client.on_cypher("MATCH (n:Group) RETURN count", count_payload("total", 45))
    return fake_client
