"""
Cypher Query Builders
=====================

Every Cypher statement packleader sends is built here.

Design Decisions:
-----------------
1. BloodHound's /graphs/cypher endpoint takes no query parameters, so values
   are embedded as literals; every string goes through cypher_string()
2. Integers come only from validated tool arguments and are formatted with int()
3. Tabular queries alias every column, and results are read by alias
4. The raw query path is guarded by assert_read_only()
"""

import re
from typing import Optional

from ..errors import QueryValidationError, ReadOnlyViolation


TIER_ZERO_TAG = "admin_tier_0"
PRIVILEGED_GROUP_PREFIX = "DOMAIN ADMINS"
EXCLUDED_USER_PREFIX = "KRBTGT"

DANGEROUS_PERMISSIONS = (
    "GenericAll",
    "GenericWrite",
    "WriteDacl",
    "WriteOwner",
    "Owns",
    "ForceChangePassword",
    "AddMember",
    "AllExtendedRights",
)

WRITE_KEYWORDS = ("DELETE", "DETACH", "CREATE", "SET", "REMOVE", "MERGE")
_WRITE_PATTERN = re.compile(r"\b(" + "|".join(WRITE_KEYWORDS) + r")\b", re.IGNORECASE)

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}


def cypher_string(value: str) -> str:
    """Quote a value as a double-quoted Cypher string literal.

    Backslashes, quotes and control characters are escaped, so the value can
    never terminate the literal.
    """
    out = []
    for ch in str(value):
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ord(ch) < 0x20:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def assert_read_only(query: str) -> str:
    """Reject empty queries and queries with write intent.

    Returns:
        The stripped query

    Raises:
        QueryValidationError: if the query is empty
        ReadOnlyViolation: if a write keyword appears as a whole word
    """
    query = (query or "").strip()
    if not query:
        raise QueryValidationError("Query is required")
    match = _WRITE_PATTERN.search(query)
    if match:
        raise ReadOnlyViolation(match.group(1).upper())
    return query


class QueryBuilder:
    """Builds the analytical Cypher statements.

    The privileged group prefix, excluded user prefix and Tier Zero tag come
    from AnalysisConfig so the same queries work against renamed groups.
    """

    def __init__(
        self,
        privileged_group_prefix: str = PRIVILEGED_GROUP_PREFIX,
        excluded_user_prefix: str = EXCLUDED_USER_PREFIX,
        tier_zero_tag: str = TIER_ZERO_TAG
    ):
        self.privileged_group_prefix = privileged_group_prefix
        self.excluded_user_prefix = excluded_user_prefix
        self.tier_zero_tag = tier_zero_tag

    @classmethod
    def from_config(cls, config) -> "QueryBuilder":
        return cls(
            privileged_group_prefix=config.privileged_group_prefix,
            excluded_user_prefix=config.excluded_user_prefix,
            tier_zero_tag=config.tier_zero_tag,
        )

    @staticmethod
    def _domain_filter(variable: str, domain: Optional[str]) -> str:
        if not domain:
            return ""
        return f" AND {variable}.domain = {cypher_string(domain)}"

    def _tier_zero(self, variable: str) -> str:
        return f"{variable}.system_tags CONTAINS {cypher_string(self.tier_zero_tag)}"

    # -- path queries ----------------------------------------------------

    def shortest_path(self, start_object_id: str, end_object_id: str) -> str:
        return (
            "MATCH p=shortestPath((s)-[*1..]->(e)) "
            f"WHERE s.objectid = {cypher_string(start_object_id)} "
            f"AND e.objectid = {cypher_string(end_object_id)} RETURN p"
        )

    def _privileged_paths(self, domain: Optional[str]) -> str:
        return (
            "MATCH p=shortestPath((u:User)-[*1..]->(g:Group)) "
            f"WHERE g.name STARTS WITH {cypher_string(self.privileged_group_prefix)} "
            "AND u.enabled = true "
            f"AND NOT u.name STARTS WITH {cypher_string(self.excluded_user_prefix)}"
            f"{self._domain_filter('u', domain)}"
        )

    def privileged_paths(self, domain: Optional[str] = None, limit: int = 10) -> str:
        return f"{self._privileged_paths(domain)} RETURN p LIMIT {int(limit)}"

    def privileged_path_count(self, domain: Optional[str] = None) -> str:
        return f"{self._privileged_paths(domain)} RETURN count(p) AS totalPaths"

    def choke_points(self, domain: Optional[str] = None, limit: int = 15) -> str:
        return (
            f"{self._privileged_paths(domain)} "
            "UNWIND nodes(p) AS n WITH n "
            f"WHERE NOT n.name STARTS WITH {cypher_string(self.privileged_group_prefix)} "
            "RETURN n.name AS name, n.objectid AS objectid, count(*) AS pathCount "
            f"ORDER BY pathCount DESC LIMIT {int(limit)}"
        )

    def paths_through(self, object_id: str, domain: Optional[str] = None) -> str:
        return (
            f"{self._privileged_paths(domain)} "
            "UNWIND nodes(p) AS n WITH p, n "
            f"WHERE n.objectid = {cypher_string(object_id)} "
            "RETURN count(DISTINCT p) AS pathsThrough"
        )

    def paths_to_tier_zero(self, source_object_id: str, limit: int = 10) -> str:
        return (
            "MATCH p=shortestPath((s)-[*1..]->(t)) "
            f"WHERE s.objectid = {cypher_string(source_object_id)} "
            f"AND {self._tier_zero('t')} RETURN p LIMIT {int(limit)}"
        )

    # -- reachability ----------------------------------------------------

    def reachable_count(self, object_id: str, depth: int) -> str:
        return (
            f"MATCH (s)-[*1..{int(depth)}]->(t) "
            f"WHERE s.objectid = {cypher_string(object_id)} "
            "RETURN count(DISTINCT t) AS reachableCount"
        )

    def reachable_tier_zero_count(self, object_id: str, depth: int) -> str:
        return (
            f"MATCH (s)-[*1..{int(depth)}]->(t) "
            f"WHERE s.objectid = {cypher_string(object_id)} "
            f"AND {self._tier_zero('t')} "
            "RETURN count(DISTINCT t) AS tierZeroCount"
        )

    # -- enumeration -----------------------------------------------------

    def kerberoastable_users(self, domain: Optional[str] = None) -> str:
        return (
            "MATCH (u:User) WHERE u.hasspn = true AND u.enabled = true"
            f"{self._domain_filter('u', domain)} "
            "RETURN u.name AS name, u.objectid AS objectid, "
            "u.serviceprincipalnames AS spns"
        )

    def asrep_roastable_users(self, domain: Optional[str] = None) -> str:
        return (
            "MATCH (u:User) WHERE u.dontreqpreauth = true AND u.enabled = true"
            f"{self._domain_filter('u', domain)} "
            "RETURN u.name AS name, u.objectid AS objectid"
        )

    def unconstrained_delegation(self, domain: Optional[str] = None) -> str:
        return (
            "MATCH (c:Computer) WHERE c.unconstraineddelegation = true"
            f"{self._domain_filter('c', domain)} "
            "RETURN c.name AS name, c.objectid AS objectid"
        )

    def tier_zero_assets(self, domain: Optional[str] = None, limit: int = 50) -> str:
        return (
            f"MATCH (n) WHERE {self._tier_zero('n')}{self._domain_filter('n', domain)} "
            "RETURN n.name AS name, n.objectid AS objectid "
            f"ORDER BY n.name LIMIT {int(limit)}"
        )

    def dangerous_permissions(
        self,
        target_object_id: Optional[str] = None,
        domain: Optional[str] = None,
        limit: int = 30
    ) -> str:
        if target_object_id:
            where = f"WHERE t.objectid = {cypher_string(target_object_id)}"
        else:
            where = f"WHERE {self._tier_zero('t')}{self._domain_filter('t', domain)}"
        return (
            f"MATCH (s)-[r:{'|'.join(DANGEROUS_PERMISSIONS)}]->(t) {where} "
            "RETURN s.name AS sourceName, s.objectid AS sourceId, "
            "type(r) AS permission, t.name AS targetName, t.objectid AS targetId "
            f"LIMIT {int(limit)}"
        )

    def count_kind(self, kind: str) -> str:
        """Count all objects with one node label (User, Computer, Group)."""
        if not re.fullmatch(r"[A-Za-z]+", kind):
            raise QueryValidationError(f"Invalid node label: {kind!r}")
        return f"MATCH (n:{kind}) RETURN count(n) AS total"
