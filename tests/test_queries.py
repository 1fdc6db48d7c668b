"""
Tests for Cypher building: string escaping and the read-only guard.
"""

import pytest

from packleader.analysis.queries import (
    WRITE_KEYWORDS,
    QueryBuilder,
    assert_read_only,
    cypher_string,
)
from packleader.analysis.tool_catalog import ToolCatalog
from packleader.errors import QueryValidationError, ReadOnlyViolation


# ----------------------------------------------------------------------
# Escaping
# ----------------------------------------------------------------------

def test_cypher_string_quotes_plain_values():
    assert cypher_string("ALICE@CORP.LOCAL") == '"ALICE@CORP.LOCAL"'


def test_cypher_string_escapes_quotes_and_backslashes():
    assert cypher_string('a"b\\c') == '"a\\"b\\\\c"'


def test_cypher_string_escapes_control_characters():
    assert cypher_string("a\nb\tc\x00") == '"a\\nb\\tc\\u0000"'


def test_injection_attempt_stays_inside_the_literal():
    query = QueryBuilder().shortest_path('x" OR 1=1 //', "S-1")

    assert 's.objectid = "x\\" OR 1=1 //"' in query


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------

def test_privileged_paths_uses_configured_prefixes():
    builder = QueryBuilder(privileged_group_prefix="DOMÄNEN-ADMINS", excluded_user_prefix="KRBTGT")

    query = builder.privileged_paths(limit=5)

    assert 'g.name STARTS WITH "DOMÄNEN-ADMINS"' in query
    assert 'NOT u.name STARTS WITH "KRBTGT"' in query
    assert query.endswith("RETURN p LIMIT 5")


def test_domain_filter_only_when_given():
    builder = QueryBuilder()

    assert "u.domain" not in builder.kerberoastable_users()
    assert 'AND u.domain = "CORP.LOCAL"' in builder.kerberoastable_users("CORP.LOCAL")


def test_count_kind_rejects_non_labels():
    assert QueryBuilder().count_kind("User") == "MATCH (n:User) RETURN count(n) AS total"
    with pytest.raises(QueryValidationError):
        QueryBuilder().count_kind("User) DETACH DELETE (n")


def test_dangerous_permissions_targets_tier_zero_by_default():
    query = QueryBuilder().dangerous_permissions()

    assert 't.system_tags CONTAINS "admin_tier_0"' in query
    assert "WriteDacl" in query
    assert "WHERE t.objectid" not in query
    assert 't.objectid = "' not in query


# ----------------------------------------------------------------------
# Read-only guard
# ----------------------------------------------------------------------

@pytest.mark.parametrize("keyword", WRITE_KEYWORDS)
@pytest.mark.parametrize("variant", [str.upper, str.lower, str.capitalize])
def test_write_keywords_rejected_in_any_case(keyword, variant):
    query = f"MATCH (n:User)\n\t  {variant(keyword)}   n.owned = true RETURN n"

    with pytest.raises(ReadOnlyViolation) as exc:
        assert_read_only(query)

    assert exc.value.keyword == keyword
    assert exc.value.status_code == 403


@pytest.mark.parametrize("query", [
    "MATCH (n:User) WHERE n.name CONTAINS 'RESET' RETURN n",
    "MATCH (n) WHERE n.createdat > 0 RETURN n.settings",
    "MATCH (n:Computer) RETURN n.unconstraineddelegation",
])
def test_keywords_inside_identifiers_are_allowed(query):
    assert assert_read_only(query) == query


@pytest.mark.parametrize("query", ["", "   ", None])
def test_empty_query_rejected(query):
    with pytest.raises(QueryValidationError) as exc:
        assert_read_only(query)

    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_run_cypher_tool_never_reaches_client_with_write_query(fake_client):
    catalog = ToolCatalog(fake_client)

    with pytest.raises(ReadOnlyViolation):
        await catalog.invoke("run_cypher_query", {
            "query": "MATCH (n) DETACH DELETE n",
            "description": "wipe",
        })

    assert fake_client.calls == []
