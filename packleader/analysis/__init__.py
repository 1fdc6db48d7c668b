"""
packleader Analysis Module
==========================

Query construction and the analytical tool layer.

Components:
- queries.py: Cypher builders, string escaping and the read-only guard
- tool_schemas.py: Pydantic argument models for every tool
- tool_catalog.py: The named tools the agent and CLI call
- results.py: Typed tool results
- risk_scoring.py: Percentages and risk/impact labels
- summarizer.py: Start-of-session findings and greeting

Design Philosophy:
- Tools are deterministic; the LLM picks tools, it never writes their queries
- Empty results are typed "not found" results, failed requests are errors
"""

from .queries import QueryBuilder, assert_read_only, cypher_string
from .risk_scoring import percentage, assess_blast_radius, assess_remediation_impact
from .summarizer import EnvironmentSummarizer
from .tool_catalog import ToolCatalog, ToolSpec, TOOL_SPECS
