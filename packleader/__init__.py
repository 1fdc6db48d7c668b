"""
packleader - Conversational Attack-Path Intelligence for BloodHound CE
======================================================================

A Python framework for exploring an Active Directory attack-path graph served
by a BloodHound CE instance: search, pathfinding, raw Cypher queries and an
LLM assistant that calls structured analysis tools.

Architecture Overview:
----------------------
- ingestion/: Authenticated BloodHound API client and literal row reconstruction
- model/: Typed data models, canonical visual graph and layered layout
- analysis/: Parameterized Cypher builders, analytical tool catalog, risk labels
- ai_engine/: LLM integration that drives the tool catalog
- reporting/: Remediation plan and report generation
- gui_integration/: Session bridge and start-of-session initialization

Design Decisions:
-----------------
1. NetworkX computes the layered layout of the canonical graph
2. Records are Python dataclasses; tool arguments are pydantic models
3. All BloodHound traffic is async (httpx) and shares one token cache per client
4. The raw query path is read-only, enforced in the core rather than the caller
"""

__version__ = "1.0.0"
__author__ = "packleader Research Team"

from .config import PackLeaderConfig
