"""
Tool Argument Schemas
=====================

Pydantic models for the arguments of every analytical tool. A tool call is
validated against its model before any query is built; the models also
produce the JSON schemas advertised to the LLM.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def _domain_field():
    return Field(
        default=None,
        description="Filter by domain name (e.g. 'PHANTOM.CORP'). Omit for all domains.",
    )


class SearchNodesArgs(BaseModel):
    query: str = Field(..., min_length=1, description="Name or partial name of the AD object")
    limit: int = Field(default=10, ge=1, le=500, description="Max results to return")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query cannot be empty")
        return v


class GetNodeDetailsArgs(BaseModel):
    object_id: str = Field(..., min_length=1, description="The objectId (SID or GUID) of the AD object")


class FindAttackPathsArgs(BaseModel):
    start_object_id: str = Field(..., min_length=1, description="ObjectId of the starting node (attacker position)")
    end_object_id: str = Field(..., min_length=1, description="ObjectId of the target node (objective)")


class GetDomainInfoArgs(BaseModel):
    pass


class DomainFilterArgs(BaseModel):
    domain: Optional[str] = _domain_field()


class ListTierZeroArgs(BaseModel):
    domain: Optional[str] = _domain_field()
    limit: int = Field(default=50, ge=1, le=1000, description="Max results to return")


class FindDAPathsArgs(BaseModel):
    domain: Optional[str] = _domain_field()
    limit: int = Field(default=10, ge=1, le=1000, description="Max number of paths to return")


class FindPathsToTierZeroArgs(BaseModel):
    source_object_id: str = Field(..., min_length=1, description="ObjectId of the source node to analyze")
    limit: int = Field(default=10, ge=1, le=1000, description="Max paths to return")


class FindChokePointsArgs(BaseModel):
    domain: Optional[str] = _domain_field()
    limit: int = Field(default=15, ge=1, le=1000, description="Max choke points to return")


class BlastRadiusArgs(BaseModel):
    object_id: str = Field(..., min_length=1, description="ObjectId of the object to analyze")
    max_depth: int = Field(default=5, description="Maximum relationship depth to traverse (1-10)")

    @field_validator("max_depth")
    @classmethod
    def clamp_depth(cls, v: int) -> int:
        return min(max(v, 1), 10)


class DangerousPermissionsArgs(BaseModel):
    target_object_id: Optional[str] = Field(
        default=None,
        description="Find dangerous permissions targeting a specific object. "
                    "Omit to search all Tier Zero assets.",
    )
    domain: Optional[str] = _domain_field()
    limit: int = Field(default=30, ge=1, le=1000, description="Max results to return")


class SimulateRemediationArgs(BaseModel):
    object_id: str = Field(..., min_length=1, description="ObjectId of the object to simulate remediating")
    domain: Optional[str] = _domain_field()


class RunCypherArgs(BaseModel):
    query: str = Field(..., description="Cypher query to execute (read-only)")
    description: str = Field(..., description="Brief description of what this query does, shown to the user")


class HighlightArgs(BaseModel):
    node_ids: List[str] = Field(default_factory=list, description="ObjectIds to highlight on the canvas")
    edge_ids: List[str] = Field(
        default_factory=list,
        description="Edge ids to highlight (format: sourceId-kind-targetId)",
    )
    clear: bool = Field(default=False, description="Clear all existing highlights first")


class AddRemediationArgs(BaseModel):
    title: str = Field(..., min_length=1, description="Short title for the finding")
    severity: Literal["critical", "high", "medium", "low"] = Field(
        ..., description="Severity level of the finding"
    )
    description: str = Field(..., description="Technical description of the vulnerability")
    recommendation: str = Field(..., description="Specific remediation steps")
    affected_objects: List[str] = Field(default_factory=list, description="Names of affected AD objects")
    blast_radius: Optional[int] = Field(default=None, ge=0, description="Number of objects reachable from this finding")
    paths_eliminated: Optional[int] = Field(default=None, ge=0, description="Number of DA attack paths eliminated")
    total_da_paths: Optional[int] = Field(default=None, ge=0, description="Total DA paths in the environment")
    mitre_technique: Optional[str] = Field(default=None, description="MITRE ATT&CK technique name (e.g. 'Kerberoasting')")
    mitre_id: Optional[str] = Field(default=None, description="MITRE ATT&CK technique ID (e.g. 'T1558.003')")
    verification_query: Optional[str] = Field(
        default=None,
        description="Natural language query to verify the remediation was effective",
    )
