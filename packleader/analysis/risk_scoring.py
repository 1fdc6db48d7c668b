"""
Risk Scoring Module
===================

Deterministic risk labels for the quantitative tool results.

Scoring Rules:
- Percentages use round-half-up integer rounding and are 0 for a 0 baseline
- Blast radius: Critical if any Tier Zero asset is reachable, High if more
  than 100 objects are reachable, Info otherwise
- Remediation impact: Critical >= 30%, Significant >= 10%, Moderate > 0%,
  None otherwise

Design Decisions:
-----------------
1. Labels are enums so callers can sort and filter without parsing text
2. The explanatory text is produced next to the label so they never disagree
"""

from ..model.schemas import ImpactLevel, RiskLevel


LARGE_BLAST_RADIUS = 100
CRITICAL_IMPACT_PCT = 30
SIGNIFICANT_IMPACT_PCT = 10

MITRE_TECHNIQUES = {
    "kerberoasting": {"technique": "Kerberoasting", "id": "T1558.003"},
    "asrep_roasting": {"technique": "AS-REP Roasting", "id": "T1558.004"},
    "unconstrained_delegation": {"technique": "Steal or Forge Kerberos Tickets", "id": "T1558.001"},
}

RISK_CONTEXT = {
    "kerberoasting": (
        "Kerberoastable accounts can be attacked offline; password strength is "
        "the only defense. Accounts with paths to Domain Admin are critical priority."
    ),
    "asrep_roasting": (
        "AS-REP Roastable accounts can be attacked without any credentials: anyone "
        "on the network can request their ticket."
    ),
    "unconstrained_delegation": (
        "Unconstrained Delegation is extremely dangerous. Any Domain Admin "
        "authenticating to these machines has their TGT cached, enabling full "
        "domain compromise from a single machine."
    ),
    "tier_zero": (
        "Tier Zero assets are the ultimate targets. Every attack path analysis "
        "should consider paths to these objects."
    ),
    "choke_points": (
        "Choke points are the highest-leverage remediation targets. Remediating the "
        "top choke point eliminates the most attack paths with a single change. "
        "Focus on non-user choke points (groups, computers, OUs) as these affect "
        "multiple paths."
    ),
    "permissions_on_target": (
        "These are direct dangerous permissions on the specified object. Each "
        "represents a potential one-hop attack path."
    ),
    "permissions_on_tier_zero": (
        "These are dangerous permissions targeting Tier Zero assets. Each "
        "represents a potential privilege escalation vector."
    ),
}


def percentage(part: int, total: int) -> int:
    """Integer percentage of part in total, rounded half up; 0 when total is 0."""
    if total <= 0:
        return 0
    return int(part * 100 / total + 0.5)


def assess_blast_radius(reachable: int, tier_zero_reachable: int, depth: int) -> tuple:
    """Label a blast radius measurement.

    Args:
        reachable: Distinct objects reachable within depth
        tier_zero_reachable: Distinct Tier Zero objects reachable within depth
        depth: Traversal depth actually used

    Returns:
        Tuple of (RiskLevel, assessment text)
    """
    if tier_zero_reachable > 0:
        return RiskLevel.CRITICAL, (
            f"CRITICAL: This object can reach {tier_zero_reachable} Tier Zero "
            f"asset(s) within {depth} hops. Blast radius: {reachable} total objects."
        )
    if reachable > LARGE_BLAST_RADIUS:
        return RiskLevel.HIGH, (
            f"HIGH: Large blast radius of {reachable} objects, though no direct "
            f"path to Tier Zero within {depth} hops."
        )
    return RiskLevel.INFO, f"Blast radius: {reachable} objects within {depth} hops."


def assess_remediation_impact(paths_through: int, total_paths: int) -> tuple:
    """Label the effect of remediating one object on privileged-group paths.

    Returns:
        Tuple of (ImpactLevel, percentage, assessment text)
    """
    pct = percentage(paths_through, total_paths)
    summary = f"eliminates {paths_through} of {total_paths} DA paths ({pct}%)"

    if pct >= CRITICAL_IMPACT_PCT:
        return ImpactLevel.CRITICAL, pct, (
            f"CRITICAL IMPACT: Remediating this object {summary}. "
            "This is a high-priority choke point."
        )
    if pct >= SIGNIFICANT_IMPACT_PCT:
        return ImpactLevel.SIGNIFICANT, pct, f"SIGNIFICANT IMPACT: Remediating this object {summary}."
    if pct > 0:
        return ImpactLevel.MODERATE, pct, f"MODERATE IMPACT: Remediating this object {summary}."
    return ImpactLevel.NONE, pct, "This object does not appear on any Domain Admin attack paths."
