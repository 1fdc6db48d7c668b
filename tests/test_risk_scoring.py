"""
Tests for percentage arithmetic and the risk and impact labels.
"""

import pytest

from packleader.analysis.risk_scoring import (
    assess_blast_radius,
    assess_remediation_impact,
    percentage,
)
from packleader.model.schemas import ImpactLevel, RiskLevel


@pytest.mark.parametrize("part, total, expected", [
    (6, 10, 60),
    (1, 8, 13),
    (1, 3, 33),
    (2, 3, 67),
    (5, 0, 0),
    (0, 0, 0),
    (10, 10, 100),
])
def test_percentage(part, total, expected):
    assert percentage(part, total) == expected


def test_blast_radius_levels():
    assert assess_blast_radius(5, 2, 3)[0] == RiskLevel.CRITICAL
    assert assess_blast_radius(101, 0, 5)[0] == RiskLevel.HIGH
    assert assess_blast_radius(100, 0, 5)[0] == RiskLevel.INFO


def test_blast_radius_text_mentions_depth():
    level, text = assess_blast_radius(12, 0, 4)

    assert text == "Blast radius: 12 objects within 4 hops."


@pytest.mark.parametrize("through, total, level", [
    (3, 10, ImpactLevel.CRITICAL),
    (1, 10, ImpactLevel.SIGNIFICANT),
    (1, 20, ImpactLevel.MODERATE),
    (0, 20, ImpactLevel.NONE),
    (4, 0, ImpactLevel.NONE),
])
def test_remediation_impact_levels(through, total, level):
    assert assess_remediation_impact(through, total)[0] == level
