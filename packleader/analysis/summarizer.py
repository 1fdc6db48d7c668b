"""
Environment Summarizer
======================

Turns the start-of-session statistics into the findings list and the greeting
shown before the analyst's first question.

Design Decisions:
-----------------
1. Only risk categories with a non-zero count produce a finding line
2. The greeting names collected domains only; uncollected domains have no data
3. Output is Markdown, the format the chat pane renders
"""

from ..model.schemas import EnvironmentStats


class EnvironmentSummarizer:
    """Creates the findings and greeting for one initialization snapshot.

    Usage:
        summarizer = EnvironmentSummarizer(stats, graph_node_count=12)
        findings = summarizer.findings()
        greeting = summarizer.greeting(findings)
    """

    def __init__(self, stats: EnvironmentStats, graph_node_count: int = 0):
        """Initialize the summarizer.

        Args:
            stats: Aggregated environment statistics
            graph_node_count: Nodes in the initial Domain Admin path graph
        """
        self.stats = stats
        self.graph_node_count = graph_node_count

    def findings(self) -> list:
        """Ranked one-line findings, most actionable first."""
        stats = self.stats
        findings = []
        if stats.kerberoastable_users > 0:
            findings.append(f"{stats.kerberoastable_users} Kerberoastable user(s)")
        if stats.asrep_roastable_users > 0:
            findings.append(f"{stats.asrep_roastable_users} AS-REP Roastable user(s)")
        if stats.unconstrained_delegation > 0:
            findings.append(
                f"{stats.unconstrained_delegation} computer(s) with Unconstrained Delegation"
            )
        if self.graph_node_count > 0:
            findings.append(
                f"{self.graph_node_count} nodes in shortest paths to Domain Admins"
            )
        return findings

    def greeting(self, findings: list) -> str:
        """Compose the Markdown greeting."""
        collected = self.stats.collected_domains
        names = ", ".join(d.name for d in collected)

        lines = [
            f"I've connected to your BloodHound instance and scanned "
            f"{len(collected)} domain(s): **{names}**.",
            "",
            f"Environment: {self.stats.total_users} users, "
            f"{self.stats.total_computers} computers, {self.stats.total_groups} groups.",
            "",
        ]
        if findings:
            lines.append("**Initial findings:**")
            lines.extend(f"- {f}" for f in findings)
            lines.append("")
        lines.append(
            "The graph shows the shortest attack paths to Domain Admins. Click any "
            "node to select it, then ask me about it. What would you like to investigate?"
        )
        return "\n".join(lines)
