"""
Report Builder Module
=====================

The remediation plan and the reports generated from it.

The report contains:
- Environment statistics from session start
- Remediation items ordered by severity
- Quantitative impact and MITRE mapping per item

Design Decisions:
-----------------
1. Reports are structured data (JSON-serializable) rendered to Markdown
2. RemediationPlan is the working set; items are added and removed, never edited
3. Items are ordered by severity, then by the order they were recorded
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..model.schemas import EnvironmentStats, RemediationItem, Severity


class RemediationPlan:
    """Ordered working set of remediation items.

    Usage:
        plan = RemediationPlan()
        item = plan.add_from_arguments({"title": ..., "severity": "high", ...})
        plan.remove(item.id)
    """

    def __init__(self):
        self._items: list[RemediationItem] = []

    def add(self, item: RemediationItem) -> RemediationItem:
        self._items.append(item)
        return item

    def add_from_arguments(self, arguments: dict) -> RemediationItem:
        """Create an item from validated add_remediation_item arguments."""
        return self.add(RemediationItem.create(**arguments))

    def remove(self, item_id: str) -> bool:
        """Delete one item. Returns False when the id is unknown."""
        before = len(self._items)
        self._items = [i for i in self._items if i.id != item_id]
        return len(self._items) < before

    def clear(self) -> None:
        self._items.clear()

    @property
    def items(self) -> list:
        """Items in insertion order."""
        return list(self._items)

    def sorted_items(self) -> list:
        """Items by severity (critical first), ties in insertion order."""
        return sorted(self._items, key=lambda i: i.severity.rank)

    def counts_by_severity(self) -> dict:
        counts = {s.value: 0 for s in Severity}
        for item in self._items:
            counts[item.severity.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self._items)

    def to_dict(self) -> list:
        return [i.to_dict() for i in self.sorted_items()]


class ReportBuilder:
    """Builds remediation reports.

    Usage:
        builder = ReportBuilder(output_dir="output")
        report = builder.build_report(plan, stats)
        paths = builder.save(report)
    """

    def __init__(self, output_dir: str = "output"):
        """Initialize the report builder.

        Args:
            output_dir: Directory for output files (created on save)
        """
        self.output_dir = Path(output_dir)

    def build_report(
        self,
        plan: RemediationPlan,
        environment_stats: Optional[EnvironmentStats] = None
    ) -> dict:
        """Build the report structure.

        Args:
            plan: Remediation plan to report on
            environment_stats: Statistics from session start, if available

        Returns:
            JSON-serializable report dictionary
        """
        return {
            "metadata": {"timestamp": datetime.now().isoformat()},
            "environment": environment_stats.to_dict() if environment_stats else None,
            "summary": {
                "total_items": len(plan),
                "by_severity": plan.counts_by_severity(),
            },
            "items": plan.to_dict(),
        }

    def to_markdown(self, report: dict) -> str:
        """Render a report built by build_report() as Markdown."""
        lines = [
            "# Pack Leader Remediation Report",
            "",
            f"Generated: {report['metadata']['timestamp']}",
            "",
        ]

        env = report.get("environment")
        if env:
            domains = ", ".join(d["name"] for d in env["domains"] if d.get("collected"))
            lines.extend([
                "## Environment",
                "",
                f"- Domains: {domains or 'none collected'}",
                f"- Users: {env['total_users']}",
                f"- Computers: {env['total_computers']}",
                f"- Groups: {env['total_groups']}",
                f"- Kerberoastable users: {env['kerberoastable_users']}",
                f"- AS-REP roastable users: {env['asrep_roastable_users']}",
                f"- Unconstrained delegation: {env['unconstrained_delegation']}",
                "",
            ])

        summary = report["summary"]
        lines.extend(["## Summary", "", f"Total findings: {summary['total_items']}", ""])
        for severity, count in summary["by_severity"].items():
            lines.append(f"- {severity.capitalize()}: {count}")
        lines.append("")

        if report["items"]:
            lines.extend(["## Findings", ""])
        for number, item in enumerate(report["items"], 1):
            lines.extend(self._item_markdown(number, item))

        return "\n".join(lines).rstrip() + "\n"

    @staticmethod
    def _item_markdown(number: int, item: dict) -> list:
        lines = [
            f"### {number}. [{item['severity'].upper()}] {item['title']}",
            "",
            item["description"],
            "",
            f"**Recommendation:** {item['recommendation']}",
            "",
        ]
        if item.get("affected_objects"):
            lines.append(f"- Affected objects: {', '.join(item['affected_objects'])}")
        if item.get("blast_radius") is not None:
            lines.append(f"- Blast radius: {item['blast_radius']} objects")
        if item.get("paths_eliminated") is not None:
            total = item.get("total_da_paths")
            suffix = f" of {total}" if total is not None else ""
            lines.append(f"- DA paths eliminated: {item['paths_eliminated']}{suffix}")
        if item.get("mitre_id"):
            label = " ".join(filter(None, [item.get("mitre_technique"), f"({item['mitre_id']})"]))
            lines.append(f"- MITRE ATT&CK: {label}")
        if item.get("verification_query"):
            lines.append(f"- Verify: {item['verification_query']}")
        lines.append("")
        return lines

    def save(self, report: dict, basename: str = "packleader_report") -> dict:
        """Write the report as JSON and Markdown.

        Returns:
            Dictionary with the written "json" and "markdown" paths
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        json_path = self.output_dir / f"{basename}.json"
        md_path = self.output_dir / f"{basename}.md"

        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, default=str)
        with open(md_path, "w", encoding="utf-8") as f:
            f.write(self.to_markdown(report))

        return {"json": str(json_path), "markdown": str(md_path)}
