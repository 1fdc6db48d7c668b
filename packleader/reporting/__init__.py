"""
packleader Reporting Module
===========================

Remediation plan and report generation.

Components:
- report_builder.py: RemediationPlan working set and JSON/Markdown reports

Design Philosophy:
- Reports are structured data that can be rendered multiple ways
"""

from .report_builder import RemediationPlan, ReportBuilder
