"""
Reporting module.

Aggregates versioned proposal records into dashboard metrics.
"""

from src.reporting.proposal_aggregator import (
    Customer,
    DashboardMetrics,
    ProposalVersion,
    calculate_percentage_change,
    compute_dashboard_metrics,
    format_change_text,
)
from src.reporting.status_codes import ChangeIndicator, ProposalStatus

__all__ = [
    "Customer",
    "DashboardMetrics",
    "ProposalVersion",
    "ProposalStatus",
    "ChangeIndicator",
    "compute_dashboard_metrics",
    "calculate_percentage_change",
    "format_change_text",
]
