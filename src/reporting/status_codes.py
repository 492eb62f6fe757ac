"""
Status codes for proposals and dashboard period comparisons.
"""

from enum import Enum


class ProposalStatus(str, Enum):
    """
    Lifecycle status of a proposal version.

    Values:
        DRAFT: Being prepared, not yet sent to the customer.
        SENT: Sent to the customer, awaiting a decision.
        APPROVED: Accepted by the customer.
        REJECTED: Declined by the customer.
    """
    DRAFT = "Draft"
    SENT = "Sent"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# Statuses that make a lineage count as an active quote
ACTIVE_STATUSES = frozenset({ProposalStatus.DRAFT, ProposalStatus.SENT})


class ChangeIndicator(str, Enum):
    """
    Period-over-period change of a dashboard metric.

    Values:
        INCREASE: Current value is higher than previous.
        DECREASE: Current value is lower than previous.
        NO_CHANGE: Values are equal (including both zero).
        NEW: Previous value was zero and current is positive.
    """
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    NO_CHANGE = "NO_CHANGE"
    NEW = "NEW"


CHANGE_LABELS = {
    ChangeIndicator.NEW: "New",
    ChangeIndicator.NO_CHANGE: "No change",
}


def get_change_label(indicator: ChangeIndicator) -> str:
    """
    Get the display label for indicators that carry no percentage.

    Args:
        indicator: The change indicator.

    Returns:
        str: Label, or an empty string for INCREASE/DECREASE.
    """
    return CHANGE_LABELS.get(indicator, "")
