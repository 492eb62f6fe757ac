"""
Proposal aggregator module.

Groups versioned proposal records by lineage (rootProposalId), selects the
canonical version of each lineage and computes month-over-month dashboard
metrics.

Rules per period (current month / previous month):
- active quotes: lineages whose highest version is Draft or Sent
- approved quotes / revenue: lineages with any Approved version, valued at
  the highest Approved version, which need not be the lineage's latest

A lineage whose latest version is a Draft on top of an older Approved
version therefore counts as both active and approved.
"""

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from src.reporting.status_codes import ACTIVE_STATUSES, ChangeIndicator, ProposalStatus, get_change_label
from src.utils.logging_config import LogContext

logger = logging.getLogger(__name__)


class DuplicateVersionError(ValueError):
    """Raised when a lineage holds the same version number more than once."""

    def __init__(self, duplicates: list[tuple[str, int]]):
        listed = ", ".join(f"{root} v{version}" for root, version in duplicates)
        super().__init__(f"Duplicate proposal versions: {listed}")
        self.duplicates = duplicates


def _parse_timestamp(value: Any) -> datetime:
    """
    Convert a stored timestamp to an aware datetime.

    Accepts datetimes (naive taken as UTC), ISO-8601 strings, epoch seconds,
    and Firestore-style {"seconds": ..., "nanoseconds": ...} mappings.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, dict) and "seconds" in value:
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1e9
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return _parse_timestamp(datetime.fromisoformat(text))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _parse_status(value: Any) -> ProposalStatus:
    if isinstance(value, ProposalStatus):
        return value
    text = str(value).strip()
    for status in ProposalStatus:
        if text.lower() in (status.value.lower(), status.name.lower()):
            return status
    raise ValueError(f"Unknown proposal status: {value!r}")


@dataclass(frozen=True)
class ProposalVersion:
    """
    One stored version of a proposal.

    Attributes:
        id: Record id.
        root_proposal_id: Lineage id shared by every version of one quote.
        version: Version number within the lineage.
        status: Proposal status.
        total_amount: VAT-exclusive total in local currency.
        created_at: Creation instant (aware).
    """

    id: str
    root_proposal_id: str
    version: int
    status: ProposalStatus
    total_amount: float
    created_at: datetime

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ProposalVersion":
        """
        Create a ProposalVersion from a stored record (camelCase or snake_case).

        A record without a root id is its own lineage.

        Raises:
            KeyError: If id or createdAt is missing.
            ValueError: If status or createdAt cannot be parsed.
        """
        def pick(*keys, default=None):
            for key in keys:
                if record.get(key) is not None:
                    return record[key]
            return default

        record_id = str(record["id"])
        created_at = pick("createdAt", "created_at")
        if created_at is None:
            raise KeyError("createdAt")

        return cls(
            id=record_id,
            root_proposal_id=str(pick("rootProposalId", "root_proposal_id", default=record_id)),
            version=int(pick("version", default=1)),
            status=_parse_status(pick("status", default=ProposalStatus.DRAFT)),
            total_amount=float(pick("totalAmount", "total_amount", default=0.0)),
            created_at=_parse_timestamp(created_at),
        )


@dataclass(frozen=True)
class Customer:
    """A customer record; only its identity matters for reporting."""

    id: str

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Customer":
        return cls(id=str(record["id"]))


@dataclass(frozen=True)
class PeriodMetrics:
    """Metrics for one reporting period."""

    active_quotes: int = 0
    approved_quotes_count: int = 0
    total_revenue: float = 0.0


@dataclass(frozen=True)
class PercentageChange:
    """
    Change of a metric against the previous period.

    Attributes:
        indicator: Direction, or NEW when the previous value was zero.
        percent: Signed percent change; None for NEW and when both values are zero.
    """

    indicator: ChangeIndicator
    percent: Optional[float] = None


@dataclass(frozen=True)
class DashboardMetrics:
    """
    Dashboard figures for the current month, with previous-month counterparts.

    total_customers has no previous-period counterpart.
    """

    total_customers: int = 0
    active_quotes: int = 0
    approved_quotes_count: int = 0
    total_revenue: float = 0.0
    active_quotes_previous: int = 0
    approved_quotes_count_previous: int = 0
    total_revenue_previous: float = 0.0

    def changes(self) -> dict[str, PercentageChange]:
        return {
            "active_quotes": calculate_percentage_change(self.active_quotes, self.active_quotes_previous),
            "approved_quotes_count": calculate_percentage_change(
                self.approved_quotes_count, self.approved_quotes_count_previous
            ),
            "total_revenue": calculate_percentage_change(self.total_revenue, self.total_revenue_previous),
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def month_boundaries(now: datetime) -> tuple[datetime, datetime]:
    """
    Get the start of the previous and current calendar month.

    Args:
        now: Reference instant; naive values are taken as UTC.

    Returns:
        Tuple of (previous_period_start, current_period_start), in now's timezone.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    current_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if current_start.month == 1:
        previous_start = current_start.replace(year=current_start.year - 1, month=12)
    else:
        previous_start = current_start.replace(month=current_start.month - 1)
    return previous_start, current_start


def group_by_lineage(proposals: Iterable[ProposalVersion]) -> dict[str, list[ProposalVersion]]:
    """Partition proposal versions by root_proposal_id, keeping input order."""
    groups: dict[str, list[ProposalVersion]] = {}
    for proposal in proposals:
        groups.setdefault(proposal.root_proposal_id, []).append(proposal)
    return groups


def _highest_version(candidates: Iterable[ProposalVersion]) -> Optional[ProposalVersion]:
    # Only a strictly higher version replaces the pick: ties keep the earliest record
    best = None
    for candidate in candidates:
        if best is None or candidate.version > best.version:
            best = candidate
    return best


def canonical_latest(group: Iterable[ProposalVersion]) -> Optional[ProposalVersion]:
    """Get the member with the highest version number."""
    return _highest_version(group)


def latest_approved(group: Iterable[ProposalVersion]) -> Optional[ProposalVersion]:
    """Get the Approved member with the highest version number, if any."""
    return _highest_version(p for p in group if p.status == ProposalStatus.APPROVED)


def compute_period_metrics(proposals: Iterable[ProposalVersion]) -> PeriodMetrics:
    """
    Compute active/approved/revenue figures for one period's records.

    Args:
        proposals: Proposal versions already filtered to the period.

    Returns:
        PeriodMetrics: Figures for the period.
    """
    active_quotes = 0
    approved_quotes_count = 0
    total_revenue = 0.0

    for group in group_by_lineage(proposals).values():
        latest = canonical_latest(group)
        if latest is not None and latest.status in ACTIVE_STATUSES:
            active_quotes += 1

        approved = latest_approved(group)
        if approved is not None:
            approved_quotes_count += 1
            total_revenue += approved.total_amount

    return PeriodMetrics(
        active_quotes=active_quotes,
        approved_quotes_count=approved_quotes_count,
        total_revenue=total_revenue,
    )


def compute_dashboard_metrics(
    proposals: Iterable[ProposalVersion],
    customers: Iterable[Any],
    now: Optional[datetime] = None,
) -> DashboardMetrics:
    """
    Compute dashboard metrics for the month containing `now` and the month before.

    Args:
        proposals: All stored proposal versions.
        customers: All customer records (counted, not filtered by period).
        now: Reference instant; defaults to the current UTC time.

    Returns:
        DashboardMetrics: Current figures with previous-month counterparts.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    previous_start, current_start = month_boundaries(now)

    current_records = []
    previous_records = []
    for proposal in proposals:
        created_at = _parse_timestamp(proposal.created_at)
        if created_at >= current_start:
            current_records.append(proposal)
        elif created_at >= previous_start:
            previous_records.append(proposal)

    with LogContext(period=current_start.strftime("%Y-%m"), previous_period=previous_start.strftime("%Y-%m")):
        current = compute_period_metrics(current_records)
        previous = compute_period_metrics(previous_records)

        logger.debug(
            f"Aggregated {len(current_records)} current / {len(previous_records)} previous proposal records"
        )

    return DashboardMetrics(
        total_customers=len(list(customers)),
        active_quotes=current.active_quotes,
        approved_quotes_count=current.approved_quotes_count,
        total_revenue=current.total_revenue,
        active_quotes_previous=previous.active_quotes,
        approved_quotes_count_previous=previous.approved_quotes_count,
        total_revenue_previous=previous.total_revenue,
    )


def calculate_percentage_change(current: float, previous: float) -> PercentageChange:
    """
    Compare a metric against its previous-period value.

    Args:
        current: Current period value.
        previous: Previous period value.

    Returns:
        PercentageChange: NEW when previous is zero and current positive,
        NO_CHANGE (no percent) when both are zero, otherwise the signed percent.
    """
    if previous == 0:
        if current > 0:
            return PercentageChange(ChangeIndicator.NEW)
        if current == 0:
            return PercentageChange(ChangeIndicator.NO_CHANGE)
        return PercentageChange(ChangeIndicator.DECREASE)

    percent = (current - previous) / previous * 100
    if percent > 0:
        return PercentageChange(ChangeIndicator.INCREASE, percent)
    if percent < 0:
        return PercentageChange(ChangeIndicator.DECREASE, percent)
    return PercentageChange(ChangeIndicator.NO_CHANGE, 0.0)


def format_change_text(change: PercentageChange) -> str:
    """
    Render a change for display, e.g. "+12.5% from last month".

    Args:
        change: The change to render.

    Returns:
        str: Display text.
    """
    label = get_change_label(change.indicator)
    if label:
        return label
    if change.percent is None:
        return "Decrease"
    sign = "+" if change.percent > 0 else ""
    return f"{sign}{change.percent:.1f}% from last month"


def find_duplicate_versions(proposals: Iterable[ProposalVersion]) -> list[tuple[str, int]]:
    """
    Find (root_proposal_id, version) pairs stored more than once.

    Args:
        proposals: Proposal versions to check.

    Returns:
        List of duplicated pairs, in order of first appearance.
    """
    counts = Counter((p.root_proposal_id, p.version) for p in proposals)
    return [key for key, count in counts.items() if count > 1]


def ensure_unique_versions(proposals: Iterable[ProposalVersion]) -> None:
    """
    Reject lineages with repeated version numbers, for use at write time.

    Raises:
        DuplicateVersionError: If any lineage repeats a version number.
    """
    duplicates = find_duplicate_versions(proposals)
    if duplicates:
        raise DuplicateVersionError(duplicates)
