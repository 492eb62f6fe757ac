"""
Tests for the proposal aggregator module.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.reporting.proposal_aggregator import (
    Customer,
    DashboardMetrics,
    DuplicateVersionError,
    PercentageChange,
    ProposalVersion,
    calculate_percentage_change,
    canonical_latest,
    compute_dashboard_metrics,
    compute_period_metrics,
    ensure_unique_versions,
    find_duplicate_versions,
    format_change_text,
    group_by_lineage,
    latest_approved,
    month_boundaries,
)
from src.reporting.status_codes import ChangeIndicator, ProposalStatus

NOW = datetime(2024, 10, 18, 15, 30, tzinfo=timezone.utc)
THIS_MONTH = datetime(2024, 10, 5, tzinfo=timezone.utc)
LAST_MONTH = datetime(2024, 9, 12, tzinfo=timezone.utc)
TWO_MONTHS_AGO = datetime(2024, 8, 30, tzinfo=timezone.utc)


def make_proposal(
    root: str,
    version: int,
    status: ProposalStatus,
    amount: float,
    created_at: datetime = THIS_MONTH,
    record_id: str | None = None,
) -> ProposalVersion:
    return ProposalVersion(
        id=record_id or f"{root}-v{version}",
        root_proposal_id=root,
        version=version,
        status=status,
        total_amount=amount,
        created_at=created_at,
    )


class TestMonthBoundaries:
    """Tests for month_boundaries."""

    def test_mid_year(self) -> None:
        previous_start, current_start = month_boundaries(NOW)

        assert current_start == datetime(2024, 10, 1, tzinfo=timezone.utc)
        assert previous_start == datetime(2024, 9, 1, tzinfo=timezone.utc)

    def test_january_rolls_back_year(self) -> None:
        previous_start, current_start = month_boundaries(datetime(2025, 1, 3, 8, 0, tzinfo=timezone.utc))

        assert current_start == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert previous_start == datetime(2024, 12, 1, tzinfo=timezone.utc)

    def test_naive_now_is_utc(self) -> None:
        _, current_start = month_boundaries(datetime(2024, 3, 31, 23, 59))
        assert current_start == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_keeps_timezone_of_now(self) -> None:
        istanbul = timezone(timedelta(hours=3))
        _, current_start = month_boundaries(datetime(2024, 10, 1, 1, 0, tzinfo=istanbul))
        assert current_start == datetime(2024, 10, 1, tzinfo=istanbul)


class TestLineageSelection:
    """Tests for grouping and canonical version selection."""

    def test_group_by_lineage(self) -> None:
        proposals = [
            make_proposal("A", 1, ProposalStatus.SENT, 1000),
            make_proposal("B", 1, ProposalStatus.DRAFT, 500),
            make_proposal("A", 2, ProposalStatus.APPROVED, 1200),
        ]

        groups = group_by_lineage(proposals)

        assert set(groups) == {"A", "B"}
        assert [p.version for p in groups["A"]] == [1, 2]

    def test_canonical_latest_is_highest_version(self) -> None:
        group = [
            make_proposal("A", 2, ProposalStatus.APPROVED, 1200),
            make_proposal("A", 3, ProposalStatus.DRAFT, 1300),
            make_proposal("A", 1, ProposalStatus.SENT, 1000),
        ]
        assert canonical_latest(group).version == 3

    def test_latest_approved_ignores_newer_non_approved(self) -> None:
        group = [
            make_proposal("A", 1, ProposalStatus.APPROVED, 900),
            make_proposal("A", 2, ProposalStatus.APPROVED, 1200),
            make_proposal("A", 3, ProposalStatus.DRAFT, 1300),
        ]
        assert latest_approved(group).total_amount == 1200

    def test_latest_approved_none(self) -> None:
        assert latest_approved([make_proposal("A", 1, ProposalStatus.SENT, 1000)]) is None

    def test_duplicate_version_tie_keeps_first(self) -> None:
        """Test equal version numbers resolve to the earliest record in input order."""
        group = [
            make_proposal("A", 2, ProposalStatus.SENT, 1000, record_id="first"),
            make_proposal("A", 2, ProposalStatus.REJECTED, 1100, record_id="second"),
        ]
        assert canonical_latest(group).id == "first"
        assert canonical_latest(list(reversed(group))).id == "second"


class TestComputePeriodMetrics:
    """Tests for per-period metrics."""

    def test_group_counts_as_active_and_approved(self) -> None:
        """Test a Draft on top of an Approved version counts in both buckets."""
        proposals = [
            make_proposal("A", 1, ProposalStatus.SENT, 1000),
            make_proposal("A", 2, ProposalStatus.APPROVED, 1200),
            make_proposal("A", 3, ProposalStatus.DRAFT, 1300),
        ]

        metrics = compute_period_metrics(proposals)

        assert metrics.active_quotes == 1
        assert metrics.approved_quotes_count == 1
        assert metrics.total_revenue == 1200

    def test_rejected_latest_is_not_active(self) -> None:
        proposals = [
            make_proposal("A", 1, ProposalStatus.SENT, 1000),
            make_proposal("A", 2, ProposalStatus.REJECTED, 1000),
        ]

        metrics = compute_period_metrics(proposals)

        assert metrics.active_quotes == 0
        assert metrics.approved_quotes_count == 0
        assert metrics.total_revenue == 0

    def test_each_group_counted_once(self) -> None:
        proposals = [
            make_proposal("A", 1, ProposalStatus.APPROVED, 1000),
            make_proposal("A", 2, ProposalStatus.APPROVED, 1500),
            make_proposal("B", 1, ProposalStatus.APPROVED, 300),
            make_proposal("C", 1, ProposalStatus.SENT, 800),
        ]

        metrics = compute_period_metrics(proposals)

        assert metrics.approved_quotes_count == 2
        assert metrics.total_revenue == 1800
        assert metrics.active_quotes == 1


class TestComputeDashboardMetrics:
    """Tests for compute_dashboard_metrics."""

    def test_empty_inputs(self) -> None:
        """Test empty collections give all-zero metrics."""
        assert compute_dashboard_metrics([], [], NOW) == DashboardMetrics()

    def test_periods_are_separated(self) -> None:
        proposals = [
            make_proposal("A", 1, ProposalStatus.SENT, 1000, THIS_MONTH),
            make_proposal("A", 2, ProposalStatus.APPROVED, 1200, THIS_MONTH),
            make_proposal("A", 3, ProposalStatus.DRAFT, 1300, THIS_MONTH),
            make_proposal("B", 1, ProposalStatus.APPROVED, 400, LAST_MONTH),
            make_proposal("C", 1, ProposalStatus.SENT, 250, LAST_MONTH),
            make_proposal("D", 1, ProposalStatus.APPROVED, 9999, TWO_MONTHS_AGO),
        ]
        customers = [Customer("c1"), Customer("c2"), Customer("c3")]

        metrics = compute_dashboard_metrics(proposals, customers, NOW)

        assert metrics.total_customers == 3
        assert metrics.active_quotes == 1
        assert metrics.approved_quotes_count == 1
        assert metrics.total_revenue == 1200
        assert metrics.active_quotes_previous == 1
        assert metrics.approved_quotes_count_previous == 1
        assert metrics.total_revenue_previous == 400

    def test_lineage_split_across_periods(self) -> None:
        """Test each period groups only its own records of a lineage."""
        proposals = [
            make_proposal("A", 1, ProposalStatus.APPROVED, 1000, LAST_MONTH),
            make_proposal("A", 2, ProposalStatus.DRAFT, 1100, THIS_MONTH),
        ]

        metrics = compute_dashboard_metrics(proposals, [], NOW)

        assert metrics.active_quotes == 1
        assert metrics.approved_quotes_count == 0
        assert metrics.approved_quotes_count_previous == 1
        assert metrics.total_revenue_previous == 1000
        assert metrics.active_quotes_previous == 0

    def test_period_start_is_inclusive(self) -> None:
        proposals = [
            make_proposal("A", 1, ProposalStatus.SENT, 1, datetime(2024, 10, 1, tzinfo=timezone.utc)),
            make_proposal("B", 1, ProposalStatus.SENT, 1, datetime(2024, 9, 1, tzinfo=timezone.utc)),
            make_proposal("C", 1, ProposalStatus.SENT, 1, datetime(2024, 8, 31, 23, 59, tzinfo=timezone.utc)),
        ]

        metrics = compute_dashboard_metrics(proposals, [], NOW)

        assert metrics.active_quotes == 1
        assert metrics.active_quotes_previous == 1

    def test_inputs_not_mutated_and_repeatable(self) -> None:
        proposals = [
            make_proposal("A", 2, ProposalStatus.APPROVED, 1200),
            make_proposal("A", 1, ProposalStatus.SENT, 1000),
        ]
        snapshot = list(proposals)

        first = compute_dashboard_metrics(proposals, [], NOW)
        second = compute_dashboard_metrics(proposals, [], NOW)

        assert first == second
        assert proposals == snapshot

    def test_changes(self) -> None:
        metrics = DashboardMetrics(
            active_quotes=3,
            active_quotes_previous=0,
            approved_quotes_count=0,
            approved_quotes_count_previous=0,
            total_revenue=1500,
            total_revenue_previous=1000,
        )

        changes = metrics.changes()

        assert set(changes) == {"active_quotes", "approved_quotes_count", "total_revenue"}
        assert changes["active_quotes"].indicator == ChangeIndicator.NEW
        assert changes["approved_quotes_count"].indicator == ChangeIndicator.NO_CHANGE
        assert changes["total_revenue"].percent == pytest.approx(50)


class TestPercentageChange:
    """Tests for calculate_percentage_change and format_change_text."""

    def test_increase(self) -> None:
        change = calculate_percentage_change(150, 120)
        assert change.indicator == ChangeIndicator.INCREASE
        assert change.percent == pytest.approx(25)
        assert format_change_text(change) == "+25.0% from last month"

    def test_decrease(self) -> None:
        change = calculate_percentage_change(90, 120)
        assert change.indicator == ChangeIndicator.DECREASE
        assert change.percent == pytest.approx(-25)
        assert format_change_text(change) == "-25.0% from last month"

    def test_equal_nonzero(self) -> None:
        assert calculate_percentage_change(5, 5) == PercentageChange(ChangeIndicator.NO_CHANGE, 0.0)

    def test_new_when_previous_zero(self) -> None:
        """Test a zero previous value with positive current is NEW, not a ratio."""
        change = calculate_percentage_change(3, 0)
        assert change == PercentageChange(ChangeIndicator.NEW, None)
        assert format_change_text(change) == "New"

    def test_both_zero_is_no_change(self) -> None:
        change = calculate_percentage_change(0, 0)
        assert change.indicator == ChangeIndicator.NO_CHANGE
        assert change.percent is None
        assert format_change_text(change) == "No change"


class TestFromRecord:
    """Tests for building records from stored dictionaries."""

    def test_camel_case_with_firestore_timestamp(self) -> None:
        proposal = ProposalVersion.from_record(
            {
                "id": "p1",
                "rootProposalId": "root-1",
                "version": 2,
                "status": "Approved",
                "totalAmount": 1234.5,
                "createdAt": {"seconds": 1727740800, "nanoseconds": 0},
            }
        )

        assert proposal.root_proposal_id == "root-1"
        assert proposal.status == ProposalStatus.APPROVED
        assert proposal.created_at == datetime(2024, 10, 1, tzinfo=timezone.utc)

    def test_snake_case_with_iso_string(self) -> None:
        proposal = ProposalVersion.from_record(
            {
                "id": "p2",
                "root_proposal_id": "root-2",
                "version": "1",
                "status": "sent",
                "total_amount": "99.9",
                "created_at": "2024-10-05T10:00:00Z",
            }
        )

        assert proposal.version == 1
        assert proposal.status == ProposalStatus.SENT
        assert proposal.total_amount == 99.9
        assert proposal.created_at.tzinfo is not None

    def test_missing_root_uses_own_id(self) -> None:
        proposal = ProposalVersion.from_record({"id": "p3", "createdAt": 1727740800})
        assert proposal.root_proposal_id == "p3"
        assert proposal.version == 1

    def test_unknown_status(self) -> None:
        with pytest.raises(ValueError):
            ProposalVersion.from_record({"id": "p4", "status": "Archived", "createdAt": 0})

    def test_missing_created_at(self) -> None:
        with pytest.raises(KeyError):
            ProposalVersion.from_record({"id": "p5"})

    def test_customer_from_record(self) -> None:
        assert Customer.from_record({"id": 7, "name": "Acme"}) == Customer("7")


class TestDuplicateVersions:
    """Tests for duplicate version detection."""

    def test_find_duplicates(self) -> None:
        proposals = [
            make_proposal("A", 1, ProposalStatus.SENT, 1),
            make_proposal("A", 1, ProposalStatus.DRAFT, 1, record_id="dup"),
            make_proposal("B", 1, ProposalStatus.SENT, 1),
        ]
        assert find_duplicate_versions(proposals) == [("A", 1)]

    def test_ensure_unique_versions_raises(self) -> None:
        proposals = [
            make_proposal("A", 3, ProposalStatus.SENT, 1),
            make_proposal("A", 3, ProposalStatus.DRAFT, 1, record_id="dup"),
        ]
        with pytest.raises(DuplicateVersionError) as exc_info:
            ensure_unique_versions(proposals)
        assert exc_info.value.duplicates == [("A", 3)]

    def test_ensure_unique_versions_passes(self) -> None:
        ensure_unique_versions([make_proposal("A", 1, ProposalStatus.SENT, 1)])
