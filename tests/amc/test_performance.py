"""
Tests for per-contract performance figures.
"""

from datetime import date, datetime, timezone

from amc_engine.services.amc import (
    IssueSeverity,
    VisitCompletion,
    VisitIssue,
    complete_visit,
    contract_performance,
)
from tests.factories import ContractFactory


def _contract():
    return ContractFactory(
        start_date=date(2024, 1, 1),
        end_date=date(2025, 1, 1),
        now=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class TestContractPerformance:
    def test_mid_term_snapshot(self):
        contract = _contract()
        now = datetime(2024, 8, 1, tzinfo=timezone.utc)
        complete_visit(
            contract,
            0,
            VisitCompletion(
                service_report="Battery weak",
                issues=[
                    VisitIssue(description="Battery voltage low", severity=IssueSeverity.MEDIUM),
                    VisitIssue(description="Panel lamp", resolved=True),
                ],
            ),
            now,
        )

        performance = contract_performance(contract, now)

        assert performance.contract_progress == round(213 / 366 * 100, 1)
        assert performance.completion_rate == 25.0
        assert performance.days_until_expiry == 153
        assert performance.remaining_visits == 3
        assert performance.overdue_visits == 1
        assert performance.open_issues == 1

    def test_before_start(self):
        performance = contract_performance(_contract(), datetime(2023, 12, 1, tzinfo=timezone.utc))

        assert performance.contract_progress == 0.0
        assert performance.overdue_visits == 0

    def test_after_end(self):
        performance = contract_performance(_contract(), datetime(2025, 3, 1, tzinfo=timezone.utc))

        assert performance.contract_progress == 100.0
        assert performance.days_until_expiry == 0
        assert performance.overdue_visits == 4
