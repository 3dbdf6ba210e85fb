"""
Visit schedule generation.

Visits are spread at a whole-month interval across the contract term:

    interval = floor(months_between(start, end) / visit_count)
    visit i (1-indexed) = start + i * interval months

The first visit falls one interval after the start date, never on it. When
the term is not an exact multiple of the interval the last visit lands
before the end date; that shortfall is reported by
``schedule_coverage_gap`` and deliberately not corrected.
"""

from datetime import date
from typing import List

from dateutil.relativedelta import relativedelta

from amc_engine.services.amc.domain import VisitRecord, VisitStatus, as_date
from amc_engine.services.amc.errors import InvalidScheduleParameters


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` up to ``end``."""
    delta = relativedelta(as_date(end), as_date(start))
    return delta.years * 12 + delta.months


def interval_months(start: date, end: date, visit_count: int) -> int:
    """Months between consecutive visits. Validates the inputs."""
    start, end = as_date(start), as_date(end)
    if visit_count is None or visit_count <= 0:
        raise InvalidScheduleParameters(f"Visit count must be at least 1, got {visit_count}")
    if end <= start:
        raise InvalidScheduleParameters(
            f"End date {end.isoformat()} must be after start date {start.isoformat()}"
        )

    total = months_between(start, end)
    interval = total // visit_count
    if interval == 0:
        raise InvalidScheduleParameters(
            f"A term of {total} whole months cannot hold {visit_count} visits"
        )
    return interval


def generate_schedule(start: date, end: date, visit_count: int) -> List[VisitRecord]:
    """Build ``visit_count`` pending, unassigned visits in date order."""
    start = as_date(start)
    interval = interval_months(start, end, visit_count)
    return [
        VisitRecord(
            scheduled_date=start + relativedelta(months=i * interval),
            status=VisitStatus.PENDING,
        )
        for i in range(1, visit_count + 1)
    ]


def schedule_coverage_gap(start: date, end: date, visit_count: int) -> int:
    """Days between the last generated visit and ``end``."""
    start, end = as_date(start), as_date(end)
    interval = interval_months(start, end, visit_count)
    last_visit = start + relativedelta(months=visit_count * interval)
    return (end - last_visit).days
