"""Rebuild the pending part of a visit schedule after plan changes."""

from datetime import date
from typing import List, Optional

from amc_engine.services.amc.domain import Contract, VisitRecord, as_date
from amc_engine.services.amc.errors import InvalidScheduleParameters, UnsafeRegeneration
from amc_engine.services.amc.schedule_generator import generate_schedule
from amc_engine.services.amc.visit_ledger import recompute_derived


def regenerate_schedule(
    contract: Contract,
    new_start: Optional[date] = None,
    new_end: Optional[date] = None,
    new_visit_count: Optional[int] = None,
) -> List[VisitRecord]:
    """
    Replace pending and cancelled visits with a fresh schedule.

    Completed visits are kept verbatim and count towards the new visit
    total, so only ``new_visit_count - completed`` visits are generated
    over the new term. Assignees and notes on discarded pending visits are
    lost; callers should warn before regenerating a contract that already
    has completed visits.

    Raises UnsafeRegeneration when fewer visits are requested than are
    already completed. Nothing on the contract changes unless the whole
    schedule could be built.
    """
    start = as_date(new_start) if new_start is not None else contract.start_date
    end = as_date(new_end) if new_end is not None else contract.end_date
    visit_count = new_visit_count if new_visit_count is not None else contract.number_of_visits

    completed = [v for v in contract.visit_schedule if v.is_completed]
    if visit_count < len(completed):
        raise UnsafeRegeneration(visit_count, len(completed))

    if visit_count < 1:
        raise InvalidScheduleParameters(f"Visit count must be at least 1, got {visit_count}")
    if end <= start:
        raise InvalidScheduleParameters(
            f"End date {end.isoformat()} must be after start date {start.isoformat()}"
        )

    fresh_count = visit_count - len(completed)
    fresh = generate_schedule(start, end, fresh_count) if fresh_count else []

    schedule = sorted(completed + fresh, key=lambda v: v.scheduled_date)

    contract.start_date = start
    contract.end_date = end
    contract.number_of_visits = visit_count
    contract.visit_schedule = schedule
    recompute_derived(contract)
    return schedule
