"""
Per-visit bookkeeping on a contract's schedule.

Visits are never removed: cancelling is a status change so the schedule
keeps its audit history. Each operation checks its preconditions before
touching the contract and finishes by recomputing the derived fields.
"""

from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional

from amc_engine.services.amc.domain import (
    Contract,
    VisitCompletion,
    VisitRecord,
    VisitStatus,
    as_date,
)
from amc_engine.services.amc.errors import VisitAlreadyFinalized, VisitNotFound
from amc_engine.services.amc.events import VisitCompleted


def recompute_derived(contract: Contract) -> Contract:
    """Re-establish ``completed_visits`` and ``next_visit_date`` from the schedule."""
    contract.completed_visits = sum(1 for v in contract.visit_schedule if v.is_completed)
    pending_dates = [v.scheduled_date for v in contract.visit_schedule if v.is_pending]
    contract.next_visit_date = min(pending_dates) if pending_dates else None
    return contract


def _pending_visit(contract: Contract, visit_index: int) -> VisitRecord:
    if visit_index is None or not 0 <= visit_index < len(contract.visit_schedule):
        raise VisitNotFound(visit_index, len(contract.visit_schedule))
    visit = contract.visit_schedule[visit_index]
    if not visit.is_pending:
        raise VisitAlreadyFinalized(visit_index, visit.status.value)
    return visit


def complete_visit(
    contract: Contract,
    visit_index: int,
    completion: VisitCompletion,
    now,
) -> VisitCompleted:
    """Close out a pending visit and return the VisitCompleted fact."""
    visit = _pending_visit(contract, visit_index)

    completed_date = completion.completed_date or now
    signature = completion.customer_signature
    if signature is not None and not signature.strip():
        signature = None

    visit.status = VisitStatus.COMPLETED
    visit.completed_date = completed_date
    visit.service_report = completion.service_report
    visit.issues = [replace(issue) for issue in completion.issues]
    visit.next_visit_recommendations = completion.next_visit_recommendations
    if signature is not None:
        visit.customer_signature = signature
    if completion.assigned_to is not None:
        visit.assigned_to = completion.assigned_to

    recompute_derived(contract)
    return VisitCompleted(
        contract_id=contract.contract_id,
        visit_index=visit_index,
        completed_date=completed_date,
    )


def add_ad_hoc_visit(
    contract: Contract,
    scheduled_date: date,
    reason: str,
    assigned_to: Optional[str] = None,
) -> int:
    """
    Append an unscheduled (breakdown, emergency) visit.

    ``number_of_visits`` describes the plan and is left as is. Returns the
    index of the new visit.
    """
    contract.visit_schedule.append(
        VisitRecord(
            scheduled_date=as_date(scheduled_date),
            status=VisitStatus.PENDING,
            assigned_to=assigned_to,
            ad_hoc=True,
            notes=reason,
        )
    )
    recompute_derived(contract)
    return len(contract.visit_schedule) - 1


def cancel_visit(contract: Contract, visit_index: int) -> VisitRecord:
    visit = _pending_visit(contract, visit_index)
    visit.status = VisitStatus.CANCELLED
    recompute_derived(contract)
    return visit


def reschedule_visit(
    contract: Contract,
    visit_index: int,
    new_date: date,
    note: Optional[str] = None,
) -> VisitRecord:
    """Move a pending visit to another day."""
    visit = _pending_visit(contract, visit_index)
    visit.scheduled_date = as_date(new_date)
    if note:
        visit.notes = f"{visit.notes}\n{note}" if visit.notes else note
    recompute_derived(contract)
    return visit


def assign_visit(contract: Contract, visit_index: int, user_id: str) -> VisitRecord:
    """Put a technician on a pending visit, replacing any earlier assignee."""
    visit = _pending_visit(contract, visit_index)
    visit.assigned_to = user_id
    return visit


def assign_visits(contract: Contract, assignments: Dict[int, str]) -> List[VisitRecord]:
    """
    Assign several pending visits at once.

    Every index is checked first; one bad index leaves all visits as they were.
    """
    visits = [(_pending_visit(contract, index), user_id) for index, user_id in assignments.items()]
    for visit, user_id in visits:
        visit.assigned_to = user_id
    return [visit for visit, _ in visits]
