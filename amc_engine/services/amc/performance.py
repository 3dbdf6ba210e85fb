"""Per-contract service performance figures."""

from dataclasses import dataclass

from amc_engine.services.amc.domain import Contract, as_date


@dataclass
class ContractPerformance:
    """Snapshot of how a contract is being serviced."""

    contract_progress: float
    completion_rate: float
    days_until_expiry: int
    remaining_visits: int
    overdue_visits: int
    open_issues: int


def contract_performance(contract: Contract, now) -> ContractPerformance:
    today = as_date(now)
    term_days = (contract.end_date - contract.start_date).days
    elapsed_days = (today - contract.start_date).days
    progress = 0.0
    if term_days > 0:
        progress = max(0.0, min(100.0, elapsed_days / term_days * 100))

    completion_rate = 0.0
    if contract.number_of_visits > 0:
        completion_rate = round(contract.completed_visits / contract.number_of_visits * 100, 1)

    pending = contract.pending_visits
    open_issues = sum(
        1
        for visit in contract.visit_schedule
        if visit.is_completed
        for issue in visit.issues
        if not issue.resolved
    )

    return ContractPerformance(
        contract_progress=round(progress, 1),
        completion_rate=completion_rate,
        days_until_expiry=contract.days_until_expiry(today),
        remaining_visits=len(pending),
        overdue_visits=sum(1 for v in pending if v.scheduled_date < today),
        open_issues=open_issues,
    )
