"""Contract expiry derivation.

Status is evaluated lazily: the store runs ``refresh_status`` whenever a
contract is loaded and before it is written, so there is no background
sweep. Only active contracts expire, and an expired contract is never
reactivated here.
"""

from datetime import date
from typing import Optional

from amc_engine.services.amc.domain import Contract, ContractStatus, as_date
from amc_engine.services.amc.events import ContractExpired


def derive_status(now, end_date: date, current_status: ContractStatus) -> ContractStatus:
    """Return ``expired`` for an active contract past its end date, else the input."""
    current_status = ContractStatus(current_status)
    if current_status == ContractStatus.ACTIVE and as_date(now) > as_date(end_date):
        return ContractStatus.EXPIRED
    return current_status


def refresh_status(contract: Contract, now) -> Optional[ContractExpired]:
    """
    Apply ``derive_status`` to a contract in place.

    Returns a ContractExpired fact when the status flipped. Pending visits
    and ``next_visit_date`` are left alone; cancelling them is the
    caller's decision.
    """
    derived = derive_status(now, contract.end_date, contract.status)
    if derived == contract.status:
        return None
    contract.status = derived
    return ContractExpired(contract_id=contract.contract_id)
