"""Contract creation and explicit status changes."""

from datetime import date
from decimal import Decimal
from typing import Optional

from amc_engine.services.amc.domain import Contract, ContractStatus, ContractType
from amc_engine.services.amc.errors import InvalidScheduleParameters, InvalidStatusTransition
from amc_engine.services.amc.expiry import derive_status
from amc_engine.services.amc.renewal import apply_price_adjustment
from amc_engine.services.amc.schedule_generator import generate_schedule
from amc_engine.services.amc.visit_ledger import recompute_derived

# Expiry is not listed: it only happens through derive_status
ALLOWED_TRANSITIONS = {
    ContractStatus.DRAFT: {ContractStatus.PENDING, ContractStatus.ACTIVE, ContractStatus.CANCELLED},
    ContractStatus.PENDING: {ContractStatus.ACTIVE, ContractStatus.CANCELLED},
    ContractStatus.ACTIVE: {ContractStatus.SUSPENDED, ContractStatus.CANCELLED},
    ContractStatus.SUSPENDED: {ContractStatus.ACTIVE, ContractStatus.CANCELLED},
    ContractStatus.EXPIRED: {ContractStatus.CANCELLED},
    ContractStatus.CANCELLED: set(),
}

# Suspension, cancellation and expiry only follow an existing term
OPENING_STATUSES = (ContractStatus.DRAFT, ContractStatus.PENDING, ContractStatus.ACTIVE)


def open_contract(
    customer_id: str,
    engine_serial_number: str,
    start_date: date,
    end_date: date,
    number_of_visits: int,
    now,
    contract_type: ContractType = ContractType.AMC,
    number_of_oil_services: int = 0,
    contract_value: Decimal = Decimal("0"),
    status: ContractStatus = ContractStatus.DRAFT,
    decimal_places: int = 2,
    **details,
) -> Contract:
    """
    Create a contract with its initial visit schedule.

    ``details`` carries the optional asset and site fields of Contract
    (engine_model, kva, dg_make, terms, ...).
    """
    if ContractStatus(status) not in OPENING_STATUSES:
        raise InvalidStatusTransition(
            "new", ContractStatus(status).value, "Contracts open as draft, pending or active"
        )
    if number_of_oil_services < 0:
        raise InvalidScheduleParameters("Number of oil services cannot be negative")
    if Decimal(str(contract_value)) < 0:
        raise InvalidScheduleParameters("Contract value cannot be negative")

    schedule = generate_schedule(start_date, end_date, number_of_visits)
    contract = Contract(
        customer_id=customer_id,
        engine_serial_number=engine_serial_number,
        start_date=start_date,
        end_date=end_date,
        number_of_visits=number_of_visits,
        contract_type=ContractType(contract_type),
        number_of_oil_services=number_of_oil_services,
        contract_value=apply_price_adjustment(contract_value, None, decimal_places),
        status=ContractStatus(status),
        visit_schedule=schedule,
        created_at=now,
        **details,
    )
    recompute_derived(contract)
    contract.status = derive_status(now, contract.end_date, contract.status)
    return contract


def transition_status(
    contract: Contract,
    new_status: ContractStatus,
    now,
    reason: Optional[str] = None,
) -> ContractStatus:
    """
    Move a contract to ``new_status`` if the lifecycle allows it.

    The result goes through derive_status, so activating a contract whose
    term is already over leaves it expired.
    """
    current = derive_status(now, contract.end_date, contract.status)
    requested = ContractStatus(new_status)
    if requested == ContractStatus.EXPIRED:
        raise InvalidStatusTransition(
            current.value, requested.value, "Contracts expire from their end date, not on request"
        )
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current.value, requested.value)

    if reason:
        update = f"Status Update: {reason}"
        contract.terms = f"{contract.terms}\n\n{update}" if contract.terms else update
    contract.status = derive_status(now, contract.end_date, requested)
    return contract.status
