"""
Renewal planning.

A renewal never edits the source contract: it produces a new, unsaved
successor that covers the following term. Planning is deterministic for
fixed inputs, including ``now``; identity (id, contract number) is
assigned later by the store.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from amc_engine.services.amc.domain import (
    Contract,
    ContractStatus,
    PriceAdjustment,
    PriceAdjustmentType,
    RenewalRequest,
)
from amc_engine.services.amc.errors import AMCError, InvalidRenewalRequest
from amc_engine.services.amc.schedule_generator import generate_schedule
from amc_engine.services.amc.visit_ledger import recompute_derived

RENEWAL_STATUSES = (ContractStatus.DRAFT, ContractStatus.PENDING)


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def apply_price_adjustment(
    value: Decimal,
    adjustment: Optional[PriceAdjustment],
    decimal_places: int = 2,
) -> Decimal:
    """
    Adjust a contract value and round it to the currency's smallest unit.

    Percentage adjustments scale the value (``-10`` is a 10% discount);
    fixed adjustments add a signed amount.
    """
    amount = _to_decimal(value)
    if adjustment is not None:
        delta = _to_decimal(adjustment.value)
        if PriceAdjustmentType(adjustment.type) == PriceAdjustmentType.PERCENTAGE:
            amount = amount * (Decimal(1) + delta / Decimal(100))
        else:
            amount = amount + delta

    quantum = Decimal(1).scaleb(-decimal_places)
    amount = amount.quantize(quantum, rounding=ROUND_HALF_UP)
    if amount < 0:
        raise InvalidRenewalRequest(f"Price adjustment produces a negative contract value ({amount})")
    return amount


def plan_renewal(
    source: Contract,
    request: RenewalRequest,
    now,
    decimal_places: int = 2,
    default_status: ContractStatus = ContractStatus.DRAFT,
) -> Contract:
    """Build the successor of ``source`` for the next term."""
    status = ContractStatus(request.status or default_status)
    if status not in RENEWAL_STATUSES:
        raise InvalidRenewalRequest(
            f"A renewed contract starts as draft or pending, not {status.value}"
        )

    new_start = request.new_start_date or source.end_date
    # Calendar duration, so a one-year term stays one year across leap days
    new_end = request.new_end_date or new_start + relativedelta(source.end_date, source.start_date)
    visit_count = (
        request.new_visit_count if request.new_visit_count is not None else source.number_of_visits
    )

    schedule = generate_schedule(new_start, new_end, visit_count)
    contract_value = apply_price_adjustment(
        source.contract_value, request.price_adjustment, decimal_places
    )

    successor = Contract(
        customer_id=source.customer_id,
        engine_serial_number=source.engine_serial_number,
        start_date=new_start,
        end_date=new_end,
        number_of_visits=visit_count,
        contract_type=source.contract_type,
        number_of_oil_services=source.number_of_oil_services,
        contract_value=contract_value,
        status=status,
        visit_schedule=schedule,
        engine_model=source.engine_model,
        kva=source.kva,
        dg_make=source.dg_make,
        date_of_commissioning=source.date_of_commissioning,
        customer_address=source.customer_address,
        contact_person_name=source.contact_person_name,
        contact_number=source.contact_number,
        terms=request.updated_terms or source.terms,
        renewed_from_id=source.contract_id,
        created_at=now,
    )
    return recompute_derived(successor)


@dataclass
class RenewalOutcome:
    """Result of planning one contract in a bulk renewal."""

    source_id: Optional[uuid.UUID]
    contract: Optional[Contract] = None
    error: Optional[AMCError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def plan_bulk_renewal(
    sources: Iterable[Contract],
    request: RenewalRequest,
    now,
    decimal_places: int = 2,
    default_status: ContractStatus = ContractStatus.DRAFT,
) -> List[RenewalOutcome]:
    """
    Plan a successor for every source independently.

    One source failing (bad dates, negative price) is recorded in its
    outcome and does not stop the rest.
    """
    outcomes = []
    for source in sources:
        try:
            successor = plan_renewal(source, request, now, decimal_places, default_status)
        except AMCError as exc:
            outcomes.append(RenewalOutcome(source_id=source.contract_id, error=exc))
        else:
            outcomes.append(RenewalOutcome(source_id=source.contract_id, contract=successor))
    return outcomes
