"""
AMC contract endpoints.

Every mutation follows the same shape: load the contract, apply one
engine operation in memory, and save it back against the
``expected_version`` the client sent. Engine failures propagate to the
RFC 7807 handlers in amc_engine.exceptions.
"""

from fastapi import APIRouter, Query, status
from datetime import date
from typing import Optional
import uuid
import logging

from amc_engine.api.deps import ClockDep, Store
from amc_engine.config import settings
from amc_engine.schemas.amc import (
    AdHocVisitRequest,
    AdHocVisitResponse,
    AssignVisitRequest,
    BulkAssignVisitsRequest,
    BulkRenewRequest,
    BulkRenewResponse,
    BulkRenewResult,
    CancelVisitRequest,
    CompleteVisitRequest,
    ContractCreate,
    ContractListResponse,
    ContractPageResponse,
    ContractResponse,
    PerformanceResponse,
    RegenerateScheduleRequest,
    RenewalError,
    RenewalParams,
    RescheduleVisitRequest,
    StatsResponse,
    StatusUpdateRequest,
    VisitCompletedResponse,
)
from amc_engine.services.amc import (
    AMCError,
    ContractNotFound,
    ContractStatus,
    add_ad_hoc_visit,
    assign_visit,
    assign_visits,
    cancel_visit,
    complete_visit,
    contract_performance,
    open_contract,
    plan_bulk_renewal,
    plan_renewal,
    regenerate_schedule,
    reschedule_visit,
    transition_status,
)
from amc_engine.services.contract_store import StoredContract

logger = logging.getLogger(__name__)

router = APIRouter()


def _renewal_status() -> ContractStatus:
    return ContractStatus(settings.RENEWAL_DEFAULT_STATUS)


def _list_response(stored: list[StoredContract], now) -> ContractListResponse:
    return ContractListResponse(
        items=[ContractResponse.from_stored(s, now) for s in stored],
        total=len(stored),
    )


@router.get("", response_model=ContractPageResponse)
async def list_contracts(
    store: Store,
    clock: ClockDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=500),
    search: Optional[str] = Query(None, max_length=100),
    status_filter: Optional[ContractStatus] = Query(None, alias="status"),
    customer_id: Optional[str] = None,
    start_date_from: Optional[date] = None,
    start_date_to: Optional[date] = None,
):
    """List contracts with pagination and filtering. ``status`` is the derived status."""
    result = await store.list(
        search=search,
        status=status_filter,
        customer_id=customer_id,
        start_from=start_date_from,
        start_to=start_date_to,
        page=page,
        page_size=page_size,
    )
    now = clock.now()
    return ContractPageResponse(
        items=[ContractResponse.from_stored(s, now) for s in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.post("", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def create_contract(body: ContractCreate, store: Store, clock: ClockDep):
    """Open a contract and generate its visit schedule."""
    data = body.model_dump()
    contract = open_contract(
        now=clock.now(),
        decimal_places=settings.CURRENCY_DECIMAL_PLACES,
        **data,
    )
    stored = await store.add(contract)
    return ContractResponse.from_stored(stored, clock.now())


@router.get("/stats", response_model=StatsResponse)
async def get_contract_stats(
    store: Store,
    days: Optional[int] = Query(None, ge=0, le=3650),
):
    """Portfolio overview: counts by status, expiring soon, active value, visit completion."""
    window = settings.EXPIRING_SOON_DAYS if days is None else days
    stats = await store.stats(window)
    return StatsResponse.build(stats, window, settings.CURRENCY_DECIMAL_PLACES)


@router.get("/expiring", response_model=ContractListResponse)
async def list_expiring_contracts(
    store: Store,
    clock: ClockDep,
    days: Optional[int] = Query(None, ge=0, le=3650),
):
    """Active contracts whose term ends within ``days`` (default from settings)."""
    window = settings.EXPIRING_SOON_DAYS if days is None else days
    return _list_response(await store.list_expiring(window), clock.now())


@router.get("/visits-due", response_model=ContractListResponse)
async def list_visits_due(
    store: Store,
    clock: ClockDep,
    days: Optional[int] = Query(None, ge=0, le=365),
):
    """Active contracts with a pending visit due within ``days``, overdue ones included."""
    window = settings.VISITS_DUE_DAYS if days is None else days
    return _list_response(await store.list_visits_due(window), clock.now())


@router.post("/bulk-renew", response_model=BulkRenewResponse)
async def bulk_renew_contracts(body: BulkRenewRequest, store: Store, clock: ClockDep):
    """
    Renew several contracts with the same adjustments.

    Each contract succeeds or fails on its own; the response lists both.
    """
    now = clock.now()
    contract_ids = list(dict.fromkeys(body.contract_ids))
    found = {s.contract.contract_id: s for s in await store.get_many(contract_ids)}
    request = body.params.to_domain()

    sources = [found[cid].contract for cid in contract_ids if cid in found]
    outcomes = {
        outcome.source_id: outcome
        for outcome in plan_bulk_renewal(
            sources,
            request,
            now,
            settings.CURRENCY_DECIMAL_PLACES,
            _renewal_status(),
        )
    }

    results = []
    for cid in contract_ids:
        if cid not in found:
            results.append(BulkRenewResult(
                source_id=cid,
                succeeded=False,
                error=RenewalError.from_error(ContractNotFound(cid)),
            ))
            continue

        outcome = outcomes[cid]
        if not outcome.succeeded:
            results.append(BulkRenewResult(
                source_id=cid, succeeded=False, error=RenewalError.from_error(outcome.error)
            ))
            continue

        try:
            record = await store.add_renewal(found[cid].contract, outcome.contract)
        except AMCError as e:
            results.append(BulkRenewResult(
                source_id=cid, succeeded=False, error=RenewalError.from_error(e)
            ))
            continue
        results.append(BulkRenewResult(
            source_id=cid,
            succeeded=True,
            contract=ContractResponse.from_stored(record.stored, now),
        ))

    renewed = sum(1 for r in results if r.succeeded)
    logger.info(f"Bulk renewal: {renewed} renewed, {len(results) - renewed} failed")
    return BulkRenewResponse(renewed=renewed, failed=len(results) - renewed, results=results)


@router.get("/{contract_id}", response_model=ContractResponse)
async def get_contract(contract_id: uuid.UUID, store: Store, clock: ClockDep):
    """Get a single contract with its current derived status."""
    return ContractResponse.from_stored(await store.get(contract_id), clock.now())


@router.get("/{contract_id}/performance", response_model=PerformanceResponse)
async def get_contract_performance(contract_id: uuid.UUID, store: Store, clock: ClockDep):
    stored = await store.get(contract_id)
    return PerformanceResponse.build(stored, contract_performance(stored.contract, clock.now()))


@router.post("/{contract_id}/visits/{visit_index}/complete", response_model=VisitCompletedResponse)
async def complete_contract_visit(
    contract_id: uuid.UUID,
    visit_index: int,
    body: CompleteVisitRequest,
    store: Store,
    clock: ClockDep,
):
    """Record the technician's close-out of a scheduled visit."""
    stored = await store.get(contract_id)
    completed = complete_visit(stored.contract, visit_index, body.to_domain(), clock.now())
    stored = await store.save(stored.contract, body.expected_version)
    logger.info(
        f"Visit {visit_index} completed on contract {stored.contract.contract_number} "
        f"({stored.contract.completed_visits}/{stored.contract.number_of_visits})"
    )
    return VisitCompletedResponse(
        contract=ContractResponse.from_stored(stored, clock.now()),
        visit_index=completed.visit_index,
        completed_date=completed.completed_date,
    )


@router.post("/{contract_id}/visits/{visit_index}/assign", response_model=ContractResponse)
async def assign_contract_visit(
    contract_id: uuid.UUID,
    visit_index: int,
    body: AssignVisitRequest,
    store: Store,
    clock: ClockDep,
):
    """Put a technician on a pending visit."""
    stored = await store.get(contract_id)
    assign_visit(stored.contract, visit_index, body.assigned_to)
    stored = await store.save(stored.contract, body.expected_version)
    return ContractResponse.from_stored(stored, clock.now())


@router.post("/{contract_id}/visits/assign", response_model=ContractResponse)
async def assign_contract_visits(
    contract_id: uuid.UUID,
    body: BulkAssignVisitsRequest,
    store: Store,
    clock: ClockDep,
):
    """Assign several pending visits in one write. Any bad index rejects the whole request."""
    stored = await store.get(contract_id)
    assign_visits(stored.contract, body.to_domain())
    stored = await store.save(stored.contract, body.expected_version)
    logger.info(
        f"Assigned {len(body.assignments)} visits on contract {stored.contract.contract_number}"
    )
    return ContractResponse.from_stored(stored, clock.now())


@router.post(
    "/{contract_id}/visits/ad-hoc",
    response_model=AdHocVisitResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_contract_ad_hoc_visit(
    contract_id: uuid.UUID,
    body: AdHocVisitRequest,
    store: Store,
    clock: ClockDep,
):
    """Add an unscheduled visit (breakdown, emergency call-out)."""
    stored = await store.get(contract_id)
    visit_index = add_ad_hoc_visit(stored.contract, body.scheduled_date, body.reason, body.assigned_to)
    stored = await store.save(stored.contract, body.expected_version)
    return AdHocVisitResponse(
        contract=ContractResponse.from_stored(stored, clock.now()), visit_index=visit_index
    )


@router.post("/{contract_id}/visits/{visit_index}/cancel", response_model=ContractResponse)
async def cancel_contract_visit(
    contract_id: uuid.UUID,
    visit_index: int,
    body: CancelVisitRequest,
    store: Store,
    clock: ClockDep,
):
    stored = await store.get(contract_id)
    cancel_visit(stored.contract, visit_index)
    stored = await store.save(stored.contract, body.expected_version)
    return ContractResponse.from_stored(stored, clock.now())


@router.post("/{contract_id}/visits/{visit_index}/reschedule", response_model=ContractResponse)
async def reschedule_contract_visit(
    contract_id: uuid.UUID,
    visit_index: int,
    body: RescheduleVisitRequest,
    store: Store,
    clock: ClockDep,
):
    stored = await store.get(contract_id)
    reschedule_visit(stored.contract, visit_index, body.new_date, body.note)
    stored = await store.save(stored.contract, body.expected_version)
    return ContractResponse.from_stored(stored, clock.now())


@router.post("/{contract_id}/regenerate-visits", response_model=ContractResponse)
async def regenerate_contract_visits(
    contract_id: uuid.UUID,
    body: RegenerateScheduleRequest,
    store: Store,
    clock: ClockDep,
):
    """
    Rebuild the pending schedule after the term or visit count changed.

    Completed visits are kept. Pending visits, along with their assignees
    and notes, are replaced.
    """
    stored = await store.get(contract_id)
    discarded = stored.contract.pending_visits
    dropped_assignments = sum(1 for v in discarded if v.assigned_to)
    regenerate_schedule(
        stored.contract,
        new_start=body.new_start_date,
        new_end=body.new_end_date,
        new_visit_count=body.new_visit_count,
    )
    stored = await store.save(stored.contract, body.expected_version)
    logger.info(
        f"Regenerated schedule for {stored.contract.contract_number}: "
        f"{len(discarded)} pending visits replaced, {stored.contract.completed_visits} completed kept"
    )
    if dropped_assignments:
        logger.warning(
            f"Regeneration of {stored.contract.contract_number} dropped {dropped_assignments} technician assignments"
        )
    return ContractResponse.from_stored(stored, clock.now())


@router.patch("/{contract_id}/status", response_model=ContractResponse)
async def update_contract_status(
    contract_id: uuid.UUID,
    body: StatusUpdateRequest,
    store: Store,
    clock: ClockDep,
):
    stored = await store.get(contract_id)
    previous = stored.contract.status
    transition_status(stored.contract, body.status, clock.now(), body.reason)
    stored = await store.save(stored.contract, body.expected_version)
    logger.info(
        f"Contract {stored.contract.contract_number} status {previous.value} -> {stored.contract.status.value}"
    )
    return ContractResponse.from_stored(stored, clock.now())


@router.post(
    "/{contract_id}/renew",
    response_model=ContractResponse,
    status_code=status.HTTP_201_CREATED,
)
async def renew_contract(
    contract_id: uuid.UUID,
    body: RenewalParams,
    store: Store,
    clock: ClockDep,
):
    """Create the successor contract for the next term. The source is left unchanged."""
    source = await store.get(contract_id)
    successor = plan_renewal(
        source.contract,
        body.to_domain(contract_id),
        clock.now(),
        settings.CURRENCY_DECIMAL_PLACES,
        _renewal_status(),
    )
    record = await store.add_renewal(source.contract, successor)
    return ContractResponse.from_stored(record.stored, clock.now())
