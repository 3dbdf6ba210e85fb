"""AMC contract persistence with optimistic concurrency.

Every write is a compare-and-swap on the row's ``version``: the caller
reads a contract together with its version, mutates it in memory with the
engine, and saves it back conditionally. A version mismatch raises
StaleContractVersion; retrying (re-read and reapply) is up to the caller.

Expiry is evaluated here on every load and before every write, so a
stored contract never needs a background sweep to become expired.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
import logging
import uuid

from sqlalchemy import Integer, and_, case, cast, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from amc_engine.models.amc_contract import AMCContract
from amc_engine.services.amc.domain import (
    Contract,
    ContractStatus,
    ContractType,
    IssueSeverity,
    VisitIssue,
    VisitRecord,
    VisitStatus,
    as_date,
)
from amc_engine.services.amc.errors import (
    ContractNotFound,
    ReferentialIntegrityViolation,
    StaleContractVersion,
)
from amc_engine.services.amc.events import ContractExpired, ContractRenewed
from amc_engine.services.amc.expiry import derive_status, refresh_status
from amc_engine.services.amc.ports import Clock, CustomerDirectory, UserDirectory

logger = logging.getLogger(__name__)

CONTRACT_NUMBER_ATTEMPTS = 3


@dataclass
class StoredContract:
    """A contract as read from or written to the store."""

    contract: Contract
    version: int
    expired: Optional[ContractExpired] = None


@dataclass
class RenewalRecord:
    stored: StoredContract
    renewed: ContractRenewed


@dataclass
class ContractPage:
    items: List[StoredContract]
    total: int
    page: int
    page_size: int


@dataclass
class ContractStats:
    """Portfolio overview. Lapsed active contracts count as expired."""

    total: int
    by_status: Dict[str, int]
    expiring_soon: int
    active_value_total: Decimal
    active_value_average: Decimal
    visit_completion_rate: int


# ========================
# Row <-> aggregate mapping
# ========================


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def visit_to_json(visit: VisitRecord) -> dict:
    return {
        "scheduled_date": visit.scheduled_date.isoformat(),
        "status": visit.status.value,
        "completed_date": _iso(visit.completed_date),
        "assigned_to": visit.assigned_to,
        "ad_hoc": visit.ad_hoc,
        "notes": visit.notes,
        "service_report": visit.service_report,
        "issues": [
            {
                "description": issue.description,
                "severity": IssueSeverity(issue.severity).value,
                "resolved": issue.resolved,
                "follow_up_required": issue.follow_up_required,
            }
            for issue in visit.issues
        ],
        "customer_signature": visit.customer_signature,
        "next_visit_recommendations": visit.next_visit_recommendations,
    }


def visit_from_json(data: dict) -> VisitRecord:
    completed = data.get("completed_date")
    return VisitRecord(
        scheduled_date=date.fromisoformat(data["scheduled_date"]),
        status=VisitStatus(data.get("status", VisitStatus.PENDING.value)),
        completed_date=datetime.fromisoformat(completed) if completed else None,
        assigned_to=data.get("assigned_to"),
        ad_hoc=bool(data.get("ad_hoc", False)),
        notes=data.get("notes"),
        service_report=data.get("service_report"),
        issues=[
            VisitIssue(
                description=issue["description"],
                severity=IssueSeverity(issue.get("severity", IssueSeverity.LOW.value)),
                resolved=bool(issue.get("resolved", False)),
                follow_up_required=bool(issue.get("follow_up_required", False)),
            )
            for issue in data.get("issues") or []
        ],
        customer_signature=data.get("customer_signature"),
        next_visit_recommendations=data.get("next_visit_recommendations"),
    )


def row_to_contract(row: AMCContract) -> Contract:
    return Contract(
        contract_id=row.id,
        contract_number=row.contract_number,
        customer_id=row.customer_id,
        engine_serial_number=row.engine_serial_number,
        start_date=row.start_date,
        end_date=row.end_date,
        number_of_visits=row.number_of_visits,
        contract_type=ContractType(row.contract_type),
        number_of_oil_services=row.number_of_oil_services or 0,
        contract_value=Decimal(str(row.contract_value or 0)),
        status=ContractStatus(row.status),
        visit_schedule=[visit_from_json(v) for v in row.visit_schedule or []],
        completed_visits=row.completed_visits or 0,
        next_visit_date=row.next_visit_date,
        engine_model=row.engine_model,
        kva=row.kva,
        dg_make=row.dg_make,
        date_of_commissioning=row.date_of_commissioning,
        customer_address=row.customer_address,
        contact_person_name=row.contact_person_name,
        contact_number=row.contact_number,
        terms=row.terms,
        renewed_from_id=row.renewed_from_id,
        created_at=row.created_at,
    )


def contract_values(contract: Contract) -> dict:
    """Column values for every mutable field of the aggregate."""
    return {
        "contract_type": ContractType(contract.contract_type).value,
        "customer_id": contract.customer_id,
        "customer_address": contract.customer_address,
        "contact_person_name": contract.contact_person_name,
        "contact_number": contract.contact_number,
        "engine_serial_number": contract.engine_serial_number,
        "engine_model": contract.engine_model,
        "kva": contract.kva,
        "dg_make": contract.dg_make,
        "date_of_commissioning": contract.date_of_commissioning,
        "start_date": contract.start_date,
        "end_date": contract.end_date,
        "number_of_visits": contract.number_of_visits,
        "number_of_oil_services": contract.number_of_oil_services,
        "contract_value": contract.contract_value,
        "terms": contract.terms,
        "status": ContractStatus(contract.status).value,
        "completed_visits": contract.completed_visits,
        "next_visit_date": contract.next_visit_date,
        "visit_schedule": [visit_to_json(v) for v in contract.visit_schedule],
        "renewed_from_id": contract.renewed_from_id,
    }


# ========================
# Store
# ========================


class ContractStore:
    """
    Async repository for AMC contracts.

    Usage:
        store = ContractStore(db, clock, customers, users)
        stored = await store.get(contract_id)
        complete_visit(stored.contract, 0, completion, clock.now())
        stored = await store.save(stored.contract, stored.version)
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        customers: CustomerDirectory,
        users: UserDirectory,
        number_prefix: str = "AMC",
    ):
        self.db = db
        self.clock = clock
        self.customers = customers
        self.users = users
        self.number_prefix = number_prefix

    def _load(self, row: AMCContract) -> StoredContract:
        contract = row_to_contract(row)
        expired = refresh_status(contract, self.clock.now())
        if expired is not None:
            logger.info(f"Contract {row.contract_number} lapsed past {row.end_date}, derived status expired")
        return StoredContract(contract=contract, version=row.version, expired=expired)

    def _check_references(self, contract: Contract) -> None:
        if not self.customers.exists(contract.customer_id):
            raise ReferentialIntegrityViolation("customer", str(contract.customer_id))
        for visit in contract.visit_schedule:
            if visit.assigned_to is not None and not self.users.exists(visit.assigned_to):
                raise ReferentialIntegrityViolation("user", str(visit.assigned_to))

    async def _next_contract_number(self) -> str:
        year = self.clock.now().year
        prefix = f"{self.number_prefix}-{year}-"
        # Numeric max: past 9999 the text order no longer matches the sequence
        sequence_expr = cast(func.substr(AMCContract.contract_number, len(prefix) + 1), Integer)
        result = await self.db.execute(
            select(func.max(sequence_expr)).where(AMCContract.contract_number.like(f"{prefix}%"))
        )
        last = result.scalar()
        return f"{prefix}{(last or 0) + 1:04d}"

    async def get(self, contract_id: uuid.UUID) -> StoredContract:
        result = await self.db.execute(
            select(AMCContract)
            .where(AMCContract.id == contract_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ContractNotFound(contract_id)
        return self._load(row)

    async def get_many(self, contract_ids: Sequence[uuid.UUID]) -> List[StoredContract]:
        if not contract_ids:
            return []
        result = await self.db.execute(
            select(AMCContract)
            .where(AMCContract.id.in_(list(contract_ids)))
            .execution_options(populate_existing=True)
        )
        return [self._load(row) for row in result.scalars().all()]

    async def add(self, contract: Contract) -> StoredContract:
        """Insert a new contract, assigning its id and contract number."""
        self._check_references(contract)
        now = self.clock.now()
        values = contract_values(contract)
        values["status"] = derive_status(now, contract.end_date, contract.status).value

        for attempt in range(1, CONTRACT_NUMBER_ATTEMPTS + 1):
            contract_id = contract.contract_id or uuid.uuid4()
            number = contract.contract_number or await self._next_contract_number()
            row = AMCContract(id=contract_id, contract_number=number, version=1, **values)
            if contract.created_at is not None:
                row.created_at = contract.created_at
            self.db.add(row)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                if contract.contract_number or attempt == CONTRACT_NUMBER_ATTEMPTS:
                    raise
                logger.warning(f"Contract number {number} taken, retrying ({attempt}/{CONTRACT_NUMBER_ATTEMPTS})")
                continue

            contract.contract_id = contract_id
            contract.contract_number = number
            expired = refresh_status(contract, now)
            logger.info(f"Created AMC contract {number} ({contract.number_of_visits} visits)")
            return StoredContract(contract=contract, version=1, expired=expired)

    async def save(self, contract: Contract, expected_version: int) -> StoredContract:
        """Write ``contract`` only if the stored row is still at ``expected_version``."""
        if contract.contract_id is None:
            raise ContractNotFound(None)

        self._check_references(contract)
        # The caller's contract only takes the derived status once the write lands
        now = self.clock.now()
        values = contract_values(contract)
        values["status"] = derive_status(now, contract.end_date, contract.status).value

        result = await self.db.execute(
            update(AMCContract)
            .where(AMCContract.id == contract.contract_id, AMCContract.version == expected_version)
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            exists = await self.db.execute(select(AMCContract.id).where(AMCContract.id == contract.contract_id))
            if exists.scalar_one_or_none() is None:
                raise ContractNotFound(contract.contract_id)
            logger.info(f"Stale write rejected for contract {contract.contract_number} at v{expected_version}")
            raise StaleContractVersion(contract.contract_id, expected_version)

        await self.db.commit()
        expired = refresh_status(contract, now)
        return StoredContract(contract=contract, version=expected_version + 1, expired=expired)

    async def add_renewal(self, source: Contract, successor: Contract) -> RenewalRecord:
        """Persist a planned successor and return the ContractRenewed fact."""
        stored = await self.add(successor)
        renewed = ContractRenewed(source_id=source.contract_id, new_contract_id=stored.contract.contract_id)
        logger.info(f"Renewed {source.contract_number} as {stored.contract.contract_number}")
        return RenewalRecord(stored=stored, renewed=renewed)

    async def list_expiring(self, within_days: int) -> List[StoredContract]:
        """Active contracts whose term ends within ``within_days``."""
        today = as_date(self.clock.now())
        result = await self.db.execute(
            select(AMCContract)
            .where(
                AMCContract.status == ContractStatus.ACTIVE.value,
                AMCContract.end_date >= today,
                AMCContract.end_date <= today + timedelta(days=within_days),
            )
            .order_by(AMCContract.end_date.asc())
            .execution_options(populate_existing=True)
        )
        return [self._load(row) for row in result.scalars().all()]

    async def list_visits_due(self, within_days: int) -> List[StoredContract]:
        """Active contracts with a pending visit due (or overdue) within ``within_days``."""
        today = as_date(self.clock.now())
        result = await self.db.execute(
            select(AMCContract)
            .where(
                AMCContract.status == ContractStatus.ACTIVE.value,
                AMCContract.next_visit_date.is_not(None),
                AMCContract.next_visit_date <= today + timedelta(days=within_days),
            )
            .order_by(AMCContract.next_visit_date.asc())
            .execution_options(populate_existing=True)
        )
        loaded = [self._load(row) for row in result.scalars().all()]
        return [s for s in loaded if s.contract.status == ContractStatus.ACTIVE]

    async def list(
        self,
        search: Optional[str] = None,
        status: Optional[ContractStatus] = None,
        customer_id: Optional[str] = None,
        start_from: Optional[date] = None,
        start_to: Optional[date] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ContractPage:
        """
        Newest contracts first, filtered and paginated.

        ``search`` matches contract number, engine serial number or terms.
        ``status`` filters on the derived status, so an active contract past
        its end date is listed as expired.
        """
        today = as_date(self.clock.now())
        filters = []
        if search:
            pattern = f"%{search}%"
            filters.append(or_(
                AMCContract.contract_number.ilike(pattern),
                AMCContract.engine_serial_number.ilike(pattern),
                AMCContract.terms.ilike(pattern),
            ))
        if status is not None:
            lapsed = and_(AMCContract.status == ContractStatus.ACTIVE.value, AMCContract.end_date < today)
            derived = case((lapsed, ContractStatus.EXPIRED.value), else_=AMCContract.status)
            filters.append(derived == ContractStatus(status).value)
        if customer_id:
            filters.append(AMCContract.customer_id == customer_id)
        if start_from:
            filters.append(AMCContract.start_date >= start_from)
        if start_to:
            filters.append(AMCContract.start_date <= start_to)

        total_result = await self.db.execute(select(func.count()).select_from(AMCContract).where(*filters))
        total = total_result.scalar() or 0

        result = await self.db.execute(
            select(AMCContract)
            .where(*filters)
            .order_by(AMCContract.created_at.desc(), AMCContract.contract_number.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        items = [self._load(row) for row in result.scalars().all()]
        return ContractPage(items=items, total=total, page=page, page_size=page_size)

    async def stats(self, expiring_within_days: int) -> ContractStats:
        today = as_date(self.clock.now())
        by_status = {s.value: 0 for s in ContractStatus}
        result = await self.db.execute(
            select(AMCContract.status, func.count()).group_by(AMCContract.status)
        )
        for stored_status, count in result.all():
            by_status[stored_status] = count

        lapsed_result = await self.db.execute(
            select(func.count()).select_from(AMCContract).where(
                AMCContract.status == ContractStatus.ACTIVE.value,
                AMCContract.end_date < today,
            )
        )
        lapsed = lapsed_result.scalar() or 0
        by_status[ContractStatus.ACTIVE.value] -= lapsed
        by_status[ContractStatus.EXPIRED.value] += lapsed

        active = await self.db.execute(
            select(
                func.count(),
                func.sum(AMCContract.contract_value),
                func.sum(AMCContract.number_of_visits),
                func.sum(AMCContract.completed_visits),
            ).where(
                AMCContract.status == ContractStatus.ACTIVE.value,
                AMCContract.end_date >= today,
            )
        )
        active_count, value_total, planned, completed = active.one()
        value_total = Decimal(str(value_total)) if value_total is not None else Decimal("0")

        expiring = await self.db.execute(
            select(func.count()).select_from(AMCContract).where(
                AMCContract.status == ContractStatus.ACTIVE.value,
                AMCContract.end_date >= today,
                AMCContract.end_date <= today + timedelta(days=expiring_within_days),
            )
        )

        return ContractStats(
            total=sum(by_status.values()),
            by_status=by_status,
            expiring_soon=expiring.scalar() or 0,
            active_value_total=value_total,
            active_value_average=value_total / active_count if active_count else Decimal("0"),
            visit_completion_rate=round((completed or 0) / planned * 100) if planned else 0,
        )
