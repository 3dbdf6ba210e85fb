"""AMC contract request and response schemas."""

from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
import uuid

from pydantic import BaseModel, Field, field_validator

from amc_engine.schemas.types import UUIDStr
from amc_engine.services.amc import (
    AMCError,
    ContractPerformance,
    ContractStatus,
    ContractType,
    IssueSeverity,
    PriceAdjustment,
    PriceAdjustmentType,
    RenewalRequest,
    VisitCompletion,
    VisitIssue,
    VisitStatus,
    apply_price_adjustment,
)
from amc_engine.services.contract_store import ContractStats, StoredContract


# ========================
# Contract
# ========================


class ContractBase(BaseModel):
    """Fields shared by create requests and responses."""
    customer_id: str = Field(..., min_length=1, max_length=64)
    engine_serial_number: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    number_of_visits: int = Field(..., ge=1)
    contract_type: ContractType = ContractType.AMC
    number_of_oil_services: int = Field(0, ge=0)
    contract_value: Decimal = Field(Decimal("0"), ge=0)

    # Asset and site
    engine_model: Optional[str] = Field(None, max_length=100)
    kva: Optional[float] = Field(None, gt=0)
    dg_make: Optional[str] = Field(None, max_length=100)
    date_of_commissioning: Optional[date] = None
    customer_address: Optional[str] = None
    contact_person_name: Optional[str] = Field(None, max_length=255)
    contact_number: Optional[str] = Field(None, max_length=50)
    terms: Optional[str] = None


class ContractCreate(ContractBase):
    """Schema for opening a contract. The visit schedule is generated."""
    status: ContractStatus = ContractStatus.DRAFT


class IssueSchema(BaseModel):
    description: str = Field(..., min_length=1)
    severity: IssueSeverity = IssueSeverity.LOW
    resolved: bool = False
    follow_up_required: bool = False

    def to_domain(self) -> VisitIssue:
        return VisitIssue(
            description=self.description,
            severity=self.severity,
            resolved=self.resolved,
            follow_up_required=self.follow_up_required,
        )


class VisitResponse(BaseModel):
    """One entry of a contract's visit schedule, addressed by ``index``."""
    index: int
    scheduled_date: date
    status: VisitStatus
    completed_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    ad_hoc: bool = False
    notes: Optional[str] = None
    service_report: Optional[str] = None
    issues: list[IssueSchema] = []
    customer_signature: Optional[str] = None
    next_visit_recommendations: Optional[str] = None


class ContractResponse(ContractBase):
    """Contract with its schedule, derived fields and concurrency version."""
    id: UUIDStr
    contract_number: str
    status: ContractStatus
    version: int
    visit_schedule: list[VisitResponse]
    completed_visits: int
    next_visit_date: Optional[date] = None
    completion_percentage: int
    ad_hoc_visit_count: int
    schedule_coverage_gap: Optional[int] = None
    days_until_expiry: int
    renewed_from_id: Optional[UUIDStr] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_stored(cls, stored: StoredContract, now) -> "ContractResponse":
        """Build the response; ``days_until_expiry`` is counted from ``now``."""
        contract = stored.contract
        data = asdict(contract)
        for index, visit in enumerate(data["visit_schedule"]):
            visit["index"] = index
        data.update(
            id=contract.contract_id,
            version=stored.version,
            completion_percentage=contract.completion_percentage,
            ad_hoc_visit_count=contract.ad_hoc_visit_count,
            schedule_coverage_gap=contract.schedule_coverage_gap,
            days_until_expiry=contract.days_until_expiry(now),
        )
        return cls.model_validate(data)


class ContractListResponse(BaseModel):
    items: list[ContractResponse]
    total: int


class ContractPageResponse(ContractListResponse):
    """Paginated contract list response."""
    page: int
    page_size: int


# ========================
# Mutations (all carry the version they were based on)
# ========================


class VersionedRequest(BaseModel):
    expected_version: int = Field(..., ge=1, description="Version the change was based on")


class CompleteVisitRequest(VersionedRequest):
    """Technician close-out of a scheduled visit."""
    service_report: str = Field(..., min_length=1)
    completed_date: Optional[datetime] = None
    issues: list[IssueSchema] = []
    customer_signature: Optional[str] = None
    next_visit_recommendations: Optional[str] = None
    assigned_to: Optional[str] = None

    def to_domain(self) -> VisitCompletion:
        return VisitCompletion(
            service_report=self.service_report,
            completed_date=self.completed_date,
            issues=[issue.to_domain() for issue in self.issues],
            customer_signature=self.customer_signature,
            next_visit_recommendations=self.next_visit_recommendations,
            assigned_to=self.assigned_to,
        )


class VisitCompletedResponse(BaseModel):
    contract: ContractResponse
    visit_index: int
    completed_date: datetime


class AdHocVisitRequest(VersionedRequest):
    scheduled_date: date
    reason: str = Field(..., min_length=1)
    assigned_to: Optional[str] = None


class AdHocVisitResponse(BaseModel):
    contract: ContractResponse
    visit_index: int


class AssignVisitRequest(VersionedRequest):
    assigned_to: str = Field(..., min_length=1, max_length=64)


class VisitAssignment(BaseModel):
    visit_index: int = Field(..., ge=0)
    assigned_to: str = Field(..., min_length=1, max_length=64)


class BulkAssignVisitsRequest(VersionedRequest):
    assignments: list[VisitAssignment] = Field(..., min_length=1)

    @field_validator("assignments")
    @classmethod
    def unique_visits(cls, v: list[VisitAssignment]) -> list[VisitAssignment]:
        indexes = [a.visit_index for a in v]
        if len(indexes) != len(set(indexes)):
            raise ValueError("Each visit can only be assigned once per request")
        return v

    def to_domain(self) -> dict[int, str]:
        return {a.visit_index: a.assigned_to for a in self.assignments}


class CancelVisitRequest(VersionedRequest):
    pass


class RescheduleVisitRequest(VersionedRequest):
    new_date: date
    note: Optional[str] = None


class RegenerateScheduleRequest(VersionedRequest):
    """Omitted fields keep the contract's current value."""
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    new_visit_count: Optional[int] = None


class StatusUpdateRequest(VersionedRequest):
    status: ContractStatus
    reason: Optional[str] = None


# ========================
# Renewal
# ========================


class PriceAdjustmentSchema(BaseModel):
    type: PriceAdjustmentType
    value: Decimal


class RenewalParams(BaseModel):
    """Adjustments for the successor contract. Omitted fields carry over."""
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    price_adjustment: Optional[PriceAdjustmentSchema] = None
    new_visit_count: Optional[int] = None
    updated_terms: Optional[str] = None
    status: Optional[ContractStatus] = None

    def to_domain(self, source_contract_id: Optional[uuid.UUID] = None) -> RenewalRequest:
        adjustment = None
        if self.price_adjustment is not None:
            adjustment = PriceAdjustment(
                type=self.price_adjustment.type,
                value=self.price_adjustment.value,
            )
        return RenewalRequest(
            source_contract_id=source_contract_id,
            new_start_date=self.new_start_date,
            new_end_date=self.new_end_date,
            price_adjustment=adjustment,
            new_visit_count=self.new_visit_count,
            updated_terms=self.updated_terms,
            status=self.status,
        )


class BulkRenewRequest(BaseModel):
    contract_ids: list[uuid.UUID] = Field(..., min_length=1)
    params: RenewalParams = RenewalParams()


class RenewalError(BaseModel):
    code: str
    detail: str

    @classmethod
    def from_error(cls, exc: AMCError) -> "RenewalError":
        return cls(code=exc.code, detail=exc.detail)


class BulkRenewResult(BaseModel):
    source_id: UUIDStr
    succeeded: bool
    contract: Optional[ContractResponse] = None
    error: Optional[RenewalError] = None


class BulkRenewResponse(BaseModel):
    renewed: int
    failed: int
    results: list[BulkRenewResult]


# ========================
# Performance
# ========================


class PerformanceResponse(BaseModel):
    contract_id: UUIDStr
    contract_number: str
    status: ContractStatus
    contract_progress: float
    completion_rate: float
    days_until_expiry: int
    remaining_visits: int
    overdue_visits: int
    open_issues: int

    @classmethod
    def build(cls, stored: StoredContract, performance: ContractPerformance) -> "PerformanceResponse":
        contract = stored.contract
        return cls(
            contract_id=contract.contract_id,
            contract_number=contract.contract_number,
            status=contract.status,
            **asdict(performance),
        )


# ========================
# Portfolio stats
# ========================


class StatsResponse(BaseModel):
    """Counts by derived status plus active-portfolio value and visit completion."""
    total_contracts: int
    by_status: dict[ContractStatus, int]
    expiring_soon: int
    expiring_window_days: int
    active_value_total: Decimal
    active_value_average: Decimal
    visit_completion_rate: int

    @classmethod
    def build(cls, stats: ContractStats, window_days: int, decimal_places: int) -> "StatsResponse":
        return cls(
            total_contracts=stats.total,
            by_status=stats.by_status,
            expiring_soon=stats.expiring_soon,
            expiring_window_days=window_days,
            active_value_total=apply_price_adjustment(stats.active_value_total, None, decimal_places),
            active_value_average=apply_price_adjustment(stats.active_value_average, None, decimal_places),
            visit_completion_rate=stats.visit_completion_rate,
        )
