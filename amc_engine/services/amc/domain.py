"""
AMC domain types.

A Contract is the unit of consistency: it exclusively owns its visit
schedule, and visits have no identity outside it (they are addressed by
their index in ``visit_schedule``).
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class ContractStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ContractType(str, Enum):
    AMC = "AMC"
    CAMC = "CAMC"


class VisitStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PriceAdjustmentType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def as_date(value) -> date:
    """Calendar date of a date or datetime."""
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass
class VisitIssue:
    """Issue found during a maintenance visit."""

    description: str
    severity: IssueSeverity = IssueSeverity.LOW
    resolved: bool = False
    follow_up_required: bool = False


@dataclass
class VisitRecord:
    """One planned, completed or cancelled visit."""

    scheduled_date: date
    status: VisitStatus = VisitStatus.PENDING
    completed_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    ad_hoc: bool = False
    notes: Optional[str] = None

    # Completion payload
    service_report: Optional[str] = None
    issues: List[VisitIssue] = field(default_factory=list)
    customer_signature: Optional[str] = None
    next_visit_recommendations: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == VisitStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status == VisitStatus.COMPLETED


@dataclass
class VisitCompletion:
    """Data recorded when a technician closes out a visit."""

    service_report: str
    completed_date: Optional[datetime] = None
    issues: List[VisitIssue] = field(default_factory=list)
    customer_signature: Optional[str] = None
    next_visit_recommendations: Optional[str] = None
    assigned_to: Optional[str] = None


@dataclass(frozen=True)
class PriceAdjustment:
    """Percentage (``-10`` means 10% off) or fixed currency delta."""

    type: PriceAdjustmentType
    value: Decimal


@dataclass
class RenewalRequest:
    """Adjustments applied when planning a successor contract."""

    source_contract_id: Optional[uuid.UUID] = None
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    price_adjustment: Optional[PriceAdjustment] = None
    new_visit_count: Optional[int] = None
    updated_terms: Optional[str] = None
    status: Optional[ContractStatus] = None


@dataclass
class Contract:
    """Annual maintenance contract aggregate."""

    customer_id: str
    engine_serial_number: str
    start_date: date
    end_date: date
    number_of_visits: int
    contract_type: ContractType = ContractType.AMC
    number_of_oil_services: int = 0
    contract_value: Decimal = Decimal("0")
    status: ContractStatus = ContractStatus.DRAFT
    visit_schedule: List[VisitRecord] = field(default_factory=list)

    # Derived, maintained by visit_ledger.recompute_derived
    completed_visits: int = 0
    next_visit_date: Optional[date] = None

    # Identity assigned by the store
    contract_id: Optional[uuid.UUID] = None
    contract_number: Optional[str] = None

    # Physical asset and site
    engine_model: Optional[str] = None
    kva: Optional[float] = None
    dg_make: Optional[str] = None
    date_of_commissioning: Optional[date] = None
    customer_address: Optional[str] = None
    contact_person_name: Optional[str] = None
    contact_number: Optional[str] = None

    terms: Optional[str] = None
    renewed_from_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    @property
    def pending_visits(self) -> List[VisitRecord]:
        return [v for v in self.visit_schedule if v.is_pending]

    @property
    def ad_hoc_visit_count(self) -> int:
        return sum(1 for v in self.visit_schedule if v.ad_hoc)

    @property
    def completion_percentage(self) -> int:
        if self.number_of_visits <= 0:
            return 0
        return min(100, round(self.completed_visits / self.number_of_visits * 100))

    @property
    def schedule_coverage_gap(self) -> Optional[int]:
        """Days between the last planned visit and the end of the term.

        Month flooring in the generator can leave the final visit short of
        ``end_date``; this exposes the shortfall instead of correcting it.
        Ad-hoc visits do not count as planned coverage.
        """
        planned = [v.scheduled_date for v in self.visit_schedule if not v.ad_hoc]
        if not planned:
            return None
        return (self.end_date - max(planned)).days

    def days_until_expiry(self, now) -> int:
        return max(0, (self.end_date - as_date(now)).days)
