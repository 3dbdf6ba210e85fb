"""
AMC lifecycle and visit-scheduling engine.

Pure, synchronous functions over the Contract aggregate:
- Schedule generation at whole-month intervals
- Lazy expiry derivation
- Visit completion, assignment, cancellation and ad-hoc visits
- Schedule regeneration that keeps completed work
- Renewal planning, single and bulk
"""

from amc_engine.services.amc.domain import (
    Contract,
    ContractStatus,
    ContractType,
    IssueSeverity,
    PriceAdjustment,
    PriceAdjustmentType,
    RenewalRequest,
    VisitCompletion,
    VisitIssue,
    VisitRecord,
    VisitStatus,
)
from amc_engine.services.amc.errors import (
    AMCError,
    ContractNotFound,
    InvalidRenewalRequest,
    InvalidScheduleParameters,
    InvalidStatusTransition,
    ReferentialIntegrityViolation,
    StaleContractVersion,
    UnsafeRegeneration,
    VisitAlreadyFinalized,
    VisitNotFound,
)
from amc_engine.services.amc.events import ContractExpired, ContractRenewed, VisitCompleted
from amc_engine.services.amc.expiry import derive_status, refresh_status
from amc_engine.services.amc.lifecycle import open_contract, transition_status
from amc_engine.services.amc.performance import ContractPerformance, contract_performance
from amc_engine.services.amc.regeneration import regenerate_schedule
from amc_engine.services.amc.renewal import RenewalOutcome, apply_price_adjustment, plan_bulk_renewal, plan_renewal
from amc_engine.services.amc.schedule_generator import generate_schedule, interval_months, months_between, schedule_coverage_gap
from amc_engine.services.amc.visit_ledger import (
    add_ad_hoc_visit,
    assign_visit,
    assign_visits,
    cancel_visit,
    complete_visit,
    recompute_derived,
    reschedule_visit,
)

__all__ = [
    "Contract",
    "ContractStatus",
    "ContractType",
    "IssueSeverity",
    "PriceAdjustment",
    "PriceAdjustmentType",
    "RenewalRequest",
    "VisitCompletion",
    "VisitIssue",
    "VisitRecord",
    "VisitStatus",
    # Errors
    "AMCError",
    "ContractNotFound",
    "InvalidRenewalRequest",
    "InvalidScheduleParameters",
    "InvalidStatusTransition",
    "ReferentialIntegrityViolation",
    "StaleContractVersion",
    "UnsafeRegeneration",
    "VisitAlreadyFinalized",
    "VisitNotFound",
    # Facts
    "ContractExpired",
    "ContractRenewed",
    "VisitCompleted",
    # Operations
    "derive_status",
    "refresh_status",
    "open_contract",
    "transition_status",
    "ContractPerformance",
    "contract_performance",
    "regenerate_schedule",
    "RenewalOutcome",
    "apply_price_adjustment",
    "plan_bulk_renewal",
    "plan_renewal",
    "generate_schedule",
    "interval_months",
    "months_between",
    "schedule_coverage_gap",
    "add_ad_hoc_visit",
    "assign_visit",
    "assign_visits",
    "cancel_visit",
    "complete_visit",
    "recompute_derived",
    "reschedule_visit",
]
