from amc_engine.schemas.amc import (
    ContractCreate,
    ContractResponse,
    ContractListResponse,
    ContractPageResponse,
    VisitResponse,
    CompleteVisitRequest,
    VisitCompletedResponse,
    AdHocVisitRequest,
    AdHocVisitResponse,
    AssignVisitRequest,
    BulkAssignVisitsRequest,
    CancelVisitRequest,
    RescheduleVisitRequest,
    RegenerateScheduleRequest,
    StatusUpdateRequest,
    RenewalParams,
    BulkRenewRequest,
    BulkRenewResponse,
    PerformanceResponse,
    StatsResponse,
)

__all__ = [
    "ContractCreate",
    "ContractResponse",
    "ContractListResponse",
    "ContractPageResponse",
    "VisitResponse",
    "CompleteVisitRequest",
    "VisitCompletedResponse",
    "AdHocVisitRequest",
    "AdHocVisitResponse",
    "AssignVisitRequest",
    "BulkAssignVisitsRequest",
    "CancelVisitRequest",
    "RescheduleVisitRequest",
    "RegenerateScheduleRequest",
    "StatusUpdateRequest",
    "RenewalParams",
    "BulkRenewRequest",
    "BulkRenewResponse",
    "PerformanceResponse",
    "StatsResponse",
]
