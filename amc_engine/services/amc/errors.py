"""Typed failures raised by the AMC engine.

The engine raises these and never logs, retries or swallows them. Every
operation validates before it mutates, so a raised error means the
contract passed in is unchanged.
"""

from typing import Optional


class AMCError(Exception):
    """Base class for all engine failures."""

    code = "amc_error"
    retryable = False

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class InvalidScheduleParameters(AMCError):
    """Bad dates or visit count for schedule generation."""

    code = "invalid_schedule_parameters"


class VisitNotFound(AMCError):
    code = "visit_not_found"

    def __init__(self, visit_index: int, schedule_length: int):
        self.visit_index = visit_index
        super().__init__(
            f"Visit index {visit_index} is out of range for a schedule of {schedule_length} visits"
        )


class VisitAlreadyFinalized(AMCError):
    """The visit is completed or cancelled and can no longer change."""

    code = "visit_already_finalized"

    def __init__(self, visit_index: int, status: str):
        self.visit_index = visit_index
        self.status = status
        super().__init__(f"Visit {visit_index} is already {status}")


class UnsafeRegeneration(AMCError):
    """Regeneration would leave more completed visits than planned visits."""

    code = "unsafe_regeneration"

    def __init__(self, requested: int, completed: int):
        self.requested = requested
        self.completed = completed
        super().__init__(
            f"Cannot regenerate with {requested} visits: {completed} visits are already completed"
        )


class StaleContractVersion(AMCError):
    """The stored contract changed since it was read. Re-read and reapply."""

    code = "stale_contract_version"
    retryable = True

    def __init__(self, contract_id, expected_version: int):
        self.contract_id = contract_id
        self.expected_version = expected_version
        super().__init__(
            f"Contract {contract_id} is no longer at version {expected_version}"
        )


class ReferentialIntegrityViolation(AMCError):
    """A customer or user id does not resolve in its directory."""

    code = "referential_integrity_violation"

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"Unknown {kind} id: {identifier}")


class ContractNotFound(AMCError):
    code = "contract_not_found"

    def __init__(self, contract_id):
        self.contract_id = contract_id
        super().__init__(f"AMC contract {contract_id} was not found")


class InvalidStatusTransition(AMCError):
    code = "invalid_status_transition"

    def __init__(self, current: str, requested: str, reason: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(reason or f"Cannot move a contract from {current} to {requested}")


class InvalidRenewalRequest(AMCError):
    """Renewal inputs that cannot produce a valid successor contract."""

    code = "invalid_renewal_request"
