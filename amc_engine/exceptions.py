"""
RFC 7807 Problem Details exception handling.

Provides standardized error responses for the API following the
"Problem Details for HTTP APIs" specification. Engine failures
(``AMCError`` subclasses) are mapped to status codes here, at the edge;
the engine itself knows nothing about HTTP.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List, Tuple
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uuid
from datetime import datetime, timezone

from amc_engine.middleware.correlation import get_request_id
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

logger = logging.getLogger(__name__)

PROBLEM_BASE_URL = "https://amc-engine.local/problems"


def _get_trace_id() -> str:
    """Get trace ID from correlation context or generate a new one."""
    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ErrorCode(str, Enum):
    """Standardized error codes for the AMC API."""

    # Validation
    VALIDATION_ERROR = "VAL_001"
    INVALID_FORMAT = "VAL_002"
    CONSTRAINT_VIOLATION = "VAL_004"

    # Resource
    NOT_FOUND = "RES_001"
    CONFLICT = "RES_003"

    # Business Logic
    BUSINESS_RULE_VIOLATION = "BIZ_001"

    # Server
    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"


# Engine failure -> (HTTP status, error code)
AMC_ERROR_MAP: Dict[type, Tuple[int, ErrorCode]] = {
    ContractNotFound: (404, ErrorCode.NOT_FOUND),
    VisitNotFound: (404, ErrorCode.NOT_FOUND),
    StaleContractVersion: (409, ErrorCode.CONFLICT),
    InvalidScheduleParameters: (422, ErrorCode.CONSTRAINT_VIOLATION),
    InvalidRenewalRequest: (422, ErrorCode.CONSTRAINT_VIOLATION),
    ReferentialIntegrityViolation: (422, ErrorCode.CONSTRAINT_VIOLATION),
    VisitAlreadyFinalized: (400, ErrorCode.BUSINESS_RULE_VIOLATION),
    UnsafeRegeneration: (400, ErrorCode.BUSINESS_RULE_VIOLATION),
    InvalidStatusTransition: (400, ErrorCode.BUSINESS_RULE_VIOLATION),
}


def amc_error_status(exc: AMCError) -> Tuple[int, ErrorCode]:
    """Resolve the HTTP status for an engine failure, walking its MRO."""
    for cls in type(exc).__mro__:
        if cls in AMC_ERROR_MAP:
            return AMC_ERROR_MAP[cls]
    return 400, ErrorCode.BUSINESS_RULE_VIOLATION


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        reason: Engine failure name (e.g. stale_contract_version), when applicable
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Unique identifier for tracing in logs
        errors: List of field-level validation errors (for 422)
    """

    type: str = Field(
        default="about:blank",
        description="URI reference identifying the problem type"
    )
    title: str = Field(
        description="Short, human-readable summary of the problem"
    )
    status: int = Field(
        description="HTTP status code"
    )
    detail: str = Field(
        description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        default=None,
        description="URI reference for this specific occurrence"
    )
    code: str = Field(
        description="Machine-readable error code"
    )
    reason: Optional[str] = Field(
        default=None,
        description="Engine failure name"
    )
    retryable: Optional[bool] = Field(
        default=None,
        description="Whether re-reading and reapplying may succeed"
    )
    timestamp: str = Field(
        description="ISO 8601 timestamp"
    )
    trace_id: str = Field(
        description="Unique trace ID for debugging"
    )
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Field-level validation errors"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": f"{PROBLEM_BASE_URL}/res-003",
                "title": "Conflict",
                "status": 409,
                "detail": "Contract 6f1c... is no longer at version 3",
                "instance": "/api/v2/amc/6f1c.../visits/0/complete",
                "code": "RES_003",
                "reason": "stale_contract_version",
                "retryable": True,
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456"
            }
        }
    }


def _default_title(status_code: int) -> str:
    """Get default title based on status code."""
    titles = {
        400: "Bad Request",
        404: "Not Found",
        409: "Conflict",
        422: "Validation Error",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return titles.get(status_code, "Error")


def _problem_type(code: ErrorCode) -> str:
    return f"{PROBLEM_BASE_URL}/{code.value.lower().replace('_', '-')}"


def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    reason: Optional[str] = None,
    retryable: Optional[bool] = None,
    allowed_origins: Optional[List[str]] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response with CORS headers."""
    problem = ProblemDetail(
        type=_problem_type(code),
        title=_default_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        reason=reason,
        retryable=retryable,
        timestamp=_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )

    response = JSONResponse(
        status_code=status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )

    # Add CORS headers
    if allowed_origins:
        origin = request.headers.get("origin", "")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"

    return response


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(AMCError, handlers["amc"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_amc_error(request: Request, exc: AMCError) -> JSONResponse:
        status_code, code = amc_error_status(exc)
        trace_id = _get_trace_id()
        logger.warning(
            f"AMCError: {exc.code} - {exc.detail}",
            extra={"trace_id": trace_id, "status_code": status_code, "path": request.url.path},
        )
        return create_problem_response(
            status_code=status_code,
            code=code,
            detail=exc.detail,
            request=request,
            trace_id=trace_id,
            reason=exc.code,
            retryable=exc.retryable,
            allowed_origins=allowed_origins,
        )

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTPException with RFC 7807 response."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            404: ErrorCode.NOT_FOUND,
            409: ErrorCode.CONFLICT,
            422: ErrorCode.VALIDATION_ERROR,
            500: ErrorCode.INTERNAL_ERROR,
            503: ErrorCode.SERVICE_UNAVAILABLE,
        }

        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

        return create_problem_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
        )

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with field-level details."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
            allowed_origins=allowed_origins,
        )

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with RFC 7807 response."""
        trace_id = str(uuid.uuid4())[:12]

        logger.exception(
            f"Unhandled exception: {exc}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )

        # Don't expose internal details in production
        from amc_engine.config import settings
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "amc": handle_amc_error,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
