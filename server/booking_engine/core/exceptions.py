"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .clock import utc_now

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://airline-booking.example.com/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details: Dict[str, Any] = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if detail:
            self.problem_details["detail"] = detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, when one was set."""
        return self.problem_details.get("code")


class ValidationError(ProblemDetailsException):
    """Malformed or missing booking request fields."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "VALIDATION_ERROR", "retryable": False}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidPaymentError(ProblemDetailsException):
    """The payment details were rejected by the payment gate."""

    def __init__(
        self,
        detail: str = "The supplied payment details are invalid or expired",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=402,
            title="Invalid Payment",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/invalid-payment",
            instance=instance,
            extensions={"code": "INVALID_PAYMENT", "retryable": False},
        )


class ForbiddenError(ProblemDetailsException):
    """The caller is neither the owner of the resource nor an admin."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        required_role: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "FORBIDDEN", "retryable": False}
        if required_role:
            extensions["required_role"] = required_role

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/access-forbidden",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions: Dict[str, Any] = {
            "code": "NOT_FOUND",
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class FlightNotBookableError(NotFoundError):
    """The flight exists but cannot take new bookings."""

    def __init__(self, flight_id: str, reason: str):
        super().__init__(
            resource_type="flight",
            resource_id=flight_id,
            detail=f"Flight '{flight_id}' is not open for booking ({reason})",
        )
        self.problem_details.update({
            "code": "FLIGHT_NOT_BOOKABLE",
            "reason": reason,
        })


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


class SeatUnavailableError(ConflictError):
    """One or more requested seats are not free, missing or of the wrong class.

    The caller should re-query the seat map and retry with a new selection.
    """

    def __init__(self, flight_id: str, seats: List[Dict[str, str]]):
        seat_list = ", ".join(seat["seat_number"] for seat in seats)
        super().__init__(
            detail=f"Seats [{seat_list}] on flight {flight_id} cannot be reserved",
            conflicting_resource={"flight_id": flight_id},
        )
        self.title = "Seat Unavailable"
        self.seats = seats
        self.problem_details.update({
            "title": self.title,
            "type": f"{PROBLEM_BASE_URI}/seat-unavailable",
            "code": "SEAT_UNAVAILABLE",
            "retryable": False,
            "seats": seats,
        })


class InvalidStateError(ConflictError):
    """The booking lifecycle does not allow the requested operation."""

    def __init__(self, booking_id: str, current_status: str, action: str, detail: Optional[str] = None):
        super().__init__(
            detail=detail or f"Cannot {action} booking {booking_id} in status {current_status}",
            conflicting_resource={"booking_id": booking_id, "status": current_status},
        )
        self.title = "Invalid Booking State"
        self.problem_details.update({
            "title": self.title,
            "type": f"{PROBLEM_BASE_URI}/invalid-state",
            "code": "INVALID_STATE",
            "retryable": False,
            "action": action,
        })


class PersistenceFailureError(ProblemDetailsException):
    """Storage failed after seats were provisionally reserved."""

    def __init__(
        self,
        detail: str = "The booking could not be stored; no seats were charged",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=503,
            title="Booking Not Persisted",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/persistence-failure",
            instance=instance,
            extensions={
                "code": "PERSISTENCE_FAILURE",
                "retryable": True,
                "error_id": error_id or str(uuid.uuid4()),
            },
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", request.url.path)
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        content["request_id"] = request_id

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(content),
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body schema violations as Problem Details."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{PROBLEM_BASE_URI}/request-validation",
            "title": "Request Validation Failed",
            "status": 422,
            "detail": "The request body does not match the expected schema",
            "instance": request.url.path,
            "code": "REQUEST_VALIDATION",
            "retryable": False,
            "violations": violations,
        },
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"error_id": error_id, "path": request.url.path},
    )

    problem_details = {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": utc_now().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
