"""Booking router for booking operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_current_user, require_admin
from ..core.exceptions import ProblemDetailsException
from ..schemas.auth import CurrentUser
from ..schemas.booking import (
    AdminListBookingsRequest,
    Booking,
    BookingList,
    CancelBookingRequest,
    CancelBookingResponse,
    CreateBookingRequest,
    GetBookingRequest,
    InvoiceLines,
    InvoiceRequest,
    ListBookingsRequest,
    Passenger,
)
from ..schemas.common import Money
from ..services.booking_service import BookingService, parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)
ADMIN_DEPENDENCY = Depends(require_admin)


def _convert_passenger_to_schema(passenger_model) -> Passenger:
    """Convert passenger model to schema."""
    return Passenger(
        id=str(passenger_model.id),
        first_name=passenger_model.first_name,
        last_name=passenger_model.last_name,
        email=passenger_model.email,
        passport_number=passenger_model.passport_number,
        date_of_birth=passenger_model.date_of_birth,
        seat_number=passenger_model.seat_number
    )


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        booking_reference=booking_model.booking_reference,
        user_id=booking_model.user_id,
        flight_id=str(booking_model.flight_id),
        status=booking_model.status,
        total=Money(amount=booking_model.total_amount, currency=booking_model.currency),
        seat_numbers=booking_model.seat_numbers,
        passengers=[_convert_passenger_to_schema(p) for p in booking_model.passengers],
        created_at=booking_model.created_at,
        updated_at=booking_model.updated_at,
        cancelled_at=booking_model.cancelled_at
    )


@router.post("/create", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: CurrentUser = USER_DEPENDENCY
) -> JSONResponse:
    """
    Book specific seats on a flight for one or more passengers.

    Seats are reserved atomically: either every requested seat is booked or
    none is.
    """
    booking_service = BookingService(db)

    try:
        booking = await booking_service.create_booking(request, user)
        response_data = _convert_booking_to_schema(booking)

        return JSONResponse(
            status_code=201,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={
                "flight_id": request.flight_id,
                "user_id": user.user_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: CurrentUser = USER_DEPENDENCY
) -> JSONResponse:
    """
    Cancel a booking and release its seats.

    Cancelling an already cancelled booking succeeds with outcome
    ``already_cancelled``.
    """
    booking_service = BookingService(db)

    try:
        result = await booking_service.cancel_booking(request.booking_id, user)
        response_data = CancelBookingResponse(
            outcome=result.outcome,
            seats_released=result.seats_released,
            booking=_convert_booking_to_schema(result.booking)
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={
                "booking_id": request.booking_id,
                "user_id": user.user_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: CurrentUser = USER_DEPENDENCY
) -> JSONResponse:
    """Get booking details. Owners and admins only."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.get_booking(request.booking_id, user)
        response_data = _convert_booking_to_schema(booking)

        logger.info(
            "Booking retrieved successfully",
            extra={
                "booking_id": request.booking_id,
                "booking_reference": booking.booking_reference
            }
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking retrieval",
            extra={
                "booking_id": request.booking_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=BookingList)
async def list_bookings(
    request: ListBookingsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: CurrentUser = USER_DEPENDENCY
) -> JSONResponse:
    """List the caller's bookings: all, upcoming or past."""
    booking_service = BookingService(db)

    try:
        bookings = await booking_service.list_bookings(user, request.scope)
        response_data = BookingList(items=[_convert_booking_to_schema(b) for b in bookings])

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking list",
            extra={"user_id": user.user_id, "scope": request.scope, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/invoice", response_model=InvoiceLines)
async def get_invoice_lines(
    request: InvoiceRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: CurrentUser = USER_DEPENDENCY
) -> JSONResponse:
    """Line items (flight, passengers, seats, total) for rendering an invoice."""
    booking_service = BookingService(db)

    try:
        invoice = await booking_service.get_invoice_lines(request.booking_id, user)

        return JSONResponse(
            status_code=200,
            content=invoice.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in invoice line retrieval",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/admin/list", response_model=BookingList)
async def admin_list_bookings(
    request: AdminListBookingsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    admin: CurrentUser = ADMIN_DEPENDENCY
) -> JSONResponse:
    """List bookings of every user. Admin only."""
    booking_service = BookingService(db)

    try:
        flight_id = parse_uuid(request.flight_id, "flight") if request.flight_id else None
        bookings = await booking_service.list_all_bookings(
            status=request.status,
            flight_id=flight_id,
            limit=request.limit
        )
        response_data = BookingList(items=[_convert_booking_to_schema(b) for b in bookings])

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in admin booking list",
            extra={"admin_id": admin.user_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
