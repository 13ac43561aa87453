"""Seat router for seat map and inventory administration."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_current_user, require_admin
from ..core.exceptions import ProblemDetailsException
from ..schemas.auth import CurrentUser
from ..schemas.seat import (
    GetSeatRequest,
    ListSeatsRequest,
    ReconcileSeatsRequest,
    ReconcileSeatsResponse,
    Seat,
    SeatList,
    SeatRef,
    UpdateSeatRequest,
)
from ..services.booking_service import parse_uuid
from ..services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/seat", tags=["seat"])

DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)
ADMIN_DEPENDENCY = Depends(require_admin)


def _convert_seat_to_schema(seat_model) -> Seat:
    """Convert seat model to schema."""
    return Seat(
        flight_id=str(seat_model.flight_id),
        seat_number=seat_model.seat_number,
        seat_class=seat_model.seat_class,
        price_modifier=seat_model.price_modifier,
        is_available=seat_model.is_available
    )


@router.post("/list", response_model=SeatList)
async def list_seats(
    request: ListSeatsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: CurrentUser = USER_DEPENDENCY
) -> JSONResponse:
    """Seat map of a flight, ordered by seat number."""
    inventory_service = InventoryService(db)

    try:
        flight_id = parse_uuid(request.flight_id, "flight")
        seats = await inventory_service.get_seats(
            flight_id,
            seat_class=request.seat_class,
            available_only=request.available_only
        )
        response_data = SeatList(
            flight_id=str(flight_id),
            items=[_convert_seat_to_schema(seat) for seat in seats]
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in seat listing",
            extra={"flight_id": request.flight_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Seat)
async def get_seat(
    request: GetSeatRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: CurrentUser = USER_DEPENDENCY
) -> JSONResponse:
    """Get a single seat."""
    inventory_service = InventoryService(db)

    try:
        seat = await inventory_service.get_seat_or_raise(
            parse_uuid(request.flight_id, "flight"),
            request.seat_number.strip().upper()
        )

        return JSONResponse(
            status_code=200,
            content=_convert_seat_to_schema(seat).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in seat retrieval",
            extra={"flight_id": request.flight_id, "seat_number": request.seat_number, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/update", response_model=Seat)
async def update_seat(
    request: UpdateSeatRequest,
    db: AsyncSession = DB_DEPENDENCY,
    admin: CurrentUser = ADMIN_DEPENDENCY
) -> JSONResponse:
    """
    Override seat attributes. Admin only.

    Availability changes that contradict the seat's booking are rejected
    with 409.
    """
    inventory_service = InventoryService(db)

    try:
        seat = await inventory_service.update_seat_attributes(
            parse_uuid(request.flight_id, "flight"),
            request.seat_number.strip().upper(),
            seat_class=request.seat_class,
            is_available=request.is_available,
            price_modifier=request.price_modifier
        )

        logger.info(
            "Seat updated by admin",
            extra={
                "flight_id": request.flight_id,
                "seat_number": request.seat_number,
                "admin_id": admin.user_id
            }
        )

        return JSONResponse(
            status_code=200,
            content=_convert_seat_to_schema(seat).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in seat update",
            extra={"flight_id": request.flight_id, "seat_number": request.seat_number, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/reconcile", response_model=ReconcileSeatsResponse)
async def reconcile_seats(
    request: ReconcileSeatsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    admin: CurrentUser = ADMIN_DEPENDENCY
) -> JSONResponse:
    """Report seats marked unavailable without a booking, and optionally release them. Admin only."""
    inventory_service = InventoryService(db)

    try:
        flight_id = parse_uuid(request.flight_id, "flight") if request.flight_id else None
        report = await inventory_service.reconcile(flight_id=flight_id, repair=request.repair)
        response_data = ReconcileSeatsResponse(
            orphaned=[SeatRef(flight_id=str(fid), seat_number=number) for fid, number in report.orphaned],
            repaired=report.repaired
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in seat reconciliation",
            extra={"flight_id": request.flight_id, "admin_id": admin.user_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
