"""Seat inventory Pydantic schemas."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.seat import SeatClass


class ListSeatsRequest(BaseModel):
    """Request schema for a flight's seat map."""

    flight_id: str = Field(..., description="Flight whose seats to list")
    seat_class: Optional[SeatClass] = Field(None, description="Only seats of this class")
    available_only: bool = Field(False, description="Only seats that can be booked")


class GetSeatRequest(BaseModel):
    """Request schema for a single seat."""

    flight_id: str = Field(..., description="Flight of the seat")
    seat_number: str = Field(..., min_length=1, max_length=8, description="Seat number, e.g. 12A")


class UpdateSeatRequest(BaseModel):
    """Administrative override of seat attributes."""

    flight_id: str = Field(..., description="Flight of the seat")
    seat_number: str = Field(..., min_length=1, max_length=8, description="Seat number")
    seat_class: Optional[SeatClass] = Field(None, description="New cabin class")
    is_available: Optional[bool] = Field(None, description="New availability flag")
    price_modifier: Optional[Decimal] = Field(None, max_digits=12, decimal_places=2, description="New price offset")

    @model_validator(mode="after")
    def require_change(self) -> "UpdateSeatRequest":
        if self.seat_class is None and self.is_available is None and self.price_modifier is None:
            raise ValueError("At least one of seat_class, is_available or price_modifier is required")
        return self


class ReconcileSeatsRequest(BaseModel):
    """Request schema for the seat ledger audit."""

    flight_id: Optional[str] = Field(None, description="Restrict the audit to one flight")
    repair: bool = Field(False, description="Release orphaned seats")


class Seat(BaseModel):
    """Seat response schema."""

    flight_id: str = Field(..., description="Flight ID")
    seat_number: str = Field(..., description="Seat number")
    seat_class: SeatClass = Field(..., description="Cabin class")
    price_modifier: Decimal = Field(..., description="Signed offset from the base fare")
    is_available: bool = Field(..., description="Whether the seat can be booked")

    class Config:
        from_attributes = True


class SeatList(BaseModel):
    """Seat map response."""

    flight_id: str
    items: List[Seat]


class SeatRef(BaseModel):
    """Reference to a seat on a flight."""

    flight_id: str
    seat_number: str


class ReconcileSeatsResponse(BaseModel):
    """Outcome of a seat ledger audit."""

    orphaned: List[SeatRef] = Field(..., description="Unavailable seats without an active assignment")
    repaired: int = Field(0, ge=0, description="Seats released by this call")
