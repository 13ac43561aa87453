"""Payment form validation schemas."""

from pydantic import BaseModel, Field


class ValidatePaymentRequest(BaseModel):
    """Payment form fields to check before submitting a booking."""

    card_number: str = Field("", description="16-digit card number")
    expiry: str = Field("", description="Card expiry as YYYY-MM")
    ccv: str = Field("", description="3-digit card verification code")
    booking_date: str = Field("", description="Booking date (YYYY-MM-DD) or ISO 8601 date-time")


class ValidatePaymentResponse(BaseModel):
    """Payment gate verdict."""

    valid: bool
