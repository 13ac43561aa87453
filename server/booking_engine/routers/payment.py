"""Payment router for checking payment details before booking."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..schemas.payment import ValidatePaymentRequest, ValidatePaymentResponse
from ..services.payment_gate import validate_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])


@router.post("/validate", response_model=ValidatePaymentResponse)
async def validate_payment_details(request: ValidatePaymentRequest) -> JSONResponse:
    """
    Check card number, expiry and CCV against the booking date.

    Never fails for malformed input; it answers ``{"valid": false}``.
    """
    valid = validate_payment(request.card_number, request.expiry, request.ccv, request.booking_date)

    logger.debug("Payment details validated", extra={"valid": valid})

    return JSONResponse(
        status_code=200,
        content=ValidatePaymentResponse(valid=valid).model_dump()
    )
