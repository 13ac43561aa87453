"""Common Pydantic schemas."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class Money(BaseModel):
    """Money representation; amounts carry two decimal places."""

    amount: Decimal = Field(..., description="Amount in major units, e.g. 220.00")
    currency: str = Field(..., min_length=3, max_length=3, pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code")


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    request_id: Optional[str] = Field(None, description="Request ID for correlation")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")
