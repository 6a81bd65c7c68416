"""
Pydantic schemas for booking-related API requests and responses.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from ..config import get_settings
from ..models.booking import BookingStatus, PaymentStatus
from .event import EventSummary

PHONE_PATTERN = re.compile(r"^[0-9]{10}$")


class BookingCreateRequest(BaseModel):
    """Schema for creating a new booking."""

    event_id: UUID = Field(..., description="ID of the event to book")
    user_name: str = Field(..., description="Attendee full name")
    user_email: EmailStr = Field(..., description="Attendee email")
    user_phone: str = Field(..., description="10-digit phone number")
    quantity: int = Field(..., ge=1, description="Number of tickets to book")
    preferred_section: Optional[str] = Field(None, max_length=50, description="Seat section to try first")

    @field_validator('user_name')
    @classmethod
    def validate_user_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator('user_phone')
    @classmethod
    def validate_user_phone(cls, v):
        """Accept common separators but require exactly ten digits."""
        digits = re.sub(r"[\s\-()]", "", v)
        if not PHONE_PATTERN.match(digits):
            raise ValueError("Phone number must be exactly 10 digits")
        return digits

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v):
        max_quantity = get_settings().max_booking_quantity
        if v > max_quantity:
            raise ValueError(f"Quantity must be between 1 and {max_quantity}")
        return v


class BookingCancelRequest(BaseModel):
    """Schema for cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=500, description="Optional cancellation reason")


class BookingResponse(BaseModel):
    """Schema for booking responses."""

    id: UUID
    user_id: UUID
    event_id: UUID
    user_name: str
    user_email: str
    user_phone: str
    quantity: int
    total_amount: Decimal
    payment_status: PaymentStatus
    booking_status: BookingStatus
    payment_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    # Related data
    event: Optional[EventSummary] = None
    seats: List[str] = []
    seat_display: str = ""

    model_config = {"from_attributes": True}


class CreateBookingResponse(BaseModel):
    """Response for successful booking creation."""

    booking: BookingResponse
    message: str = "Booking created successfully"
    payment_required: bool = True


class CancelBookingResponse(BaseModel):
    """Response for successful booking cancellation."""

    booking: BookingResponse
    message: str = "Booking cancelled successfully"
