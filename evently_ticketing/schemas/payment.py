"""
Pydantic schemas for payment orders, verification and failures.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.payment import GatewayPaymentStatus
from .booking import BookingResponse
from .ticket import TicketResponse


class CreateOrderRequest(BaseModel):
    booking_id: UUID = Field(..., description="Booking to pay for")


class CreateOrderResponse(BaseModel):
    """Everything the checkout widget needs to open."""

    order_id: str
    amount: int = Field(..., description="Amount in the currency's minor unit")
    currency: str
    receipt: str
    booking_id: UUID
    payment_id: UUID = Field(..., description="Internal payment record id")
    key_id: Optional[str] = Field(None, description="Public gateway key")


class VerifyPaymentRequest(BaseModel):
    """Checkout callback fields forwarded by the client."""

    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    booking_id: UUID
    payment_record_id: Optional[UUID] = None


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    message: str = "Payment verified successfully"
    booking: BookingResponse
    tickets: List[TicketResponse] = []


class PaymentErrorDetails(BaseModel):
    """Error object reported by the checkout widget."""

    code: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None
    step: Optional[str] = None
    reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class PaymentFailureRequest(BaseModel):
    booking_id: UUID
    payment_record_id: Optional[UUID] = None
    error: PaymentErrorDetails = Field(default_factory=PaymentErrorDetails)


class PaymentFailureResponse(BaseModel):
    success: bool = True
    status: str = "failed"
    message: str = "Payment failure recorded"


class PaymentResponse(BaseModel):
    """Schema for payment record response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: GatewayPaymentStatus
    error_code: Optional[str] = None
    error_description: Optional[str] = None
    attempts: int
    created_at: datetime
    updated_at: datetime
