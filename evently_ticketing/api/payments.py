"""
Payment API endpoints: gateway orders, checkout verification and failures.
"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas.payment import (
    CreateOrderRequest,
    CreateOrderResponse,
    PaymentFailureRequest,
    PaymentFailureResponse,
    PaymentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from ..schemas.ticket import TicketResponse
from ..services.booking_service import BookingService
from ..services.payment_gateway import PaymentGateway, get_payment_gateway
from ..services.payment_service import PaymentService
from ..utils.dependencies import get_current_user
from .bookings import create_booking_response
from .tickets import create_ticket_response

router = APIRouter(prefix="/payments", tags=["payments"])


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> PaymentService:
    return PaymentService(db, gateway)


@router.post("/orders", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_request: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Open a gateway order for one of the user's bookings.

    The response carries the public key id and amount in minor units for
    the checkout widget.
    """
    return await payment_service.create_order(current_user, order_request.booking_id)


@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    verification: VerifyPaymentRequest,
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Verify the checkout signature, capture the payment and issue tickets.

    A signature mismatch answers 400 and marks the payment failed.
    """
    booking, tickets = await payment_service.verify_payment(current_user, verification)
    seats = await BookingService(db).get_seat_numbers([booking])

    return VerifyPaymentResponse(
        booking=create_booking_response(booking, seats.get(booking.id)),
        tickets=[create_ticket_response(ticket) for ticket in tickets]
    )


@router.post("/failed", response_model=PaymentFailureResponse)
async def record_payment_failure(
    failure: PaymentFailureRequest,
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Record a failure reported by the checkout widget."""
    await payment_service.record_failure(current_user, failure)
    return PaymentFailureResponse()


@router.get("", response_model=List[PaymentResponse])
async def list_my_payments(
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Payment records of the current user's bookings, newest first."""
    return await payment_service.list_user_payments(current_user)
