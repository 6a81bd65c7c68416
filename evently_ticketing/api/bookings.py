"""
FastAPI routes for booking management.
"""

import logging
from typing import List, Optional, Sequence
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Booking, User
from ..schemas.booking import (
    BookingCancelRequest,
    BookingCreateRequest,
    BookingResponse,
    CancelBookingResponse,
    CreateBookingResponse,
)
from ..schemas.event import EventSummary
from ..services.booking_service import BookingService
from ..services.seat_service import format_seat_display
from ..services.ticket_service import TicketService
from ..utils.dependencies import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_booking_service(db: AsyncSession = Depends(get_db)) -> BookingService:
    return BookingService(db)


def create_booking_response(booking: Booking, seat_numbers: Optional[Sequence[str]] = None) -> BookingResponse:
    """Create a BookingResponse from a booking model with its event loaded."""
    seat_numbers = list(seat_numbers or [])
    response = BookingResponse.model_validate(booking)
    response.event = EventSummary.model_validate(booking.event) if booking.event else None
    response.seats = seat_numbers
    response.seat_display = format_seat_display(seat_numbers)
    return response


@router.post("", response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreateRequest,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service)
):
    """
    Book tickets for an event.

    Capacity is reserved immediately; the booking stays pending until paid.
    Seats are allocated when the event uses seat allocation.
    """
    booking, seats = await booking_service.create_booking(current_user, booking_data)

    return CreateBookingResponse(
        booking=create_booking_response(booking, [seat.seat_number for seat in seats]),
        payment_required=booking.total_amount > 0
    )


@router.get("", response_model=List[BookingResponse])
async def list_my_bookings(
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service)
):
    """Get the current user's bookings, newest first."""
    bookings = await booking_service.list_user_bookings(current_user)
    seats = await booking_service.get_seat_numbers(bookings)
    return [create_booking_response(booking, seats.get(booking.id)) for booking in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service)
):
    """Get a booking. Visible to the booker, the event organizer and admins."""
    booking = await booking_service.get_booking(current_user, booking_id)
    seats = await booking_service.get_seat_numbers([booking])
    return create_booking_response(booking, seats.get(booking.id))


@router.post("/{booking_id}/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    booking_id: UUID,
    cancel_data: Optional[BookingCancelRequest] = None,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service)
):
    """
    Cancel a booking.

    Capacity and seats return to inventory and unused tickets are cancelled.
    Bookings with a checked-in ticket cannot be cancelled.
    """
    reason = cancel_data.reason if cancel_data else None
    booking = await booking_service.cancel_booking(current_user, booking_id, reason)
    return CancelBookingResponse(booking=create_booking_response(booking))


@router.get("/{booking_id}/tickets.pdf")
async def download_booking_tickets(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Download all tickets of a paid booking as one PDF."""
    pdf = await TicketService(db).render_booking_pdf(current_user, booking_id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="booking-{booking_id}-tickets.pdf"'}
    )
