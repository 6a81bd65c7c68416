"""
Booking service with optimistic capacity control for ticket reservations.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..cache import CacheInvalidator
from ..config import get_settings
from ..models import (
    Booking,
    BookingStatus,
    Event,
    EventSeat,
    EventStatus,
    PaymentLog,
    PaymentLogEvent,
    PaymentStatus,
    Ticket,
    TicketStatus,
    User,
)
from ..schemas.booking import BookingCreateRequest
from ..utils.exceptions import (
    AuthorizationError,
    BookingNotFoundError,
    EventNotBookableError,
    EventNotFoundError,
    InsufficientCapacityError,
    InsufficientSeatsError,
    InvalidBookingStateError,
    OptimisticLockError,
)
from ..utils.logging_config import log_business_event
from ..utils.retry import retry_on_concurrency_error
from .seat_service import SeatService

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


class BookingService:
    """Service for managing bookings with concurrency control."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()
        self.seat_service = SeatService(db)

    @retry_on_concurrency_error(max_attempts=get_settings().max_retry_attempts, base_delay=0.1, max_delay=1.0)
    async def create_booking(
        self,
        user: User,
        booking_data: BookingCreateRequest
    ) -> Tuple[Booking, List[EventSeat]]:
        """
        Reserve capacity on an event and record the booking.

        Capacity is taken with a conditional update guarded by the event's
        ``version``; a lost race raises ``OptimisticLockError`` and the whole
        operation is retried against fresh event state.

        Args:
            user: Profile making the booking
            booking_data: Validated booking form

        Returns:
            Tuple of (booking, allocated seats)

        Raises:
            EventNotFoundError: When the event does not exist
            EventNotBookableError: When the event is not published or has started
            InsufficientCapacityError: When there's not enough capacity
            OptimisticLockError: When every retry lost the capacity race
        """
        event_id = booking_data.event_id
        quantity = booking_data.quantity
        logger.info(f"Creating booking for user {user.id}, event {event_id}, quantity {quantity}")

        event = await self._get_event_fresh(event_id)
        self._validate_bookable(event, quantity)

        result = await self.db.execute(
            update(Event)
            .where(
                Event.id == event.id,
                Event.version == event.version,
                Event.current_attendees + quantity <= Event.max_attendees
            )
            .values(
                current_attendees=Event.current_attendees + quantity,
                version=Event.version + 1
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # No rows written; the retry continues in this transaction
            raise OptimisticLockError("Event", str(event.id))

        booking = Booking(
            user_id=user.id,
            event_id=event.id,
            event=event,
            user_name=booking_data.user_name,
            user_email=str(booking_data.user_email),
            user_phone=booking_data.user_phone,
            quantity=quantity,
            total_amount=event.price * quantity,
            payment_status=PaymentStatus.PENDING,
            booking_status=BookingStatus.CONFIRMED
        )
        self.db.add(booking)
        await self.db.flush()

        seats: List[EventSeat] = []
        if await self.seat_service.has_seat_allocation(event.id):
            try:
                seats = await self.seat_service.allocate_seats(
                    booking.id,
                    event.id,
                    quantity,
                    preferred_section=booking_data.preferred_section
                )
            except InsufficientSeatsError as e:
                # The booking stands without seat numbers
                logger.warning(f"Seat allocation failed for booking {booking.id}: {e.message}")

        await self.db.commit()
        await self.db.refresh(event)
        await CacheInvalidator.invalidate_event_caches(str(event.id))

        log_business_event(
            "booking_created",
            {
                "booking_id": str(booking.id),
                "event_id": str(event.id),
                "quantity": quantity,
                "total_amount": str(booking.total_amount),
                "seats": [seat.seat_number for seat in seats],
            },
            user_id=str(user.id)
        )
        logger.info(f"Booking {booking.id} created successfully")
        return booking, seats

    async def _get_event_fresh(self, event_id: UUID) -> Event:
        result = await self.db.execute(
            select(Event)
            .where(Event.id == event_id)
            .execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()
        if event is None:
            raise EventNotFoundError(str(event_id))
        return event

    def _validate_bookable(self, event: Event, quantity: int) -> None:
        if event.status != EventStatus.PUBLISHED:
            raise EventNotBookableError(str(event.id), "Event is not open for booking")

        if event.event_date <= datetime.now(timezone.utc):
            raise EventNotBookableError(str(event.id), "Cannot book tickets for past events")

        if quantity > event.available_spots:
            raise InsufficientCapacityError(quantity, event.available_spots, str(event.id))

    async def get_booking(self, user: User, booking_id: UUID) -> Booking:
        """
        Get a booking visible to ``user``.

        The booker, admins and the event organizer may read a booking.

        Raises:
            BookingNotFoundError: When booking is not found
            AuthorizationError: When the user may not see the booking
        """
        booking = await self._get_booking_with_relations(booking_id)

        if booking.user_id != user.id and not user.is_admin and booking.event.organizer_id != user.id:
            raise AuthorizationError("You do not have access to this booking")

        return booking

    async def list_user_bookings(self, user: User) -> List[Booking]:
        """Bookings made by the user, newest first."""
        result = await self.db.execute(
            select(Booking)
            .options(selectinload(Booking.event))
            .where(Booking.user_id == user.id)
            .order_by(Booking.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_seat_numbers(self, bookings: List[Booking]) -> Dict[UUID, List[str]]:
        return await self.seat_service.get_seat_numbers_for_bookings([b.id for b in bookings])

    async def cancel_booking(self, user: User, booking_id: UUID, reason: Optional[str] = None) -> Booking:
        """
        Cancel a booking and return its capacity and seats to inventory.

        Args:
            user: Booker or admin
            booking_id: ID of the booking to cancel
            reason: Optional cancellation reason

        Returns:
            Cancelled booking instance

        Raises:
            BookingNotFoundError: When booking is not found
            AuthorizationError: When the user did not make the booking
            InvalidBookingStateError: When booking is no longer active or a ticket was used
        """
        logger.info(f"Cancelling booking {booking_id}")

        booking = await self._get_booking_with_relations(booking_id, with_tickets=True)

        if booking.user_id != user.id and not user.is_admin:
            raise AuthorizationError("You can only cancel your own bookings")

        if not booking.is_active:
            raise InvalidBookingStateError(
                str(booking.id), booking.booking_status.value, BookingStatus.CONFIRMED.value
            )

        if any(ticket.status == TicketStatus.USED for ticket in booking.tickets):
            raise InvalidBookingStateError(str(booking.id), "checked_in", "no tickets used")

        await self._release_booking(booking, BookingStatus.CANCELLED)

        self.db.add(PaymentLog(
            booking_id=booking.id,
            event_type=PaymentLogEvent.BOOKING_CANCELLED.value,
            event_data={
                "reason": reason,
                "cancelled_by": str(user.id),
                "payment_status": booking.payment_status.value,
            }
        ))

        await self.db.commit()
        await CacheInvalidator.invalidate_event_caches(str(booking.event_id))

        log_business_event(
            "booking_cancelled",
            {"booking_id": str(booking.id), "event_id": str(booking.event_id), "reason": reason},
            user_id=str(user.id)
        )
        logger.info(f"Booking {booking_id} cancelled successfully")
        return booking

    async def expire_stale_bookings(self, hold_minutes: Optional[int] = None) -> int:
        """
        Expire unpaid bookings older than the hold timeout.

        Args:
            hold_minutes: Override for ``booking_hold_timeout_minutes``

        Returns:
            Number of bookings expired
        """
        if hold_minutes is None:
            hold_minutes = self.settings.booking_hold_timeout_minutes
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=hold_minutes)

        result = await self.db.execute(
            select(Booking)
            .where(
                Booking.booking_status == BookingStatus.CONFIRMED,
                Booking.payment_status.in_(UNPAID_STATUSES),
                Booking.created_at < cutoff
            )
            .limit(500)
        )
        bookings = list(result.scalars().all())

        event_ids = set()
        for booking in bookings:
            await self._release_booking(booking, BookingStatus.EXPIRED)
            self.db.add(PaymentLog(
                booking_id=booking.id,
                event_type=PaymentLogEvent.BOOKING_EXPIRED.value,
                event_data={"hold_minutes": hold_minutes}
            ))
            event_ids.add(booking.event_id)

        await self.db.commit()

        for event_id in event_ids:
            await CacheInvalidator.invalidate_event_caches(str(event_id))

        if bookings:
            logger.info(f"Expired {len(bookings)} unpaid bookings older than {hold_minutes} minutes")
        return len(bookings)

    async def _release_booking(self, booking: Booking, new_status: BookingStatus) -> None:
        """Give back capacity, seats and valid tickets. The caller commits."""
        await self.db.execute(
            update(Event)
            .where(Event.id == booking.event_id)
            .values(
                current_attendees=case(
                    (Event.current_attendees >= booking.quantity, Event.current_attendees - booking.quantity),
                    else_=0
                ),
                version=Event.version + 1
            )
            .execution_options(synchronize_session=False)
        )

        await self.seat_service.release_booking_seats(booking.id)

        await self.db.execute(
            update(Ticket)
            .where(Ticket.booking_id == booking.id, Ticket.status == TicketStatus.VALID)
            .values(status=TicketStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )

        booking.booking_status = new_status

    async def _get_booking_with_relations(self, booking_id: UUID, with_tickets: bool = False) -> Booking:
        options = [selectinload(Booking.event)]
        if with_tickets:
            options.append(selectinload(Booking.tickets))

        result = await self.db.execute(
            select(Booking)
            .options(*options)
            .where(Booking.id == booking_id)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking
