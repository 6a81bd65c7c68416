"""
Ticket service: issuing tickets for paid bookings and rendering them.
"""

import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import get_settings
from ..models import (
    PRINTED_TICKET_TYPE,
    Booking,
    Event,
    PaymentStatus,
    PrintedTicket,
    Ticket,
    TicketStatus,
    User,
)
from ..schemas.event import EventSummary
from ..schemas.ticket import QRValidationResponse
from ..utils.exceptions import (
    AuthorizationError,
    InvalidBookingStateError,
    InvalidQRCodeError,
    TicketNotFoundError,
)
from ..utils.logging_config import log_business_event
from ..utils.qr_codes import (
    build_qr_data,
    decrypt_qr_data,
    encrypt_qr_data,
    generate_qr_png,
    generate_validation_url,
)
from ..utils.ticket_pdf import TicketDocument, build_tickets_zip, render_tickets_pdf
from .booking_service import BookingService
from .event_service import EventService
from .seat_service import SeatService

logger = logging.getLogger(__name__)

TICKET_ISSUE_ATTEMPTS = 3


def now_ms() -> int:
    return int(time.time() * 1000)


def ticket_number_prefix(title: str) -> str:
    prefix = "".join(ch for ch in title if ch.isalnum())[:3].upper()
    return prefix or "TKT"


class TicketService:
    """Service class for ticket issuance and retrieval."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def generate_tickets_for_booking(self, booking: Booking) -> List[Ticket]:
        """
        Issue one ticket per unit of a booking.

        Tickets are numbered ``<TTT>-<epoch ms>-<nnn>`` from the event title,
        take the booking's allocated seats in order and carry an encrypted QR
        token bound to their own id. A booking that already has tickets is
        returned unchanged.

        The millisecond stamp is moved forward past any stamp already used
        with the same prefix; an insert that still collides with a concurrent
        issuer is rolled back and reissued.

        Args:
            booking: Paid booking

        Returns:
            The booking's tickets ordered by ticket number
        """
        booking_id = booking.id
        existing = await self.get_booking_tickets(booking_id)
        if existing:
            logger.info(f"Booking {booking_id} already has {len(existing)} tickets")
            return existing

        for attempt in range(1, TICKET_ISSUE_ATTEMPTS + 1):
            tickets = await self._build_tickets(booking)
            self.db.add_all(tickets)
            try:
                await self.db.commit()
                break
            except IntegrityError:
                await self.db.rollback()
                if attempt == TICKET_ISSUE_ATTEMPTS:
                    raise
                logger.warning(f"Ticket number collision for booking {booking_id}, reissuing")
                # Rollback expired the booking
                await self.db.refresh(booking)
                await self.db.refresh(booking, attribute_names=["event"])

                existing = await self.get_booking_tickets(booking_id)
                if existing:
                    return existing

        log_business_event(
            "tickets_generated",
            {
                "booking_id": str(booking_id),
                "event_id": str(booking.event_id),
                "ticket_count": len(tickets),
            },
            user_id=str(booking.user_id)
        )
        logger.info(f"Generated {len(tickets)} tickets for booking {booking_id}")
        return tickets

    async def _build_tickets(self, booking: Booking) -> List[Ticket]:
        event = (await self.db.execute(
            select(Event).where(Event.id == booking.event_id)
        )).scalar_one()

        seat_numbers = [seat.seat_number for seat in await SeatService(self.db).get_booking_seats(booking.id)]
        prefix = ticket_number_prefix(event.title)
        issued_ms = await self._free_issue_stamp(prefix)

        tickets = []
        for index in range(booking.quantity):
            ticket_id = uuid.uuid4()
            ticket_number = f"{prefix}-{issued_ms}-{index + 1:03d}"
            qr_token = encrypt_qr_data(
                build_qr_data(ticket_id, event.id, booking.id, ticket_number)
            )
            tickets.append(Ticket(
                id=ticket_id,
                booking_id=booking.id,
                event_id=event.id,
                event=event,
                ticket_number=ticket_number,
                qr_code=qr_token,
                ticket_type="general",
                seat_number=seat_numbers[index] if index < len(seat_numbers) else None,
                attendee_name=booking.user_name,
                attendee_email=booking.user_email,
                status=TicketStatus.VALID
            ))
        return tickets

    async def _free_issue_stamp(self, prefix: str) -> int:
        """Current epoch ms, or the next one not yet used with ``prefix``."""
        issued_ms = now_ms()
        while (await self.db.execute(
            select(Ticket.id)
            .where(Ticket.ticket_number.like(f"{prefix}-{issued_ms}-%"))
            .limit(1)
        )).first() is not None:
            issued_ms += 1
        return issued_ms

    async def get_booking_tickets(self, booking_id: UUID) -> List[Ticket]:
        result = await self.db.execute(
            select(Ticket)
            .options(selectinload(Ticket.event))
            .where(Ticket.booking_id == booking_id)
            .order_by(Ticket.ticket_number)
        )
        return list(result.scalars().all())

    async def list_user_tickets(self, user: User) -> List[Ticket]:
        """Tickets from the user's bookings, newest first."""
        result = await self.db.execute(
            select(Ticket)
            .join(Booking, Ticket.booking_id == Booking.id)
            .options(selectinload(Ticket.event))
            .where(Booking.user_id == user.id)
            .order_by(Ticket.created_at.desc(), Ticket.ticket_number)
        )
        return list(result.scalars().all())

    async def get_ticket(self, user: User, ticket_id: UUID) -> Ticket:
        """
        Get a ticket visible to ``user``.

        The ticket holder, admins, the event organizer and event staff may
        read a ticket.

        Raises:
            TicketNotFoundError: When ticket is not found
            AuthorizationError: When the user may not see the ticket
        """
        result = await self.db.execute(
            select(Ticket)
            .options(selectinload(Ticket.event), selectinload(Ticket.booking))
            .where(Ticket.id == ticket_id)
        )
        ticket = result.scalar_one_or_none()
        if ticket is None:
            raise TicketNotFoundError(str(ticket_id))

        if (
            ticket.booking.user_id == user.id
            or user.is_admin
            or ticket.event.organizer_id == user.id
            or await EventService(self.db).is_event_staff(ticket.event_id, user.id)
        ):
            return ticket

        raise AuthorizationError("You do not have access to this ticket")

    async def get_ticket_by_number(self, ticket_number: str) -> Ticket:
        result = await self.db.execute(
            select(Ticket)
            .options(selectinload(Ticket.event))
            .where(Ticket.ticket_number == ticket_number.strip())
        )
        ticket = result.scalar_one_or_none()
        if ticket is None:
            raise TicketNotFoundError(ticket_number)
        return ticket

    def validation_url(self, ticket: Ticket) -> Optional[str]:
        return generate_validation_url(ticket.qr_code) if ticket.qr_code else None

    def get_ticket_qr_png(self, ticket: Ticket) -> bytes:
        """PNG QR code pointing at the ticket's validation URL."""
        if not ticket.qr_code:
            raise InvalidQRCodeError("Ticket has no QR code")
        return generate_qr_png(self.validation_url(ticket))

    def _ticket_document(self, ticket: Ticket, event: Event) -> TicketDocument:
        return TicketDocument(
            ticket_number=ticket.ticket_number,
            ticket_type=ticket.ticket_type,
            event_title=event.title,
            event_date=event.event_date,
            venue=event.venue,
            location=event.location,
            seat_number=ticket.seat_number,
            attendee_name=ticket.attendee_name,
            qr_png=self.get_ticket_qr_png(ticket),
        )

    def render_ticket_pdf(self, ticket: Ticket) -> bytes:
        """Single-page PDF for one ticket. ``ticket.event`` must be loaded."""
        return render_tickets_pdf(
            [self._ticket_document(ticket, ticket.event)],
            title=ticket.ticket_number
        )

    async def render_booking_pdf(self, user: User, booking_id: UUID) -> bytes:
        """
        PDF with one page per ticket of a booking.

        Raises:
            InvalidBookingStateError: When the booking has not been paid
        """
        booking = await BookingService(self.db).get_booking(user, booking_id)
        if booking.payment_status != PaymentStatus.COMPLETED:
            raise InvalidBookingStateError(
                str(booking.id), booking.payment_status.value, PaymentStatus.COMPLETED.value
            )

        tickets = await self.get_booking_tickets(booking.id)
        return render_tickets_pdf(
            [self._ticket_document(ticket, booking.event) for ticket in tickets],
            title=f"{booking.event.title} tickets"
        )

    async def build_event_tickets_zip(self, user: User, event_id: UUID) -> bytes:
        """ZIP of per-ticket PDFs for every issued ticket of an event."""
        event_service = EventService(self.db)
        event = await event_service.get_event(event_id)
        event_service.ensure_can_manage(user, event)

        result = await self.db.execute(
            select(Ticket)
            .where(Ticket.event_id == event_id, Ticket.status != TicketStatus.CANCELLED)
            .order_by(Ticket.ticket_number)
        )
        tickets = result.scalars().all()
        logger.info(f"Bundling {len(tickets)} tickets of event {event_id} for {user.id}")
        return build_tickets_zip(self._ticket_document(ticket, event) for ticket in tickets)

    async def validate_qr(self, token: str) -> QRValidationResponse:
        """
        Look up the booked or printed ticket behind a QR token without
        changing its state.

        Raises:
            InvalidQRCodeError: When the token cannot be decrypted or does not match
            TicketNotFoundError: When the ticket no longer exists
        """
        data = decrypt_qr_data(token)
        if data is None:
            raise InvalidQRCodeError("Invalid or expired QR code")

        try:
            ticket_id = UUID(data.ticket_id)
        except ValueError:
            raise InvalidQRCodeError("Invalid or expired QR code")

        model = PrintedTicket if data.ticket_type == PRINTED_TICKET_TYPE else Ticket
        result = await self.db.execute(
            select(model)
            .options(selectinload(model.event))
            .where(model.id == ticket_id)
        )
        ticket = result.scalar_one_or_none()
        if ticket is None:
            raise TicketNotFoundError(data.ticket_number)

        if ticket.ticket_number != data.ticket_number:
            raise InvalidQRCodeError("QR code does not match ticket")

        messages = {
            TicketStatus.VALID: "Ticket is valid",
            TicketStatus.USED: "Ticket has already been used",
            TicketStatus.CANCELLED: "Ticket has been cancelled",
            TicketStatus.EXPIRED: "Ticket has expired",
        }
        return QRValidationResponse(
            valid=ticket.status == TicketStatus.VALID,
            message=messages[ticket.status],
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            status=ticket.status,
            ticket_type=ticket.ticket_type,
            seat_number=ticket.seat_number,
            attendee_name=ticket.attendee_name,
            checked_in_at=ticket.checked_in_at,
            event=EventSummary.model_validate(ticket.event),
        )

    async def expire_past_event_tickets(self, grace_hours: Optional[int] = None) -> int:
        """
        Expire valid booked and printed tickets of events that started more
        than ``grace_hours`` ago.

        Returns:
            Number of tickets expired
        """
        if grace_hours is None:
            grace_hours = self.settings.ticket_expiry_grace_hours
        cutoff = datetime.now(timezone.utc) - timedelta(hours=grace_hours)

        past_events = select(Event.id).where(Event.event_date < cutoff)
        expired = 0
        for model in (Ticket, PrintedTicket):
            result = await self.db.execute(
                update(model)
                .where(model.status == TicketStatus.VALID, model.event_id.in_(past_events))
                .values(status=TicketStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            expired += result.rowcount
        await self.db.commit()

        if expired:
            logger.info(f"Expired {expired} tickets of events before {cutoff.isoformat()}")
        return expired
