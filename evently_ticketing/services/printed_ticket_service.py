"""
Printed ticket service: QR admissions generated in batches for offline sale.
"""

import io
import logging
import uuid
import zipfile
from typing import List
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..cache import CacheInvalidator
from ..config import get_settings
from ..models import PRINTED_TICKET_TYPE, Event, PrintedTicket, TicketStatus, User
from ..utils.exceptions import EventNotFoundError, PrintedTicketNotFoundError, ValidationError
from ..utils.logging_config import log_business_event
from ..utils.qr_codes import build_qr_data, encrypt_qr_data, generate_qr_png, generate_validation_url
from .event_service import EventService

logger = logging.getLogger(__name__)


def printed_code_prefix(title: str) -> str:
    """Up to three characters from each word of the title, six at most."""
    words = ["".join(ch for ch in word if ch.isalnum()) for word in title.split()]
    prefix = "".join(word[:3] for word in words).upper()[:6]
    return prefix or "PRT"


class PrintedTicketService:
    """Service class for printed ticket batches."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def generate(self, user: User, event_id: UUID, quantity: int) -> List[PrintedTicket]:
        """
        Generate a numbered batch of printed tickets for an event.

        Codes read ``<PREFIX>-<nnn>`` and continue from the highest sequence
        already printed for the event. Every ticket carries an encrypted QR
        token marked as printed so door scanners look it up here.

        Raises:
            EventNotFoundError: If event is not found
            AuthorizationError: If the user does not manage the event
            ValidationError: If quantity is outside the allowed batch size
        """
        limit = self.settings.printed_ticket_batch_limit
        if quantity < 1 or quantity > limit:
            raise ValidationError(
                f"Quantity must be between 1 and {limit}",
                field_errors={"quantity": [f"must be between 1 and {limit}"]}
            )

        event = (await self.db.execute(
            select(Event).where(Event.id == event_id).with_for_update()
        )).scalar_one_or_none()
        if event is None:
            raise EventNotFoundError(str(event_id))
        EventService(self.db).ensure_can_manage(user, event)

        last_sequence = (await self.db.execute(
            select(func.coalesce(func.max(PrintedTicket.sequence), 0))
            .where(PrintedTicket.event_id == event_id)
        )).scalar_one()

        prefix = printed_code_prefix(event.title)
        batch_id = uuid.uuid4()
        tickets = []
        for sequence in range(last_sequence + 1, last_sequence + quantity + 1):
            ticket_id = uuid.uuid4()
            code = f"{prefix}-{sequence:03d}"
            tickets.append(PrintedTicket(
                id=ticket_id,
                event_id=event.id,
                event=event,
                ticket_code=code,
                sequence=sequence,
                batch_id=batch_id,
                qr_code=encrypt_qr_data(
                    build_qr_data(ticket_id, event.id, None, code, ticket_type=PRINTED_TICKET_TYPE)
                ),
                generated_by=user.id,
                status=TicketStatus.VALID,
                scan_count=0
            ))
        self.db.add_all(tickets)
        await self.db.commit()

        await CacheInvalidator.invalidate_verification_caches(str(event_id))
        log_business_event(
            "printed_tickets_generated",
            {
                "event_id": str(event_id),
                "batch_id": str(batch_id),
                "ticket_count": quantity,
                "first_code": tickets[0].ticket_code,
                "last_code": tickets[-1].ticket_code,
            },
            user_id=str(user.id)
        )
        logger.info(f"Generated {quantity} printed tickets for event {event_id}")
        return tickets

    async def list_event_tickets(self, user: User, event_id: UUID) -> List[PrintedTicket]:
        event_service = EventService(self.db)
        event_service.ensure_can_manage(user, await event_service.get_event(event_id))

        result = await self.db.execute(
            select(PrintedTicket)
            .where(PrintedTicket.event_id == event_id)
            .order_by(PrintedTicket.sequence)
        )
        return list(result.scalars().all())

    async def get_printed_ticket(self, user: User, ticket_id: UUID) -> PrintedTicket:
        """
        Raises:
            PrintedTicketNotFoundError: When the ticket does not exist
            AuthorizationError: If the user does not manage its event
        """
        result = await self.db.execute(
            select(PrintedTicket)
            .options(selectinload(PrintedTicket.event))
            .where(PrintedTicket.id == ticket_id)
        )
        ticket = result.scalar_one_or_none()
        if ticket is None:
            raise PrintedTicketNotFoundError(str(ticket_id))
        EventService(self.db).ensure_can_manage(user, ticket.event)
        return ticket

    def validation_url(self, ticket: PrintedTicket) -> str:
        return generate_validation_url(ticket.qr_code)

    def get_qr_png(self, ticket: PrintedTicket) -> bytes:
        return generate_qr_png(self.validation_url(ticket))

    async def build_download_zip(self, user: User, ticket_ids: List[UUID]) -> bytes:
        """
        ZIP with a QR PNG and a text label per printed ticket.

        Raises:
            PrintedTicketNotFoundError: When any of the tickets does not exist
            AuthorizationError: If the user does not manage every ticket's event
        """
        result = await self.db.execute(
            select(PrintedTicket)
            .options(selectinload(PrintedTicket.event))
            .where(PrintedTicket.id.in_(ticket_ids))
            .order_by(PrintedTicket.ticket_code)
        )
        tickets = list(result.scalars().all())
        missing = set(ticket_ids) - {ticket.id for ticket in tickets}
        if missing:
            raise PrintedTicketNotFoundError(", ".join(sorted(str(ticket_id) for ticket_id in missing)))

        event_service = EventService(self.db)
        for event in {ticket.event_id: ticket.event for ticket in tickets}.values():
            event_service.ensure_can_manage(user, event)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for ticket in tickets:
                archive.writestr(f"{ticket.ticket_code}.png", self.get_qr_png(ticket))
                archive.writestr(f"{ticket.ticket_code}.txt", "\n".join([
                    ticket.event.title,
                    ticket.event.event_date.strftime("%d %B %Y %H:%M %Z").strip(),
                    ticket.event.venue,
                    f"Ticket: {ticket.ticket_code}",
                    "",
                ]))

        logger.info(f"Bundled {len(tickets)} printed tickets for {user.id}")
        return buffer.getvalue()
