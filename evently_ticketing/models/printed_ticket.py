"""
Printed ticket model: QR admissions an organizer prints for offline sale.

Printed tickets belong to an event rather than a booking. They are scanned
at the door exactly like booked tickets and share their status values.
"""

import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UTCDateTime
from .ticket import TicketStatus

if TYPE_CHECKING:
    from .event import Event

PRINTED_TICKET_TYPE = "printed"


class PrintedTicket(Base):
    """A pre-generated admission identified by its printed code."""

    __tablename__ = "printed_tickets"

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    ticket_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    batch_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    qr_code: Mapped[str] = mapped_column(Text, nullable=False)
    generated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True
    )

    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus),
        default=TicketStatus.VALID,
        nullable=False,
        index=True
    )

    scan_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_scanned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_scanned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    checked_in_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True
    )

    event: Mapped["Event"] = relationship("Event")

    __table_args__ = (
        UniqueConstraint("event_id", "sequence", name="uq_printed_tickets_event_sequence"),
        UniqueConstraint("event_id", "ticket_code", name="uq_printed_tickets_event_code"),
        CheckConstraint("sequence > 0", name="ck_printed_tickets_sequence_positive"),
        CheckConstraint("scan_count >= 0", name="ck_printed_tickets_scan_count_non_negative"),
    )

    # Scanning reads these the same way it reads a booked Ticket
    @property
    def ticket_number(self) -> str:
        return self.ticket_code

    @property
    def ticket_type(self) -> str:
        return PRINTED_TICKET_TYPE

    @property
    def seat_number(self) -> Optional[str]:
        return None

    @property
    def attendee_name(self) -> Optional[str]:
        return None

    def __repr__(self) -> str:
        return f"<PrintedTicket(id={self.id}, code='{self.ticket_code}', status={self.status.value})>"
