"""
Ticket model: one admission per unit of a paid booking.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UTCDateTime

if TYPE_CHECKING:
    from .booking import Booking
    from .event import Event


class TicketStatus(enum.Enum):
    """Enumeration for ticket status."""
    VALID = "valid"
    USED = "used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Ticket(Base):
    """A single admission with its encrypted QR payload."""

    __tablename__ = "tickets"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    ticket_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    qr_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ticket_type: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    seat_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    attendee_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    attendee_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus),
        default=TicketStatus.VALID,
        nullable=False,
        index=True
    )

    # Scan bookkeeping
    scan_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_scanned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_scanned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    checked_in_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="tickets")
    event: Mapped["Event"] = relationship("Event")

    __table_args__ = (
        CheckConstraint("scan_count >= 0", name="ck_tickets_scan_count_non_negative"),
    )

    @property
    def is_checked_in(self) -> bool:
        return self.status == TicketStatus.USED

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, number='{self.ticket_number}', status={self.status.value})>"
