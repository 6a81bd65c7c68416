"""
Seat layout and seat inventory models.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UTCDateTime


class SeatStatus(enum.Enum):
    """Enumeration for seat status."""
    AVAILABLE = "available"
    RESERVED = "reserved"
    BOOKED = "booked"
    BLOCKED = "blocked"


class SeatLayout(enum.Enum):
    """How seat numbers are laid out for an event."""
    SEQUENTIAL = "sequential"
    ROWS = "rows"
    SECTIONS = "sections"


class EventSeatConfig(Base):
    """Per-event seat allocation settings."""

    __tablename__ = "event_seat_configs"

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    has_seat_allocation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    layout_type: Mapped[SeatLayout] = mapped_column(
        Enum(SeatLayout),
        nullable=False,
        default=SeatLayout.SEQUENTIAL
    )
    seats_per_row: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # [{"name": "VIP", "seats": 20, "price_override": "1500.00"}, ...]
    sections: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        CheckConstraint("total_seats > 0", name="ck_seat_configs_total_positive"),
    )


class EventSeat(Base):
    """A single allocatable seat."""

    __tablename__ = "event_seats"

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    seat_number: Mapped[str] = mapped_column(String(20), nullable=False)
    # Numeric position used for natural ordering ("A10" after "A9")
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    row_label: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    section: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    price_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    status: Mapped[SeatStatus] = mapped_column(
        Enum(SeatStatus),
        default=SeatStatus.AVAILABLE,
        nullable=False,
        index=True
    )
    booking_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    booked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("event_id", "seat_number", name="uq_event_seats_number"),
    )

    @property
    def is_available(self) -> bool:
        """Check if the seat is available for booking."""
        return self.status == SeatStatus.AVAILABLE

    def __repr__(self) -> str:
        return (
            f"<EventSeat(id={self.id}, event_id={self.event_id}, "
            f"seat='{self.seat_number}', status={self.status.value})>"
        )
