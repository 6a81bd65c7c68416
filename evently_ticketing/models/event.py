"""
Event model for managing events and their capacity.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UTCDateTime

if TYPE_CHECKING:
    from .user import User


class EventStatus(enum.Enum):
    """Enumeration for event lifecycle status."""
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Event(Base):
    """Event model for managing events and their capacity."""

    __tablename__ = "events"

    organizer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Event basic information
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    venue: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Event timing
    event_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True
    )

    # Pricing
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal('0.00')
    )

    # Capacity management
    max_attendees: Mapped[int] = mapped_column(Integer, nullable=False)
    current_attendees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[EventStatus] = mapped_column(
        Enum(EventStatus),
        default=EventStatus.PUBLISHED,
        nullable=False,
        index=True
    )

    # Optimistic locking for concurrency control
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    organizer: Mapped["User"] = relationship("User")

    __table_args__ = (
        CheckConstraint("max_attendees > 0", name="ck_events_max_attendees_positive"),
        CheckConstraint("current_attendees >= 0", name="ck_events_current_attendees_non_negative"),
        CheckConstraint("current_attendees <= max_attendees", name="ck_events_capacity_consistency"),
        CheckConstraint("price >= 0", name="ck_events_price_non_negative"),
        CheckConstraint("version > 0", name="ck_events_version_positive"),
    )

    @property
    def available_spots(self) -> int:
        return max(self.max_attendees - self.current_attendees, 0)

    @property
    def is_sold_out(self) -> bool:
        """Check if the event is sold out."""
        return self.available_spots == 0

    def __repr__(self) -> str:
        """String representation of the event."""
        return (
            f"<Event(id={self.id}, title='{self.title}', "
            f"date={self.event_date}, attendees={self.current_attendees}/{self.max_attendees})>"
        )
