"""
Audit trail of every ticket scan, successful or not.
"""

import enum
import uuid
from typing import Any, Optional

from sqlalchemy import JSON, Enum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ScanType(enum.Enum):
    """Whether a scan only looked a ticket up or attempted check-in."""
    VERIFICATION = "verification"
    CHECK_IN = "check_in"


class ScanResult(enum.Enum):
    """Outcome of a scan."""
    SUCCESS = "success"
    ALREADY_USED = "already_used"
    WRONG_EVENT = "wrong_event"
    INVALID = "invalid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    TOO_EARLY = "too_early"
    UNAUTHORIZED = "unauthorized"


class TicketScanLog(Base):
    """One row per scan attempt."""

    __tablename__ = "ticket_scan_logs"

    ticket_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    printed_ticket_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("printed_tickets.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    ticket_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    event_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    scanned_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True
    )

    scan_type: Mapped[ScanType] = mapped_column(Enum(ScanType), nullable=False)
    scan_result: Mapped[ScanResult] = mapped_column(Enum(ScanResult), nullable=False, index=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    device_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<TicketScanLog(ticket_id={self.ticket_id}, "
            f"type={self.scan_type.value}, result={self.scan_result.value})>"
        )
