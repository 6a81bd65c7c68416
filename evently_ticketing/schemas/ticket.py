"""
Pydantic schemas for tickets and QR validation.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.ticket import TicketStatus
from .event import EventSummary


class TicketResponse(BaseModel):
    """Schema for ticket response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    event_id: UUID
    ticket_number: str
    ticket_type: str
    seat_number: Optional[str] = None
    attendee_name: Optional[str] = None
    attendee_email: Optional[str] = None
    status: TicketStatus
    scan_count: int = 0
    checked_in_at: Optional[datetime] = None
    created_at: datetime

    qr_code: Optional[str] = Field(None, description="Encrypted QR token")
    validation_url: Optional[str] = None
    event: Optional[EventSummary] = None


class QRValidationResponse(BaseModel):
    """Read-only view of the ticket behind a QR token."""

    valid: bool
    message: str
    ticket_id: UUID
    ticket_number: str
    status: TicketStatus
    ticket_type: str
    seat_number: Optional[str] = None
    attendee_name: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    event: EventSummary
