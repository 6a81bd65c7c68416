"""
Pydantic schemas for printed tickets.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.ticket import TicketStatus


class PrintedTicketCreate(BaseModel):
    """Schema for generating a batch of printed tickets."""

    event_id: UUID
    quantity: int = Field(..., ge=1, description="Number of tickets to print")


class PrintedTicketResponse(BaseModel):
    """Schema for printed ticket response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    ticket_code: str
    sequence: int
    batch_id: UUID
    status: TicketStatus
    scan_count: int = 0
    checked_in_at: Optional[datetime] = None
    created_at: datetime

    qr_code: str = Field(..., description="Encrypted QR token")
    validation_url: Optional[str] = None


class PrintedTicketDownload(BaseModel):
    ticket_ids: List[UUID] = Field(..., min_length=1)
