"""
Pydantic schemas for ticket scanning and check-in statistics.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.scan_log import ScanResult, ScanType
from ..models.ticket import TicketStatus


class ScanRequest(BaseModel):
    """A scan from the door: either the QR payload or a typed ticket number."""

    qr_data: Optional[str] = Field(None, description="Encrypted QR token or validation URL")
    ticket_number: Optional[str] = Field(None, max_length=64, description="Ticket number or printed code")
    event_id: Optional[UUID] = Field(None, description="Event the scanner is working")
    check_in: bool = Field(True, description="False only verifies without admitting")
    device_info: Optional[Dict[str, Any]] = None
    location: Optional[str] = Field(None, max_length=255)

    @model_validator(mode='after')
    def require_ticket_reference(self):
        if not self.qr_data and not self.ticket_number:
            raise ValueError("Either qr_data or ticket_number is required")
        return self


class TicketInfo(BaseModel):
    ticket_id: UUID
    ticket_number: str
    ticket_type: str
    status: TicketStatus
    seat_number: Optional[str] = None
    attendee_name: Optional[str] = None
    scan_count: int
    checked_in_at: Optional[datetime] = None
    event_id: UUID
    event_title: str
    event_date: datetime
    venue: str


class VerificationResult(BaseModel):
    """Outcome of a single scan."""

    success: bool
    scan_result: ScanResult
    message: str
    ticket_info: Optional[TicketInfo] = None
    check_in_opens_at: Optional[datetime] = None
    hours_until_check_in: Optional[int] = None
    scanned_at: datetime


class ScanLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_id: Optional[UUID] = None
    printed_ticket_id: Optional[UUID] = None
    ticket_number: Optional[str] = None
    event_id: Optional[UUID] = None
    scanned_by: Optional[UUID] = None
    scan_type: ScanType
    scan_result: ScanResult
    error_message: Optional[str] = None
    device_info: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    location: Optional[str] = None
    created_at: datetime


class VerificationStats(BaseModel):
    """Check-in progress of an event."""

    event_id: UUID
    event_title: str
    total_tickets: int
    checked_in: int
    remaining: int
    cancelled: int
    expired: int
    check_in_rate: float = Field(..., description="Percentage of tickets checked in")
    total_scans: int
    scans_by_result: Dict[str, int]
    last_check_in_at: Optional[datetime] = None
    printed_tickets: int = 0
    printed_checked_in: int = 0
    recent_scans: List[ScanLogResponse] = []
