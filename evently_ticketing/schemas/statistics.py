"""
Pydantic schemas for organizer statistics.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from ..models.event import EventStatus


class EventTicketStatistics(BaseModel):
    total_tickets: int
    paid_tickets: int
    pending_tickets: int
    cancelled_tickets: int
    scanned_tickets: int
    unscanned_tickets: int
    revenue: Decimal
    scan_rate: float
    occupancy_rate: float
    available_spots: int


class EventTimeStatus(BaseModel):
    is_upcoming: bool
    is_today: bool
    is_past: bool


class RecentScan(BaseModel):
    id: UUID
    ticket_id: Optional[UUID] = None
    ticket_number: Optional[str] = None
    scanned_at: datetime
    scanned_by: Optional[UUID] = None


class OrganizerEventStatistics(BaseModel):
    id: UUID
    title: str
    event_date: datetime
    status: EventStatus
    venue: str
    location: Optional[str] = None
    price: Decimal
    max_attendees: int
    statistics: EventTicketStatistics
    time_status: EventTimeStatus
    recent_scans: List[RecentScan] = []


class OrganizerTotals(BaseModel):
    total_events: int = 0
    total_tickets_generated: int = 0
    total_tickets_scanned: int = 0
    total_revenue: Decimal = Decimal("0")
    scan_rate: float = 0.0
    upcoming_events: int = 0
    today_events: int = 0
    past_events: int = 0
    active_events: int = 0


class OrganizerStatisticsResponse(BaseModel):
    """Schema for the organizer dashboard."""

    events: List[OrganizerEventStatistics] = []
    total_stats: OrganizerTotals
    last_updated: datetime
