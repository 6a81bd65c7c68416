"""
Event schemas for request/response validation.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, ConfigDict

from ..models.event import EventStatus


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class EventBase(BaseModel):
    """Base event schema with common fields."""

    title: str = Field(..., min_length=1, max_length=255, description="Event title")
    description: Optional[str] = Field(None, description="Event description")
    category: Optional[str] = Field(None, max_length=100)
    venue: str = Field(..., min_length=1, max_length=255, description="Event venue")
    location: Optional[str] = Field(None, max_length=255, description="City or address")
    image_url: Optional[str] = Field(None, max_length=1024)
    event_date: datetime = Field(..., description="Event start, timezone-aware (UTC if naive)")
    price: Decimal = Field(..., ge=0, description="Ticket price")
    max_attendees: int = Field(..., gt=0, description="Total event capacity")


class EventCreate(EventBase):
    """Schema for creating a new event."""

    status: EventStatus = EventStatus.PUBLISHED

    @field_validator('event_date')
    @classmethod
    def event_date_must_be_future(cls, v):
        """Validate that event date is in the future."""
        v = _as_utc(v)
        if v <= datetime.now(timezone.utc):
            raise ValueError('Event date must be in the future')
        return v


class EventUpdate(BaseModel):
    """Schema for updating an existing event."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    venue: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    image_url: Optional[str] = Field(None, max_length=1024)
    event_date: Optional[datetime] = None
    price: Optional[Decimal] = Field(None, ge=0)
    max_attendees: Optional[int] = Field(None, gt=0)
    status: Optional[EventStatus] = None

    @field_validator('event_date')
    @classmethod
    def normalize_event_date(cls, v):
        return _as_utc(v) if v is not None else v


class EventResponse(EventBase):
    """Schema for event response."""

    id: UUID
    organizer_id: UUID
    status: EventStatus
    current_attendees: int
    available_spots: int
    is_sold_out: bool
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EventSummary(BaseModel):
    """Compact event block embedded in bookings and tickets."""

    id: UUID
    title: str
    venue: str
    location: Optional[str] = None
    event_date: datetime
    price: Decimal
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class EventListResponse(BaseModel):
    """Schema for paginated event list response."""

    events: list[EventResponse]
    total: int
    page: int
    size: int
    pages: int


class EventFilters(BaseModel):
    """Schema for event filtering parameters."""

    search: Optional[str] = Field(None, description="Search in title, description, or venue")
    category: Optional[str] = None
    venue: Optional[str] = Field(None, description="Filter by venue")
    date_from: Optional[datetime] = Field(None, description="Filter events from this date")
    date_to: Optional[datetime] = Field(None, description="Filter events until this date")
    min_price: Optional[Decimal] = Field(None, ge=0, description="Minimum ticket price")
    max_price: Optional[Decimal] = Field(None, ge=0, description="Maximum ticket price")
    upcoming_only: bool = Field(default=False, description="Hide events that already started")
    available_only: bool = Field(default=False, description="Show only events with free spots")
    status: Optional[EventStatus] = Field(default=EventStatus.PUBLISHED)

    @field_validator('date_from', 'date_to')
    @classmethod
    def normalize_dates(cls, v):
        return _as_utc(v) if v is not None else v

    @field_validator('max_price')
    @classmethod
    def max_price_greater_than_min(cls, v, info):
        """Validate that max_price is greater than min_price."""
        if v is not None and info.data.get('min_price') is not None:
            if v < info.data['min_price']:
                raise ValueError('max_price must be greater than or equal to min_price')
        return v

    @field_validator('date_to')
    @classmethod
    def date_to_after_date_from(cls, v, info):
        """Validate that date_to is after date_from."""
        if v is not None and info.data.get('date_from') is not None:
            if v < info.data['date_from']:
                raise ValueError('date_to must be after date_from')
        return v


class StaffCreate(BaseModel):
    """Assign a profile to work an event."""

    user_id: Optional[UUID] = None
    email: Optional[str] = Field(None, description="Alternative to user_id")
    role: str = Field("scanner", max_length=50)
    can_scan: bool = True


class StaffResponse(BaseModel):
    id: UUID
    event_id: UUID
    user_id: UUID
    role: str
    can_scan: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BulkEventCreate(BaseModel):
    """Several events in one request, each row shaped like ``EventCreate``."""

    template_event_id: Optional[UUID] = Field(
        None, description="Existing event whose venue, price and capacity fill missing columns"
    )
    events: List[Dict[str, Any]] = Field(..., min_length=1)


class BulkEventRowError(BaseModel):
    row: int
    errors: List[str]


class BulkEventResult(BaseModel):
    """Outcome of a bulk import; rows with errors are skipped."""

    total_rows: int
    created: List[EventResponse]
    errors: List[BulkEventRowError] = []
