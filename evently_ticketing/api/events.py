"""
Event management API endpoints.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..models.event import EventStatus
from ..schemas.event import (
    BulkEventCreate,
    BulkEventResult,
    EventCreate,
    EventFilters,
    EventListResponse,
    EventResponse,
    EventUpdate,
    StaffCreate,
    StaffResponse,
)
from ..services.event_service import EventService
from ..services.ticket_service import TicketService
from ..utils.dependencies import get_current_organizer, get_current_user
from ..utils.event_import import FIRST_DATA_ROW, parse_events_csv
from ..utils.exceptions import ValidationError


router = APIRouter(prefix="/events", tags=["events"])


def get_event_service(db: AsyncSession = Depends(get_db)) -> EventService:
    """Dependency to get event service instance."""
    return EventService(db)


@router.get("", response_model=EventListResponse)
async def list_events(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Page size"),
    search: Optional[str] = Query(None, description="Search in title, description, or venue"),
    category: Optional[str] = Query(None),
    venue: Optional[str] = Query(None, description="Filter by venue"),
    date_from: Optional[datetime] = Query(None, description="Filter events from this date (ISO format)"),
    date_to: Optional[datetime] = Query(None, description="Filter events until this date (ISO format)"),
    min_price: Optional[Decimal] = Query(None, ge=0, description="Minimum ticket price"),
    max_price: Optional[Decimal] = Query(None, ge=0, description="Maximum ticket price"),
    upcoming_only: bool = Query(False, description="Hide events that already started"),
    available_only: bool = Query(False, description="Show only events with available capacity"),
    event_status: EventStatus = Query(EventStatus.PUBLISHED, alias="status"),
    event_service: EventService = Depends(get_event_service)
):
    """
    Get list of events with filtering and pagination.

    This endpoint supports various filtering options:
    - Search by title, description, or venue
    - Filter by category, venue, date range, price range
    - Show only upcoming or available events
    """
    filters = EventFilters(
        search=search,
        category=category,
        venue=venue,
        date_from=date_from,
        date_to=date_to,
        min_price=min_price,
        max_price=max_price,
        upcoming_only=upcoming_only,
        available_only=available_only,
        status=event_status
    )

    events, total = await event_service.get_events(filters, page, size)
    pages = math.ceil(total / size) if total > 0 else 1

    return EventListResponse(
        events=events,
        total=total,
        page=page,
        size=size,
        pages=pages
    )


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: EventCreate,
    current_user: User = Depends(get_current_organizer),
    event_service: EventService = Depends(get_event_service)
):
    """Create a new event. Organizers and admins only."""
    return await event_service.create_event(current_user, event_data)


def _bulk_result(response: Response, total_rows: int, created, errors) -> BulkEventResult:
    # 207 tells the client some rows were skipped
    response.status_code = status.HTTP_207_MULTI_STATUS if errors else status.HTTP_201_CREATED
    return BulkEventResult(
        total_rows=total_rows,
        created=[EventResponse.model_validate(event) for event in created],
        errors=errors
    )


@router.post("/bulk", response_model=BulkEventResult, status_code=status.HTTP_201_CREATED)
async def bulk_create_events(
    data: BulkEventCreate,
    response: Response,
    current_user: User = Depends(get_current_organizer),
    event_service: EventService = Depends(get_event_service)
):
    """
    Create several events in one request.

    Rows that fail validation are reported and skipped; the rest are
    created as drafts unless a row sets its own status.
    """
    created, errors = await event_service.bulk_create_events(
        current_user, data.events, template_event_id=data.template_event_id
    )
    return _bulk_result(response, len(data.events), created, errors)


@router.post("/bulk-upload", response_model=BulkEventResult, status_code=status.HTTP_201_CREATED)
async def upload_events_csv(
    request: Request,
    response: Response,
    template_event_id: Optional[UUID] = Query(None, description="Event whose details fill missing columns"),
    current_user: User = Depends(get_current_organizer),
    event_service: EventService = Depends(get_event_service)
):
    """
    Import events from a CSV file sent as the request body.

    Columns: title, description, date (YYYY-MM-DD), time (HH:MM), venue,
    location, category, price, max_attendees and status.
    """
    rows = parse_events_csv(await request.body())
    if not rows:
        raise ValidationError("Event file has no data rows")
    created, errors = await event_service.bulk_create_events(
        current_user, rows, template_event_id=template_event_id, first_row=FIRST_DATA_ROW
    )
    return _bulk_result(response, len(rows), created, errors)


@router.get("/mine", response_model=List[EventResponse])
async def list_my_events(
    current_user: User = Depends(get_current_organizer),
    event_service: EventService = Depends(get_event_service)
):
    """Events organized by the current user (every event for admins)."""
    return await event_service.list_organizer_events(current_user)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: UUID,
    event_service: EventService = Depends(get_event_service)
) -> Any:
    """Get event details by ID."""
    return await event_service.get_event_detail(event_id)


@router.put("/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: UUID,
    event_data: EventUpdate,
    current_user: User = Depends(get_current_user),
    event_service: EventService = Depends(get_event_service)
):
    """
    Update an existing event.

    Only the organizer of the event or an admin may update it. Capacity
    cannot drop below the number of tickets already booked.
    """
    return await event_service.update_event(current_user, event_id, event_data)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: UUID,
    current_user: User = Depends(get_current_user),
    event_service: EventService = Depends(get_event_service)
):
    """Delete an event. Refused once any booking has been paid."""
    await event_service.delete_event(current_user, event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{event_id}/staff", response_model=List[StaffResponse])
async def list_staff(
    event_id: UUID,
    current_user: User = Depends(get_current_user),
    event_service: EventService = Depends(get_event_service)
):
    return await event_service.list_staff(current_user, event_id)


@router.post("/{event_id}/staff", response_model=StaffResponse, status_code=status.HTTP_201_CREATED)
async def add_staff(
    event_id: UUID,
    staff_data: StaffCreate,
    current_user: User = Depends(get_current_user),
    event_service: EventService = Depends(get_event_service)
):
    """Assign a profile (by id or email) to scan tickets at the event."""
    return await event_service.add_staff(current_user, event_id, staff_data)


@router.delete("/{event_id}/staff/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_staff(
    event_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    event_service: EventService = Depends(get_event_service)
):
    await event_service.remove_staff(current_user, event_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{event_id}/tickets.zip")
async def download_event_tickets(
    event_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Download every issued ticket of the event as a ZIP of PDFs."""
    archive = await TicketService(db).build_event_tickets_zip(current_user, event_id)
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="event-{event_id}-tickets.zip"'}
    )
