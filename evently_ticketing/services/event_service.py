"""
Event service for managing events, their staff and ownership rules.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheInvalidator, CacheKeyBuilder, CacheTTL, get_cache
from ..config import get_settings
from ..models import (
    Booking,
    Event,
    EventSeat,
    EventSeatConfig,
    EventStaff,
    Payment,
    PaymentLog,
    PaymentStatus,
    PrintedTicket,
    Ticket,
    TicketScanLog,
    User,
)
from ..schemas.event import (
    BulkEventRowError,
    EventCreate,
    EventFilters,
    EventResponse,
    EventUpdate,
    StaffCreate,
)
from ..utils.exceptions import (
    AuthorizationError,
    EventHasBookingsError,
    EventNotFoundError,
    StaffMemberNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from ..utils.logging_config import log_business_event

logger = logging.getLogger(__name__)

BULK_EVENT_DEFAULTS = {"status": "draft", "category": "Other", "price": 0, "max_attendees": 100}
BULK_TEMPLATE_FIELDS = ("description", "category", "venue", "location", "image_url", "price", "max_attendees")


class EventService:
    """Service class for event management operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.cache = get_cache()

    async def create_event(self, organizer: User, event_data: EventCreate) -> Event:
        """
        Create a new event owned by ``organizer``.

        Args:
            organizer: Organizer or admin creating the event
            event_data: Event creation data

        Returns:
            Created event instance
        """
        event = Event(
            organizer_id=organizer.id,
            current_attendees=0,
            **event_data.model_dump()
        )
        self.db.add(event)
        await self.db.commit()

        logger.info(f"Event {event.id} created by organizer {organizer.id}")
        return event

    async def bulk_create_events(
        self,
        organizer: User,
        rows: List[Dict[str, Any]],
        template_event_id: Optional[UUID] = None,
        first_row: int = 1
    ) -> Tuple[List[Event], List[BulkEventRowError]]:
        """
        Create many events at once, skipping rows that fail validation.

        Missing columns fall back to the template event when one is given,
        otherwise to a draft with category "Other", price 0 and capacity 100.
        Valid rows are committed together.

        Args:
            organizer: Organizer or admin creating the events
            rows: Raw event fields, one dict per row
            template_event_id: Event the organizer manages whose details fill gaps
            first_row: Number reported for the first row in errors

        Returns:
            Created events and the per-row errors of skipped rows

        Raises:
            ValidationError: When there are too many rows or none is valid
        """
        limit = get_settings().bulk_event_row_limit
        if len(rows) > limit:
            raise ValidationError(f"At most {limit} events can be imported at once")

        defaults: Dict[str, Any] = dict(BULK_EVENT_DEFAULTS)
        if template_event_id is not None:
            template = await self.get_event(template_event_id)
            self.ensure_can_manage(organizer, template)
            defaults.update({
                field: getattr(template, field)
                for field in BULK_TEMPLATE_FIELDS
                if getattr(template, field) is not None
            })

        events: List[Event] = []
        errors: List[BulkEventRowError] = []
        for number, row in enumerate(rows, start=first_row):
            try:
                event_data = EventCreate.model_validate({**defaults, **row})
            except PydanticValidationError as exc:
                errors.append(BulkEventRowError(
                    row=number,
                    errors=[
                        f"{'.'.join(str(part) for part in error['loc']) or 'row'}: {error['msg']}"
                        for error in exc.errors()
                    ]
                ))
                continue
            events.append(Event(
                organizer_id=organizer.id,
                current_attendees=0,
                **event_data.model_dump()
            ))

        if not events:
            raise ValidationError(
                "No events were created",
                details={"rows": [error.model_dump() for error in errors]}
            )

        self.db.add_all(events)
        await self.db.commit()

        log_business_event(
            "events_bulk_created",
            {"created": len(events), "skipped": len(errors), "template_event_id": str(template_event_id or "")},
            user_id=str(organizer.id)
        )
        logger.info(f"Organizer {organizer.id} imported {len(events)} events, skipped {len(errors)} rows")
        return events, errors

    async def get_event(self, event_id: UUID) -> Event:
        """
        Load an event from the database.

        Raises:
            EventNotFoundError: If event is not found
        """
        result = await self.db.execute(select(Event).where(Event.id == event_id))
        event = result.scalar_one_or_none()
        if event is None:
            raise EventNotFoundError(str(event_id))
        return event

    async def get_event_detail(self, event_id: UUID) -> Dict[str, Any]:
        """
        Get the public representation of an event, served from cache when warm.

        Args:
            event_id: Event UUID

        Returns:
            ``EventResponse`` as a JSON-compatible dict

        Raises:
            EventNotFoundError: If event is not found
        """
        cache_key = CacheKeyBuilder.event_detail(str(event_id))
        cached_event = await self.cache.get(cache_key)
        if cached_event:
            return cached_event

        event = await self.get_event(event_id)
        payload = EventResponse.model_validate(event).model_dump(mode="json")
        await self.cache.set(cache_key, payload, CacheTTL.EVENT_DETAIL)
        return payload

    async def get_events(
        self,
        filters: EventFilters,
        page: int = 1,
        size: int = 20
    ) -> Tuple[List[Event], int]:
        """
        Get events with filtering and pagination.

        Args:
            filters: Event filtering parameters
            page: Page number (1-based)
            size: Page size

        Returns:
            Tuple of (events list, total count)
        """
        conditions = []

        if filters.status is not None:
            conditions.append(Event.status == filters.status)

        if filters.upcoming_only:
            conditions.append(Event.event_date >= datetime.now(timezone.utc))

        if filters.available_only:
            conditions.append(Event.current_attendees < Event.max_attendees)

        if filters.search:
            search_term = f"%{filters.search}%"
            conditions.append(or_(
                Event.title.ilike(search_term),
                Event.description.ilike(search_term),
                Event.venue.ilike(search_term)
            ))

        if filters.category:
            conditions.append(Event.category.ilike(filters.category))

        if filters.venue:
            conditions.append(Event.venue.ilike(f"%{filters.venue}%"))

        if filters.date_from:
            conditions.append(Event.event_date >= filters.date_from)

        if filters.date_to:
            conditions.append(Event.event_date <= filters.date_to)

        if filters.min_price is not None:
            conditions.append(Event.price >= filters.min_price)

        if filters.max_price is not None:
            conditions.append(Event.price <= filters.max_price)

        total = (await self.db.execute(
            select(func.count(Event.id)).where(*conditions)
        )).scalar_one()

        result = await self.db.execute(
            select(Event)
            .where(*conditions)
            .order_by(Event.event_date)
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total

    async def list_organizer_events(self, user: User) -> List[Event]:
        """Events the user organizes; every event for admins."""
        query = select(Event).order_by(Event.event_date.desc())
        if not user.is_admin:
            query = query.where(Event.organizer_id == user.id)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_event(self, user: User, event_id: UUID, event_data: EventUpdate) -> Event:
        """
        Update an existing event.

        Args:
            user: Owner of the event or an admin
            event_id: Event UUID
            event_data: Event update data

        Returns:
            Updated event instance

        Raises:
            EventNotFoundError: If event is not found
            AuthorizationError: If the user does not manage the event
            ValidationError: If capacity would drop below sold tickets
        """
        event = await self.get_event(event_id)
        self.ensure_can_manage(user, event)

        update_data = event_data.model_dump(exclude_unset=True)

        new_capacity = update_data.get("max_attendees")
        if new_capacity is not None and new_capacity < event.current_attendees:
            raise ValidationError(
                "Cannot reduce capacity below existing bookings. "
                f"Current attendees: {event.current_attendees}, New capacity: {new_capacity}"
            )

        for field, value in update_data.items():
            setattr(event, field, value)

        event.version += 1
        await self.db.commit()

        await CacheInvalidator.invalidate_event_caches(str(event_id))
        logger.info(f"Event {event_id} updated by {user.id}: {sorted(update_data)}")
        return event

    async def delete_event(self, user: User, event_id: UUID) -> None:
        """
        Delete an event and everything hanging off it.

        Raises:
            EventNotFoundError: If event is not found
            AuthorizationError: If the user does not manage the event
            EventHasBookingsError: If any booking for the event has been paid
        """
        event = await self.get_event(event_id)
        self.ensure_can_manage(user, event)

        paid_bookings = (await self.db.execute(
            select(func.count(Booking.id)).where(
                Booking.event_id == event_id,
                Booking.payment_status == PaymentStatus.COMPLETED
            )
        )).scalar_one()
        if paid_bookings > 0:
            raise EventHasBookingsError(str(event_id), paid_bookings)

        booking_ids = select(Booking.id).where(Booking.event_id == event_id)
        for statement in (
            delete(TicketScanLog).where(TicketScanLog.event_id == event_id),
            delete(Ticket).where(Ticket.event_id == event_id),
            delete(PrintedTicket).where(PrintedTicket.event_id == event_id),
            delete(PaymentLog).where(PaymentLog.booking_id.in_(booking_ids)),
            delete(Payment).where(Payment.booking_id.in_(booking_ids)),
            delete(EventSeat).where(EventSeat.event_id == event_id),
            delete(EventSeatConfig).where(EventSeatConfig.event_id == event_id),
            delete(EventStaff).where(EventStaff.event_id == event_id),
            delete(Booking).where(Booking.event_id == event_id),
        ):
            await self.db.execute(statement.execution_options(synchronize_session=False))

        await self.db.delete(event)
        await self.db.commit()

        await CacheInvalidator.invalidate_event_caches(str(event_id))
        logger.info(f"Event {event_id} deleted by {user.id}")

    def ensure_can_manage(self, user: User, event: Event) -> None:
        """Raise unless ``user`` organizes ``event`` or is an admin."""
        if user.is_admin or event.organizer_id == user.id:
            return
        raise AuthorizationError(
            "Only the event organizer can manage this event",
            required_permission="event:manage"
        )

    async def is_event_staff(self, event_id: UUID, user_id: UUID, require_scan: bool = False) -> bool:
        query = select(EventStaff.id).where(
            EventStaff.event_id == event_id,
            EventStaff.user_id == user_id
        )
        if require_scan:
            query = query.where(EventStaff.can_scan.is_(True))
        return (await self.db.execute(query)).first() is not None

    async def can_scan(self, user: User, event: Event) -> bool:
        """Admins, the organizer and staff with scan rights may check tickets in."""
        if user.is_admin or event.organizer_id == user.id:
            return True
        return await self.is_event_staff(event.id, user.id, require_scan=True)

    async def add_staff(self, user: User, event_id: UUID, data: StaffCreate) -> EventStaff:
        """
        Assign a profile to an event, updating the assignment if it exists.

        Raises:
            ValidationError: If neither ``user_id`` nor ``email`` is given
            UserNotFoundError: If the referenced profile does not exist
        """
        event = await self.get_event(event_id)
        self.ensure_can_manage(user, event)

        staff_user = await self._resolve_user(data.user_id, data.email)

        result = await self.db.execute(
            select(EventStaff).where(
                EventStaff.event_id == event_id,
                EventStaff.user_id == staff_user.id
            )
        )
        staff = result.scalar_one_or_none()
        if staff is None:
            staff = EventStaff(event_id=event_id, user_id=staff_user.id)
            self.db.add(staff)

        staff.role = data.role
        staff.can_scan = data.can_scan
        await self.db.commit()

        logger.info(f"User {staff_user.id} assigned to event {event_id} as {data.role}")
        return staff

    async def list_staff(self, user: User, event_id: UUID) -> List[EventStaff]:
        event = await self.get_event(event_id)
        self.ensure_can_manage(user, event)

        result = await self.db.execute(
            select(EventStaff)
            .where(EventStaff.event_id == event_id)
            .order_by(EventStaff.created_at)
        )
        return list(result.scalars().all())

    async def remove_staff(self, user: User, event_id: UUID, staff_user_id: UUID) -> None:
        event = await self.get_event(event_id)
        self.ensure_can_manage(user, event)

        result = await self.db.execute(
            delete(EventStaff).where(
                EventStaff.event_id == event_id,
                EventStaff.user_id == staff_user_id
            )
        )
        if result.rowcount == 0:
            raise StaffMemberNotFoundError(str(event_id), str(staff_user_id))
        await self.db.commit()

    async def _resolve_user(self, user_id: Optional[UUID], email: Optional[str]) -> User:
        if user_id is None and not email:
            raise ValidationError("Either user_id or email is required")

        query = select(User).where(User.id == user_id) if user_id else select(User).where(User.email == email)
        user = (await self.db.execute(query)).scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(str(user_id or email))
        return user
