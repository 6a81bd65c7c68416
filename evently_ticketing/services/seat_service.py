"""
Seat service for seat layout generation and per-booking seat allocation.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheInvalidator, CacheKeyBuilder, CacheTTL, get_cache
from ..models import EventSeat, EventSeatConfig, SeatLayout, SeatStatus, User
from ..models.base import utc_now
from ..schemas.seat import SeatConfigRequest, SeatResponse
from ..utils.exceptions import InsufficientSeatsError, SeatConfigurationLockedError
from .event_service import EventService

logger = logging.getLogger(__name__)


def row_label(index: int) -> str:
    """Spreadsheet-style row label: 0 -> A, 25 -> Z, 26 -> AA."""
    label = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        label = chr(ord("A") + remainder) + label
    return label


def format_seat_display(seat_numbers: Sequence[str]) -> str:
    """
    Render allocated seat numbers for humans.

    Examples:
        ["12"] -> "12"
        ["3", "4", "5"] -> "3-5"
        ["A1", "A2"] -> "A1, A2"
        ["1", "2", "3", "7", "9"] -> "1, 2, 3... (+2 more)"
    """
    if not seat_numbers:
        return ""

    if len(seat_numbers) == 1:
        return seat_numbers[0]

    if all(number.isdigit() for number in seat_numbers):
        numbers = sorted(int(number) for number in seat_numbers)
        consecutive = all(b == a + 1 for a, b in zip(numbers, numbers[1:]))
        if consecutive and len(numbers) > 2:
            return f"{numbers[0]}-{numbers[-1]}"

    if len(seat_numbers) <= 4:
        return ", ".join(seat_numbers)

    return f"{', '.join(seat_numbers[:3])}... (+{len(seat_numbers) - 3} more)"


class SeatService:
    """Service class for seat management operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.cache = get_cache()

    async def configure_seats(
        self,
        user: User,
        event_id: UUID,
        config: SeatConfigRequest
    ) -> tuple[EventSeatConfig, int]:
        """
        Create or replace the seat layout of an event.

        Existing seats are regenerated, so the layout can only change while
        no seat has been booked.

        Args:
            user: Organizer of the event or an admin
            event_id: Event UUID
            config: Layout definition

        Returns:
            Tuple of (seat config, number of seats generated)

        Raises:
            EventNotFoundError: If event is not found
            AuthorizationError: If the user does not manage the event
            SeatConfigurationLockedError: If any seat is already booked
        """
        event_service = EventService(self.db)
        event = await event_service.get_event(event_id)
        event_service.ensure_can_manage(user, event)

        booked = (await self.db.execute(
            select(func.count(EventSeat.id)).where(
                EventSeat.event_id == event_id,
                EventSeat.status == SeatStatus.BOOKED
            )
        )).scalar_one()
        if booked > 0:
            raise SeatConfigurationLockedError(str(event_id), booked)

        seats_per_row = config.seats_per_row
        if config.layout_type == SeatLayout.ROWS and seats_per_row is None:
            seats_per_row = math.ceil(math.sqrt(config.total_seats))

        sections = (
            [section.model_dump(mode="json") for section in config.sections]
            if config.sections else None
        )

        result = await self.db.execute(
            select(EventSeatConfig).where(EventSeatConfig.event_id == event_id)
        )
        seat_config = result.scalar_one_or_none()
        if seat_config is None:
            seat_config = EventSeatConfig(event_id=event_id)
            self.db.add(seat_config)

        seat_config.has_seat_allocation = config.has_seat_allocation
        seat_config.total_seats = config.total_seats
        seat_config.layout_type = config.layout_type
        seat_config.seats_per_row = seats_per_row
        seat_config.sections = sections

        await self.db.execute(delete(EventSeat).where(EventSeat.event_id == event_id))

        seats: List[EventSeat] = []
        if config.has_seat_allocation:
            seats = self._generate_seats(event_id, config, seats_per_row)
            self.db.add_all(seats)

        await self.db.commit()
        await CacheInvalidator.invalidate_seat_caches(str(event_id))

        logger.info(
            f"Configured {len(seats)} seats ({config.layout_type.value}) for event {event_id}"
        )
        return seat_config, len(seats)

    def _generate_seats(
        self,
        event_id: UUID,
        config: SeatConfigRequest,
        seats_per_row: Optional[int]
    ) -> List[EventSeat]:
        seats = []

        if config.layout_type == SeatLayout.ROWS:
            for index in range(config.total_seats):
                row, column = divmod(index, seats_per_row)
                label = row_label(row)
                seats.append(EventSeat(
                    event_id=event_id,
                    seat_number=f"{label}{column + 1}",
                    position=index + 1,
                    row_label=label,
                    status=SeatStatus.AVAILABLE
                ))

        elif config.layout_type == SeatLayout.SECTIONS:
            position = 0
            for section in config.sections:
                for _ in range(section.seats):
                    position += 1
                    seats.append(EventSeat(
                        event_id=event_id,
                        seat_number=str(position),
                        position=position,
                        section=section.name,
                        price_override=section.price_override,
                        status=SeatStatus.AVAILABLE
                    ))

        else:
            for position in range(1, config.total_seats + 1):
                seats.append(EventSeat(
                    event_id=event_id,
                    seat_number=str(position),
                    position=position,
                    status=SeatStatus.AVAILABLE
                ))

        return seats

    async def get_seat_config(self, event_id: UUID) -> Optional[EventSeatConfig]:
        result = await self.db.execute(
            select(EventSeatConfig).where(EventSeatConfig.event_id == event_id)
        )
        return result.scalar_one_or_none()

    async def has_seat_allocation(self, event_id: UUID) -> bool:
        """Check if event has seat allocation enabled."""
        seat_config = await self.get_seat_config(event_id)
        return bool(seat_config and seat_config.has_seat_allocation)

    async def allocate_seats(
        self,
        booking_id: UUID,
        event_id: UUID,
        quantity: int,
        preferred_section: Optional[str] = None
    ) -> List[EventSeat]:
        """
        Mark the lowest-numbered available seats as booked for a booking.

        Seats from ``preferred_section`` are used when that section can cover
        the whole quantity, otherwise any available seats are taken. The
        caller owns the transaction.

        Raises:
            InsufficientSeatsError: If fewer than ``quantity`` seats are available
        """
        seats: List[EventSeat] = []
        if preferred_section:
            seats = await self._lock_available_seats(event_id, quantity, preferred_section)

        if len(seats) < quantity:
            seats = await self._lock_available_seats(event_id, quantity)

        if len(seats) < quantity:
            raise InsufficientSeatsError(quantity, len(seats))

        booked_at = utc_now()
        for seat in seats:
            seat.status = SeatStatus.BOOKED
            seat.booking_id = booking_id
            seat.booked_at = booked_at

        await self.db.flush()
        await CacheInvalidator.invalidate_seat_caches(str(event_id))

        logger.info(f"Allocated seats {[s.seat_number for s in seats]} to booking {booking_id}")
        return seats

    async def _lock_available_seats(
        self,
        event_id: UUID,
        limit: int,
        section: Optional[str] = None
    ) -> List[EventSeat]:
        query = (
            select(EventSeat)
            .where(
                EventSeat.event_id == event_id,
                EventSeat.status == SeatStatus.AVAILABLE
            )
            .order_by(EventSeat.position)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        if section:
            query = query.where(EventSeat.section == section)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def release_booking_seats(self, booking_id: UUID) -> int:
        """Return a booking's seats to the available pool. The caller owns the transaction."""
        result = await self.db.execute(
            update(EventSeat)
            .where(EventSeat.booking_id == booking_id)
            .values(status=SeatStatus.AVAILABLE, booking_id=None, booked_at=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"Released {result.rowcount} seats from booking {booking_id}")
        return result.rowcount

    async def get_available_seats(self, event_id: UUID) -> List[EventSeat]:
        result = await self.db.execute(
            select(EventSeat)
            .where(
                EventSeat.event_id == event_id,
                EventSeat.status == SeatStatus.AVAILABLE
            )
            .order_by(EventSeat.position)
        )
        return list(result.scalars().all())

    async def get_available_seats_count(self, event_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(EventSeat.id)).where(
                EventSeat.event_id == event_id,
                EventSeat.status == SeatStatus.AVAILABLE
            )
        )
        return result.scalar_one()

    async def get_booking_seats(self, booking_id: UUID) -> List[EventSeat]:
        result = await self.db.execute(
            select(EventSeat)
            .where(EventSeat.booking_id == booking_id)
            .order_by(EventSeat.position)
        )
        return list(result.scalars().all())

    async def get_seat_numbers_for_bookings(self, booking_ids: Sequence[UUID]) -> Dict[UUID, List[str]]:
        """Map booking id to its seat numbers in natural order."""
        if not booking_ids:
            return {}

        result = await self.db.execute(
            select(EventSeat.booking_id, EventSeat.seat_number)
            .where(EventSeat.booking_id.in_(booking_ids))
            .order_by(EventSeat.position)
        )
        seats_by_booking: Dict[UUID, List[str]] = {}
        for booking_id, seat_number in result.all():
            seats_by_booking.setdefault(booking_id, []).append(seat_number)
        return seats_by_booking

    async def get_seat_availability(self, event_id: UUID) -> Dict[str, Any]:
        """
        Get available seats of an event with caching.

        Returns:
            ``SeatAvailabilityResponse`` as a JSON-compatible dict

        Raises:
            EventNotFoundError: If event is not found
        """
        cache_key = CacheKeyBuilder.seat_availability(str(event_id))
        cached = await self.cache.get(cache_key)
        if cached:
            return cached

        await EventService(self.db).get_event(event_id)

        seats = await self.get_available_seats(event_id)
        availability = {
            "event_id": str(event_id),
            "has_seat_allocation": await self.has_seat_allocation(event_id),
            "available_count": len(seats),
            "seats": [SeatResponse.model_validate(seat).model_dump(mode="json") for seat in seats],
        }

        await self.cache.set(cache_key, availability, CacheTTL.SEAT_AVAILABILITY)
        return availability
