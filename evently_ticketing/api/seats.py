"""
Seat management API endpoints.
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas.seat import SeatAvailabilityResponse, SeatConfigRequest, SeatConfigResponse
from ..services.seat_service import SeatService
from ..utils.dependencies import get_current_user

router = APIRouter(prefix="/events", tags=["seats"])


@router.post(
    "/{event_id}/seats",
    response_model=SeatConfigResponse,
    status_code=status.HTTP_201_CREATED
)
async def configure_seats(
    event_id: UUID,
    config: SeatConfigRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Create or replace the seat layout of an event.

    Layouts:
    - sequential: seats 1..N
    - rows: A1, A2, ... B1, B2, ...
    - sections: seats numbered across named sections with optional price overrides

    Refused once any seat has been booked.
    """
    seat_config, seats_created = await SeatService(db).configure_seats(current_user, event_id, config)

    response = SeatConfigResponse.model_validate(seat_config)
    response.seats_created = seats_created
    return response


@router.get("/{event_id}/seats", response_model=SeatAvailabilityResponse)
async def get_available_seats(
    event_id: UUID,
    db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Get the available seats of an event.

    Args:
        event_id: Event UUID
        db: Database session

    Returns:
        Available seats in natural order and their count
    """
    return await SeatService(db).get_seat_availability(event_id)
