"""
Organizer dashboard statistics endpoints.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas.statistics import OrganizerStatisticsResponse
from ..services.statistics_service import StatisticsService
from ..utils.dependencies import get_current_organizer

router = APIRouter(prefix="/organizer", tags=["statistics"])


@router.get("/statistics", response_model=OrganizerStatisticsResponse)
async def get_organizer_statistics(
    event_id: Optional[UUID] = Query(None, description="Restrict to one event"),
    current_user: User = Depends(get_current_organizer),
    db: AsyncSession = Depends(get_db)
):
    """
    Sales, revenue and check-in figures for the organizer's events.

    Admins see every event.
    """
    return await StatisticsService(db).get_organizer_statistics(current_user, event_id)
