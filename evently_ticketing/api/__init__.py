"""API endpoints for the Evently ticketing service."""

from fastapi import APIRouter
from .users import router as users_router
from .events import router as events_router
from .seats import router as seats_router
from .bookings import router as bookings_router
from .payments import router as payments_router
from .tickets import router as tickets_router
from .printed_tickets import router as printed_tickets_router
from .verification import router as verification_router
from .statistics import router as statistics_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# Include all routers
api_router.include_router(users_router)
api_router.include_router(events_router)
api_router.include_router(seats_router)
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
api_router.include_router(tickets_router)
api_router.include_router(printed_tickets_router)
api_router.include_router(verification_router)
api_router.include_router(statistics_router)

__all__ = ["api_router"]
