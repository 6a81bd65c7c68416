"""Business logic services for the Evently ticketing service."""

from .user_service import UserService
from .event_service import EventService
from .seat_service import SeatService
from .booking_service import BookingService
from .ticket_service import TicketService
from .payment_gateway import PaymentGateway, get_payment_gateway
from .payment_service import PaymentService
from .verification_service import VerificationService
from .statistics_service import StatisticsService

__all__ = [
    "UserService",
    "EventService",
    "SeatService",
    "BookingService",
    "TicketService",
    "PaymentGateway",
    "get_payment_gateway",
    "PaymentService",
    "VerificationService",
    "StatisticsService",
]
