"""
Database models for the Evently ticketing service.
"""

from .base import Base
from .user import User, UserRole
from .event import Event, EventStatus
from .event_staff import EventStaff
from .seat import EventSeat, EventSeatConfig, SeatLayout, SeatStatus
from .booking import Booking, BookingStatus, PaymentStatus
from .ticket import Ticket, TicketStatus
from .printed_ticket import PrintedTicket, PRINTED_TICKET_TYPE
from .scan_log import TicketScanLog, ScanType, ScanResult
from .payment import Payment, PaymentLog, PaymentLogEvent, GatewayPaymentStatus

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Event",
    "EventStatus",
    "EventStaff",
    "EventSeat",
    "EventSeatConfig",
    "SeatLayout",
    "SeatStatus",
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "Ticket",
    "TicketStatus",
    "PrintedTicket",
    "PRINTED_TICKET_TYPE",
    "TicketScanLog",
    "ScanType",
    "ScanResult",
    "Payment",
    "PaymentLog",
    "PaymentLogEvent",
    "GatewayPaymentStatus",
]
