"""
Custom exceptions for the Evently Ticketing service.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the platform."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Business logic errors
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    INSUFFICIENT_SEATS = "INSUFFICIENT_SEATS"
    INVALID_BOOKING_STATE = "INVALID_BOOKING_STATE"
    EVENT_NOT_BOOKABLE = "EVENT_NOT_BOOKABLE"
    EVENT_HAS_BOOKINGS = "EVENT_HAS_BOOKINGS"
    SEAT_CONFIGURATION_LOCKED = "SEAT_CONFIGURATION_LOCKED"
    PAYMENT_ALREADY_COMPLETED = "PAYMENT_ALREADY_COMPLETED"
    PAYMENT_VERIFICATION_FAILED = "PAYMENT_VERIFICATION_FAILED"
    INVALID_QR_CODE = "INVALID_QR_CODE"

    # Concurrency errors
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    OPTIMISTIC_LOCK_FAILURE = "OPTIMISTIC_LOCK_FAILURE"

    # External service errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PAYMENT_SERVICE_ERROR = "PAYMENT_SERVICE_ERROR"


class EventlyError(Exception):
    """Base exception class for Evently platform."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        """Initialize the exception with comprehensive error information."""
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(EventlyError):
    """Exception raised for validation errors."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if field_errors:
            details["field_errors"] = field_errors
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(EventlyError):
    """Base exception for resource not found errors."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class EventNotFoundError(NotFoundError):
    """Exception raised when an event is not found."""

    def __init__(self, event_id: str, **kwargs):
        super().__init__(
            f"Event {event_id} not found",
            resource_type="event",
            resource_id=event_id,
            suggestions=["Check the event ID", "Browse available events"],
            **kwargs
        )


class UserNotFoundError(NotFoundError):
    """Exception raised when a user profile is not found."""

    def __init__(self, user_id: str, **kwargs):
        super().__init__(
            f"User {user_id} not found",
            resource_type="user",
            resource_id=user_id,
            **kwargs
        )


class BookingNotFoundError(NotFoundError):
    """Exception raised when a booking is not found."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} not found",
            resource_type="booking",
            resource_id=booking_id,
            suggestions=["Check the booking ID", "View your bookings"],
            **kwargs
        )


class PaymentNotFoundError(NotFoundError):
    """Exception raised when a payment record is not found."""

    def __init__(self, payment_id: str, **kwargs):
        super().__init__(
            f"Payment {payment_id} not found",
            resource_type="payment",
            resource_id=payment_id,
            **kwargs
        )


class TicketNotFoundError(NotFoundError):
    """Exception raised when a ticket is not found."""

    def __init__(self, ticket_ref: str, **kwargs):
        super().__init__(
            f"Ticket {ticket_ref} not found",
            resource_type="ticket",
            resource_id=ticket_ref,
            **kwargs
        )


class PrintedTicketNotFoundError(NotFoundError):
    """Exception raised when a printed ticket is not found."""

    def __init__(self, ticket_ref: str, **kwargs):
        super().__init__(
            f"Printed ticket {ticket_ref} not found",
            resource_type="printed_ticket",
            resource_id=ticket_ref,
            **kwargs
        )


class StaffMemberNotFoundError(NotFoundError):
    """Exception raised when a staff assignment does not exist."""

    def __init__(self, event_id: str, user_id: str, **kwargs):
        super().__init__(
            f"User {user_id} is not staff for event {event_id}",
            resource_type="event_staff",
            resource_id=user_id,
            **kwargs
        )


class AuthenticationError(EventlyError):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UNAUTHORIZED,
            suggestions=["Sign in again to refresh your session"],
            **kwargs
        )


class AuthorizationError(EventlyError):
    """Exception raised for authorization failures."""

    def __init__(self, message: str = "Access denied", required_permission: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.FORBIDDEN,
            details={"required_permission": required_permission} if required_permission else None,
            **kwargs
        )


class BusinessLogicError(EventlyError):
    """Base exception for business logic violations."""
    pass


class EventNotBookableError(BusinessLogicError):
    """Exception raised when an event cannot accept bookings."""

    def __init__(self, event_id: str, reason: str, **kwargs):
        super().__init__(
            reason,
            error_code=ErrorCode.EVENT_NOT_BOOKABLE,
            details={"event_id": event_id},
            **kwargs
        )


class EventHasBookingsError(BusinessLogicError):
    """Exception raised when trying to delete an event with paid bookings."""

    def __init__(self, event_id: str, booking_count: int, **kwargs):
        super().__init__(
            f"Cannot delete event {event_id} with {booking_count} paid bookings",
            error_code=ErrorCode.EVENT_HAS_BOOKINGS,
            details={"event_id": event_id, "booking_count": booking_count},
            suggestions=["Cancel the event instead of deleting it"],
            **kwargs
        )


class InsufficientCapacityError(BusinessLogicError):
    """Exception raised when event capacity is insufficient."""

    def __init__(self, requested: int, available: int, event_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Only {available} seats available",
            error_code=ErrorCode.INSUFFICIENT_CAPACITY,
            details={"requested": requested, "available": available, "event_id": event_id},
            suggestions=["Try booking fewer tickets"],
            **kwargs
        )


class InsufficientSeatsError(BusinessLogicError):
    """Exception raised when seat allocation cannot satisfy a request."""

    def __init__(self, requested: int, available: int, **kwargs):
        super().__init__(
            f"Not enough available seats. Requested: {requested}, Available: {available}",
            error_code=ErrorCode.INSUFFICIENT_SEATS,
            details={"requested": requested, "available": available},
            **kwargs
        )


class SeatConfigurationLockedError(BusinessLogicError):
    """Exception raised when reconfiguring seats that are already booked."""

    def __init__(self, event_id: str, booked_seats: int, **kwargs):
        super().__init__(
            f"Seat layout for event {event_id} cannot change: {booked_seats} seats already booked",
            error_code=ErrorCode.SEAT_CONFIGURATION_LOCKED,
            details={"event_id": event_id, "booked_seats": booked_seats},
            **kwargs
        )


class InvalidBookingStateError(BusinessLogicError):
    """Exception raised when booking is in invalid state for operation."""

    def __init__(self, booking_id: str, current_state: str, required_state: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} is in {current_state} state, required {required_state}",
            error_code=ErrorCode.INVALID_BOOKING_STATE,
            details={"booking_id": booking_id, "current_state": current_state, "required_state": required_state},
            **kwargs
        )


class PaymentAlreadyCompletedError(BusinessLogicError):
    """Exception raised when paying for an already paid booking."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            "Payment already completed",
            error_code=ErrorCode.PAYMENT_ALREADY_COMPLETED,
            details={"booking_id": booking_id},
            **kwargs
        )


class PaymentVerificationError(BusinessLogicError):
    """Exception raised when a gateway signature does not verify."""

    def __init__(self, message: str = "Payment verification failed", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.PAYMENT_VERIFICATION_FAILED,
            suggestions=["Contact support with your payment reference"],
            **kwargs
        )


class InvalidQRCodeError(BusinessLogicError):
    """Exception raised when a QR token cannot be decrypted."""

    def __init__(self, message: str = "Invalid QR code", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.INVALID_QR_CODE,
            **kwargs
        )


class ConcurrencyError(EventlyError):
    """Exception raised for concurrency-related issues."""

    def __init__(self, message: str, retry_after: int = 1, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.CONCURRENCY_CONFLICT)
        super().__init__(
            message,
            retry_after=retry_after,
            suggestions=["Please try again"],
            **kwargs
        )


class OptimisticLockError(ConcurrencyError):
    """Exception raised when optimistic locking fails."""

    def __init__(self, resource_type: str, resource_id: str, **kwargs):
        super().__init__(
            f"{resource_type} {resource_id} was modified by another transaction",
            details={"resource_type": resource_type, "resource_id": resource_id},
            error_code=ErrorCode.OPTIMISTIC_LOCK_FAILURE,
            **kwargs
        )


class ExternalServiceError(EventlyError):
    """Exception raised for external service failures."""

    def __init__(self, service_name: str, message: str, status_code: Optional[int] = None, **kwargs):
        details = {"service_name": service_name, "status_code": status_code}
        details.update(kwargs.pop("details", None) or {})
        kwargs.setdefault("error_code", ErrorCode.EXTERNAL_SERVICE_ERROR)
        kwargs.setdefault("suggestions", ["Try again later"])
        super().__init__(
            f"{service_name} service error: {message}",
            details=details,
            **kwargs
        )


class PaymentServiceError(ExternalServiceError):
    """Exception raised for payment gateway failures."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            "payment",
            message,
            error_code=ErrorCode.PAYMENT_SERVICE_ERROR,
            **kwargs
        )
