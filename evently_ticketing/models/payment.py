"""
Gateway payment attempts and their audit log.
"""

import enum
import uuid
from decimal import Decimal
from typing import Any, Optional, TYPE_CHECKING

from sqlalchemy import JSON, CheckConstraint, Enum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .booking import Booking


class GatewayPaymentStatus(enum.Enum):
    """Lifecycle of a single gateway order."""
    CREATED = "created"
    CAPTURED = "captured"
    FAILED = "failed"


class Payment(Base):
    """A gateway order raised for a booking."""

    __tablename__ = "payments"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    gateway_order_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    gateway_signature: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[GatewayPaymentStatus] = mapped_column(
        Enum(GatewayPaymentStatus),
        default=GatewayPaymentStatus.CREATED,
        nullable=False,
        index=True
    )

    # Failure details reported by the checkout widget or by verification
    error_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_source: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_step: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    notes: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    booking: Mapped["Booking"] = relationship("Booking")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, order='{self.gateway_order_id}', status={self.status.value})>"


class PaymentLogEvent(str, enum.Enum):
    """Event types written to the payment log."""
    ORDER_CREATED = "order_created"
    VERIFICATION_ATTEMPT = "payment_verification_attempt"
    VERIFICATION_FAILED = "payment_verification_failed"
    PAYMENT_CAPTURED = "payment_captured"
    PAYMENT_FAILED = "payment_failed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_EXPIRED = "booking_expired"


class PaymentLog(Base):
    """Append-only record of payment lifecycle events."""

    __tablename__ = "payment_logs"

    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentLog(booking_id={self.booking_id}, event_type='{self.event_type}')>"
