"""
Payment service: gateway orders, checkout verification and failure capture.
"""

import logging
import secrets
import string
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import get_settings
from ..models import (
    Booking,
    BookingStatus,
    GatewayPaymentStatus,
    Payment,
    PaymentLog,
    PaymentLogEvent,
    PaymentStatus,
    Ticket,
    User,
)
from ..schemas.payment import CreateOrderResponse, PaymentFailureRequest, VerifyPaymentRequest
from ..utils.exceptions import (
    AuthorizationError,
    BookingNotFoundError,
    InvalidBookingStateError,
    PaymentAlreadyCompletedError,
    PaymentNotFoundError,
    PaymentVerificationError,
)
from ..utils.logging_config import log_business_event, log_security_event
from .payment_gateway import PaymentGateway
from .ticket_service import TicketService

logger = logging.getLogger(__name__)

RECEIPT_ALPHABET = string.digits + string.ascii_lowercase


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to paise/cents."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_receipt() -> str:
    """Merchant receipt reference, ``BK_<epoch ms>_<5 base36 chars>``."""
    suffix = "".join(secrets.choice(RECEIPT_ALPHABET) for _ in range(5))
    return f"BK_{int(time.time() * 1000)}_{suffix}"


class PaymentService:
    """Service class for booking payments."""

    def __init__(self, db: AsyncSession, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.settings = get_settings()

    async def create_order(self, user: User, booking_id: UUID) -> CreateOrderResponse:
        """
        Open a gateway order for a booking.

        Args:
            user: Booker
            booking_id: Booking to pay for

        Returns:
            Order details for the checkout widget

        Raises:
            BookingNotFoundError: When booking is not found
            AuthorizationError: When the booking belongs to someone else
            PaymentAlreadyCompletedError: When the booking is already paid
            InvalidBookingStateError: When the booking was cancelled or expired
            PaymentServiceError: When the gateway rejects the order
        """
        booking = await self._get_user_booking(user, booking_id)

        if booking.payment_status == PaymentStatus.COMPLETED:
            raise PaymentAlreadyCompletedError(str(booking.id))

        if not booking.is_active:
            raise InvalidBookingStateError(
                str(booking.id), booking.booking_status.value, "confirmed"
            )

        amount = to_minor_units(booking.total_amount)
        currency = self.settings.payment_currency
        receipt = generate_receipt()
        notes = {
            "bookingId": str(booking.id),
            "eventTitle": booking.event.title[:200],
            "userId": str(user.id),
        }

        order = await self.gateway.create_order(amount, currency, receipt, notes)

        payment = Payment(
            booking_id=booking.id,
            gateway_order_id=order["id"],
            amount=booking.total_amount,
            currency=currency,
            status=GatewayPaymentStatus.CREATED,
            attempts=0,
            notes=notes
        )
        self.db.add(payment)
        await self.db.flush()

        self.db.add(PaymentLog(
            payment_id=payment.id,
            booking_id=booking.id,
            event_type=PaymentLogEvent.ORDER_CREATED.value,
            event_data={"order_id": order["id"], "amount": amount, "currency": currency, "receipt": receipt}
        ))
        booking.payment_id = order["id"]
        await self.db.commit()

        logger.info(f"Payment order {order['id']} created for booking {booking.id}")
        return CreateOrderResponse(
            order_id=order["id"],
            amount=amount,
            currency=currency,
            receipt=receipt,
            booking_id=booking.id,
            payment_id=payment.id,
            key_id=self.gateway.key_id
        )

    async def verify_payment(
        self,
        user: User,
        data: VerifyPaymentRequest
    ) -> Tuple[Booking, List[Ticket]]:
        """
        Verify a checkout signature, capture the payment and issue tickets.

        Ticket issuance failures are logged and leave the payment captured;
        repeating the verification issues the missing tickets.

        Returns:
            Tuple of (booking, tickets)

        A booking that expired or was cancelled while the checkout was open
        has already given its capacity back, so its payment is not captured.

        Raises:
            PaymentNotFoundError: When no order was raised for the booking
            InvalidBookingStateError: When the booking no longer holds capacity
            PaymentVerificationError: When the signature does not match
        """
        booking = await self._get_user_booking(user, data.booking_id)
        payment = await self._get_payment(booking, data.payment_record_id, data.razorpay_order_id)

        self.db.add(PaymentLog(
            payment_id=payment.id,
            booking_id=booking.id,
            event_type=PaymentLogEvent.VERIFICATION_ATTEMPT.value,
            event_data={
                "order_id": data.razorpay_order_id,
                "payment_id": data.razorpay_payment_id,
            }
        ))

        if booking.is_paid and payment.status == GatewayPaymentStatus.CAPTURED:
            await self.db.commit()
            logger.info(f"Booking {booking.id} already paid; returning its tickets")
            return booking, await self._issue_tickets(booking)

        signature_ok = self.gateway.verify_signature(
            payment.gateway_order_id,
            data.razorpay_payment_id,
            data.razorpay_signature
        )

        if not signature_ok:
            payment.status = GatewayPaymentStatus.FAILED
            payment.error_code = "SIGNATURE_MISMATCH"
            payment.error_description = "Payment signature verification failed"
            payment.attempts += 1
            self.db.add(PaymentLog(
                payment_id=payment.id,
                booking_id=booking.id,
                event_type=PaymentLogEvent.VERIFICATION_FAILED.value,
                event_data={
                    "order_id": data.razorpay_order_id,
                    "payment_id": data.razorpay_payment_id,
                    "reason": "signature_mismatch",
                }
            ))
            await self.db.commit()

            log_security_event(
                "payment_signature_mismatch",
                {
                    "booking_id": str(booking.id),
                    "order_id": data.razorpay_order_id,
                    "user_id": str(user.id),
                }
            )
            raise PaymentVerificationError("Payment verification failed")

        # The expiry sweep may release the booking between load and capture
        captured = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.booking_status == BookingStatus.CONFIRMED)
            .values(payment_status=PaymentStatus.COMPLETED, payment_id=data.razorpay_payment_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(booking, attribute_names=["booking_status", "payment_status", "payment_id"])
        if captured.rowcount == 0:
            await self._reject_inactive_booking(user, booking, payment, data)

        payment.status = GatewayPaymentStatus.CAPTURED
        payment.gateway_payment_id = data.razorpay_payment_id
        payment.gateway_signature = data.razorpay_signature
        payment.attempts += 1
        self.db.add(PaymentLog(
            payment_id=payment.id,
            booking_id=booking.id,
            event_type=PaymentLogEvent.PAYMENT_CAPTURED.value,
            event_data={
                "order_id": payment.gateway_order_id,
                "payment_id": data.razorpay_payment_id,
                "amount": str(payment.amount),
            }
        ))

        await self.db.commit()

        log_business_event(
            "payment_captured",
            {
                "booking_id": str(booking.id),
                "payment_id": data.razorpay_payment_id,
                "amount": str(payment.amount),
            },
            user_id=str(user.id)
        )

        return booking, await self._issue_tickets(booking)

    async def _reject_inactive_booking(
        self,
        user: User,
        booking: Booking,
        payment: Payment,
        data: VerifyPaymentRequest
    ) -> None:
        """Record the refused capture and raise ``InvalidBookingStateError``."""
        payment.status = GatewayPaymentStatus.FAILED
        payment.error_code = "BOOKING_INACTIVE"
        payment.error_description = f"Booking is {booking.booking_status.value}; payment needs a refund"
        payment.attempts += 1
        self.db.add(PaymentLog(
            payment_id=payment.id,
            booking_id=booking.id,
            event_type=PaymentLogEvent.VERIFICATION_FAILED.value,
            event_data={
                "order_id": data.razorpay_order_id,
                "payment_id": data.razorpay_payment_id,
                "reason": "booking_inactive",
                "booking_status": booking.booking_status.value,
            }
        ))
        await self.db.commit()

        log_business_event(
            "payment_verification_failed",
            {
                "booking_id": str(booking.id),
                "payment_id": data.razorpay_payment_id,
                "reason": "booking_inactive",
                "booking_status": booking.booking_status.value,
            },
            user_id=str(user.id)
        )
        raise InvalidBookingStateError(
            str(booking.id), booking.booking_status.value, BookingStatus.CONFIRMED.value
        )

    async def _issue_tickets(self, booking: Booking) -> List[Ticket]:
        try:
            return await TicketService(self.db).generate_tickets_for_booking(booking)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Ticket generation failed for paid booking {booking.id}: {e}")
            # Rollback expired the booking; reload what the response reads
            await self.db.refresh(booking)
            await self.db.refresh(booking, attribute_names=["event"])
            return []

    async def record_failure(self, user: User, data: PaymentFailureRequest) -> None:
        """
        Store a failure reported by the checkout widget.

        A booking or order that has already been paid keeps its status.
        """
        booking = await self._get_user_booking(user, data.booking_id)
        payment = await self._find_payment(booking, data.payment_record_id)
        error = data.error

        if payment is not None and payment.status != GatewayPaymentStatus.CAPTURED:
            payment.status = GatewayPaymentStatus.FAILED
            payment.error_code = error.code or "UNKNOWN"
            payment.error_description = error.description or "Payment failed"
            payment.error_source = error.source or "razorpay"
            payment.error_step = error.step or "payment_processing"
            payment.error_reason = error.reason or "unknown"
            payment.attempts += 1

        self.db.add(PaymentLog(
            payment_id=payment.id if payment else None,
            booking_id=booking.id,
            event_type=PaymentLogEvent.PAYMENT_FAILED.value,
            event_data=error.model_dump()
        ))

        if booking.payment_status != PaymentStatus.COMPLETED:
            booking.payment_status = PaymentStatus.FAILED

        await self.db.commit()
        logger.warning(
            f"Payment failed for booking {booking.id}: {error.code or 'UNKNOWN'} "
            f"({error.description or 'Payment failed'})"
        )

    async def list_user_payments(self, user: User) -> List[Payment]:
        result = await self.db.execute(
            select(Payment)
            .join(Booking, Payment.booking_id == Booking.id)
            .where(Booking.user_id == user.id)
            .order_by(Payment.created_at.desc())
        )
        return list(result.scalars().all())

    async def _get_user_booking(self, user: User, booking_id: UUID) -> Booking:
        result = await self.db.execute(
            select(Booking)
            .options(selectinload(Booking.event))
            .where(Booking.id == booking_id)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        if booking.user_id != user.id and not user.is_admin:
            raise AuthorizationError("You can only pay for your own bookings")
        return booking

    async def _find_payment(
        self,
        booking: Booking,
        payment_record_id: Optional[UUID],
        order_id: Optional[str] = None
    ) -> Optional[Payment]:
        query = select(Payment).where(Payment.booking_id == booking.id)
        if payment_record_id is not None:
            query = query.where(Payment.id == payment_record_id)
        elif order_id is not None:
            query = query.where(Payment.gateway_order_id == order_id)
        else:
            query = query.order_by(Payment.created_at.desc()).limit(1)

        result = await self.db.execute(query)
        return result.scalars().first()

    async def _get_payment(
        self,
        booking: Booking,
        payment_record_id: Optional[UUID],
        order_id: str
    ) -> Payment:
        payment = await self._find_payment(booking, payment_record_id, order_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_record_id or order_id))
        return payment
