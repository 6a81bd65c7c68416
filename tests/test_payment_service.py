"""Tests for payment orders, checkout verification and failure capture."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from evently_ticketing.models import (
    Booking,
    BookingStatus,
    Event,
    GatewayPaymentStatus,
    Payment,
    PaymentLog,
    PaymentLogEvent,
    PaymentStatus,
    Ticket,
    TicketStatus,
)
from evently_ticketing.schemas.payment import (
    PaymentErrorDetails,
    PaymentFailureRequest,
    VerifyPaymentRequest,
)
from evently_ticketing.schemas.seat import SeatConfigRequest
from evently_ticketing.services.booking_service import BookingService
from evently_ticketing.services.payment_service import PaymentService, generate_receipt, to_minor_units
from evently_ticketing.services.seat_service import SeatService
from evently_ticketing.utils.exceptions import (
    AuthorizationError,
    InvalidBookingStateError,
    PaymentAlreadyCompletedError,
    PaymentVerificationError,
)

from conftest import booking_request, create_event, create_user, sign_checkout


def test_minor_units_round_half_up():
    assert to_minor_units(Decimal("500.00")) == 50000
    assert to_minor_units(Decimal("10.005")) == 1001
    assert to_minor_units(Decimal("0")) == 0


def test_receipt_format():
    receipt = generate_receipt()
    prefix, millis, suffix = receipt.split("_")

    assert prefix == "BK"
    assert millis.isdigit()
    assert len(suffix) == 5
    assert len(receipt) <= 40


async def _booking(db, user, event, quantity=2):
    booking, _ = await BookingService(db).create_booking(user, booking_request(event, quantity))
    return booking


def _verify_request(order, booking, payment_id="pay_test_001", signature=None):
    return VerifyPaymentRequest(
        razorpay_order_id=order.order_id,
        razorpay_payment_id=payment_id,
        razorpay_signature=signature or sign_checkout(order.order_id, payment_id),
        booking_id=booking.id,
        payment_record_id=order.payment_id,
    )


async def test_create_order(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)

    order = await PaymentService(db, gateway).create_order(attendee, booking.id)

    assert order.amount == 100000
    assert order.currency == "INR"
    assert order.key_id == "rzp_test_key"
    assert gateway.orders[0]["notes"]["bookingId"] == str(booking.id)
    assert booking.payment_id == order.order_id

    log = (await db.execute(select(PaymentLog))).scalar_one()
    assert log.event_type == PaymentLogEvent.ORDER_CREATED.value


async def test_order_for_someone_elses_booking_is_forbidden(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)
    stranger = await create_user(db)

    with pytest.raises(AuthorizationError):
        await PaymentService(db, gateway).create_order(stranger, booking.id)


async def test_order_for_cancelled_booking_is_rejected(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)
    await BookingService(db).cancel_booking(attendee, booking.id)

    with pytest.raises(InvalidBookingStateError):
        await PaymentService(db, gateway).create_order(attendee, booking.id)


async def test_verify_captures_payment_and_issues_tickets(db, gateway, organizer, attendee, event):
    await SeatService(db).configure_seats(organizer, event.id, SeatConfigRequest(total_seats=10))
    booking = await _booking(db, attendee, event, quantity=3)
    service = PaymentService(db, gateway)
    order = await service.create_order(attendee, booking.id)

    paid_booking, tickets = await service.verify_payment(attendee, _verify_request(order, booking))

    assert paid_booking.payment_status == PaymentStatus.COMPLETED
    assert paid_booking.payment_id == "pay_test_001"
    assert len(tickets) == 3
    assert [t.seat_number for t in tickets] == ["1", "2", "3"]
    assert all(t.status == TicketStatus.VALID for t in tickets)
    assert all(t.ticket_number.startswith("MON-") for t in tickets)
    assert len({t.ticket_number for t in tickets}) == 3
    assert tickets[0].ticket_number.endswith("-001")

    with pytest.raises(PaymentAlreadyCompletedError):
        await service.create_order(attendee, booking.id)


async def test_verify_is_idempotent(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)
    service = PaymentService(db, gateway)
    order = await service.create_order(attendee, booking.id)
    request = _verify_request(order, booking)

    _, first = await service.verify_payment(attendee, request)
    _, second = await service.verify_payment(attendee, request)

    assert sorted(t.id for t in first) == sorted(t.id for t in second)


async def test_bad_signature_fails_payment(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)
    service = PaymentService(db, gateway)
    order = await service.create_order(attendee, booking.id)

    with pytest.raises(PaymentVerificationError):
        await service.verify_payment(attendee, _verify_request(order, booking, signature="0" * 64))

    await db.refresh(booking)
    assert booking.payment_status == PaymentStatus.PENDING

    events = (await db.execute(
        select(PaymentLog.event_type).order_by(PaymentLog.created_at)
    )).scalars().all()
    assert PaymentLogEvent.VERIFICATION_FAILED.value in events


async def test_record_failure_marks_booking_failed(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)
    service = PaymentService(db, gateway)
    order = await service.create_order(attendee, booking.id)

    await service.record_failure(attendee, PaymentFailureRequest(
        booking_id=booking.id,
        payment_record_id=order.payment_id,
        error=PaymentErrorDetails(code="BAD_REQUEST_ERROR", description="Card declined"),
    ))

    await db.refresh(booking)
    assert booking.payment_status == PaymentStatus.FAILED

    payment = (await service.list_user_payments(attendee))[0]
    assert payment.status == GatewayPaymentStatus.FAILED
    assert payment.error_code == "BAD_REQUEST_ERROR"
    assert payment.error_source == "razorpay"
    assert payment.attempts == 1


async def test_failure_after_capture_keeps_paid_state(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)
    service = PaymentService(db, gateway)
    order = await service.create_order(attendee, booking.id)
    await service.verify_payment(attendee, _verify_request(order, booking))

    await service.record_failure(attendee, PaymentFailureRequest(booking_id=booking.id))

    await db.refresh(booking)
    assert booking.payment_status == PaymentStatus.COMPLETED
    payment = (await service.list_user_payments(attendee))[0]
    assert payment.status == GatewayPaymentStatus.CAPTURED


async def test_failed_booking_can_retry_payment(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)
    service = PaymentService(db, gateway)
    first = await service.create_order(attendee, booking.id)
    await service.record_failure(attendee, PaymentFailureRequest(
        booking_id=booking.id, payment_record_id=first.payment_id
    ))

    second = await service.create_order(attendee, booking.id)
    paid_booking, tickets = await service.verify_payment(attendee, _verify_request(second, booking, "pay_retry"))

    assert second.order_id != first.order_id
    assert paid_booking.payment_status == PaymentStatus.COMPLETED
    assert len(tickets) == 2


async def _assert_capture_refused(db, booking, event_id):
    await db.refresh(booking)
    assert booking.payment_status != PaymentStatus.COMPLETED

    payment = (await db.execute(select(Payment).where(Payment.booking_id == booking.id))).scalar_one()
    assert payment.status == GatewayPaymentStatus.FAILED
    assert payment.error_code == "BOOKING_INACTIVE"

    tickets = (await db.execute(select(Ticket).where(Ticket.booking_id == booking.id))).scalars().all()
    assert tickets == []

    log = (await db.execute(
        select(PaymentLog)
        .where(PaymentLog.event_type == PaymentLogEvent.VERIFICATION_FAILED.value)
    )).scalar_one()
    assert log.event_data["reason"] == "booking_inactive"

    event = (await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )).scalar_one()
    assert event.current_attendees <= event.max_attendees


async def test_late_payment_for_expired_booking_is_refused(db, gateway, organizer, attendee):
    event = await create_event(db, organizer, max_attendees=2)
    booking = await _booking(db, attendee, event, quantity=2)
    service = PaymentService(db, gateway)
    order = await service.create_order(attendee, booking.id)

    await db.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(created_at=datetime.now(timezone.utc) - timedelta(hours=2))
    )
    await db.commit()
    assert await BookingService(db).expire_stale_bookings(hold_minutes=30) == 1

    rival = await create_user(db, name="Ravi Rival")
    await _booking(db, rival, event, quantity=2)

    with pytest.raises(InvalidBookingStateError):
        await service.verify_payment(attendee, _verify_request(order, booking))

    assert booking.booking_status == BookingStatus.EXPIRED
    await _assert_capture_refused(db, booking, event.id)

    issued = (await db.execute(select(Ticket).where(Ticket.event_id == event.id))).scalars().all()
    assert issued == []


async def test_payment_for_booking_released_mid_checkout_is_refused(db, gateway, attendee, event):
    booking = await _booking(db, attendee, event)
    service = PaymentService(db, gateway)
    order = await service.create_order(attendee, booking.id)

    # Released behind the loaded booking's back, as a concurrent sweep would
    await db.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(booking_status=BookingStatus.CANCELLED)
        .execution_options(synchronize_session=False)
    )
    assert booking.booking_status == BookingStatus.CONFIRMED

    with pytest.raises(InvalidBookingStateError):
        await service.verify_payment(attendee, _verify_request(order, booking))

    assert booking.booking_status == BookingStatus.CANCELLED
    await _assert_capture_refused(db, booking, event.id)
