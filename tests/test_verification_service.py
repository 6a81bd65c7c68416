"""Tests for door scanning, check-in and ticket expiry."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from evently_ticketing.models import (
    Event,
    PaymentStatus,
    ScanResult,
    ScanType,
    Ticket,
    TicketScanLog,
    TicketStatus,
)
from evently_ticketing.schemas.event import StaffCreate
from evently_ticketing.services import ticket_service
from evently_ticketing.services.event_service import EventService
from evently_ticketing.services.ticket_service import TicketService, ticket_number_prefix
from evently_ticketing.services.verification_service import VerificationService
from evently_ticketing.utils.exceptions import AuthorizationError, InvalidQRCodeError
from evently_ticketing.utils.qr_codes import generate_validation_url

from conftest import create_event, create_paid_booking, create_user


@pytest.fixture
async def tonight(db, organizer):
    """Event starting within the check-in window."""
    return await create_event(
        db, organizer, title="Late Show", event_date=datetime.now(timezone.utc) + timedelta(hours=1)
    )


@pytest.fixture
async def ticket(db, attendee, tonight):
    _, tickets = await create_paid_booking(db, attendee, tonight, 1)
    return tickets[0]


async def _logs(db):
    result = await db.execute(select(TicketScanLog).order_by(TicketScanLog.created_at))
    return list(result.scalars().all())


@pytest.mark.parametrize("title,prefix", [
    ("Monsoon Jazz Night", "MON"),
    ("A-1 Gala", "A1G"),
    ("!!!", "TKT"),
])
def test_ticket_number_prefix(title, prefix):
    assert ticket_number_prefix(title) == prefix


STAMP = 1700000000000


async def test_same_millisecond_tickets_get_distinct_numbers(db, organizer, attendee, monkeypatch):
    monkeypatch.setattr(ticket_service, "now_ms", lambda: STAMP)
    jazz = await create_event(db, organizer, title="Monsoon Jazz Night")
    folk = await create_event(db, organizer, title="Monsoon Folk Fest")

    _, first = await create_paid_booking(db, attendee, jazz, 2)
    _, second = await create_paid_booking(db, attendee, folk, 2)

    assert [t.ticket_number for t in first] == [f"MON-{STAMP}-001", f"MON-{STAMP}-002"]
    assert [t.ticket_number for t in second] == [f"MON-{STAMP + 1}-001", f"MON-{STAMP + 1}-002"]


async def test_colliding_ticket_insert_is_reissued(db, organizer, attendee, monkeypatch):
    monkeypatch.setattr(ticket_service, "now_ms", lambda: STAMP)
    jazz = await create_event(db, organizer, title="Monsoon Jazz Night")
    folk = await create_event(db, organizer, title="Monsoon Folk Fest")
    await create_paid_booking(db, attendee, jazz, 1)

    free_stamp = TicketService._free_issue_stamp
    stale = [STAMP]

    async def stale_then_free(self, prefix):
        # A concurrent issuer picked the same stamp before either committed
        if stale:
            return stale.pop()
        return await free_stamp(self, prefix)

    monkeypatch.setattr(TicketService, "_free_issue_stamp", stale_then_free)

    booking, tickets = await create_paid_booking(db, attendee, folk, 1)

    assert [t.ticket_number for t in tickets] == [f"MON-{STAMP + 1}-001"]
    assert booking.payment_status == PaymentStatus.COMPLETED
    assert [t.id for t in await TicketService(db).get_booking_tickets(booking.id)] == [tickets[0].id]


async def test_check_in_then_already_used(db, organizer, ticket):
    service = VerificationService(db)

    first = await service.verify_ticket(organizer, qr_token=ticket.qr_code, location="Gate A")

    assert first.success is True
    assert first.scan_result == ScanResult.SUCCESS
    assert first.message == "Check-in successful"
    assert first.ticket_info.status == TicketStatus.USED
    assert first.ticket_info.checked_in_at is not None

    second = await service.verify_ticket(organizer, qr_token=ticket.qr_code)

    assert second.success is False
    assert second.scan_result == ScanResult.ALREADY_USED
    assert second.ticket_info.scan_count == 2

    await db.refresh(ticket)
    assert ticket.checked_in_by == organizer.id
    assert [log.scan_result for log in await _logs(db)] == [ScanResult.SUCCESS, ScanResult.ALREADY_USED]


async def test_concurrent_check_in_admits_once(db, organizer, ticket, monkeypatch):
    record_scan = VerificationService._record_scan

    async def record_then_admit_elsewhere(self, scanned, now):
        await record_scan(self, scanned, now)
        # Another door admits the ticket after this scan read it as valid
        await self.db.execute(
            update(Ticket)
            .where(Ticket.id == scanned.id)
            .values(status=TicketStatus.USED, checked_in_at=now)
            .execution_options(synchronize_session=False)
        )

    monkeypatch.setattr(VerificationService, "_record_scan", record_then_admit_elsewhere)

    result = await VerificationService(db).verify_ticket(organizer, qr_token=ticket.qr_code)

    assert result.success is False
    assert result.scan_result == ScanResult.ALREADY_USED
    assert result.message.startswith("Ticket already used at")
    assert result.ticket_info.status == TicketStatus.USED

    await db.refresh(ticket)
    assert ticket.checked_in_by is None
    assert [log.scan_result for log in await _logs(db)] == [ScanResult.ALREADY_USED]


async def test_validation_url_is_accepted_as_scan_input(db, organizer, ticket):
    result = await VerificationService(db).verify_ticket(
        organizer, qr_token=generate_validation_url(ticket.qr_code)
    )

    assert result.scan_result == ScanResult.SUCCESS


async def test_manual_ticket_number_entry(db, organizer, ticket):
    result = await VerificationService(db).verify_ticket(organizer, ticket_number=ticket.ticket_number)

    assert result.scan_result == ScanResult.SUCCESS


async def test_verify_only_does_not_admit(db, organizer, ticket):
    result = await VerificationService(db).verify_ticket(organizer, qr_token=ticket.qr_code, check_in=False)

    assert result.scan_result == ScanResult.SUCCESS
    assert result.message == "Ticket is valid"
    await db.refresh(ticket)
    assert ticket.status == TicketStatus.VALID
    assert (await _logs(db))[0].scan_type == ScanType.VERIFICATION


async def test_invalid_qr_and_unknown_ticket(db, organizer, tonight):
    service = VerificationService(db)

    bad_qr = await service.verify_ticket(organizer, qr_token="garbage", event_id=tonight.id)
    unknown = await service.verify_ticket(organizer, ticket_number="NOPE-1-001")

    assert bad_qr.scan_result == ScanResult.INVALID
    assert bad_qr.message == "Invalid QR code"
    assert unknown.scan_result == ScanResult.INVALID
    assert unknown.message == "Invalid ticket - Not found in system"

    logs = await _logs(db)
    assert logs[0].event_id == tonight.id
    assert logs[1].ticket_number == "NOPE-1-001"


async def test_wrong_event(db, organizer, ticket):
    other = await create_event(db, organizer, title="Other Show")

    result = await VerificationService(db).verify_ticket(
        organizer, qr_token=ticket.qr_code, event_id=other.id
    )

    assert result.scan_result == ScanResult.WRONG_EVENT
    assert "Late Show" in result.message
    await db.refresh(ticket)
    assert ticket.status == TicketStatus.VALID


async def test_too_early(db, organizer, attendee, event):
    _, tickets = await create_paid_booking(db, attendee, event, 1)

    result = await VerificationService(db).verify_ticket(organizer, qr_token=tickets[0].qr_code)

    assert result.scan_result == ScanResult.TOO_EARLY
    # Event is a week out and the door opens four hours before it
    assert 160 <= result.hours_until_check_in <= 164
    assert result.check_in_opens_at is not None


async def test_cancelled_and_expired_tickets(db, organizer, ticket):
    service = VerificationService(db)
    ticket.status = TicketStatus.CANCELLED
    await db.commit()

    cancelled = await service.verify_ticket(organizer, qr_token=ticket.qr_code)
    assert cancelled.scan_result == ScanResult.CANCELLED

    ticket.status = TicketStatus.EXPIRED
    await db.commit()

    expired = await service.verify_ticket(organizer, qr_token=ticket.qr_code)
    assert expired.scan_result == ScanResult.EXPIRED


async def test_stranger_cannot_scan(db, ticket):
    stranger = await create_user(db)

    with pytest.raises(AuthorizationError):
        await VerificationService(db).verify_ticket(stranger, qr_token=ticket.qr_code)

    logs = await _logs(db)
    assert logs[-1].scan_result == ScanResult.UNAUTHORIZED
    await db.refresh(ticket)
    assert ticket.status == TicketStatus.VALID


async def test_staff_scan_rights(db, organizer, ticket, tonight):
    scanner = await create_user(db, name="Door Staff")
    usher = await create_user(db, name="Usher")
    events = EventService(db)
    await events.add_staff(organizer, tonight.id, StaffCreate(user_id=scanner.id))
    await events.add_staff(organizer, tonight.id, StaffCreate(email=usher.email, role="usher", can_scan=False))
    service = VerificationService(db)

    with pytest.raises(AuthorizationError):
        await service.verify_ticket(usher, qr_token=ticket.qr_code)

    result = await service.verify_ticket(scanner, qr_token=ticket.qr_code)
    assert result.scan_result == ScanResult.SUCCESS

    # Staff without scan rights can still follow the door statistics
    stats = await service.get_event_verification_stats(usher, tonight.id)
    assert stats["checked_in"] == 1


async def test_verification_stats(db, organizer, attendee, tonight):
    _, tickets = await create_paid_booking(db, attendee, tonight, 4)
    service = VerificationService(db)
    await service.verify_ticket(organizer, qr_token=tickets[0].qr_code)
    await service.verify_ticket(organizer, qr_token=tickets[0].qr_code)
    await service.verify_ticket(organizer, qr_token=tickets[1].qr_code)

    stats = await service.get_event_verification_stats(organizer, tonight.id)

    assert stats["total_tickets"] == 4
    assert stats["checked_in"] == 2
    assert stats["remaining"] == 2
    assert stats["check_in_rate"] == 50.0
    assert stats["total_scans"] == 3
    assert stats["scans_by_result"] == {"success": 2, "already_used": 1}
    assert len(stats["recent_scans"]) == 3

    logs = await service.list_scan_logs(organizer, tonight.id, limit=2)
    assert len(logs) == 2


async def test_validate_qr_is_read_only(db, ticket):
    service = TicketService(db)

    response = await service.validate_qr(ticket.qr_code)

    assert response.valid is True
    assert response.ticket_number == ticket.ticket_number
    assert response.event.title == "Late Show"
    await db.refresh(ticket)
    assert ticket.scan_count == 0

    with pytest.raises(InvalidQRCodeError):
        await service.validate_qr("garbage")


async def test_past_event_tickets_expire(db, attendee, tonight, ticket):
    await db.execute(
        update(Event)
        .where(Event.id == tonight.id)
        .values(event_date=datetime.now(timezone.utc) - timedelta(days=2))
    )
    await db.commit()

    expired = await TicketService(db).expire_past_event_tickets(grace_hours=24)

    assert expired == 1
    await db.refresh(ticket)
    assert ticket.status == TicketStatus.EXPIRED
