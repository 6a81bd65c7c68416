"""Tests for printed ticket batches and scanning them at the door."""

import io
import zipfile
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update

from evently_ticketing.config import get_settings
from evently_ticketing.models import Event, PrintedTicket, ScanResult, TicketScanLog, TicketStatus
from evently_ticketing.services.event_service import EventService
from evently_ticketing.services.printed_ticket_service import PrintedTicketService, printed_code_prefix
from evently_ticketing.services.ticket_service import TicketService
from evently_ticketing.services.verification_service import VerificationService
from evently_ticketing.utils.exceptions import (
    AuthorizationError,
    PrintedTicketNotFoundError,
    ValidationError,
)

from conftest import create_event, create_paid_booking


@pytest.fixture
async def tonight(db, organizer):
    return await create_event(
        db, organizer, title="Late Show", event_date=datetime.now(timezone.utc) + timedelta(hours=1)
    )


@pytest.fixture
async def printed(db, organizer, tonight):
    return await PrintedTicketService(db).generate(organizer, tonight.id, 3)


@pytest.mark.parametrize("title,prefix", [
    ("Late Show", "LATSHO"),
    ("Monsoon Jazz Night", "MONJAZ"),
    ("A-1 Gala", "A1GAL"),
    ("!!!", "PRT"),
])
def test_printed_code_prefix(title, prefix):
    assert printed_code_prefix(title) == prefix


async def test_batches_continue_numbering(db, organizer, tonight, printed):
    more = await PrintedTicketService(db).generate(organizer, tonight.id, 2)

    assert [t.ticket_code for t in printed] == ["LATSHO-001", "LATSHO-002", "LATSHO-003"]
    assert [t.ticket_code for t in more] == ["LATSHO-004", "LATSHO-005"]
    assert len({t.batch_id for t in printed}) == 1
    assert more[0].batch_id != printed[0].batch_id
    assert all(t.status == TicketStatus.VALID and t.generated_by == organizer.id for t in more)

    listed = await PrintedTicketService(db).list_event_tickets(organizer, tonight.id)
    assert [t.sequence for t in listed] == [1, 2, 3, 4, 5]


async def test_generate_checks_quantity_and_ownership(db, organizer, attendee, tonight):
    service = PrintedTicketService(db)

    with pytest.raises(ValidationError):
        await service.generate(organizer, tonight.id, 0)
    with pytest.raises(ValidationError):
        await service.generate(organizer, tonight.id, get_settings().printed_ticket_batch_limit + 1)
    with pytest.raises(AuthorizationError):
        await service.generate(attendee, tonight.id, 1)

    assert (await db.execute(select(func.count(PrintedTicket.id)))).scalar_one() == 0


async def test_printed_ticket_checks_in_by_qr(db, organizer, printed):
    service = VerificationService(db)

    first = await service.verify_ticket(organizer, qr_token=printed[0].qr_code, location="Gate B")
    second = await service.verify_ticket(organizer, qr_token=printed[0].qr_code)

    assert first.scan_result == ScanResult.SUCCESS
    assert first.ticket_info.ticket_type == "printed"
    assert first.ticket_info.ticket_number == "LATSHO-001"
    assert first.ticket_info.attendee_name is None
    assert second.scan_result == ScanResult.ALREADY_USED
    assert second.ticket_info.scan_count == 2

    await db.refresh(printed[0])
    assert printed[0].status == TicketStatus.USED
    assert printed[0].checked_in_by == organizer.id

    logs = (await db.execute(select(TicketScanLog).order_by(TicketScanLog.created_at))).scalars().all()
    assert [(log.printed_ticket_id, log.ticket_id) for log in logs] == [(printed[0].id, None)] * 2


async def test_printed_code_typed_at_door(db, organizer, tonight, printed):
    result = await VerificationService(db).verify_ticket(
        organizer, ticket_number=" latsho-002 ", event_id=tonight.id
    )

    assert result.scan_result == ScanResult.SUCCESS
    await db.refresh(printed[1])
    assert printed[1].status == TicketStatus.USED


async def test_code_shared_by_two_events_needs_the_event(db, organizer, tonight, printed):
    rerun = await create_event(
        db, organizer, title="Late Show", event_date=datetime.now(timezone.utc) + timedelta(hours=2)
    )
    await PrintedTicketService(db).generate(organizer, rerun.id, 1)
    service = VerificationService(db)

    ambiguous = await service.verify_ticket(organizer, ticket_number="LATSHO-001")
    scoped = await service.verify_ticket(organizer, ticket_number="LATSHO-001", event_id=tonight.id)

    assert ambiguous.scan_result == ScanResult.INVALID
    assert scoped.scan_result == ScanResult.SUCCESS
    assert scoped.ticket_info.ticket_id == printed[0].id


async def test_stats_count_printed_tickets(db, organizer, attendee, tonight, printed):
    await create_paid_booking(db, attendee, tonight, 2)
    service = VerificationService(db)
    await service.verify_ticket(organizer, qr_token=printed[2].qr_code)

    stats = await service.get_event_verification_stats(organizer, tonight.id)

    assert stats["total_tickets"] == 2
    assert stats["checked_in"] == 0
    assert stats["printed_tickets"] == 3
    assert stats["printed_checked_in"] == 1


async def test_validate_qr_reads_printed_ticket(db, printed):
    response = await TicketService(db).validate_qr(printed[0].qr_code)

    assert response.valid is True
    assert response.ticket_type == "printed"
    assert response.ticket_number == "LATSHO-001"
    assert response.event.title == "Late Show"


async def test_past_event_printed_tickets_expire(db, tonight, printed):
    await db.execute(
        update(Event)
        .where(Event.id == tonight.id)
        .values(event_date=datetime.now(timezone.utc) - timedelta(days=2))
    )
    await db.commit()

    assert await TicketService(db).expire_past_event_tickets(grace_hours=24) == 3
    await db.refresh(printed[0])
    assert printed[0].status == TicketStatus.EXPIRED


async def test_download_zip(db, organizer, attendee, printed):
    service = PrintedTicketService(db)

    archive = zipfile.ZipFile(io.BytesIO(
        await service.build_download_zip(organizer, [printed[1].id, printed[0].id])
    ))

    assert archive.namelist() == ["LATSHO-001.png", "LATSHO-001.txt", "LATSHO-002.png", "LATSHO-002.txt"]
    assert archive.read("LATSHO-001.png").startswith(b"\x89PNG")
    assert "Ticket: LATSHO-002" in archive.read("LATSHO-002.txt").decode("utf-8")

    with pytest.raises(PrintedTicketNotFoundError):
        await service.build_download_zip(organizer, [printed[0].id, uuid4()])
    with pytest.raises(AuthorizationError):
        await service.build_download_zip(attendee, [printed[0].id])


async def test_deleting_event_removes_printed_tickets(db, organizer, tonight, printed):
    await EventService(db).delete_event(organizer, tonight.id)

    assert (await db.execute(select(func.count(PrintedTicket.id)))).scalar_one() == 0
