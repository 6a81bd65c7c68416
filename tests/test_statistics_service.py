"""Tests for the organizer dashboard figures."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from evently_ticketing.models import UserRole
from evently_ticketing.services.booking_service import BookingService
from evently_ticketing.services.statistics_service import StatisticsService
from evently_ticketing.services.verification_service import VerificationService

from conftest import booking_request, create_event, create_paid_booking, create_user


async def test_statistics_for_one_event(db, organizer, attendee):
    event = await create_event(
        db, organizer, event_date=datetime.now(timezone.utc) + timedelta(hours=2), max_attendees=20
    )
    _, tickets = await create_paid_booking(db, attendee, event, 3)
    await create_paid_booking(db, attendee, event, 1)
    bookings = BookingService(db)
    await bookings.create_booking(attendee, booking_request(event, 2))
    cancelled, _ = await bookings.create_booking(attendee, booking_request(event, 1))
    await bookings.cancel_booking(attendee, cancelled.id)
    await VerificationService(db).verify_ticket(organizer, qr_token=tickets[0].qr_code)

    report = await StatisticsService(db).get_organizer_statistics(organizer)

    assert len(report.events) == 1
    stats = report.events[0].statistics
    assert stats.total_tickets == 7
    assert stats.paid_tickets == 4
    assert stats.pending_tickets == 2
    assert stats.cancelled_tickets == 1
    assert stats.scanned_tickets == 1
    assert stats.unscanned_tickets == 3
    assert stats.revenue == Decimal("2000.00")
    assert stats.scan_rate == 25.0
    assert stats.occupancy_rate == 30.0
    assert stats.available_spots == 14
    assert report.events[0].time_status.is_upcoming is True
    assert report.events[0].recent_scans[0].ticket_number == tickets[0].ticket_number

    totals = report.total_stats
    assert totals.total_events == 1
    assert totals.total_tickets_generated == 4
    assert totals.total_tickets_scanned == 1
    assert totals.total_revenue == Decimal("2000.00")
    assert totals.active_events == 1


async def test_organizers_only_see_their_events(db, organizer, event):
    other = await create_user(db, UserRole.ORGANIZER)
    await create_event(db, other, title="Someone Else's Show")
    admin = await create_user(db, UserRole.ADMIN)

    mine = await StatisticsService(db).get_organizer_statistics(organizer)
    everything = await StatisticsService(db).get_organizer_statistics(admin)
    filtered = await StatisticsService(db).get_organizer_statistics(admin, event_id=event.id)

    assert [e.id for e in mine.events] == [event.id]
    assert len(everything.events) == 2
    assert [e.id for e in filtered.events] == [event.id]


async def test_empty_report(db):
    newcomer = await create_user(db, UserRole.ORGANIZER)

    report = await StatisticsService(db).get_organizer_statistics(newcomer)

    assert report.events == []
    assert report.total_stats.total_events == 0
    assert report.total_stats.scan_rate == 0.0
