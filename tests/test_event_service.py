"""Tests for event listing filters, updates, deletion and bulk import."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from evently_ticketing.models import Booking, Event, EventStatus
from evently_ticketing.schemas.event import EventFilters, EventUpdate
from evently_ticketing.services.booking_service import BookingService
from evently_ticketing.services.event_service import EventService
from evently_ticketing.utils.event_import import parse_events_csv
from evently_ticketing.utils.exceptions import (
    AuthorizationError,
    EventHasBookingsError,
    ValidationError,
)

from conftest import booking_request, create_event, create_paid_booking, create_user

NOW = datetime.now(timezone.utc)


@pytest.fixture
async def catalogue(db, organizer):
    """Four published events and one draft with distinct prices, dates and venues."""
    return {
        "jazz": await create_event(
            db, organizer, title="Monsoon Jazz Night", venue="Blue Frog",
            price=Decimal("500.00"), event_date=NOW + timedelta(days=3), category="Music"
        ),
        "comedy": await create_event(
            db, organizer, title="Rooftop Comedy Hour", venue="Canvas Laugh Club",
            description="Stand-up with a jazz trio", price=Decimal("250.00"),
            event_date=NOW + timedelta(days=10), category="Comedy"
        ),
        "sold_out": await create_event(
            db, organizer, title="Chess Open", venue="Town Hall",
            price=Decimal("0.00"), event_date=NOW + timedelta(days=20), max_attendees=2
        ),
        "past": await create_event(
            db, organizer, title="Winter Gala", venue="Blue Frog",
            price=Decimal("1500.00"), event_date=NOW - timedelta(days=2)
        ),
        "draft": await create_event(
            db, organizer, title="Secret Jazz Set", venue="Blue Frog",
            status=EventStatus.DRAFT, event_date=NOW + timedelta(days=5)
        ),
    }


async def _titles(service, **filters):
    events, total = await service.get_events(EventFilters(**filters))
    assert total == len(events)
    return [event.title for event in events]


async def test_list_events_filters(db, attendee, catalogue):
    await BookingService(db).create_booking(attendee, booking_request(catalogue["sold_out"], 2))
    service = EventService(db)

    assert await _titles(service) == [
        "Winter Gala", "Monsoon Jazz Night", "Rooftop Comedy Hour", "Chess Open"
    ]
    # Title, description and venue are searched case-insensitively
    assert await _titles(service, search="JAZZ") == ["Monsoon Jazz Night", "Rooftop Comedy Hour"]
    assert await _titles(service, venue="blue frog") == ["Winter Gala", "Monsoon Jazz Night"]
    assert await _titles(service, category="music") == ["Monsoon Jazz Night"]
    assert await _titles(service, min_price=Decimal("200"), max_price=Decimal("500")) == [
        "Monsoon Jazz Night", "Rooftop Comedy Hour"
    ]
    assert await _titles(
        service, date_from=NOW + timedelta(days=1), date_to=NOW + timedelta(days=15)
    ) == ["Monsoon Jazz Night", "Rooftop Comedy Hour"]
    assert await _titles(service, upcoming_only=True, available_only=True) == [
        "Monsoon Jazz Night", "Rooftop Comedy Hour"
    ]
    assert await _titles(service, status=EventStatus.DRAFT) == ["Secret Jazz Set"]


async def test_list_events_paginates(db, catalogue):
    events, total = await EventService(db).get_events(EventFilters(), page=2, size=3)

    assert total == 4
    assert [event.title for event in events] == ["Chess Open"]


async def test_capacity_cannot_drop_below_booked(db, organizer, attendee, event):
    await BookingService(db).create_booking(attendee, booking_request(event, 3))
    service = EventService(db)

    with pytest.raises(ValidationError):
        await service.update_event(organizer, event.id, EventUpdate(max_attendees=2))

    updated = await service.update_event(organizer, event.id, EventUpdate(max_attendees=3, title="Jazz"))
    assert updated.max_attendees == 3
    assert updated.title == "Jazz"
    assert updated.available_spots == 0


async def test_only_organizer_or_admin_updates(db, admin, event):
    service = EventService(db)

    with pytest.raises(AuthorizationError):
        await service.update_event(await create_user(db), event.id, EventUpdate(title="Hijacked"))

    assert (await service.update_event(admin, event.id, EventUpdate(price=Decimal("750")))).price == 750


async def test_event_with_paid_bookings_cannot_be_deleted(db, organizer, attendee, event):
    await create_paid_booking(db, attendee, event, 1)

    with pytest.raises(EventHasBookingsError):
        await EventService(db).delete_event(organizer, event.id)

    assert (await db.execute(select(func.count(Event.id)))).scalar_one() == 1


async def test_delete_removes_unpaid_bookings(db, organizer, attendee, event):
    await BookingService(db).create_booking(attendee, booking_request(event, 2))

    await EventService(db).delete_event(organizer, event.id)

    assert (await db.execute(select(func.count(Event.id)))).scalar_one() == 0
    assert (await db.execute(select(func.count(Booking.id)))).scalar_one() == 0


def _row(title, **overrides):
    row = {
        "title": title,
        "venue": "Blue Frog",
        "event_date": (NOW + timedelta(days=30)).isoformat(),
        "price": "300",
        "max_attendees": "50",
    }
    row.update(overrides)
    return row


async def test_bulk_create_skips_invalid_rows(db, organizer):
    created, errors = await EventService(db).bulk_create_events(organizer, [
        _row("Open Mic"),
        _row("", price="-5"),
        _row("Poetry Slam", status="published", category="Spoken Word"),
        _row("Time Travel Gala", event_date=(NOW - timedelta(days=1)).isoformat()),
    ])

    assert [event.title for event in created] == ["Open Mic", "Poetry Slam"]
    assert [(event.status, event.category) for event in created] == [
        (EventStatus.DRAFT, "Other"), (EventStatus.PUBLISHED, "Spoken Word")
    ]
    assert all(event.organizer_id == organizer.id for event in created)
    assert [error.row for error in errors] == [2, 4]
    assert {message.split(":")[0] for message in errors[0].errors} == {"title", "price"}
    assert errors[1].errors[0].startswith("event_date:")


async def test_bulk_create_fills_gaps_from_template(db, organizer, event):
    created, errors = await EventService(db).bulk_create_events(
        organizer,
        [{"title": "Jazz Brunch", "event_date": (NOW + timedelta(days=9)).isoformat()}],
        template_event_id=event.id
    )

    assert errors == []
    assert (created[0].venue, created[0].price, created[0].max_attendees) == (
        event.venue, event.price, event.max_attendees
    )
    assert created[0].status == EventStatus.DRAFT


async def test_bulk_create_rejects_when_nothing_is_valid(db, organizer, event):
    service = EventService(db)

    with pytest.raises(ValidationError) as exc_info:
        await service.bulk_create_events(organizer, [_row("")], first_row=2)
    assert exc_info.value.details["rows"][0]["row"] == 2

    with pytest.raises(AuthorizationError):
        await service.bulk_create_events(await create_user(db), [_row("Gig")], template_event_id=event.id)

    assert (await db.execute(select(func.count(Event.id)))).scalar_one() == 1


def test_parse_events_csv():
    rows = parse_events_csv(
        "\ufeffTitle, Max Attendees ,Date,Time\nOpen Mic,30,2030-01-05,20:00\nFilm Club,,2030-01-06,\n".encode("utf-8")
    )

    assert rows == [
        {"title": "Open Mic", "max_attendees": "30", "event_date": "2030-01-05T20:00"},
        {"title": "Film Club", "event_date": "2030-01-06"},
    ]
    with pytest.raises(ValidationError):
        parse_events_csv(b"\xff\xfe\x00t")
