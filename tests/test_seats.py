"""Tests for seat layout generation, allocation and display formatting."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from evently_ticketing.models import SeatLayout, SeatStatus
from evently_ticketing.schemas.seat import SeatConfigRequest
from evently_ticketing.services.booking_service import BookingService
from evently_ticketing.services.seat_service import SeatService, format_seat_display, row_label
from evently_ticketing.utils.exceptions import (
    AuthorizationError,
    InsufficientSeatsError,
    SeatConfigurationLockedError,
)

from conftest import booking_request, create_user


@pytest.mark.parametrize("index,label", [(0, "A"), (25, "Z"), (26, "AA"), (27, "AB"), (701, "ZZ"), (702, "AAA")])
def test_row_label(index, label):
    assert row_label(index) == label


@pytest.mark.parametrize("seats,expected", [
    ([], ""),
    (["12"], "12"),
    (["3", "4", "5"], "3-5"),
    (["5", "3", "4"], "3-5"),
    (["3", "4"], "3, 4"),
    (["A1", "A2", "A3"], "A1, A2, A3"),
    (["1", "2", "3", "7", "9"], "1, 2, 3... (+2 more)"),
    (["1", "4", "9", "12"], "1, 4, 9, 12"),
])
def test_format_seat_display(seats, expected):
    assert format_seat_display(seats) == expected


def test_sections_must_add_up_to_total():
    with pytest.raises(PydanticValidationError):
        SeatConfigRequest(
            total_seats=10,
            layout_type=SeatLayout.SECTIONS,
            sections=[{"name": "VIP", "seats": 4}, {"name": "General", "seats": 4}],
        )


async def test_sequential_layout(db, organizer, event):
    service = SeatService(db)

    seat_config, created = await service.configure_seats(
        organizer, event.id, SeatConfigRequest(total_seats=5)
    )

    assert created == 5
    assert seat_config.layout_type == SeatLayout.SEQUENTIAL
    seats = await service.get_available_seats(event.id)
    assert [s.seat_number for s in seats] == ["1", "2", "3", "4", "5"]


async def test_rows_layout_defaults_to_square_rows(db, organizer, event):
    service = SeatService(db)

    seat_config, created = await service.configure_seats(
        organizer, event.id, SeatConfigRequest(total_seats=10, layout_type=SeatLayout.ROWS)
    )

    assert created == 10
    assert seat_config.seats_per_row == 4
    seats = await service.get_available_seats(event.id)
    assert [s.seat_number for s in seats] == ["A1", "A2", "A3", "A4", "B1", "B2", "B3", "B4", "C1", "C2"]
    assert seats[4].row_label == "B"


async def test_sections_layout_numbers_continuously(db, organizer, event):
    service = SeatService(db)

    await service.configure_seats(organizer, event.id, SeatConfigRequest(
        total_seats=5,
        layout_type=SeatLayout.SECTIONS,
        sections=[{"name": "VIP", "seats": 2, "price_override": "900.00"}, {"name": "General", "seats": 3}],
    ))

    seats = await service.get_available_seats(event.id)
    assert [(s.seat_number, s.section) for s in seats] == [
        ("1", "VIP"), ("2", "VIP"), ("3", "General"), ("4", "General"), ("5", "General"),
    ]


async def test_disabled_allocation_creates_no_seats(db, organizer, event):
    service = SeatService(db)

    _, created = await service.configure_seats(
        organizer, event.id, SeatConfigRequest(total_seats=10, has_seat_allocation=False)
    )

    assert created == 0
    assert await service.has_seat_allocation(event.id) is False


async def test_only_organizer_configures_seats(db, event):
    stranger = await create_user(db)

    with pytest.raises(AuthorizationError):
        await SeatService(db).configure_seats(stranger, event.id, SeatConfigRequest(total_seats=5))


async def test_allocation_takes_lowest_positions(db, organizer, event):
    service = SeatService(db)
    await service.configure_seats(organizer, event.id, SeatConfigRequest(total_seats=6))

    first = await service.allocate_seats(booking_id=None, event_id=event.id, quantity=2)
    await db.commit()

    assert [s.seat_number for s in first] == ["1", "2"]
    assert all(s.status == SeatStatus.BOOKED for s in first)
    assert await service.get_available_seats_count(event.id) == 4


async def test_preferred_section_is_tried_first(db, organizer, event):
    service = SeatService(db)
    await service.configure_seats(organizer, event.id, SeatConfigRequest(
        total_seats=4,
        layout_type=SeatLayout.SECTIONS,
        sections=[{"name": "General", "seats": 2}, {"name": "VIP", "seats": 2}],
    ))

    vip = await service.allocate_seats(None, event.id, 2, preferred_section="VIP")
    assert [s.section for s in vip] == ["VIP", "VIP"]

    # Preferred section is full, any seat is taken instead
    fallback = await service.allocate_seats(None, event.id, 1, preferred_section="VIP")
    assert [s.seat_number for s in fallback] == ["1"]


async def test_allocation_fails_when_not_enough_seats(db, organizer, event):
    service = SeatService(db)
    await service.configure_seats(organizer, event.id, SeatConfigRequest(total_seats=2))

    with pytest.raises(InsufficientSeatsError):
        await service.allocate_seats(None, event.id, 3)


async def test_layout_locked_once_seats_are_booked(db, organizer, attendee, event):
    service = SeatService(db)
    await service.configure_seats(organizer, event.id, SeatConfigRequest(total_seats=5))
    await BookingService(db).create_booking(attendee, booking_request(event, 1))

    with pytest.raises(SeatConfigurationLockedError):
        await service.configure_seats(organizer, event.id, SeatConfigRequest(total_seats=8))
