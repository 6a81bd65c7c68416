"""
End-to-end HTTP tests: routes, auth, error envelopes and the booking to
check-in flow.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from evently_ticketing.models import UserRole
from evently_ticketing.utils.auth import create_access_token

from conftest import auth_headers, create_event, create_user, sign_checkout


def _event_payload(**overrides):
    payload = {
        "title": "Rooftop Comedy Hour",
        "venue": "The Habitat",
        "location": "Mumbai",
        "event_date": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
        "price": "250.00",
        "max_attendees": 20,
    }
    payload.update(overrides)
    return payload


def _booking_payload(event_id, quantity=2, **overrides):
    payload = {
        "event_id": str(event_id),
        "user_name": "Asha Rao",
        "user_email": "asha@example.com",
        "user_phone": "98765 43210",
        "quantity": quantity,
    }
    payload.update(overrides)
    return payload


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_missing_token_is_rejected(client):
    response = await client.get("/api/v1/bookings")

    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


async def test_profile_is_provisioned_from_token(client):
    user_id = uuid4()
    token = create_access_token({
        "sub": str(user_id),
        "email": "meera@example.com",
        "user_metadata": {"full_name": "Meera Iyer"},
    })

    response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == str(user_id)
    assert body["full_name"] == "Meera Iyer"
    assert body["role"] == "user"


async def test_update_profile(client, attendee):
    response = await client.patch(
        "/api/v1/users/me",
        json={"phone": "9123456780"},
        headers=auth_headers(attendee)
    )

    assert response.status_code == 200
    assert response.json()["phone"] == "9123456780"


async def test_plain_user_cannot_create_event(client, attendee):
    response = await client.post("/api/v1/events", json=_event_payload(), headers=auth_headers(attendee))

    assert response.status_code == 403


async def test_create_and_list_events(client, organizer):
    response = await client.post("/api/v1/events", json=_event_payload(), headers=auth_headers(organizer))

    assert response.status_code == 201
    created = response.json()
    assert created["organizer_id"] == str(organizer.id)
    assert created["available_spots"] == 20

    response = await client.get("/api/v1/events")
    assert response.status_code == 200
    listing = response.json()
    assert listing["total"] == 1
    assert listing["events"][0]["id"] == created["id"]

    response = await client.get("/api/v1/events/mine", headers=auth_headers(organizer))
    assert [event["id"] for event in response.json()] == [created["id"]]


async def test_unknown_event_uses_error_envelope(client, attendee):
    response = await client.post(
        "/api/v1/bookings",
        json=_booking_payload(uuid4()),
        headers=auth_headers(attendee)
    )

    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["error"]["suggestions"]
    assert "error_id" in body


async def test_invalid_booking_form_is_rejected(client, attendee, event):
    response = await client.post(
        "/api/v1/bookings",
        json=_booking_payload(event.id, user_phone="12345"),
        headers=auth_headers(attendee)
    )

    assert response.status_code == 422


async def test_overbooking_is_refused(client, db, attendee, organizer):
    small = await create_event(db, organizer, max_attendees=1)

    response = await client.post(
        "/api/v1/bookings",
        json=_booking_payload(small.id, quantity=2),
        headers=auth_headers(attendee)
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INSUFFICIENT_CAPACITY"


async def test_booking_to_check_in_flow(client, db, organizer, attendee, gateway):
    org = auth_headers(organizer)
    me = auth_headers(attendee)

    response = await client.post("/api/v1/events", json=_event_payload(), headers=org)
    event_id = response.json()["id"]

    response = await client.post(
        f"/api/v1/events/{event_id}/seats",
        json={"total_seats": 20, "layout_type": "rows", "seats_per_row": 5},
        headers=org
    )
    assert response.status_code == 201
    assert response.json()["seats_created"] == 20

    response = await client.get(f"/api/v1/events/{event_id}/seats")
    assert response.json()["available_count"] == 20

    response = await client.post("/api/v1/bookings", json=_booking_payload(event_id), headers=me)
    assert response.status_code == 201
    created = response.json()
    booking = created["booking"]
    assert created["payment_required"] is True
    assert booking["seats"] == ["A1", "A2"]
    assert booking["seat_display"] == "A1, A2"
    assert booking["user_phone"] == "9876543210"
    assert booking["payment_status"] == "pending"

    response = await client.get(f"/api/v1/events/{event_id}/seats")
    assert response.json()["available_count"] == 18

    response = await client.post("/api/v1/payments/orders", json={"booking_id": booking["id"]}, headers=me)
    assert response.status_code == 201
    order = response.json()
    assert order["amount"] == 50000
    assert order["key_id"] == "rzp_test_key"
    assert gateway.orders[0]["id"] == order["order_id"]

    response = await client.post(
        "/api/v1/payments/verify",
        json={
            "booking_id": booking["id"],
            "razorpay_order_id": order["order_id"],
            "razorpay_payment_id": "pay_flow001",
            "razorpay_signature": sign_checkout(order["order_id"], "pay_flow001"),
        },
        headers=me
    )
    assert response.status_code == 200
    verified = response.json()
    assert verified["success"] is True
    assert verified["booking"]["payment_status"] == "completed"
    tickets = verified["tickets"]
    assert [ticket["seat_number"] for ticket in tickets] == ["A1", "A2"]
    assert all(ticket["ticket_number"].startswith("ROO-") for ticket in tickets)
    assert all(ticket["validation_url"] for ticket in tickets)

    response = await client.get("/api/v1/tickets", headers=me)
    assert len(response.json()) == 2

    ticket_id = tickets[0]["id"]
    response = await client.get(f"/api/v1/tickets/{ticket_id}/qr.png", headers=me)
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")

    response = await client.get(f"/api/v1/tickets/{ticket_id}/ticket.pdf", headers=me)
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")

    response = await client.get(f"/api/v1/bookings/{booking['id']}/tickets.pdf", headers=me)
    assert response.content.startswith(b"%PDF")

    qr_token = tickets[0]["qr_code"]
    response = await client.get("/api/v1/tickets/validate", params={"data": qr_token})
    assert response.status_code == 200
    assert response.json()["valid"] is True
    assert response.json()["ticket_number"] == tickets[0]["ticket_number"]

    response = await client.post(
        "/api/v1/verification/scan",
        json={"qr_data": qr_token, "event_id": event_id},
        headers=me
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"

    response = await client.post(
        "/api/v1/verification/scan",
        json={"qr_data": qr_token, "event_id": event_id},
        headers=org
    )
    assert response.status_code == 200
    scan = response.json()
    assert scan["success"] is True
    assert scan["scan_result"] == "success"
    assert scan["ticket_info"]["seat_number"] == "A1"

    response = await client.post(
        "/api/v1/verification/scan",
        json={"ticket_number": tickets[0]["ticket_number"], "event_id": event_id},
        headers=org
    )
    assert response.json()["scan_result"] == "already_used"

    response = await client.get(f"/api/v1/verification/events/{event_id}/stats", headers=org)
    stats = response.json()
    assert stats["checked_in"] == 1
    assert stats["remaining"] == 1
    assert stats["scans_by_result"]["success"] == 1

    response = await client.get(f"/api/v1/verification/events/{event_id}/logs", headers=org)
    assert len(response.json()) == 3

    response = await client.get("/api/v1/organizer/statistics", headers=org)
    report = response.json()
    figures = report["events"][0]["statistics"]
    assert figures["paid_tickets"] == 2
    assert figures["scanned_tickets"] == 1
    assert report["total_stats"]["total_tickets_scanned"] == 1

    response = await client.get(f"/api/v1/events/{event_id}/tickets.zip", headers=org)
    assert response.headers["content-type"] == "application/zip"
    assert response.content.startswith(b"PK")

    response = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", json={}, headers=me)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_BOOKING_STATE"


async def test_cancel_booking_over_http(client, attendee, event):
    me = auth_headers(attendee)
    response = await client.post("/api/v1/bookings", json=_booking_payload(event.id, quantity=3), headers=me)
    booking_id = response.json()["booking"]["id"]

    response = await client.post(
        f"/api/v1/bookings/{booking_id}/cancel",
        json={"reason": "Plans changed"},
        headers=me
    )

    assert response.status_code == 200
    assert response.json()["booking"]["booking_status"] == "cancelled"

    response = await client.get(f"/api/v1/events/{event.id}")
    assert response.json()["available_spots"] == 10


async def test_bad_signature_answers_400(client, attendee, event):
    me = auth_headers(attendee)
    response = await client.post("/api/v1/bookings", json=_booking_payload(event.id), headers=me)
    booking_id = response.json()["booking"]["id"]
    response = await client.post("/api/v1/payments/orders", json={"booking_id": booking_id}, headers=me)
    order_id = response.json()["order_id"]

    response = await client.post(
        "/api/v1/payments/verify",
        json={
            "booking_id": booking_id,
            "razorpay_order_id": order_id,
            "razorpay_payment_id": "pay_forged",
            "razorpay_signature": "0" * 64,
        },
        headers=me
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_VERIFICATION_FAILED"

    response = await client.get(f"/api/v1/bookings/{booking_id}", headers=me)
    assert response.json()["payment_status"] == "pending"


async def test_staff_management(client, db, organizer):
    scanner = await create_user(db, UserRole.USER, "Door Staff")
    org = auth_headers(organizer)
    response = await client.post("/api/v1/events", json=_event_payload(), headers=org)
    event_id = response.json()["id"]

    response = await client.post(
        f"/api/v1/events/{event_id}/staff",
        json={"email": scanner.email},
        headers=org
    )
    assert response.status_code == 201

    response = await client.get(f"/api/v1/events/{event_id}/staff", headers=org)
    assert [member["user_id"] for member in response.json()] == [str(scanner.id)]

    response = await client.delete(f"/api/v1/events/{event_id}/staff/{scanner.id}", headers=org)
    assert response.status_code == 204


async def test_bulk_event_import(client, organizer):
    org = auth_headers(organizer)
    date = (datetime.now(timezone.utc) + timedelta(days=14)).date().isoformat()

    response = await client.post(
        "/api/v1/events/bulk",
        json={"events": [_event_payload(title="Open Mic"), _event_payload(title="")]},
        headers=org
    )
    assert response.status_code == 207
    body = response.json()
    assert body["total_rows"] == 2
    assert [event["title"] for event in body["created"]] == ["Open Mic"]
    assert body["errors"][0]["row"] == 2

    csv_body = (
        "\ufeffTitle,Date,Time,Venue,Location,Price,Max Attendees,Status\n"
        f"Poetry Slam,{date},19:30,The Habitat,Mumbai,150,40,published\n"
        f"Film Club,{date},,Prithvi,Mumbai,,,\n"
    )
    response = await client.post(
        "/api/v1/events/bulk-upload",
        content=csv_body.encode("utf-8"),
        headers={**org, "Content-Type": "text/csv"}
    )
    assert response.status_code == 201
    created = response.json()["created"]
    assert [(e["title"], e["status"], e["max_attendees"]) for e in created] == [
        ("Poetry Slam", "published", 40), ("Film Club", "draft", 100)
    ]
    assert created[0]["event_date"].startswith(f"{date}T19:30")

    response = await client.post(
        "/api/v1/events/bulk-upload",
        content=f"title,date\n,{date}\n".encode("utf-8"),
        headers={**org, "Content-Type": "text/csv"}
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_printed_ticket_routes(client, db, organizer, attendee):
    event = await create_event(
        db, organizer, title="Late Show", event_date=datetime.now(timezone.utc) + timedelta(hours=1)
    )
    org = auth_headers(organizer)

    response = await client.post(
        "/api/v1/printed-tickets", json={"event_id": str(event.id), "quantity": 2}, headers=auth_headers(attendee)
    )
    assert response.status_code == 403

    response = await client.post(
        "/api/v1/printed-tickets", json={"event_id": str(event.id), "quantity": 2}, headers=org
    )
    assert response.status_code == 201
    printed = response.json()
    assert [t["ticket_code"] for t in printed] == ["LATSHO-001", "LATSHO-002"]
    assert "/api/v1/tickets/validate?data=" in printed[0]["validation_url"]

    response = await client.get(f"/api/v1/events/{event.id}/printed-tickets", headers=org)
    assert [t["id"] for t in response.json()] == [t["id"] for t in printed]

    response = await client.get(f"/api/v1/printed-tickets/{printed[0]['id']}/qr.png", headers=org)
    assert response.headers["content-type"] == "image/png"

    response = await client.post(
        "/api/v1/printed-tickets/download", json={"ticket_ids": [printed[1]["id"]]}, headers=org
    )
    assert response.headers["content-type"] == "application/zip"

    response = await client.post(
        "/api/v1/verification/scan", json={"ticket_number": "LATSHO-002"}, headers=org
    )
    assert response.json()["scan_result"] == "success"
