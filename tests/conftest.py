"""
Shared fixtures: an in-memory SQLite database, profile and event factories,
a fake payment gateway and an HTTP client bound to the app.
"""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from evently_ticketing.database import get_db
from evently_ticketing.main import app
from evently_ticketing.models import Base, Event, EventStatus, PaymentStatus, User, UserRole
from evently_ticketing.schemas.booking import BookingCreateRequest
from evently_ticketing.services.booking_service import BookingService
from evently_ticketing.services.payment_gateway import PaymentGateway, get_payment_gateway
from evently_ticketing.services.ticket_service import TicketService
from evently_ticketing.utils.auth import create_access_token

GATEWAY_SECRET = "test_gateway_secret"


class FakeGateway(PaymentGateway):
    """Gateway that records orders locally and signs like the real one."""

    def __init__(self):
        super().__init__("rzp_test_key", GATEWAY_SECRET)
        self.orders = []

    async def create_order(self, amount: int, currency: str, receipt: str, notes: Dict[str, str]) -> Dict[str, Any]:
        order = {
            "id": f"order_{uuid4().hex[:14]}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        self.orders.append(order)
        return order


def sign_checkout(order_id: str, payment_id: str, secret: str = GATEWAY_SECRET) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        f"{order_id}|{payment_id}".encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
async def client(session_factory, gateway):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client

    app.dependency_overrides.clear()


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}"}


async def create_user(db: AsyncSession, role: UserRole = UserRole.USER, name: str = "Test User") -> User:
    user = User(
        id=uuid4(),
        email=f"{uuid4().hex[:10]}@example.com",
        full_name=name,
        role=role,
    )
    db.add(user)
    await db.commit()
    return user


async def create_event(db: AsyncSession, organizer: User, **overrides) -> Event:
    values = {
        "title": "Monsoon Jazz Night",
        "venue": "Blue Frog",
        "location": "Mumbai",
        "event_date": datetime.now(timezone.utc) + timedelta(days=7),
        "price": Decimal("500.00"),
        "max_attendees": 10,
        "status": EventStatus.PUBLISHED,
    }
    values.update(overrides)
    event = Event(organizer_id=organizer.id, current_attendees=0, **values)
    db.add(event)
    await db.commit()
    return event


def booking_request(event: Event, quantity: int = 2, **overrides) -> BookingCreateRequest:
    values = {
        "event_id": event.id,
        "user_name": "Asha Rao",
        "user_email": "asha@example.com",
        "user_phone": "9876543210",
        "quantity": quantity,
    }
    values.update(overrides)
    return BookingCreateRequest(**values)


async def create_paid_booking(db: AsyncSession, user: User, event: Event, quantity: int = 2):
    """Book, mark paid and issue tickets without going through the gateway."""
    booking, _ = await BookingService(db).create_booking(user, booking_request(event, quantity))
    booking.payment_status = PaymentStatus.COMPLETED
    await db.commit()
    tickets = await TicketService(db).generate_tickets_for_booking(booking)
    return booking, tickets


@pytest.fixture
async def organizer(db):
    return await create_user(db, UserRole.ORGANIZER, "Olivia Organizer")


@pytest.fixture
async def attendee(db):
    return await create_user(db, UserRole.USER, "Asha Rao")


@pytest.fixture
async def admin(db):
    return await create_user(db, UserRole.ADMIN, "Ada Admin")


@pytest.fixture
async def event(db, organizer):
    return await create_event(db, organizer)
