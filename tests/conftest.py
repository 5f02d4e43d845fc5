import os

# Must be set before the package creates its engine.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from flight_booking.api.routes.routes import (
    get_booking_service,
    get_idempotency_ledger,
    get_payment_service,
)
from flight_booking.application.booking_service import BookingService
from flight_booking.application.expiry_sweeper import ExpirySweeper
from flight_booking.application.idempotency_ledger import InMemoryIdempotencyLedger
from flight_booking.application.payment_service import PaymentService
from flight_booking.domain.exceptions import InventoryUnavailable
from flight_booking.infrastructure.clients.inventory_client import FlightInfo
from flight_booking.infrastructure.db.models import Base, Reservation
from flight_booking.infrastructure.db.session import SessionLocal, engine, get_db_session
from flight_booking.main import app


PAYMENT_WINDOW = timedelta(minutes=15)


class FrozenClock:

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeInventoryClient:
    """Stands in for the remote flight service."""

    def __init__(self):
        self.flights: dict[str, FlightInfo] = {}
        self.fetch_calls: list[str] = []
        self.adjustments: list[tuple[str, int]] = []
        self.fetch_error: Exception | None = None
        self.adjust_error: Exception | None = None

    def add_flight(self, flight_ref: str, capacity: int, unit_price) -> None:
        self.flights[flight_ref] = FlightInfo(
            flight_ref=flight_ref,
            capacity=capacity,
            unit_price=Decimal(str(unit_price)),
        )

    def fetch_flight(self, flight_ref: str) -> FlightInfo:
        self.fetch_calls.append(flight_ref)
        if self.fetch_error is not None:
            raise self.fetch_error
        if flight_ref not in self.flights:
            raise InventoryUnavailable(f"Flight {flight_ref} not found")
        return self.flights[flight_ref]

    def adjust_seats(self, flight_ref: str, delta: int) -> None:
        if self.adjust_error is not None:
            raise self.adjust_error
        self.adjustments.append((flight_ref, delta))

    def close(self) -> None:
        pass


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return SessionLocal


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def inventory():
    client = FakeInventoryClient()
    client.add_flight("FL-100", capacity=50, unit_price=5000)
    return client


@pytest.fixture
def ledger(clock):
    return InMemoryIdempotencyLedger(ttl=PAYMENT_WINDOW, clock=clock)


@pytest.fixture
def booking_service(inventory, session_factory, clock):
    return BookingService(inventory, session_factory=session_factory, clock=clock)


@pytest.fixture
def payment_service(ledger, session_factory, clock):
    return PaymentService(
        ledger,
        payment_window=PAYMENT_WINDOW,
        session_factory=session_factory,
        clock=clock,
    )


@pytest.fixture
def sweeper(session_factory, clock, ledger):
    return ExpirySweeper(
        payment_window=PAYMENT_WINDOW,
        interval_seconds=0.01,
        session_factory=session_factory,
        clock=clock,
        ledger=ledger,
    )


@pytest.fixture
def client(booking_service, payment_service, ledger):
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    app.dependency_overrides[get_idempotency_ledger] = lambda: ledger
    # No context manager: startup hooks (DB wait, sweeper thread) stay off.
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def count_reservations():
    def _count() -> int:
        with get_db_session() as db:
            return db.scalar(select(func.count()).select_from(Reservation))

    return _count


@pytest.fixture
def load_reservation():
    def _load(reservation_id: str) -> Reservation:
        with get_db_session() as db:
            reservation = db.get(Reservation, reservation_id)
            db.expunge(reservation)
            return reservation

    return _load
