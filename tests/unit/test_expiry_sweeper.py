import threading
from decimal import Decimal

import pytest

from flight_booking.domain.exceptions import PaymentWindowExpired
from flight_booking.domain.state_machine import ReservationStatus
from flight_booking.infrastructure.db.session import get_db_session
from flight_booking.infrastructure.db.models import Reservation


def _force_status(reservation_id: str, status: ReservationStatus) -> None:
    with get_db_session() as db:
        db.get(Reservation, reservation_id).status = status


def test_sweep_cancels_only_stale_active_reservations(
    booking_service,
    sweeper,
    clock,
    load_reservation,
):
    stale_initiated = booking_service.create_reservation("FL-100", "u1", 1)
    stale_pending = booking_service.create_reservation("FL-100", "u2", 1)
    stale_booked = booking_service.create_reservation("FL-100", "u3", 1)
    stale_cancelled = booking_service.create_reservation("FL-100", "u4", 1)
    _force_status(stale_pending.id, ReservationStatus.PENDING)
    _force_status(stale_booked.id, ReservationStatus.BOOKED)
    _force_status(stale_cancelled.id, ReservationStatus.CANCELLED)

    clock.advance(minutes=10)
    fresh = booking_service.create_reservation("FL-100", "u5", 1)

    clock.advance(minutes=6)
    cancelled = sweeper.run_once()

    assert cancelled == 2
    assert load_reservation(stale_initiated.id).status == ReservationStatus.CANCELLED
    assert load_reservation(stale_pending.id).status == ReservationStatus.CANCELLED
    assert load_reservation(stale_booked.id).status == ReservationStatus.BOOKED
    assert load_reservation(stale_cancelled.id).status == ReservationStatus.CANCELLED
    assert load_reservation(fresh.id).status == ReservationStatus.INITIATED


def test_sweep_is_idempotent(booking_service, sweeper, clock):
    booking_service.create_reservation("FL-100", "u1", 1)
    clock.advance(minutes=20)

    assert sweeper.run_once() == 1
    assert sweeper.run_once() == 0


def test_sweep_does_not_touch_inventory(booking_service, inventory, sweeper, clock):
    booking_service.create_reservation("FL-100", "u1", 3)
    clock.advance(minutes=20)

    sweeper.run_once()

    assert inventory.adjustments == [("FL-100", -3)]


def test_sweep_after_lazy_expiry_finds_nothing(
    booking_service,
    payment_service,
    sweeper,
    clock,
):
    reservation = booking_service.create_reservation("FL-100", "u1", 1)
    clock.advance(minutes=16)

    with pytest.raises(PaymentWindowExpired):
        payment_service.pay(reservation.id, "u1", Decimal("5000"), "tok-1")

    assert sweeper.run_once() == 0


def test_overlapping_tick_is_skipped(sweeper, monkeypatch):
    started = threading.Event()
    release = threading.Event()

    def slow_sweep(now=None):
        started.set()
        release.wait(5)
        return 7

    monkeypatch.setattr(sweeper, "run_once", slow_sweep)

    results = []
    worker = threading.Thread(target=lambda: results.append(sweeper.tick()))
    worker.start()
    assert started.wait(5)

    assert sweeper.tick() is None

    release.set()
    worker.join(5)
    assert results == [7]


def test_background_loop_ticks_until_stopped(sweeper, monkeypatch):
    ticked = threading.Event()

    def fake_sweep(now=None):
        ticked.set()
        return 0

    monkeypatch.setattr(sweeper, "run_once", fake_sweep)

    sweeper.start()
    try:
        assert ticked.wait(2)
    finally:
        sweeper.stop()

    assert sweeper._thread is None


def test_background_loop_survives_failing_tick(sweeper, monkeypatch):
    calls = []
    recovered = threading.Event()

    def flaky_sweep(now=None):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("database went away")
        recovered.set()
        return 0

    monkeypatch.setattr(sweeper, "run_once", flaky_sweep)

    sweeper.start()
    try:
        assert recovered.wait(2)
    finally:
        sweeper.stop()


def test_sweep_purges_expired_idempotency_entries(
    booking_service,
    payment_service,
    ledger,
    sweeper,
    clock,
):
    reservation = booking_service.create_reservation("FL-100", "u1", 1)
    payment_service.pay(reservation.id, "u1", Decimal("5000"), "tok-1")
    assert len(ledger) == 1

    clock.advance(minutes=30)
    sweeper.run_once()

    assert len(ledger) == 0

