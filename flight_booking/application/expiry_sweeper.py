import logging
import threading
from datetime import datetime, timedelta

from sqlalchemy.orm import sessionmaker

from flight_booking.application.idempotency_ledger import IdempotencyLedger
from flight_booking.domain.clock import Clock, utc_now
from flight_booking.infrastructure.db.session import SessionLocal, get_db_session
from flight_booking.infrastructure.repositories.reservation_repository import (
    ReservationRepository,
)


logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Periodically cancels unpaid reservations older than the payment window.

    Cancellation here does not give seats back to the inventory service;
    reclaiming them is left to that service's own reconciliation.
    Ticks never overlap: a tick that fires while a sweep is still running
    is skipped.
    """

    def __init__(
        self,
        payment_window: timedelta,
        interval_seconds: float,
        session_factory: sessionmaker = SessionLocal,
        clock: Clock = utc_now,
        ledger: IdempotencyLedger | None = None,
    ):
        self.payment_window = payment_window
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory
        self.clock = clock
        self.ledger = ledger

        self._sweep_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        threshold = now - self.payment_window

        with get_db_session(self.session_factory) as db:
            cancelled = ReservationRepository(db).cancel_expired(threshold, now)

        if cancelled:
            logger.info(
                "Cancelled %s unpaid reservations created before %s",
                cancelled,
                threshold.isoformat(),
            )
        if self.ledger is not None:
            purged = self.ledger.purge_expired(now)
            if purged:
                logger.debug("Purged %s expired idempotency records", purged)
        return cancelled

    def tick(self) -> int | None:
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("Previous expiry sweep still running; skipping this tick")
            return None
        try:
            return self.run_once()
        finally:
            self._sweep_lock.release()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_forever,
            name="expiry-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info("Expiry sweeper started (interval %.1fs)", self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Expiry sweeper stopped")

    def _run_forever(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception:
                logger.exception("Expiry sweep failed; will retry on next tick")
