import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from flight_booking.application.idempotency_ledger import IdempotencyLedger
from flight_booking.domain.clock import Clock, as_utc, utc_now
from flight_booking.domain.exceptions import (
    AmountMismatch,
    InvalidStateTransitionError,
    MissingIdempotencyToken,
    OwnerMismatch,
    PaymentWindowExpired,
    ReservationAlreadyBooked,
    ReservationNotFound,
)
from flight_booking.domain.snapshot import ReservationSnapshot
from flight_booking.domain.state_machine import ReservationStatus
from flight_booking.infrastructure.db.models import Reservation
from flight_booking.infrastructure.db.session import SessionLocal, get_db_session
from flight_booking.infrastructure.repositories.reservation_repository import (
    ReservationRepository,
)


logger = logging.getLogger(__name__)


class PaymentService:
    """Application service confirming payment for a reservation."""

    def __init__(
        self,
        ledger: IdempotencyLedger,
        payment_window: timedelta,
        session_factory: sessionmaker = SessionLocal,
        clock: Clock = utc_now,
    ):
        self.ledger = ledger
        self.payment_window = payment_window
        self.session_factory = session_factory
        self.clock = clock

    def pay(
        self,
        reservation_id: str,
        user_ref: str,
        amount: Decimal,
        idempotency_token: str | None,
    ) -> ReservationSnapshot:
        if not idempotency_token or not idempotency_token.strip():
            raise MissingIdempotencyToken()

        previous = self.ledger.lookup(idempotency_token)
        if previous is not None:
            logger.info(
                "Replaying stored payment outcome for token %s (reservation %s)",
                idempotency_token,
                previous.id,
            )
            return previous

        expired, snapshot = self._settle(reservation_id, user_ref, Decimal(str(amount)))
        if expired:
            raise PaymentWindowExpired(reservation_id)

        return self.ledger.record(idempotency_token, snapshot)

    def _settle(
        self,
        reservation_id: str,
        user_ref: str,
        amount: Decimal,
    ) -> tuple[bool, ReservationSnapshot | None]:
        """
        One transaction per attempt. Returns (expired, snapshot); the expired
        case must still commit the cancellation before the caller raises.
        """
        with get_db_session(self.session_factory) as db:
            repository = ReservationRepository(db)
            reservation = repository.get_by_id(reservation_id, for_update=True)
            if reservation is None:
                raise ReservationNotFound(reservation_id)

            self._reject_terminal(reservation)

            now = self.clock()
            if now - as_utc(reservation.created_at) > self.payment_window:
                if not repository.transition_status(reservation, ReservationStatus.CANCELLED, now):
                    self._reject_terminal(reservation)
                logger.info(
                    "Reservation %s expired on payment attempt; cancelled",
                    reservation.id,
                )
                return True, None

            if reservation.total_cost != amount:
                raise AmountMismatch(
                    f"Payment amount {amount} does not match "
                    f"reservation total {reservation.total_cost}"
                )
            if reservation.user_ref != user_ref:
                raise OwnerMismatch(
                    f"Reservation {reservation.id} does not belong to user {user_ref}"
                )

            if not repository.transition_status(reservation, ReservationStatus.BOOKED, now):
                # Lost the race to another payment or the expiry sweep.
                self._reject_terminal(reservation)
                raise InvalidStateTransitionError(
                    from_state=reservation.status.value,
                    to_state=ReservationStatus.BOOKED.value,
                )

            logger.info("Reservation %s booked by user %s", reservation.id, user_ref)
            return False, ReservationSnapshot.from_reservation(reservation)

    @staticmethod
    def _reject_terminal(reservation: Reservation) -> None:
        if reservation.status == ReservationStatus.CANCELLED:
            raise PaymentWindowExpired(reservation.id)
        if reservation.status == ReservationStatus.BOOKED:
            raise ReservationAlreadyBooked(reservation.id)
