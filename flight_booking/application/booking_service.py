import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from flight_booking.domain.clock import Clock, utc_now
from flight_booking.domain.exceptions import (
    InsufficientCapacity,
    InvalidRequest,
    InventoryUnavailable,
)
from flight_booking.domain.snapshot import ReservationSnapshot
from flight_booking.infrastructure.clients.inventory_client import (
    InventoryClient,
    is_valid_price,
)
from flight_booking.infrastructure.db.session import SessionLocal, get_db_session
from flight_booking.infrastructure.repositories.reservation_repository import (
    ReservationRepository,
)


logger = logging.getLogger(__name__)


class BookingService:
    """
    Creates reservations.

    The local insert and the remote seat decrement run as one unit of work:
    the reservation row is only committed once the inventory service has
    accepted the decrement. There is no distributed transaction, so a crash
    between the remote decrement and the local commit leaves seats taken with
    no reservation behind them. That case is logged and reported as a
    dependency failure, never as success.
    """

    def __init__(
        self,
        inventory_client: InventoryClient,
        session_factory: sessionmaker = SessionLocal,
        clock: Clock = utc_now,
    ):
        self.inventory_client = inventory_client
        self.session_factory = session_factory
        self.clock = clock

    def create_reservation(
        self,
        flight_ref: str,
        user_ref: str,
        seat_count: int,
    ) -> ReservationSnapshot:
        self._validate(flight_ref, user_ref, seat_count)

        with get_db_session(self.session_factory) as db:
            flight = self.inventory_client.fetch_flight(flight_ref)

            if seat_count > flight.capacity:
                raise InsufficientCapacity(flight_ref, seat_count, flight.capacity)

            total_cost = seat_count * flight.unit_price
            if not is_valid_price(total_cost):
                raise InventoryUnavailable(
                    f"Flight {flight_ref} has an invalid unit price {flight.unit_price}"
                )

            reservation = ReservationRepository(db).create(
                flight_ref=flight_ref,
                user_ref=user_ref,
                seat_count=seat_count,
                total_cost=total_cost,
                now=self.clock(),
            )

            try:
                self.inventory_client.adjust_seats(flight_ref, -seat_count)
            except InventoryUnavailable:
                logger.warning(
                    "Seat decrement failed for flight %s; rolling back reservation %s. "
                    "The remote side may still have applied it.",
                    flight_ref,
                    reservation.id,
                )
                raise

            snapshot = ReservationSnapshot.from_reservation(reservation)
            try:
                db.commit()
            except SQLAlchemyError as exc:
                logger.error(
                    "Decremented %s seats on flight %s but could not commit reservation %s",
                    seat_count,
                    flight_ref,
                    reservation.id,
                )
                raise InventoryUnavailable(
                    f"Reservation for flight {flight_ref} could not be committed "
                    f"after seats were decremented"
                ) from exc

        logger.info(
            "Reservation %s created: flight=%s user=%s seats=%s total=%s",
            snapshot.id,
            flight_ref,
            user_ref,
            seat_count,
            snapshot.total_cost,
        )
        return snapshot

    @staticmethod
    def _validate(flight_ref: str, user_ref: str, seat_count: int) -> None:
        if not flight_ref or not str(flight_ref).strip():
            raise InvalidRequest("flight_ref is required")
        if not user_ref or not str(user_ref).strip():
            raise InvalidRequest("user_ref is required")
        if isinstance(seat_count, bool) or not isinstance(seat_count, int) or seat_count < 1:
            raise InvalidRequest("seat_count must be a positive integer")
