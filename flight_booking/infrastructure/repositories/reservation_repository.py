# flight_booking/infrastructure/repositories/reservation_repository.py

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from flight_booking.domain.state_machine import (
    ACTIVE_STATUSES,
    ReservationStateMachine,
    ReservationStatus,
)
from flight_booking.infrastructure.db.models import Reservation


class ReservationRepository:
    """
    Transaction-scoped access to reservations.
    The caller owns the session and decides when to commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        flight_ref: str,
        user_ref: str,
        seat_count: int,
        total_cost: Decimal,
        now: datetime,
    ) -> Reservation:
        reservation = Reservation(
            flight_ref=flight_ref,
            user_ref=user_ref,
            seat_count=seat_count,
            total_cost=total_cost,
            status=ReservationStatus.INITIATED,
            created_at=now,
            updated_at=now,
        )

        self.db.add(reservation)
        self.db.flush()
        return reservation

    def get_by_id(
        self,
        reservation_id: str,
        for_update: bool = False,
    ) -> Reservation | None:
        """
        SELECT ... FOR UPDATE when `for_update` is set,
        so concurrent payments on one row queue up behind each other.
        """
        stmt = select(Reservation).where(Reservation.id == reservation_id)
        if for_update:
            stmt = stmt.with_for_update()

        return self.db.execute(stmt).scalar_one_or_none()

    def transition_status(
        self,
        reservation: Reservation,
        to_status: ReservationStatus,
        now: datetime,
    ) -> bool:
        """
        Compare-and-swap on the status column.

        The row is only updated while it still sits in a state that may
        legally move to `to_status`. Returns False when another writer got
        there first; the instance is refreshed either way.
        """
        ReservationStateMachine.validate_transition(reservation.status, to_status)

        stmt = (
            update(Reservation)
            .where(Reservation.id == reservation.id)
            .where(Reservation.status.in_(list(ReservationStateMachine.sources_for(to_status))))
            .values(status=to_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.refresh(reservation)
        return result.rowcount == 1

    def cancel_expired(self, threshold: datetime, now: datetime) -> int:
        """
        Bulk-cancel every active reservation created before `threshold`.
        Single statement; terminal rows are never matched.
        """
        stmt = (
            update(Reservation)
            .where(Reservation.created_at < threshold)
            .where(Reservation.status.in_(list(ACTIVE_STATUSES)))
            .values(status=ReservationStatus.CANCELLED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount
