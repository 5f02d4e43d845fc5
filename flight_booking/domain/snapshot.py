from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from flight_booking.domain.clock import as_utc
from flight_booking.domain.state_machine import ReservationStatus

if TYPE_CHECKING:
    from flight_booking.infrastructure.db.models import Reservation


class ReservationSnapshot(BaseModel):
    """
    Detached, serializable view of a reservation.
    This is what callers receive and what the idempotency ledger stores.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    flight_ref: str
    user_ref: str
    seat_count: int
    total_cost: Decimal
    status: ReservationStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> ReservationSnapshot:
        return cls(
            id=reservation.id,
            flight_ref=reservation.flight_ref,
            user_ref=reservation.user_ref,
            seat_count=reservation.seat_count,
            total_cost=reservation.total_cost,
            status=reservation.status,
            created_at=as_utc(reservation.created_at),
            updated_at=as_utc(reservation.updated_at),
        )

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, payload: str) -> ReservationSnapshot:
        return cls.model_validate_json(payload)
