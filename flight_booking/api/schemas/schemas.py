from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from flight_booking.domain.snapshot import ReservationSnapshot


class ReservationRequest(BaseModel):
    flight_ref: str = Field(min_length=1)
    user_ref: str = Field(min_length=1)
    seat_count: int = Field(gt=0)


class PaymentRequest(BaseModel):
    user_ref: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)


class ReservationResponse(BaseModel):
    reservation_id: str
    flight_ref: str
    user_ref: str
    seat_count: int
    total_cost: Decimal
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_snapshot(cls, snapshot: ReservationSnapshot) -> "ReservationResponse":
        return cls(
            reservation_id=snapshot.id,
            flight_ref=snapshot.flight_ref,
            user_ref=snapshot.user_ref,
            seat_count=snapshot.seat_count,
            total_cost=snapshot.total_cost,
            status=snapshot.status.value,
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
        )
