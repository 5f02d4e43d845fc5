# flight_booking/infrastructure/db/models.py

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from flight_booking.domain.clock import utc_now
from flight_booking.domain.state_machine import ReservationStatus
from flight_booking.infrastructure.db.session import Base


class Reservation(Base):
    """
    Reservation table reflecting domain state.
    Domain controls transitions.
    DB stores current state safely.
    """

    __tablename__ = "reservations"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    flight_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    user_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    seat_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus, name="reservation_status"),
        nullable=False,
        default=ReservationStatus.INITIATED,
    )
    # Only input to expiry; never touched after insert.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "seat_count > 0",
            name="ck_reservation_seat_count_positive",
        ),
        CheckConstraint(
            "total_cost >= 0",
            name="ck_reservation_total_cost_nonnegative",
        ),
        Index(
            "ix_reservations_status_created_at",
            "status",
            "created_at",
        ),
    )


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    reservation_id: Mapped[str] = mapped_column(String(36), nullable=False)
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
