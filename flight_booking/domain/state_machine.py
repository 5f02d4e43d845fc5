# flight_booking/domain/state_machine.py

from enum import Enum
from typing import Dict, FrozenSet, Set

from flight_booking.domain.exceptions import InvalidStateTransitionError


class ReservationStatus(str, Enum):
    INITIATED = "INITIATED"
    PENDING = "PENDING"
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"


class ReservationStateMachine:
    """
    Central lifecycle controller for reservation transitions.
    Defines the legal state transitions.
    """

    _ALLOWED_TRANSITIONS: Dict[ReservationStatus, Set[ReservationStatus]] = {
        ReservationStatus.INITIATED: {
            ReservationStatus.PENDING,
            ReservationStatus.BOOKED,
            ReservationStatus.CANCELLED,
        },
        ReservationStatus.PENDING: {
            ReservationStatus.BOOKED,
            ReservationStatus.CANCELLED,
        },
        ReservationStatus.BOOKED: set(),
        ReservationStatus.CANCELLED: set(),
    }

    @classmethod
    def can_transition(
        cls,
        from_status: ReservationStatus,
        to_status: ReservationStatus,
    ) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: ReservationStatus,
        to_status: ReservationStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status: ReservationStatus) -> bool:
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def sources_for(cls, to_status: ReservationStatus) -> FrozenSet[ReservationStatus]:
        """
        Returns every state that may legally move to `to_status`.
        Used as the expected-status guard of conditional updates.
        """
        cls._ensure_valid_status(to_status)
        return frozenset(
            from_status
            for from_status, targets in cls._ALLOWED_TRANSITIONS.items()
            if to_status in targets
        )

    @staticmethod
    def _ensure_valid_status(status: ReservationStatus) -> None:
        if not isinstance(status, ReservationStatus):
            raise TypeError(
                f"Expected ReservationStatus, got {type(status)}"
            )


# Reservations the sweeper and lazy expiry may still cancel.
ACTIVE_STATUSES = ReservationStateMachine.sources_for(ReservationStatus.CANCELLED)
