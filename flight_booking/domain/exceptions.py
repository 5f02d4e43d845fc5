

class FlightBookingError(Exception):
    """
    Base exception for all domain-level errors
    inside the flight booking engine.
    """


class ValidationError(FlightBookingError):
    """Request shape is invalid; raised before any transaction opens."""


class BusinessRuleError(FlightBookingError):
    """A booking or payment rule rejected the request."""


class DependencyError(FlightBookingError):
    """A collaborator outside this service failed."""


class NotFoundError(FlightBookingError):
    """The referenced record does not exist."""


class InvalidRequest(ValidationError):
    """Raised when create or pay inputs are malformed."""


class MissingIdempotencyToken(ValidationError):

    def __init__(self):
        super().__init__("Idempotency key is required")


class InvalidStateTransitionError(BusinessRuleError):
    """
    Raised when an illegal reservation state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class InsufficientCapacity(BusinessRuleError):

    def __init__(self, flight_ref: str, requested: int, capacity: int):
        self.flight_ref = flight_ref
        self.requested = requested
        self.capacity = capacity
        super().__init__(
            f"Not enough seats available on flight {flight_ref}: "
            f"requested {requested}, capacity {capacity}"
        )


class AmountMismatch(BusinessRuleError):
    """Raised when the paid amount differs from the reservation total."""


class OwnerMismatch(BusinessRuleError):
    """Raised when the payer is not the user who made the reservation."""


class PaymentWindowExpired(BusinessRuleError):

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} payment time expired")


class ReservationAlreadyBooked(BusinessRuleError):

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} is already booked")


class InventoryUnavailable(DependencyError):
    """Raised when the flight inventory service cannot serve a request."""


class ReservationNotFound(NotFoundError):

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} not found")
