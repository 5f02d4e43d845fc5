from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from flight_booking.api.schemas.schemas import (
    PaymentRequest,
    ReservationRequest,
    ReservationResponse,
)
from flight_booking.application.booking_service import BookingService
from flight_booking.application.idempotency_ledger import IdempotencyLedger
from flight_booking.application.payment_service import PaymentService
from flight_booking.config import PAYMENT_WINDOW
from flight_booking.domain.exceptions import (
    AmountMismatch,
    InsufficientCapacity,
    InvalidRequest,
    InvalidStateTransitionError,
    InventoryUnavailable,
    MissingIdempotencyToken,
    OwnerMismatch,
    PaymentWindowExpired,
    ReservationAlreadyBooked,
    ReservationNotFound,
)
from flight_booking.domain.snapshot import ReservationSnapshot
from flight_booking.infrastructure.clients.inventory_client import InventoryClient
from flight_booking.infrastructure.db.session import SessionLocal
from flight_booking.infrastructure.repositories.reservation_repository import (
    ReservationRepository,
)


router = APIRouter()


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Long-lived clients are built by the startup hook in main.py.
def get_inventory_client(request: Request) -> InventoryClient:
    return request.app.state.inventory_client


def get_idempotency_ledger(request: Request) -> IdempotencyLedger:
    return request.app.state.idempotency_ledger


def get_booking_service(
    inventory_client: InventoryClient = Depends(get_inventory_client),
) -> BookingService:
    return BookingService(inventory_client)


def get_payment_service(
    ledger: IdempotencyLedger = Depends(get_idempotency_ledger),
) -> PaymentService:
    return PaymentService(ledger, payment_window=PAYMENT_WINDOW)


@router.get("/health")
def health():
    return {"message": "Flight booking service is running"}


@router.post(
    "/bookings",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    request: ReservationRequest,
    service: BookingService = Depends(get_booking_service),
):
    try:
        snapshot = service.create_reservation(
            flight_ref=request.flight_ref,
            user_ref=request.user_ref,
            seat_count=request.seat_count,
        )
    except InvalidRequest as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except InsufficientCapacity as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except InventoryUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return ReservationResponse.from_snapshot(snapshot)


@router.get("/bookings/{reservation_id}", response_model=ReservationResponse)
def get_booking(reservation_id: str, db: Session = Depends(get_db)):
    reservation = ReservationRepository(db).get_by_id(reservation_id)
    if not reservation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Reservation not found",
        )
    return ReservationResponse.from_snapshot(
        ReservationSnapshot.from_reservation(reservation)
    )


@router.post("/bookings/{reservation_id}/pay", response_model=ReservationResponse)
def pay_booking(
    reservation_id: str,
    request: PaymentRequest,
    idempotency_key: str | None = Header(default=None, alias="X-Idempotency-Key"),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        snapshot = service.pay(
            reservation_id=reservation_id,
            user_ref=request.user_ref,
            amount=request.amount,
            idempotency_token=idempotency_key,
        )
    except MissingIdempotencyToken as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ReservationNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except PaymentWindowExpired as exc:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail=str(exc),
        ) from exc
    except AmountMismatch as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except OwnerMismatch as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc
    except (ReservationAlreadyBooked, InvalidStateTransitionError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    return ReservationResponse.from_snapshot(snapshot)
