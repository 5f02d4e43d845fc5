import logging
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from flight_booking.api.routes.routes import router
from flight_booking.application.expiry_sweeper import ExpirySweeper
from flight_booking.config import (
    DB_CONNECT_MAX_RETRIES,
    DB_CONNECT_RETRY_DELAY,
    EXPIRY_SWEEP_INTERVAL_SECONDS,
    FLIGHT_SERVICE_URL,
    IDEMPOTENCY_TTL,
    INVENTORY_TIMEOUT_SECONDS,
    PAYMENT_WINDOW,
    configure_logging,
)
from flight_booking.infrastructure.clients.inventory_client import InventoryClient
from flight_booking.infrastructure.db.models import Base
from flight_booking.infrastructure.db.session import engine
from flight_booking.infrastructure.repositories.idempotency_repository import (
    SqlIdempotencyLedger,
)

app = FastAPI(title="Flight Booking Service")

app.include_router(router)
logger = logging.getLogger(__name__)


def _wait_for_db() -> None:
    # Handles the common case where API starts before Postgres is ready.
    for attempt in range(1, DB_CONNECT_MAX_RETRIES + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is reachable.")
            return
        except OperationalError:
            if attempt == DB_CONNECT_MAX_RETRIES:
                logger.exception(
                    "Database not reachable after %s attempts. Check DATABASE_URL and Postgres status.",
                    DB_CONNECT_MAX_RETRIES,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                DB_CONNECT_MAX_RETRIES,
                DB_CONNECT_RETRY_DELAY,
            )
            time.sleep(DB_CONNECT_RETRY_DELAY)


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    _wait_for_db()
    Base.metadata.create_all(bind=engine)

    app.state.inventory_client = InventoryClient(
        FLIGHT_SERVICE_URL,
        timeout=INVENTORY_TIMEOUT_SECONDS,
    )
    app.state.idempotency_ledger = SqlIdempotencyLedger(ttl=IDEMPOTENCY_TTL)
    app.state.expiry_sweeper = ExpirySweeper(
        payment_window=PAYMENT_WINDOW,
        interval_seconds=EXPIRY_SWEEP_INTERVAL_SECONDS,
        ledger=app.state.idempotency_ledger,
    )
    app.state.expiry_sweeper.start()


@app.on_event("shutdown")
def on_shutdown() -> None:
    app.state.expiry_sweeper.stop()
    app.state.inventory_client.close()
