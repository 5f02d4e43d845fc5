# flight_booking/infrastructure/repositories/idempotency_repository.py

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from flight_booking.application.idempotency_ledger import IdempotencyLedger
from flight_booking.domain.clock import Clock, as_utc, utc_now
from flight_booking.domain.snapshot import ReservationSnapshot
from flight_booking.infrastructure.db.models import IdempotencyRecord
from flight_booking.infrastructure.db.session import SessionLocal, get_db_session


logger = logging.getLogger(__name__)


class SqlIdempotencyLedger(IdempotencyLedger):
    """
    Durable ledger backed by the idempotency_records table.

    Every call runs in its own short transaction, independent of the
    payment transaction it follows. The primary key on `token` settles
    concurrent first writes.
    """

    def __init__(
        self,
        ttl: timedelta,
        session_factory: sessionmaker = SessionLocal,
        clock: Clock = utc_now,
    ):
        super().__init__(ttl, clock)
        self.session_factory = session_factory

    def lookup(self, token: str) -> ReservationSnapshot | None:
        now = self.clock()
        with get_db_session(self.session_factory) as db:
            record = db.get(IdempotencyRecord, token)
            if record is None or as_utc(record.expires_at) <= now:
                return None
            return ReservationSnapshot.from_json(record.outcome)

    def record(self, token: str, outcome: ReservationSnapshot) -> ReservationSnapshot:
        now = self.clock()
        try:
            with get_db_session(self.session_factory) as db:
                record = db.get(IdempotencyRecord, token, with_for_update=True)
                if record is not None and as_utc(record.expires_at) > now:
                    return ReservationSnapshot.from_json(record.outcome)

                if record is None:
                    record = IdempotencyRecord(token=token)
                    db.add(record)
                record.reservation_id = outcome.id
                record.outcome = outcome.to_json()
                record.created_at = now
                record.expires_at = now + self.ttl
                db.flush()
                return outcome
        except IntegrityError:
            logger.info("Idempotency token %s recorded concurrently; using stored outcome", token)

        stored = self.lookup(token)
        return stored if stored is not None else outcome

    def purge_expired(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        with get_db_session(self.session_factory) as db:
            result = db.execute(
                delete(IdempotencyRecord)
                .where(IdempotencyRecord.expires_at <= now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

