import abc
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from flight_booking.domain.clock import Clock, utc_now
from flight_booking.domain.snapshot import ReservationSnapshot


class IdempotencyLedger(abc.ABC):
    """
    Maps an idempotency token to the payment outcome produced for it.

    First writer wins: `record` never overwrites a live entry and always
    returns the outcome that is actually stored. Entries live for `ttl`
    and are invisible to `lookup` once expired.
    """

    def __init__(self, ttl: timedelta, clock: Clock = utc_now):
        self.ttl = ttl
        self.clock = clock

    @abc.abstractmethod
    def lookup(self, token: str) -> ReservationSnapshot | None:
        raise NotImplementedError

    @abc.abstractmethod
    def record(self, token: str, outcome: ReservationSnapshot) -> ReservationSnapshot:
        raise NotImplementedError

    @abc.abstractmethod
    def purge_expired(self, now: datetime | None = None) -> int:
        raise NotImplementedError


@dataclass(frozen=True)
class _Entry:
    payload: str
    expires_at: datetime


class InMemoryIdempotencyLedger(IdempotencyLedger):
    """Process-local ledger. Suitable for a single instance only."""

    def __init__(self, ttl: timedelta, clock: Clock = utc_now):
        super().__init__(ttl, clock)
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def lookup(self, token: str) -> ReservationSnapshot | None:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[token]
                return None
        return ReservationSnapshot.from_json(entry.payload)

    def record(self, token: str, outcome: ReservationSnapshot) -> ReservationSnapshot:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(token)
            if entry is None or entry.expires_at <= now:
                entry = _Entry(payload=outcome.to_json(), expires_at=now + self.ttl)
                self._entries[token] = entry
        return ReservationSnapshot.from_json(entry.payload)

    def purge_expired(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        with self._lock:
            expired = [
                token
                for token, entry in self._entries.items()
                if entry.expires_at <= now
            ]
            for token in expired:
                del self._entries[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
