# flight_booking/infrastructure/clients/inventory_client.py

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import httpx

from flight_booking.domain.exceptions import InventoryUnavailable


logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def is_valid_price(value: Decimal) -> bool:
    # Whole cents only, so seat_count * unit_price fits Numeric(12, 2) exactly.
    if not value.is_finite() or value < 0:
        return False
    try:
        return value == value.quantize(CENTS)
    except InvalidOperation:
        return False


@dataclass(frozen=True)
class FlightInfo:
    flight_ref: str
    capacity: int
    unit_price: Decimal


class InventoryClient:
    """
    Synchronous wrapper around the external flight inventory service.

    Each call is one round trip: no retries and no caching. Every transport
    failure, timeout or non-2xx answer is reported as InventoryUnavailable.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    def fetch_flight(self, flight_ref: str) -> FlightInfo:
        payload = self._request("GET", f"/flights/{flight_ref}")
        data = payload.get("data", payload) if isinstance(payload, dict) else None

        try:
            capacity = int(data["capacity"])
            unit_price = Decimal(str(data["unitPrice"]))
        except (TypeError, KeyError, ValueError, InvalidOperation) as exc:
            logger.warning("Malformed flight payload for %s: %r", flight_ref, payload)
            raise InventoryUnavailable(
                f"Flight service returned malformed data for flight {flight_ref}"
            ) from exc

        if capacity < 0 or not is_valid_price(unit_price):
            logger.warning("Invalid flight figures for %s: %r", flight_ref, payload)
            raise InventoryUnavailable(
                f"Flight service returned invalid capacity or price for flight {flight_ref}"
            )

        return FlightInfo(
            flight_ref=flight_ref,
            capacity=capacity,
            unit_price=unit_price,
        )

    def adjust_seats(self, flight_ref: str, delta: int) -> None:
        self._request(
            "PATCH",
            f"/flights/{flight_ref}/seats",
            json={"delta": delta},
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, url: str, **kwargs):
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Flight service call %s %s failed: %s", method, url, exc)
            raise InventoryUnavailable(
                f"Flight service unavailable for {method} {url}"
            ) from exc

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise InventoryUnavailable(
                f"Flight service returned a non-JSON body for {method} {url}"
            ) from exc
