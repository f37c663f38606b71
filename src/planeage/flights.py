"""Remote flight-data lookup (AeroDataBox via RapidAPI).

Returns a ``FlightLookup`` and never raises. ``FAILED`` means the call itself
did not succeed (no API key, transport error, non-2xx, unreadable body, or
the deadline passed). ``NO_REGISTRATION`` means it succeeded but no aircraft
is assigned to the flight yet. Callers report these differently.

Codeshare flights come back as several entries. The first entry's aircraft
is taken as the operating one; this relies on the provider listing the
operating carrier first, which has not been validated beyond observation.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote

import httpx
import structlog

from planeage.models.flights import FlightLookup, FlightLookupStatus

if TYPE_CHECKING:
    from planeage.config import FlightApiSettings

log = structlog.get_logger()


class FlightDataClient(Protocol):
    async def lookup(self, flight_number: str, date: str) -> FlightLookup: ...


def extract_registration(payload: Any) -> str | None:
    """``payload[0].aircraft.registration``, or ``None`` if any level is missing."""
    if not isinstance(payload, list) or not payload:
        return None
    first = payload[0]
    if not isinstance(first, dict):
        return None
    aircraft = first.get("aircraft")
    if not isinstance(aircraft, dict):
        return None
    registration = aircraft.get("registration")
    if not isinstance(registration, str) or not registration.strip():
        return None
    return registration.strip()


_FAILED = FlightLookup(status=FlightLookupStatus.FAILED)


class AeroDataBoxClient:
    def __init__(self, client: httpx.AsyncClient, settings: FlightApiSettings) -> None:
        self._client = client
        self._settings = settings

    @property
    def configured(self) -> bool:
        return self._settings.api_key is not None and bool(
            self._settings.api_key.get_secret_value()
        )

    def _url(self, flight_number: str, date: str) -> str:
        return (
            f"https://{self._settings.api_host}/flights/number/"
            f"{quote(flight_number, safe='')}/{quote(date, safe='')}"
        )

    async def lookup(self, flight_number: str, date: str) -> FlightLookup:
        api_key = self._settings.api_key
        if api_key is None or not api_key.get_secret_value():
            log.warning("flight_lookup_not_configured")
            return _FAILED

        headers = {
            "X-RapidAPI-Key": api_key.get_secret_value(),
            "X-RapidAPI-Host": self._settings.api_host,
            "Accept": "application/json",
        }
        try:
            async with asyncio.timeout(self._settings.timeout_seconds):
                response = await self._client.get(
                    self._url(flight_number, date), headers=headers
                )
        except TimeoutError:
            log.warning(
                "flight_lookup_timeout",
                flight_number=flight_number,
                date=date,
                timeout_seconds=self._settings.timeout_seconds,
            )
            return _FAILED
        except httpx.HTTPError as exc:
            log.warning(
                "flight_lookup_transport_error",
                flight_number=flight_number,
                date=date,
                error=type(exc).__name__,
            )
            return _FAILED

        if response.status_code == 204:
            # Provider has nothing for this flight/date yet.
            return FlightLookup(status=FlightLookupStatus.NO_REGISTRATION)
        if not response.is_success:
            log.warning(
                "flight_lookup_http_error",
                flight_number=flight_number,
                date=date,
                status=response.status_code,
            )
            return _FAILED

        try:
            payload = response.json()
        except ValueError:
            log.warning("flight_lookup_bad_payload", flight_number=flight_number, date=date)
            return _FAILED

        registration = extract_registration(payload)
        if registration is None:
            return FlightLookup(status=FlightLookupStatus.NO_REGISTRATION)
        return FlightLookup(status=FlightLookupStatus.FOUND, registration=registration)
