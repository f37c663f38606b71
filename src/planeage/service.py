"""Flight number + date -> aircraft manufacture year and age.

Both legs go through their own ``ResultCache``: flight lookups keyed by
flight number and date, registry results keyed by N-number. Only a flight
lookup that produced a registration, and only an aircraft that has a year,
are cached; every other outcome is retried on the next request.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import TYPE_CHECKING

import structlog

from planeage.models.flights import CheckFlightInput, CheckFlightOutput, FlightLookupStatus
from planeage.scanner import registration_to_n_number

if TYPE_CHECKING:
    from planeage.cache import ResultCache
    from planeage.flights import FlightDataClient
    from planeage.models.flights import FlightLookup
    from planeage.models.registry import ResolvedAircraft
    from planeage.registry import AircraftRegistry

log = structlog.get_logger()

MSG_UNAVAILABLE = "Flight details currently unavailable."
MSG_NO_AIRCRAFT = "No aircraft assigned to this flight yet."
MSG_NOT_IN_REGISTRY = "Aircraft specs not in local registry."


def aircraft_age(year: str, current_year: int) -> int | None:
    try:
        built = int(year.strip())
    except ValueError:
        return None
    return max(0, current_year - built)


def _has_year(aircraft: ResolvedAircraft | None) -> bool:
    return aircraft is not None and aircraft.has_year


def _has_registration(lookup: FlightLookup) -> bool:
    return lookup.found


class FlightAgeService:
    def __init__(
        self,
        flights: FlightDataClient,
        registry: AircraftRegistry,
        flight_cache: ResultCache[str, FlightLookup],
        aircraft_cache: ResultCache[str, ResolvedAircraft | None],
        today: Callable[[], date] = date.today,
    ) -> None:
        self._flights = flights
        self._registry = registry
        self._flight_cache = flight_cache
        self._aircraft_cache = aircraft_cache
        self._today = today

    async def lookup_flight(self, flight_number: str, flight_date: str) -> FlightLookup:
        key = f"{flight_number.upper()}|{flight_date}"
        return await self._flight_cache.get_or_create(
            key,
            lambda: self._flights.lookup(flight_number, flight_date),
            cacheable=_has_registration,
        )

    async def lookup_aircraft(self, registration: str) -> ResolvedAircraft | None:
        """Resolve a tail number (with or without the leading N)."""
        n_number = registration_to_n_number(registration)
        if not n_number:
            return None
        return await self._aircraft_cache.get_or_create(
            n_number,
            lambda: self._registry.resolve(n_number),
            cacheable=_has_year,
        )

    async def check_flight(self, query: CheckFlightInput) -> CheckFlightOutput:
        """Registry read failures propagate as ``PlaneAgeError``."""
        base = {"flight_number": query.flight_number, "date": query.date}

        lookup = await self.lookup_flight(query.flight_number, query.date)
        if lookup.status is FlightLookupStatus.FAILED:
            return CheckFlightOutput(ok=False, message=MSG_UNAVAILABLE, **base)
        if lookup.registration is None:
            return CheckFlightOutput(ok=False, message=MSG_NO_AIRCRAFT, **base)

        registration = lookup.registration
        n_number = registration_to_n_number(registration)
        aircraft = await self.lookup_aircraft(registration)
        if aircraft is None or not aircraft.has_year:
            log.info("aircraft_not_in_registry", registration=registration, n_number=n_number)
            return CheckFlightOutput(
                ok=False,
                message=MSG_NOT_IN_REGISTRY,
                registration=registration,
                n_number=n_number,
                **base,
            )

        return CheckFlightOutput(
            ok=True,
            registration=registration,
            n_number=n_number,
            year=aircraft.year,
            manufacturer=aircraft.manufacturer or None,
            model=aircraft.model or None,
            aircraft_type=aircraft.aircraft_type,
            age=aircraft_age(aircraft.year, self._today().year),
            **base,
        )
