from __future__ import annotations

from planeage.models.flights import (
    CheckFlightInput,
    CheckFlightOutput,
    FlightLookup,
    FlightLookupStatus,
)
from planeage.models.manifest import Manifest
from planeage.models.registry import ReferenceRecord, RegistryRecord, ResolvedAircraft

__all__ = [
    # registry
    "RegistryRecord",
    "ReferenceRecord",
    "ResolvedAircraft",
    # flights
    "FlightLookup",
    "FlightLookupStatus",
    "CheckFlightInput",
    "CheckFlightOutput",
    # mirror
    "Manifest",
]
