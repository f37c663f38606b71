from __future__ import annotations

import re
from datetime import date as date_type
from enum import StrEnum

from pydantic import BaseModel, field_validator

_FLIGHT_NUMBER_RE = re.compile(r"^[0-9A-Za-z ]+$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class FlightLookupStatus(StrEnum):
    FOUND = "found"
    NO_REGISTRATION = "no_registration"  # flight known, no aircraft assigned yet
    FAILED = "failed"  # transport error, bad status, bad payload or timeout


class FlightLookup(BaseModel):
    """Outcome of one remote flight-data call."""

    status: FlightLookupStatus
    registration: str | None = None

    @property
    def found(self) -> bool:
        return self.status is FlightLookupStatus.FOUND


class CheckFlightInput(BaseModel):
    flight_number: str
    date: str

    @field_validator("flight_number")
    @classmethod
    def validate_flight_number(cls, v: str) -> str:
        v = v.strip()
        if not 2 <= len(v) <= 10:
            raise ValueError("flight_number must be 2-10 characters")
        if not _FLIGHT_NUMBER_RE.match(v):
            raise ValueError("flight_number may only contain letters, digits and spaces")
        return re.sub(r"\s+", "", v)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        v = v.strip()
        if not _DATE_RE.match(v):
            raise ValueError("date must be YYYY-MM-DD")
        try:
            date_type.fromisoformat(v)
        except ValueError as exc:
            raise ValueError(f"Invalid date: {v!r}") from exc
        return v


class CheckFlightOutput(BaseModel):
    ok: bool
    message: str | None = None
    flight_number: str
    date: str
    registration: str | None = None
    n_number: str | None = None
    year: str | None = None
    manufacturer: str | None = None
    model: str | None = None
    aircraft_type: str | None = None
    age: int | None = None  # whole years since manufacture, never negative
