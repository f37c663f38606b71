from __future__ import annotations

from pydantic import BaseModel

from planeage.schema import AIRCRAFT_TYPE, JOIN_KEY, MANUFACTURER, MODEL, YEAR


class RegistryRecord(BaseModel):
    """Single row of the primary registry (FAA MASTER)."""

    n_number: str  # normalised: uppercase, no leading N
    year: str = ""
    mfr_mdl_code: str = ""
    # Inline maker for kit-built aircraft (KIT MFR / KIT MODEL)
    kit_manufacturer: str = ""
    kit_model: str = ""

    @classmethod
    def from_row(cls, n_number: str, row: dict[str, str]) -> RegistryRecord:
        return cls(
            n_number=n_number,
            year=row.get(YEAR, ""),
            mfr_mdl_code=row.get(JOIN_KEY, ""),
            kit_manufacturer=row.get(MANUFACTURER, ""),
            kit_model=row.get(MODEL, ""),
        )


class ReferenceRecord(BaseModel):
    """Single row of the aircraft reference table (FAA ACFTREF)."""

    code: str
    manufacturer: str = ""
    model: str = ""
    type_aircraft: str = ""

    @classmethod
    def from_row(cls, code: str, row: dict[str, str]) -> ReferenceRecord:
        return cls(
            code=code,
            manufacturer=row.get(MANUFACTURER, ""),
            model=row.get(MODEL, ""),
            type_aircraft=row.get(AIRCRAFT_TYPE, ""),
        )


class ResolvedAircraft(BaseModel):
    """Result of joining a registry row with its reference row. Never stored."""

    n_number: str
    year: str
    manufacturer: str
    model: str
    aircraft_type: str | None  # "manufacturer model", None when both are empty
    type_aircraft: str = ""  # FAA TYPE-ACFT classifier, when known
    matched_via: str  # "reference" | "kit" | "none"
    # Raw fields kept for diagnostics
    mfr_mdl_code: str = ""
    kit_manufacturer: str = ""
    kit_model: str = ""

    @property
    def has_year(self) -> bool:
        return bool(self.year)
