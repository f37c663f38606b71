"""Aircraft registry: joins a MASTER row with its ACFTREF row.

Production aircraft name their maker through ``MFR MDL CODE``, a key into the
reference table. Kit-built aircraft usually describe themselves inline in
``KIT MFR`` / ``KIT MODEL``. ``AircraftRegistry.resolve`` hides the
difference: reference values win whenever the code resolves to a maker or
model, and the inline fields are the fallback.

Every scan holds a permit from the shared ``LookupGate``. File paths are asked
of the data source on each lookup, so a refreshed dataset is picked up
without restarting.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from planeage import scanner
from planeage.models.registry import ReferenceRecord, RegistryRecord, ResolvedAircraft
from planeage.schema import IDENTIFIER, MASTER_LAYOUT, REFERENCE_LAYOUT

if TYPE_CHECKING:
    from planeage.gate import LookupGate

log = structlog.get_logger()


@dataclass(frozen=True)
class RegistryPaths:
    master: Path
    reference: Path


class DataSource(Protocol):
    async def current(self) -> RegistryPaths: ...


class LocalDataSource:
    """Registry files at fixed local paths, replaced in place by the refresh pipeline."""

    def __init__(self, master: Path, reference: Path) -> None:
        self._paths = RegistryPaths(master=master, reference=reference)

    async def current(self) -> RegistryPaths:
        return self._paths


def compose_type(manufacturer: str, model: str) -> str | None:
    """``"CESSNA" + "172S"`` -> ``"CESSNA 172S"``; ``None`` when both are empty."""
    parts = [p for p in (manufacturer.strip(), model.strip()) if p]
    return " ".join(parts) if parts else None


class AircraftRegistry:
    def __init__(self, source: DataSource, gate: LookupGate) -> None:
        self._source = source
        self._gate = gate

    async def find_record(self, n_number: str) -> RegistryRecord | None:
        paths = await self._source.current()
        async with self._gate:
            row = await scanner.lookup(paths.master, n_number, MASTER_LAYOUT)
        if row is None:
            return None
        return RegistryRecord.from_row(row[IDENTIFIER], row)

    async def find_reference(self, code: str) -> ReferenceRecord | None:
        paths = await self._source.current()
        async with self._gate:
            row = await scanner.lookup(paths.reference, code, REFERENCE_LAYOUT)
        if row is None:
            return None
        return ReferenceRecord.from_row(row[IDENTIFIER], row)

    async def resolve(self, n_number: str) -> ResolvedAircraft | None:
        record = await self.find_record(n_number)
        if record is None:
            return None

        reference: ReferenceRecord | None = None
        if record.mfr_mdl_code:
            reference = await self.find_reference(record.mfr_mdl_code)

        if reference is not None and (reference.manufacturer or reference.model):
            manufacturer, model, matched_via = reference.manufacturer, reference.model, "reference"
        elif record.kit_manufacturer or record.kit_model:
            manufacturer, model, matched_via = record.kit_manufacturer, record.kit_model, "kit"
        else:
            manufacturer, model, matched_via = "", "", "none"

        log.debug(
            "aircraft_resolved",
            n_number=record.n_number,
            matched_via=matched_via,
            has_year=bool(record.year),
        )
        return ResolvedAircraft(
            n_number=record.n_number,
            year=record.year,
            manufacturer=manufacturer,
            model=model,
            aircraft_type=compose_type(manufacturer, model),
            type_aircraft=reference.type_aircraft if reference is not None else "",
            matched_via=matched_via,
            mfr_mdl_code=record.mfr_mdl_code,
            kit_manufacturer=record.kit_manufacturer,
            kit_model=record.kit_model,
        )
