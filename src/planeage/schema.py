"""Column layout detection for registry files.

A file's first line is tried as a header: field names are normalised and
matched against each logical column's accepted names. The header is only
trusted when every required logical column is found; otherwise the layout's
fixed positional table is used and line 1 is treated as data.

Schemas are detected on every scan rather than remembered, so a refreshed
file with shifted columns is picked up without any invalidation step.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

from planeage.tokenizer import split_line

BOM = "\ufeff"

IDENTIFIER = "identifier"
YEAR = "year"
JOIN_KEY = "join_key"
MANUFACTURER = "manufacturer"
MODEL = "model"
AIRCRAFT_TYPE = "aircraft_type"


class QueryShape(StrEnum):
    FULL = "full"  # identifier plus every detail column
    DETAILS = "details"  # detail columns only; identifier already read


@dataclass(frozen=True)
class TableLayout:
    """Static description of one registry file format."""

    name: str
    required: tuple[str, ...]
    # logical column -> accepted header names, most preferred first
    header_names: Mapping[str, tuple[str, ...]]
    # logical column -> position in the headerless fixed format
    fallback: Mapping[str, int]


@dataclass(frozen=True)
class Schema:
    """Resolved column positions for one scan of one file."""

    layout: TableLayout
    columns: Mapping[str, int]
    from_header: bool

    @property
    def identifier_index(self) -> int:
        return self.columns[IDENTIFIER]

    def indices_for(self, shape: QueryShape) -> tuple[int, ...]:
        if shape is QueryShape.FULL:
            wanted = set(self.columns.values())
        else:
            wanted = {i for name, i in self.columns.items() if name != IDENTIFIER}
        return tuple(sorted(wanted))


def normalize_header_name(value: str) -> str:
    return value.replace(BOM, "").strip().upper()


def detect_header(first_line: str, layout: TableLayout) -> Schema | None:
    """Interpret ``first_line`` as a header, or return ``None`` if it is not one."""
    positions: dict[str, int] = {}
    for index, raw in enumerate(split_line(first_line)):
        name = normalize_header_name(raw)
        if name and name not in positions:
            positions[name] = index

    columns: dict[str, int] = {}
    for logical, names in layout.header_names.items():
        for name in names:
            if name in positions:
                columns[logical] = positions[name]
                break

    if not all(logical in columns for logical in layout.required):
        return None
    return Schema(layout=layout, columns=MappingProxyType(columns), from_header=True)


def fallback_schema(layout: TableLayout) -> Schema:
    return Schema(layout=layout, columns=MappingProxyType(dict(layout.fallback)), from_header=False)


def resolve_schema(first_line: str, layout: TableLayout) -> Schema:
    return detect_header(first_line, layout) or fallback_schema(layout)


# FAA MASTER.txt. Kit-built aircraft carry their maker inline in
# KIT MFR / KIT MODEL instead of a reference code.
MASTER_LAYOUT = TableLayout(
    name="master",
    required=(IDENTIFIER, YEAR),
    header_names=MappingProxyType(
        {
            IDENTIFIER: ("N-NUMBER",),
            YEAR: ("YEAR MFR",),
            JOIN_KEY: ("MFR MDL CODE",),
            MANUFACTURER: ("MFR", "KIT MFR"),
            MODEL: ("MODEL", "KIT MODEL"),
        }
    ),
    fallback=MappingProxyType(
        {IDENTIFIER: 0, JOIN_KEY: 2, YEAR: 4, MANUFACTURER: 31, MODEL: 32}
    ),
)

# FAA ACFTREF.txt, keyed by the manufacturer/model/series code.
REFERENCE_LAYOUT = TableLayout(
    name="reference",
    required=(IDENTIFIER, MODEL),
    header_names=MappingProxyType(
        {
            IDENTIFIER: ("CODE",),
            MANUFACTURER: ("MFR",),
            MODEL: ("MODEL",),
            AIRCRAFT_TYPE: ("TYPE-ACFT",),
        }
    ),
    fallback=MappingProxyType({IDENTIFIER: 0, MANUFACTURER: 1, MODEL: 2, AIRCRAFT_TYPE: 3}),
)
