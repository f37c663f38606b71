"""Streaming exact-match lookup over large registry files.

The registry files are tens to hundreds of megabytes, so a lookup never reads
more than one line at a time: rows are compared on their identifier column
alone, the full set of wanted columns is tokenized only for the matching row,
and reading stops at the first match. Memory use is bounded by line length.

A missing file is a normal "not found" (the registry may not be provisioned
yet). Any other ``OSError`` surfaces as ``REGISTRY_READ_FAILED``.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable
from pathlib import Path

import structlog

from planeage.errors import ErrorCode, PlaneAgeError
from planeage.schema import (
    BOM,
    IDENTIFIER,
    QueryShape,
    Schema,
    TableLayout,
    resolve_schema,
)
from planeage.tokenizer import first_field, split_columns

log = structlog.get_logger()

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")

ENCODING = "utf-8"

Record = dict[str, str]


def normalize_identifier(value: str | None) -> str:
    """Uppercase and drop BOM, quotes, whitespace and punctuation."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", value.replace(BOM, "")).upper()


def registration_to_n_number(registration: str | None) -> str:
    """``"n-123ab "`` -> ``"123AB"``. The FAA master file stores N-numbers without the N."""
    cleaned = normalize_identifier(registration)
    return cleaned[1:] if cleaned.startswith("N") else cleaned


def _decode(raw: bytes) -> str:
    return raw.decode(ENCODING, errors="replace").rstrip("\r\n")


def _row_identifier(line: str, schema: Schema) -> str:
    index = schema.identifier_index
    if index == 0:
        return first_field(line)
    return split_columns(line, (index,)).get(index, "")


def _build_record(line: str, schema: Schema, identifier: str) -> Record:
    values = split_columns(line, schema.indices_for(QueryShape.DETAILS))
    record: Record = {IDENTIFIER: identifier}
    for name, index in schema.columns.items():
        if name != IDENTIFIER:
            record[name] = values.get(index, "").strip()
    return record


def _scan(lines: Iterable[bytes], needle: str, layout: TableLayout) -> tuple[Record | None, int]:
    rows = 0
    schema: Schema | None = None
    for raw in lines:
        line = _decode(raw)
        if schema is None:
            schema = resolve_schema(line, layout)
            if schema.from_header:
                continue
        if not line:
            continue
        rows += 1
        candidate = normalize_identifier(_row_identifier(line, schema))
        if candidate == needle:
            return _build_record(line, schema, candidate), rows
    return None, rows


def scan_stream(lines: Iterable[bytes], key: str, layout: TableLayout) -> Record | None:
    """Return the first row whose identifier matches ``key``, or ``None``.

    ``lines`` is any iterable of raw byte lines, typically a file opened in
    binary mode. Iteration stops as soon as a row matches.
    """
    needle = normalize_identifier(key)
    if not needle:
        return None
    record, _ = _scan(lines, needle, layout)
    return record


def lookup_file(path: Path, key: str, layout: TableLayout) -> Record | None:
    """Blocking lookup of ``key`` in the file at ``path``."""
    needle = normalize_identifier(key)
    if not needle:
        return None
    try:
        with path.open("rb") as fh:
            record, rows = _scan(fh, needle, layout)
    except FileNotFoundError:
        log.info("registry_file_missing", table=layout.name, path=str(path))
        return None
    except OSError as exc:
        log.warning("registry_read_error", table=layout.name, path=str(path), exc_info=True)
        raise PlaneAgeError(
            code=ErrorCode.REGISTRY_READ_FAILED,
            message="Aircraft registry could not be read.",
            recoverable=True,
        ) from exc
    log.debug(
        "registry_scan_complete",
        table=layout.name,
        key=needle,
        found=record is not None,
        rows_scanned=rows,
    )
    return record


async def lookup(path: Path, key: str, layout: TableLayout) -> Record | None:
    """Run ``lookup_file`` off the event loop."""
    return await asyncio.to_thread(lookup_file, path, key, layout)
