"""Delimited-record tokenizer.

Handles double-quoted fields with embedded delimiters and ``""`` escapes. An
unterminated quote swallows the rest of the line into the current field;
malformed quoting never raises.

``split_columns`` is the selective variant used by the scanner: unwanted
fields are skipped without building their values and scanning stops once the
highest wanted column has been read, which keeps per-line work small on wide
registry rows.
"""

from __future__ import annotations

from collections.abc import Collection

DELIMITER = ","
_QUOTE = '"'


def _read_field(line: str, start: int, delimiter: str, keep: bool) -> tuple[str, int]:
    """Read one field starting at ``start``.

    Returns the field value (empty when ``keep`` is false) and the index of
    the delimiter that ended it, or ``len(line)`` when the line ended.
    """
    n = len(line)
    i = start
    parts: list[str] = []
    in_quotes = False

    while i < n:
        if in_quotes:
            j = line.find(_QUOTE, i)
            if j == -1:
                if keep:
                    parts.append(line[i:])
                return "".join(parts), n
            if keep:
                parts.append(line[i:j])
            if line.startswith(_QUOTE, j + 1):
                if keep:
                    parts.append(_QUOTE)
                i = j + 2
            else:
                in_quotes = False
                i = j + 1
            continue

        d = line.find(delimiter, i)
        end = n if d == -1 else d
        q = line.find(_QUOTE, i, end)
        if q != -1:
            if keep:
                parts.append(line[i:q])
            in_quotes = True
            i = q + 1
            continue
        if keep:
            parts.append(line[i:end])
        return "".join(parts), end

    return "".join(parts), n


def split_line(line: str, delimiter: str = DELIMITER) -> list[str]:
    """Tokenize every field of ``line``."""
    fields: list[str] = []
    pos = 0
    n = len(line)
    while True:
        value, end = _read_field(line, pos, delimiter, keep=True)
        fields.append(value)
        if end >= n:
            return fields
        pos = end + 1


def split_columns(
    line: str, wanted: Collection[int], delimiter: str = DELIMITER
) -> dict[int, str]:
    """Tokenize only the columns in ``wanted``.

    Columns past the end of the line are absent from the result.
    """
    if not wanted:
        return {}
    last = max(wanted)
    out: dict[int, str] = {}
    pos = 0
    col = 0
    n = len(line)
    while True:
        keep = col in wanted
        value, end = _read_field(line, pos, delimiter, keep=keep)
        if keep:
            out[col] = value
        if col >= last or end >= n:
            return out
        pos = end + 1
        col += 1


def first_field(line: str, delimiter: str = DELIMITER) -> str:
    """Return column 0 by reading only up to the first unquoted delimiter."""
    if not line.startswith(_QUOTE):
        d = line.find(delimiter)
        return line if d == -1 else line[:d]
    value, _ = _read_field(line, 0, delimiter, keep=True)
    return value
