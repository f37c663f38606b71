"""Shared fixtures: sample registry files and builders for ad-hoc CSVs."""

from __future__ import annotations

import shutil
from collections.abc import Callable
from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture()
def master_csv(tmp_path: Path) -> Path:
    """Copy of the sample MASTER file (header row, CRLF line endings)."""
    path = tmp_path / "master.csv"
    shutil.copyfile(FIXTURES / "master.sample.csv", path)
    return path


@pytest.fixture()
def reference_csv(tmp_path: Path) -> Path:
    """Copy of the sample ACFTREF file."""
    path = tmp_path / "acftref.csv"
    shutil.copyfile(FIXTURES / "acftref.sample.csv", path)
    return path


@pytest.fixture()
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write ``lines`` to ``tmp_path / name`` and return the path."""

    def _write(name: str, lines: list[str], prefix: bytes = b"") -> Path:
        path = tmp_path / name
        path.write_bytes(prefix + ("\n".join(lines) + "\n").encode("utf-8"))
        return path

    return _write


def _fixed_master_row(
    n_number: str,
    year: str,
    code: str = "",
    kit_mfr: str = "",
    kit_model: str = "",
) -> str:
    cols = [""] * 34
    cols[0] = n_number
    cols[1] = "SER-1"
    cols[2] = code
    cols[4] = year
    cols[6] = '"OWNER, SOME"'
    cols[31] = kit_mfr
    cols[32] = kit_model
    cols[33] = "A0FFEE"
    return ",".join(cols)


@pytest.fixture()
def master_row() -> Callable[..., str]:
    """Builder for one headerless MASTER row in the fixed 34-column FAA layout."""
    return _fixed_master_row
