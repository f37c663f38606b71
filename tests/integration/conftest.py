"""Integration test fixtures.

Provides a fully wired AppState over a temporary registry directory, a
scripted flight-data client and an in-memory object store. Sample registry
files come from tests/conftest.py (master_csv, reference_csv).
"""

from __future__ import annotations

import io
import json
import os
import shutil
import zipfile
from pathlib import Path
from typing import Any

import httpx
import pytest

from planeage.config import Settings
from planeage.errors import ErrorCode, PlaneAgeError
from planeage.models.flights import FlightLookup, FlightLookupStatus
from planeage.state import AppState, build_state

FIXTURES = Path(__file__).parent.parent / "fixtures"
ARCHIVE_URL = "https://registry.example.gov/ReleasableAircraft.zip"


class ScriptedFlights:
    """Flight-data client answering from a dict keyed by (flight_number, date)."""

    def __init__(self) -> None:
        self.answers: dict[tuple[str, str], FlightLookup] = {}
        self.calls: list[tuple[str, str]] = []

    def assign(self, flight_number: str, date: str, registration: str | None) -> None:
        status = FlightLookupStatus.FOUND if registration else FlightLookupStatus.NO_REGISTRATION
        self.answers[(flight_number, date)] = FlightLookup(
            status=status, registration=registration
        )

    async def lookup(self, flight_number: str, date: str) -> FlightLookup:
        self.calls.append((flight_number, date))
        return self.answers.get(
            (flight_number, date), FlightLookup(status=FlightLookupStatus.FAILED)
        )


class MemoryStore:
    """ObjectStore keeping objects in a dict. Records the order of writes."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.writes: list[str] = []
        self.fail_reads = False

    async def upload_file(self, path: Path, key: str) -> None:
        self.objects[key] = path.read_bytes()
        self.writes.append(key)

    async def download_file(self, key: str, path: Path) -> None:
        if self.fail_reads or key not in self.objects:
            raise PlaneAgeError(ErrorCode.MIRROR_FAILED, f"download failed for {key}", True)
        path.write_bytes(self.objects[key])

    async def put_json(self, key: str, payload: dict[str, Any]) -> None:
        self.objects[key] = json.dumps(payload).encode("utf-8")
        self.writes.append(key)

    async def get_json(self, key: str) -> dict[str, Any] | None:
        if self.fail_reads:
            raise PlaneAgeError(ErrorCode.MIRROR_FAILED, f"get failed for {key}", True)
        raw = self.objects.get(key)
        return None if raw is None else json.loads(raw)


def _build_archive(entries: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buf.getvalue()


@pytest.fixture()
def registry_dir(tmp_path: Path) -> Path:
    """Registry directory pre-populated with the sample files."""
    path = tmp_path / "faa"
    path.mkdir()
    shutil.copyfile(FIXTURES / "master.sample.csv", path / "master.csv")
    shutil.copyfile(FIXTURES / "acftref.sample.csv", path / "acftref.csv")
    return path


@pytest.fixture()
def settings(tmp_path: Path, registry_dir: Path) -> Settings:
    return Settings(
        data_dir=str(tmp_path),
        registry={"data_dir": str(registry_dir), "max_concurrent_lookups": 2},
        refresh={"source_url": ARCHIVE_URL, "download_timeout_seconds": 5},
    )


@pytest.fixture()
def flights() -> ScriptedFlights:
    return ScriptedFlights()


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
async def app_state(settings: Settings, flights: ScriptedFlights) -> AppState:
    """Full AppState over the sample registry with scripted flight answers."""
    async with httpx.AsyncClient() as client:
        yield build_state(settings, client, flights=flights)


@pytest.fixture()
def make_archive():
    """Builder: ``make_archive({"MASTER.txt": b"..."})`` -> zip bytes."""
    return _build_archive


@pytest.fixture()
def subprocess_env(tmp_path: Path, registry_dir: Path) -> dict[str, str]:
    """Environment for ``python -m planeage`` pointed at the sample registry.

    Inherited PLANEAGE__ variables are dropped so the host's config cannot leak in.
    """
    env = {k: v for k, v in os.environ.items() if not k.startswith("PLANEAGE__")}
    env["PLANEAGE__DATA_DIR"] = str(tmp_path)
    env["PLANEAGE__REGISTRY__DATA_DIR"] = str(registry_dir)
    env["PLANEAGE__LOGGING__FORMAT"] = "text"
    return env
