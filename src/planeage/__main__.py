"""Command-line entrypoint.

    python -m planeage lookup N123AB
    python -m planeage check DL47 2025-01-02
    python -m planeage refresh [--force]
    python -m planeage watch

Results are printed to stdout as JSON; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import structlog
from pydantic import ValidationError

from planeage.config import Settings
from planeage.download import build_http_client
from planeage.errors import ErrorCode, PlaneAgeError
from planeage.logging_setup import configure_logging
from planeage.models.flights import CheckFlightInput
from planeage.state import AppState, build_state

log = structlog.get_logger()


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


async def _lookup(state: AppState, args: argparse.Namespace) -> int:
    aircraft = await state.service.lookup_aircraft(args.registration)
    if aircraft is None:
        _print({"ok": False, "message": "Not found."})
        return 1
    _print({"ok": True, **aircraft.model_dump()})
    return 0


async def _check(state: AppState, args: argparse.Namespace) -> int:
    query = CheckFlightInput(flight_number=args.flight_number, date=args.date)
    result = await state.service.check_flight(query)
    _print(result.model_dump())
    return 0 if result.ok else 1


async def _refresh(state: AppState, args: argparse.Namespace) -> int:
    if state.scheduler is None:
        raise PlaneAgeError(
            code=ErrorCode.NOT_CONFIGURED,
            message="Refresh is only available with the local registry backend",
            recoverable=False,
        )
    result = await state.scheduler.maybe_refresh(force=args.force)
    if result is None:
        _print({"ok": True, "refreshed": False})
        return 0
    _print(
        {
            "ok": True,
            "refreshed": True,
            "master_bytes": result.master_bytes,
            "reference_bytes": result.reference_bytes,
            "duration_seconds": round(result.duration_seconds, 1),
            "manifest": result.manifest.model_dump(mode="json") if result.manifest else None,
        }
    )
    return 0


async def _watch(state: AppState, args: argparse.Namespace) -> int:
    if state.scheduler is None:
        raise PlaneAgeError(
            code=ErrorCode.NOT_CONFIGURED,
            message="Refresh is only available with the local registry backend",
            recoverable=False,
        )
    await state.scheduler.run_forever()
    return 0


_COMMANDS = {"lookup": _lookup, "check": _check, "refresh": _refresh, "watch": _watch}


async def _run(settings: Settings, args: argparse.Namespace) -> int:
    async with build_http_client() as client:
        state = build_state(settings, client)
        return await _COMMANDS[args.command](state, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="planeage", description="Aircraft age by flight number")
    sub = parser.add_subparsers(dest="command", required=True)

    lookup = sub.add_parser("lookup", help="Look up a tail number in the local registry")
    lookup.add_argument("registration", help="Tail number, e.g. N123AB or 123AB")

    check = sub.add_parser("check", help="Resolve a flight to its aircraft's age")
    check.add_argument("flight_number", help="Flight number, e.g. DL47")
    check.add_argument("date", help="Flight date, YYYY-MM-DD")

    refresh = sub.add_parser("refresh", help="Download and swap in a new registry if stale")
    refresh.add_argument("--force", action="store_true", help="Refresh even if the data is fresh")

    sub.add_parser("watch", help="Keep the registry fresh on a schedule")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging(settings.logging)
    try:
        return asyncio.run(_run(settings, args))
    except ValidationError as exc:
        _print(
            PlaneAgeError(
                code=ErrorCode.INVALID_INPUT,
                message="; ".join(err["msg"] for err in exc.errors()),
                recoverable=False,
            ).to_dict()
        )
        return 2
    except PlaneAgeError as exc:
        log.error("command_failed", command=args.command, code=exc.code.value)
        _print(exc.to_dict())
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
