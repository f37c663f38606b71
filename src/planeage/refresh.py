"""Registry refresh: download, extract, atomic swap, optional mirror.

Stages run ``idle -> downloading -> extracting -> swapping -> done``. A swap
that fails part-way ends in ``rolled_back`` with the previous generation put
back; any earlier failure ends in ``failed`` with the live files untouched.
Temporary files (archive, extracted entries) are removed on every path.

The swap never exposes a missing or partially written target. Each live file
is first hard-linked to a ``.old`` sidecar, then the fully extracted
replacement is renamed over it. Readers that already hold the old file open
keep reading the old inode to the end; readers that open the path afterwards
get the complete new file.

Only one refresh may run per process. ``RefreshScheduler`` enforces that with
an in-process flag; there is no cross-process lock.
"""

from __future__ import annotations

import asyncio
import math
import os
import shutil
import time
import zipfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import structlog

from planeage.errors import ErrorCode, PlaneAgeError

if TYPE_CHECKING:
    from planeage.config import RefreshSettings
    from planeage.download import Downloader
    from planeage.mirror import DatasetMirror
    from planeage.models.manifest import Manifest
    from planeage.registry import RegistryPaths

log = structlog.get_logger()

_COPY_BUFFER = 1024 * 1024


class RefreshStage(StrEnum):
    IDLE = "idle"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    SWAPPING = "swapping"
    DONE = "done"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass(frozen=True)
class RefreshResult:
    archive_bytes: int
    master_bytes: int
    reference_bytes: int
    duration_seconds: float
    manifest: Manifest | None = None


# ----------------------------------------------------------------------
# Extraction
# ----------------------------------------------------------------------


def _find_member(names: Sequence[str], wanted: str) -> str | None:
    wanted = wanted.lower()
    for name in names:
        if PurePosixPath(name).name.lower() == wanted:
            return name
    return None


def extract_entries(archive: Path, entries: Mapping[str, Path]) -> None:
    """Extract each named archive entry (matched by basename, any case) to its path.

    Fails before writing anything if any entry is missing.
    """
    try:
        with zipfile.ZipFile(archive) as zf:
            names = zf.namelist()
            members: dict[str, Path] = {}
            for wanted, dest in entries.items():
                member = _find_member(names, wanted)
                if member is None:
                    raise PlaneAgeError(
                        code=ErrorCode.ARCHIVE_ENTRY_MISSING,
                        message=f"{wanted} not found in registry archive",
                        recoverable=False,
                    )
                members[member] = dest

            for member, dest in members.items():
                with zf.open(member) as src, dest.open("wb") as dst:
                    shutil.copyfileobj(src, dst, _COPY_BUFFER)
    except zipfile.BadZipFile as exc:
        raise PlaneAgeError(
            code=ErrorCode.DOWNLOAD_FAILED,
            message="Registry archive is not a valid zip file",
            recoverable=True,
        ) from exc


# ----------------------------------------------------------------------
# Swap
# ----------------------------------------------------------------------


def sidecar_path(target: Path) -> Path:
    return target.with_name(target.name + ".old")


def _restore(placed: Sequence[tuple[Path, bool]]) -> None:
    for target, had_previous in reversed(placed):
        old = sidecar_path(target)
        try:
            if had_previous:
                if old.exists():
                    os.replace(old, target)
            else:
                target.unlink(missing_ok=True)
        except OSError:
            log.error("refresh_restore_failed", target=str(target), exc_info=True)


def swap_into_place(pairs: Sequence[tuple[Path, Path]]) -> None:
    """Move each ``(replacement, target)`` pair into place as one generation.

    If any step fails, every target already touched is returned to its state
    before the call and the original error is re-raised. On success the
    ``.old`` sidecars are deleted.
    """
    placed: list[tuple[Path, bool]] = []
    try:
        for replacement, target in pairs:
            old = sidecar_path(target)
            had_previous = target.exists()
            if had_previous:
                old.unlink(missing_ok=True)
                try:
                    os.link(target, old)
                except OSError:
                    # No hard links on this filesystem; the target is briefly absent.
                    os.replace(target, old)
            placed.append((target, had_previous))
            os.replace(replacement, target)
    except OSError:
        _restore(placed)
        raise

    for target, had_previous in placed:
        if had_previous:
            sidecar_path(target).unlink(missing_ok=True)


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------


class RefreshPipeline:
    def __init__(
        self,
        settings: RefreshSettings,
        paths: RegistryPaths,
        downloader: Downloader,
        mirror: DatasetMirror | None = None,
    ) -> None:
        self._settings = settings
        self._paths = paths
        self._downloader = downloader
        self._mirror = mirror
        self.stage = RefreshStage.IDLE

    @property
    def archive_path(self) -> Path:
        return self._paths.master.parent / "registry-download.zip.part"

    @staticmethod
    def extracted_path(target: Path) -> Path:
        return target.with_name(target.name + ".new")

    def _temp_files(self) -> list[Path]:
        return [
            self.archive_path,
            self.extracted_path(self._paths.master),
            self.extracted_path(self._paths.reference),
        ]

    def _cleanup(self) -> None:
        for path in self._temp_files():
            try:
                path.unlink(missing_ok=True)
            except OSError:
                log.warning("refresh_cleanup_failed", path=str(path), exc_info=True)

    async def run(self) -> RefreshResult:
        started = time.monotonic()
        master, reference = self._paths.master, self._paths.reference
        new_master, new_reference = self.extracted_path(master), self.extracted_path(reference)

        try:
            master.parent.mkdir(parents=True, exist_ok=True)
            reference.parent.mkdir(parents=True, exist_ok=True)

            self.stage = RefreshStage.DOWNLOADING
            log.info("refresh_download_started", url=self._settings.source_url)
            archive_bytes = await self._downloader.download(
                self._settings.source_url, self.archive_path
            )

            self.stage = RefreshStage.EXTRACTING
            await asyncio.to_thread(
                extract_entries,
                self.archive_path,
                {
                    self._settings.master_entry: new_master,
                    self._settings.reference_entry: new_reference,
                },
            )
            master_bytes = new_master.stat().st_size
            reference_bytes = new_reference.stat().st_size

            self.stage = RefreshStage.SWAPPING
            try:
                await asyncio.to_thread(
                    swap_into_place, [(new_master, master), (new_reference, reference)]
                )
            except OSError as exc:
                self.stage = RefreshStage.ROLLED_BACK
                raise PlaneAgeError(
                    code=ErrorCode.SWAP_FAILED,
                    message="Registry swap failed; previous dataset restored",
                    recoverable=True,
                ) from exc
            self.stage = RefreshStage.DONE
        except Exception as exc:
            if self.stage is not RefreshStage.ROLLED_BACK:
                self.stage = RefreshStage.FAILED
            log.error("refresh_failed", stage=self.stage.value, error=str(exc), exc_info=True)
            if isinstance(exc, OSError):
                raise PlaneAgeError(
                    code=ErrorCode.DOWNLOAD_FAILED,
                    message="Registry refresh failed while writing temporary files",
                    recoverable=True,
                ) from exc
            raise
        finally:
            self._cleanup()

        log.info(
            "refresh_swapped",
            master_bytes=master_bytes,
            reference_bytes=reference_bytes,
        )

        manifest: Manifest | None = None
        if self._mirror is not None:
            manifest = await self._mirror.publish(self._paths)

        return RefreshResult(
            archive_bytes=archive_bytes,
            master_bytes=master_bytes,
            reference_bytes=reference_bytes,
            duration_seconds=time.monotonic() - started,
            manifest=manifest,
        )


# ----------------------------------------------------------------------
# Scheduling
# ----------------------------------------------------------------------


def file_age_seconds(path: Path, now: float | None = None) -> float:
    """Seconds since ``path`` was last modified; infinite when it does not exist."""
    try:
        mtime = path.stat().st_mtime
    except FileNotFoundError:
        return math.inf
    return (time.time() if now is None else now) - mtime


class RefreshScheduler:
    def __init__(
        self,
        pipeline: RefreshPipeline,
        master_path: Path,
        *,
        max_age_seconds: float,
        interval_seconds: float,
    ) -> None:
        self._pipeline = pipeline
        self._master_path = master_path
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._refreshing = False

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def is_stale(self) -> bool:
        return file_age_seconds(self._master_path) > self.max_age_seconds

    async def maybe_refresh(self, *, force: bool = False) -> RefreshResult | None:
        """Refresh when stale (or forced). Returns ``None`` when nothing ran."""
        if self._refreshing:
            log.info("refresh_skipped", reason="already_running")
            return None
        if not force and not self.is_stale():
            log.debug("refresh_skipped", reason="fresh")
            return None

        self._refreshing = True
        try:
            log.info("refresh_started", forced=force)
            result = await self._pipeline.run()
            log.info("refresh_complete", duration_seconds=round(result.duration_seconds, 1))
            return result
        finally:
            self._refreshing = False

    async def run_forever(self) -> None:
        """Check now, then every ``interval_seconds``. Failures are logged, never fatal."""
        log.info(
            "refresh_scheduler_started",
            max_age_seconds=self.max_age_seconds,
            interval_seconds=self.interval_seconds,
        )
        while True:
            try:
                await self.maybe_refresh()
            except PlaneAgeError as exc:
                log.error("refresh_scheduled_run_failed", code=exc.code.value, message=exc.message)
            except Exception:
                log.error("refresh_scheduled_run_failed", exc_info=True)
            await asyncio.sleep(self.interval_seconds)
