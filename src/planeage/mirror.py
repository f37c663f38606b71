"""Object-store mirror of the registry files.

The refresh job uploads both files under a timestamped prefix and then
rewrites a small JSON manifest naming them. Readers that run without a local
refresher (``registry.backend = "manifest"``) follow the manifest instead:
``ManifestDataSource`` re-reads it at most every ``cache_seconds`` and pulls a
new generation into its local cache directory whenever the object names
change, swapping it in with the same atomic swap the refresher uses.

The manifest is written last, so a reader never sees a manifest naming
objects that are not uploaded yet. There is a single writer; nothing here
guards against two refreshers publishing at once.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

import boto3
import structlog
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from planeage.errors import ErrorCode, PlaneAgeError
from planeage.models.manifest import Manifest
from planeage.refresh import swap_into_place
from planeage.registry import RegistryPaths

log = structlog.get_logger()


class ObjectStore(Protocol):
    async def upload_file(self, path: Path, key: str) -> None: ...

    async def download_file(self, key: str, path: Path) -> None: ...

    async def put_json(self, key: str, payload: dict[str, Any]) -> None: ...

    async def get_json(self, key: str) -> dict[str, Any] | None: ...


def _mirror_error(action: str, key: str, exc: Exception) -> PlaneAgeError:
    log.warning("object_store_error", action=action, key=key, exc_info=exc)
    return PlaneAgeError(
        code=ErrorCode.MIRROR_FAILED,
        message=f"Object store {action} failed for {key}",
        recoverable=True,
    )


class S3ObjectStore:
    """S3 (or S3-compatible) bucket. Blocking boto3 calls run in worker threads."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self._client = client or boto3.session.Session(region_name=region).client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            config=BotoConfig(
                connect_timeout=10,
                read_timeout=60,
                retries={"max_attempts": 5, "mode": "standard"},
            ),
        )

    async def upload_file(self, path: Path, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.upload_file, str(path), self.bucket, key)
        except (Boto3Error, BotoCoreError, ClientError) as exc:
            raise _mirror_error("upload", key, exc) from exc

    async def download_file(self, key: str, path: Path) -> None:
        try:
            await asyncio.to_thread(self._client.download_file, self.bucket, key, str(path))
        except (Boto3Error, BotoCoreError, ClientError) as exc:
            raise _mirror_error("download", key, exc) from exc

    async def put_json(self, key: str, payload: dict[str, Any]) -> None:
        body = json.dumps(payload, indent=2).encode("utf-8")
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType="application/json",
                CacheControl="no-cache",
            )
        except (BotoCoreError, ClientError) as exc:
            raise _mirror_error("put", key, exc) from exc

    async def get_json(self, key: str) -> dict[str, Any] | None:
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self.bucket, Key=key
            )
            body = await asyncio.to_thread(response["Body"].read)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise _mirror_error("get", key, exc) from exc
        except BotoCoreError as exc:
            raise _mirror_error("get", key, exc) from exc
        return json.loads(body.decode("utf-8"))


class DatasetMirror:
    def __init__(
        self,
        store: ObjectStore,
        *,
        prefix: str,
        manifest_object: str,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._prefix = prefix.strip("/")
        self._manifest_object = manifest_object
        self._now = now

    def _object_name(self, stamp: str, path: Path) -> str:
        return f"{self._prefix}/{stamp}/{path.name}" if self._prefix else f"{stamp}/{path.name}"

    async def publish(self, paths: RegistryPaths) -> Manifest:
        updated_at = self._now()
        stamp = updated_at.strftime("%Y%m%dT%H%M%SZ")
        manifest = Manifest(
            updated_at=updated_at,
            master_object=self._object_name(stamp, paths.master),
            reference_object=self._object_name(stamp, paths.reference),
        )
        await self._store.upload_file(paths.master, manifest.master_object)
        await self._store.upload_file(paths.reference, manifest.reference_object)
        await self._store.put_json(self._manifest_object, manifest.model_dump(mode="json"))
        log.info(
            "mirror_published",
            manifest=self._manifest_object,
            master_object=manifest.master_object,
            reference_object=manifest.reference_object,
        )
        return manifest


class ManifestDataSource:
    """Registry files resolved through the remote manifest, cached on local disk."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        manifest_object: str,
        cache_dir: Path,
        master_name: str = "master.csv",
        reference_name: str = "acftref.csv",
        cache_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._manifest_object = manifest_object
        self._paths = RegistryPaths(
            master=cache_dir / master_name, reference=cache_dir / reference_name
        )
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._checked_at: float | None = None
        self._manifest: Manifest | None = None
        self._lock = asyncio.Lock()

    @property
    def manifest(self) -> Manifest | None:
        return self._manifest

    def _fresh(self) -> bool:
        return (
            self._checked_at is not None
            and self._clock() - self._checked_at < self._cache_seconds
        )

    async def current(self) -> RegistryPaths:
        if self._fresh():
            return self._paths
        async with self._lock:
            if not self._fresh():
                await self._sync()
        return self._paths

    async def _sync(self) -> None:
        try:
            raw = await self._store.get_json(self._manifest_object)
            manifest = Manifest.model_validate(raw) if raw is not None else None
        except (PlaneAgeError, ValidationError, ValueError) as exc:
            if self._manifest is None:
                raise PlaneAgeError(
                    code=ErrorCode.MANIFEST_UNAVAILABLE,
                    message="Registry manifest could not be read",
                    recoverable=True,
                ) from exc
            log.warning("manifest_read_failed_serving_cached", exc_info=True)
            self._checked_at = self._clock()
            return

        self._checked_at = self._clock()
        if manifest is None:
            log.info("manifest_missing", manifest=self._manifest_object)
            return
        if self._manifest is not None and (
            manifest.master_object == self._manifest.master_object
            and manifest.reference_object == self._manifest.reference_object
        ):
            return

        try:
            await self._pull(manifest)
        except (PlaneAgeError, OSError) as exc:
            if self._manifest is None:
                raise PlaneAgeError(
                    code=ErrorCode.MANIFEST_UNAVAILABLE,
                    message="Registry generation named by the manifest could not be fetched",
                    recoverable=True,
                ) from exc
            log.warning("manifest_pull_failed_serving_cached", exc_info=True)
            return
        self._manifest = manifest

    async def _pull(self, manifest: Manifest) -> None:
        master, reference = self._paths.master, self._paths.reference
        master.parent.mkdir(parents=True, exist_ok=True)
        new_master = master.with_name(master.name + ".new")
        new_reference = reference.with_name(reference.name + ".new")
        try:
            await self._store.download_file(manifest.master_object, new_master)
            await self._store.download_file(manifest.reference_object, new_reference)
            await asyncio.to_thread(
                swap_into_place, [(new_master, master), (new_reference, reference)]
            )
        finally:
            new_master.unlink(missing_ok=True)
            new_reference.unlink(missing_ok=True)
        log.info(
            "manifest_generation_loaded",
            updated_at=manifest.updated_at.isoformat(),
            master_object=manifest.master_object,
        )
