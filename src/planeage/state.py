"""Process-wide service objects, built once at startup and passed by reference."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from planeage.cache import ResultCache
from planeage.download import Downloader
from planeage.errors import ErrorCode, PlaneAgeError
from planeage.flights import AeroDataBoxClient
from planeage.gate import LookupGate
from planeage.mirror import DatasetMirror, ManifestDataSource, S3ObjectStore
from planeage.refresh import RefreshPipeline, RefreshScheduler
from planeage.registry import AircraftRegistry, DataSource, LocalDataSource, RegistryPaths
from planeage.service import FlightAgeService

if TYPE_CHECKING:
    import httpx

    from planeage.config import Settings
    from planeage.flights import FlightDataClient
    from planeage.mirror import ObjectStore
    from planeage.models.flights import FlightLookup
    from planeage.models.registry import ResolvedAircraft


@dataclass
class AppState:
    settings: Settings
    http_client: httpx.AsyncClient
    gate: LookupGate
    flight_cache: ResultCache[str, FlightLookup]
    aircraft_cache: ResultCache[str, ResolvedAircraft | None]
    registry: AircraftRegistry
    service: FlightAgeService
    scheduler: RefreshScheduler | None = None


def build_state(
    settings: Settings,
    http_client: httpx.AsyncClient,
    *,
    flights: FlightDataClient | None = None,
    store: ObjectStore | None = None,
) -> AppState:
    """Wire every component from ``settings``.

    ``flights`` and ``store`` override the remote collaborators (tests, or a
    deployment with a different provider). With the manifest backend there is
    no local refresher, so ``scheduler`` is ``None``.
    """
    registry_settings = settings.registry
    mirror_settings = settings.mirror

    if store is None and mirror_settings.bucket:
        store = S3ObjectStore(
            mirror_settings.bucket,
            region=mirror_settings.region,
            endpoint_url=mirror_settings.endpoint_url,
        )

    local_paths = RegistryPaths(
        master=registry_settings.master_path, reference=registry_settings.reference_path
    )
    source: DataSource
    if registry_settings.backend == "manifest":
        if store is None:
            raise PlaneAgeError(
                code=ErrorCode.NOT_CONFIGURED,
                message="registry.backend 'manifest' requires mirror.bucket to be set",
                recoverable=False,
            )
        source = ManifestDataSource(
            store,
            manifest_object=mirror_settings.manifest_object,
            cache_dir=Path(settings.data_dir).expanduser() / "manifest-cache",
            master_name=registry_settings.master_file,
            reference_name=registry_settings.reference_file,
            cache_seconds=registry_settings.manifest_cache_seconds,
        )
    else:
        source = LocalDataSource(local_paths.master, local_paths.reference)

    gate = LookupGate(registry_settings.max_concurrent_lookups)
    registry = AircraftRegistry(source, gate)
    flight_cache: ResultCache[str, FlightLookup] = ResultCache(
        "flights",
        ttl_seconds=settings.cache.flight_ttl_seconds,
        max_entries=settings.cache.flight_max_entries,
    )
    aircraft_cache: ResultCache[str, ResolvedAircraft | None] = ResultCache(
        "aircraft",
        ttl_seconds=settings.cache.aircraft_ttl_seconds,
        max_entries=settings.cache.aircraft_max_entries,
    )
    service = FlightAgeService(
        flights or AeroDataBoxClient(http_client, settings.flights),
        registry,
        flight_cache,
        aircraft_cache,
    )

    scheduler: RefreshScheduler | None = None
    if registry_settings.backend == "local":
        mirror = None
        if store is not None:
            mirror = DatasetMirror(
                store,
                prefix=mirror_settings.prefix,
                manifest_object=mirror_settings.manifest_object,
            )
        pipeline = RefreshPipeline(
            settings.refresh,
            local_paths,
            Downloader(
                http_client,
                max_redirects=settings.refresh.max_redirects,
                timeout_seconds=settings.refresh.download_timeout_seconds,
            ),
            mirror=mirror,
        )
        scheduler = RefreshScheduler(
            pipeline,
            local_paths.master,
            max_age_seconds=settings.refresh.max_age_days * 86400,
            interval_seconds=settings.refresh.check_interval_seconds,
        )

    return AppState(
        settings=settings,
        http_client=http_client,
        gate=gate,
        flight_cache=flight_cache,
        aircraft_cache=aircraft_cache,
        registry=registry,
        service=service,
        scheduler=scheduler,
    )
