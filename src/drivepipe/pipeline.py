"""Assembled drive telemetry pipeline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import aiohttp

from drivepipe.ai.analysis import DriveAnalyzer
from drivepipe.ai.dashboards import DashboardJobProcessor
from drivepipe.ai.exports import ExportJobProcessor
from drivepipe.ai.jobs import AnalysisJobProcessor
from drivepipe.ai.oracle import GeminiOracle, Oracle
from drivepipe.ai.scheduled import ScheduledSweeps
from drivepipe.config import PipelineConfig
from drivepipe.dispatcher import DriveDispatcher, JobDispatcher
from drivepipe.exceptions import DrivePipeError
from drivepipe.feed.consumer import ChangeFeedConsumer
from drivepipe.feed.events import ChangeEvent
from drivepipe.feed.mqtt import ChangeFeedRuntime
from drivepipe.routing.matcher import RouteMatcher
from drivepipe.store.blobs import BlobStore, LocalBlobStore
from drivepipe.store.documents import DocumentStore
from drivepipe.store.memory import InMemoryDocumentStore
from drivepipe.timeseries.converter import ColumnarConverter
from drivepipe.vin import VinDecoder

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class Pipeline:
    """Wires storage, the oracle and every component to a change feed.

    Usage::

        async with Pipeline(config) as pipeline:
            await pipeline.store.update(drive_path, {"timeseriesUploaded": True})
            await pipeline.drain()

    Parameters
    ----------
    config : PipelineConfig
        Pipeline configuration.
    store : DocumentStore or None
        Document store. Defaults to an :class:`InMemoryDocumentStore`, whose
        commits feed the consumer directly.
    blobs : BlobStore or None
        Blob store. Defaults to a :class:`LocalBlobStore` at
        ``config.blob_root``.
    oracle : Oracle or None
        AI oracle. Defaults to :class:`GeminiOracle` over an aiohttp session
        owned by the pipeline.
    vin_decoder : VinDecoder or None
        Decoder for newly created vehicles. Defaults to one over the
        pipeline's HTTP session.
    session : aiohttp.ClientSession or None
        Externally owned HTTP session for the default oracle and VIN decoder.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        store: DocumentStore | None = None,
        blobs: BlobStore | None = None,
        oracle: Oracle | None = None,
        vin_decoder: VinDecoder | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._store: DocumentStore = store if store is not None else InMemoryDocumentStore()
        self._blobs: BlobStore = (
            blobs
            if blobs is not None
            else LocalBlobStore(
                Path(config.blob_root),
                signing_secret=config.signing_secret,
                base_url=config.signed_url_base,
            )
        )
        self._oracle = oracle
        self._vin_decoder = vin_decoder
        self._external_session = session is not None
        self._http_session = session
        self._loop: asyncio.AbstractEventLoop | None = None
        self._consumer: ChangeFeedConsumer | None = None
        self._drives: DriveDispatcher | None = None
        self._jobs: JobDispatcher | None = None
        self._sweeps: ScheduledSweeps | None = None
        self._unwatch: Callable[[], None] | None = None
        self._feed_runtime: ChangeFeedRuntime | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Pipeline:
        self._loop = asyncio.get_running_loop()
        if self._http_session is None and (self._oracle is None or self._vin_decoder is None):
            self._http_session = aiohttp.ClientSession()
        if self._oracle is None:
            assert self._http_session is not None
            self._oracle = GeminiOracle(self._config, self._http_session)
        if self._vin_decoder is None:
            assert self._http_session is not None
            self._vin_decoder = VinDecoder(self._store, self._http_session, self._config)

        oracle = self._oracle
        self._drives = DriveDispatcher(
            self._store,
            [
                DriveAnalyzer(self._store, oracle),
                RouteMatcher(self._store),
                ColumnarConverter(self._store, self._blobs, self._config),
            ],
        )
        self._jobs = JobDispatcher(
            self._store,
            analysis=AnalysisJobProcessor(self._store, oracle, self._config),
            dashboards=DashboardJobProcessor(self._store, oracle),
            exports=ExportJobProcessor(self._store, self._blobs, self._config),
        )
        self._sweeps = ScheduledSweeps(self._store, oracle, self._config)

        self._consumer = ChangeFeedConsumer(
            on_drive_updated=self._drives.on_drive_updated,
            on_job_created=self._jobs.on_job_created,
            on_vehicle_created=self._vin_decoder.on_vehicle_created,
        )
        self._consumer.start()

        watch = getattr(self._store, "watch", None)
        if callable(watch):
            self._unwatch = watch(self._consumer.submit)

        if self._config.change_feed_enabled:
            self._start_change_feed()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._stop_change_feed()
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
        if self._consumer is not None:
            await self._consumer.stop()
            self._consumer = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._loop = None

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def _start_change_feed(self) -> None:
        if self._loop is None or self._consumer is None:
            raise DrivePipeError("Pipeline is not running")
        runtime = ChangeFeedRuntime(loop=self._loop, on_event=self._consumer.submit)
        runtime.start(self._config.change_feed)
        self._feed_runtime = runtime
        _logger.info(
            "Change feed subscribed to %s on %s:%d",
            self._config.change_feed.topic,
            self._config.change_feed.broker_host,
            self._config.change_feed.broker_port,
        )

    def _stop_change_feed(self) -> None:
        runtime = self._feed_runtime
        self._feed_runtime = None
        if runtime is not None:
            runtime.stop()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def _require(self, value: T | None) -> T:
        if value is None:
            raise DrivePipeError("Pipeline is not running; use 'async with Pipeline(...)'")
        return value

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def blobs(self) -> BlobStore:
        return self._blobs

    @property
    def drives(self) -> DriveDispatcher:
        return self._require(self._drives)

    @property
    def jobs(self) -> JobDispatcher:
        return self._require(self._jobs)

    @property
    def sweeps(self) -> ScheduledSweeps:
        return self._require(self._sweeps)

    @property
    def vin_decoder(self) -> VinDecoder:
        return self._require(self._vin_decoder)

    def submit(self, event: ChangeEvent) -> None:
        """Queue an externally sourced change event."""
        self._require(self._consumer).submit(event)

    async def drain(self) -> None:
        """Wait until every queued change, and the changes it caused, is handled."""
        await self._require(self._consumer).drain()
