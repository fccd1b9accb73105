"""Change-feed consumer.

Events are queued by any source (store commit listener, MQTT runtime) and
routed by document path and change kind:

* drive updated: drive handler
* AI job created: job handler
* vehicle created: vehicle handler

Everything else is ignored. Handler failures are logged and never stop
the consumer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from drivepipe import paths
from drivepipe.feed.events import ChangeEvent, ChangeKind

_logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[Any]]


class ChangeFeedConsumer:
    """Pulls :class:`ChangeEvent` objects off a queue and routes them.

    Parameters
    ----------
    on_drive_updated : callable
        Awaited for updates of drive documents.
    on_job_created : callable
        Awaited for creations of AI job documents.
    on_vehicle_created : callable or None
        Awaited for creations of vehicle documents.
    concurrency : int
        Maximum number of events handled at once.
    """

    def __init__(
        self,
        *,
        on_drive_updated: ChangeHandler,
        on_job_created: ChangeHandler,
        on_vehicle_created: ChangeHandler | None = None,
        concurrency: int = 8,
    ) -> None:
        self._on_drive_updated = on_drive_updated
        self._on_job_created = on_job_created
        self._on_vehicle_created = on_vehicle_created
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._slots = asyncio.Semaphore(concurrency)
        self._runner: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def is_running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def submit(self, event: ChangeEvent) -> None:
        """Queue *event*; must be called from the consumer's event loop."""
        self._queue.put_nowait(event)

    def handler_for(self, event: ChangeEvent) -> ChangeHandler | None:
        if event.kind is ChangeKind.UPDATED and paths.parse_drive_path(event.path) is not None:
            return self._on_drive_updated
        if event.kind is ChangeKind.CREATED and paths.parse_job_path(event.path) is not None:
            return self._on_job_created
        if event.kind is ChangeKind.CREATED and paths.parse_vehicle_path(event.path) is not None:
            return self._on_vehicle_created
        return None

    async def route(self, event: ChangeEvent) -> None:
        """Deliver one event to its handler, logging any failure."""
        handler = self.handler_for(event)
        if handler is None:
            return
        _logger.debug("Dispatching %s %s (event %s)", event.kind, event.path, event.event_id)
        try:
            await handler(event)
        except Exception:
            _logger.exception("Handler failed for %s %s", event.kind, event.path)

    async def _handle(self, event: ChangeEvent) -> None:
        try:
            async with self._slots:
                await self.route(event)
        finally:
            self._queue.task_done()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            task = asyncio.create_task(self._handle(event))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    def start(self) -> None:
        if self.is_running:
            return
        self._runner = asyncio.create_task(self._run(), name="drivepipe-change-feed")

    async def drain(self) -> None:
        """Wait until every queued event, including follow-ups, is handled."""
        await self._queue.join()

    async def stop(self) -> None:
        runner = self._runner
        self._runner = None
        if runner is not None:
            runner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await runner
        for task in list(self._inflight):
            task.cancel()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
