from __future__ import annotations

import logging
from typing import Any

import pytest

from drivepipe import paths
from drivepipe.dispatcher import DriveDispatcher, JobDispatcher, should_run, upload_completed
from drivepipe.feed.events import ChangeEvent, ChangeKind
from drivepipe.models import AiJob, Drive
from drivepipe.routing.matcher import RouteMatcher
from drivepipe.store.memory import InMemoryDocumentStore
from tests.conftest import fixed_clock

DRIVE_PATH = paths.drive("u1", "v1", "d1")


class _RecordingComponent:
    def __init__(self, store: InMemoryDocumentStore, marker: str, *, fail: bool = False) -> None:
        self.marker = marker
        self.error_field = f"{marker}Error"
        self.calls: list[str] = []
        self._store = store
        self._fail = fail

    async def handle(self, drive_path: paths.DrivePath, drive: Drive) -> Any:
        self.calls.append(drive_path.did)
        if self._fail:
            raise RuntimeError("component exploded")
        await self._store.update(DRIVE_PATH, {self.marker: "done"})
        return "done"


def _upload_event(before: dict[str, Any] | None = None, after: dict[str, Any] | None = None) -> ChangeEvent:
    return ChangeEvent(
        kind=ChangeKind.UPDATED,
        path=DRIVE_PATH,
        before=before if before is not None else {"timeseriesUploaded": False},
        after=after if after is not None else {"timeseriesUploaded": True},
    )


def test_guard_requires_false_to_true_transition() -> None:
    assert upload_completed({"timeseriesUploaded": False}, {"timeseriesUploaded": True})
    assert upload_completed({}, {"timeseriesUploaded": True})
    assert not upload_completed({"timeseriesUploaded": True}, {"timeseriesUploaded": True})
    assert not upload_completed({"timeseriesUploaded": False}, {"timeseriesUploaded": False})
    assert not upload_completed({"timeseriesUploaded": False}, None)


def test_guard_skips_component_whose_marker_is_set() -> None:
    before = {"timeseriesUploaded": False}
    assert should_run(before, {"timeseriesUploaded": True}, "aiSummary")
    assert not should_run(before, {"timeseriesUploaded": True, "aiSummary": "ok"}, "aiSummary")


@pytest.mark.asyncio
async def test_all_components_run_on_upload(store: InMemoryDocumentStore) -> None:
    await store.set(DRIVE_PATH, {"timeseriesUploaded": True})
    a = _RecordingComponent(store, "aiSummary")
    b = _RecordingComponent(store, "routeId")
    dispatcher = DriveDispatcher(store, [a, b])

    ran = await dispatcher.on_drive_updated(_upload_event())

    assert ran == ["aiSummary", "routeId"]
    assert a.calls == ["d1"] and b.calls == ["d1"]


@pytest.mark.asyncio
async def test_redelivery_after_completion_is_a_noop(store: InMemoryDocumentStore) -> None:
    await store.set(DRIVE_PATH, {"timeseriesUploaded": True})
    component = _RecordingComponent(store, "parquetPath")
    dispatcher = DriveDispatcher(store, [component])

    event = _upload_event()
    await dispatcher.on_drive_updated(event)
    # Same event delivered again; the stored marker now short-circuits it.
    assert await dispatcher.on_drive_updated(event) == []
    assert component.calls == ["d1"]


@pytest.mark.asyncio
async def test_only_unfinished_components_rerun(store: InMemoryDocumentStore) -> None:
    await store.set(DRIVE_PATH, {"timeseriesUploaded": True, "aiSummary": "already"})
    ai = _RecordingComponent(store, "aiSummary")
    route = _RecordingComponent(store, "routeId")
    dispatcher = DriveDispatcher(store, [ai, route])

    assert await dispatcher.on_drive_updated(_upload_event()) == ["routeId"]
    assert ai.calls == []


@pytest.mark.asyncio
async def test_unrelated_updates_do_not_trigger(store: InMemoryDocumentStore) -> None:
    await store.set(DRIVE_PATH, {"timeseriesUploaded": True})
    component = _RecordingComponent(store, "routeId")
    dispatcher = DriveDispatcher(store, [component])

    event = _upload_event(before={"timeseriesUploaded": True}, after={"timeseriesUploaded": True, "notes": "x"})
    assert await dispatcher.on_drive_updated(event) == []
    assert component.calls == []


@pytest.mark.asyncio
async def test_deleted_drive_is_skipped(store: InMemoryDocumentStore) -> None:
    component = _RecordingComponent(store, "routeId")
    dispatcher = DriveDispatcher(store, [component])

    assert await dispatcher.on_drive_updated(_upload_event()) == []
    assert component.calls == []


@pytest.mark.asyncio
async def test_one_failing_component_does_not_block_others(
    store: InMemoryDocumentStore, caplog: pytest.LogCaptureFixture
) -> None:
    await store.set(DRIVE_PATH, {"timeseriesUploaded": True})
    broken = _RecordingComponent(store, "aiSummary", fail=True)
    healthy = _RecordingComponent(store, "routeId")
    dispatcher = DriveDispatcher(store, [broken, healthy])

    with caplog.at_level(logging.ERROR, logger="drivepipe.dispatcher"):
        await dispatcher.on_drive_updated(_upload_event())

    assert (await store.get(DRIVE_PATH)).to_dict()["routeId"] == "done"
    assert "component exploded" in caplog.text


class _RecordingProcessor:
    def __init__(self, name: str) -> None:
        self.name = name
        self.jobs: list[str] = []

    def handles(self, job: AiJob) -> bool:
        return True

    async def process(self, job_path: paths.JobPath, job: AiJob) -> None:
        self.jobs.append(job_path.job_id)


def _job_dispatcher(store: InMemoryDocumentStore) -> tuple[JobDispatcher, dict[str, _RecordingProcessor]]:
    processors = {name: _RecordingProcessor(name) for name in ("analysis", "dashboards", "exports")}
    return JobDispatcher(store, **processors), processors


@pytest.mark.parametrize(
    ("job_type", "expected"),
    [
        ("range_analysis", "analysis"),
        ("predictive_maintenance", "analysis"),
        ("custom_query", "analysis"),
        ("dashboard_generation", "dashboards"),
        ("export", "exports"),
        ("something_new", "analysis"),
    ],
)
@pytest.mark.asyncio
async def test_jobs_route_by_type(store: InMemoryDocumentStore, job_type: str, expected: str) -> None:
    dispatcher, processors = _job_dispatcher(store)
    path = paths.ai_job("u1", "job-1")
    doc = {"type": job_type, "vehicleId": "v1", "status": "pending"}
    await store.set(path, doc)

    assert await dispatcher.on_job_created(ChangeEvent(kind=ChangeKind.CREATED, path=path, after=doc))
    assert processors[expected].jobs == ["job-1"]


@pytest.mark.asyncio
async def test_non_pending_job_is_skipped(store: InMemoryDocumentStore) -> None:
    dispatcher, processors = _job_dispatcher(store)
    path = paths.ai_job("u1", "job-1")
    await store.set(path, {"type": "custom_query", "status": "completed"})

    event = ChangeEvent(kind=ChangeKind.CREATED, path=path, after={"type": "custom_query", "status": "pending"})
    assert not await dispatcher.on_job_created(event)
    assert processors["analysis"].jobs == []


@pytest.mark.asyncio
async def test_malformed_job_is_marked_error(store: InMemoryDocumentStore) -> None:
    dispatcher, _ = _job_dispatcher(store)
    path = paths.ai_job("u1", "job-1")
    doc = {"type": "custom_query", "status": "not-a-status"}
    await store.set(path, doc)

    assert not await dispatcher.on_job_created(ChangeEvent(kind=ChangeKind.CREATED, path=path, after=doc))
    stored = (await store.get(path)).to_dict()
    assert stored["status"] == "error"
    assert stored["error"]


# ---- placeholder values ---------------------------------------------------

_ENDPOINTS = {
    "startLatitude": 39.7392,
    "startLongitude": -104.9903,
    "endLatitude": 40.0150,
    "endLongitude": -105.2705,
    "timeseriesUploaded": True,
}


@pytest.mark.parametrize(
    "extra",
    [
        {"maxEgtF": "--"},
        {"maximums": {"maxEgtF": "--"}},
        {"parameterStats": {"rpm": {"avg": "--", "max": 3100}}},
    ],
    ids=["top-level-maximum", "nested-maximum", "parameter-stat"],
)
@pytest.mark.asyncio
async def test_placeholder_values_do_not_block_route_matching(
    store: InMemoryDocumentStore, extra: dict[str, Any]
) -> None:
    await store.set(DRIVE_PATH, {**_ENDPOINTS, **extra})
    dispatcher = DriveDispatcher(store, [RouteMatcher(store, clock=fixed_clock)])

    assert await dispatcher.on_drive_updated(_upload_event()) == ["routeId"]

    stored = (await store.get(DRIVE_PATH)).to_dict()
    assert stored["routeId"]
    assert "routeError" not in stored


def test_placeholders_are_stripped_from_nested_maps() -> None:
    drive = Drive.from_document(
        "d1",
        {"maxEgtF": "--", "maxBoostPsi": 27.5, "parameterStats": {"rpm": {"avg": "--", "max": 3100}}},
    )
    assert drive.peak_egt is None
    assert drive.peak_boost == 27.5
    assert drive.parameter_stats["rpm"].avg is None
    assert drive.parameter_stats["rpm"].max == 3100


@pytest.mark.asyncio
async def test_unparseable_drive_records_error_on_each_component(store: InMemoryDocumentStore) -> None:
    await store.set(DRIVE_PATH, {**_ENDPOINTS, "parameterStats": {"rpm": "n/a"}})
    a = _RecordingComponent(store, "aiSummary")
    b = _RecordingComponent(store, "routeId")
    dispatcher = DriveDispatcher(store, [a, b])

    assert await dispatcher.on_drive_updated(_upload_event()) == ["aiSummary", "routeId"]

    stored = (await store.get(DRIVE_PATH)).to_dict()
    assert a.calls == [] and b.calls == []
    assert "parameterStats" in stored["aiSummaryError"]
    assert "parameterStats" in stored["routeIdError"]
