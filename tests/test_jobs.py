from __future__ import annotations

from typing import Any

import pytest

from drivepipe import paths
from drivepipe.ai.dashboards import DashboardJobProcessor
from drivepipe.ai.jobs import AnalysisJobProcessor
from drivepipe.ai.oracle import Priority
from drivepipe.config import PipelineConfig
from drivepipe.models import AiJob
from drivepipe.store.memory import InMemoryDocumentStore
from tests.conftest import FailingOracle, FakeOracle, fixed_clock

UID = "u1"
VID = "v1"


class _ProgressLog:
    """Collects every progress value written to one job document."""

    def __init__(self, store: InMemoryDocumentStore, job_path: str) -> None:
        self.values: list[float] = []
        self.statuses: list[str] = []
        self._path = job_path
        store.watch(self._on_change)

    def _on_change(self, event: Any) -> None:
        if event.path != self._path or event.after is None:
            return
        before = event.before or {}
        if "progress" in event.after and event.after["progress"] != before.get("progress"):
            self.values.append(event.after["progress"])
        if event.after.get("status") != before.get("status"):
            self.statuses.append(event.after["status"])


async def _seed_vehicle(store: InMemoryDocumentStore) -> None:
    await store.set(
        paths.vehicle(UID, VID),
        {"year": 2022, "make": "Ram", "model": "2500", "engine": "6.7L Cummins", "currentOdometer": 48210},
    )


async def _create_job(store: InMemoryDocumentStore, job_id: str, doc: dict[str, Any]) -> tuple[paths.JobPath, AiJob]:
    path = paths.ai_job(UID, job_id)
    await store.set(path, {"status": "pending", "progress": 0, **doc})
    return paths.JobPath(uid=UID, job_id=job_id), AiJob.from_document(job_id, (await store.get(path)).to_dict())


def _processor(store: InMemoryDocumentStore, oracle: Any, config: PipelineConfig) -> AnalysisJobProcessor:
    return AnalysisJobProcessor(store, oracle, config, clock=fixed_clock)


@pytest.mark.asyncio
async def test_predictive_maintenance_without_drives_completes(
    store: InMemoryDocumentStore, config: PipelineConfig
) -> None:
    await _seed_vehicle(store)
    oracle = FakeOracle({"predictions": []})
    job_path, job = await _create_job(store, "job-1", {"type": "predictive_maintenance", "vehicleId": VID})
    log = _ProgressLog(store, paths.ai_job(UID, "job-1"))

    await _processor(store, oracle, config).process(job_path, job)

    stored = (await store.get(paths.ai_job(UID, "job-1"))).to_dict()
    assert stored["status"] == "completed"
    assert stored["progress"] == 1.0
    assert stored["result"] == {"predictions": []}
    assert stored["completedAt"] == fixed_clock().isoformat()
    assert log.values == [0.1, 0.3, 0.5, 1.0]
    assert log.statuses == ["processing", "completed"]
    assert len(oracle.calls) == 1
    prompt, priority = oracle.calls[0]
    assert priority is Priority.HIGH
    assert "2022 Ram 2500" in prompt


@pytest.mark.asyncio
async def test_range_analysis_uses_drives_in_window(store: InMemoryDocumentStore, config: PipelineConfig) -> None:
    await _seed_vehicle(store)
    for did, start, mpg in (
        ("early", "2026-01-05T08:00:00+00:00", 11.1),
        ("inside", "2026-02-10T08:00:00+00:00", 17.3),
        ("late", "2026-03-20T08:00:00+00:00", 19.9),
    ):
        await store.set(paths.drive(UID, VID, did), {"startTime": start, "averageMPG": mpg})
    oracle = FakeOracle({"summary": "fine"})
    job_path, job = await _create_job(
        store,
        "job-2",
        {
            "type": "range_analysis",
            "vehicleId": VID,
            "params": {"startDate": "2026-02-01", "endDate": "2026-02-28", "focus": "fuel economy"},
        },
    )

    await _processor(store, oracle, config).process(job_path, job)

    stored = (await store.get(paths.ai_job(UID, "job-2"))).to_dict()
    assert stored["status"] == "completed"
    prompt = oracle.calls[0][0]
    assert "mpg=17.3" in prompt
    assert "mpg=11.1" not in prompt and "mpg=19.9" not in prompt
    assert "fuel economy" in prompt


@pytest.mark.asyncio
async def test_custom_query_passes_question(store: InMemoryDocumentStore, config: PipelineConfig) -> None:
    await _seed_vehicle(store)
    oracle = FakeOracle({"answer": "yes"})
    job_path, job = await _create_job(
        store,
        "job-3",
        {"type": "custom_query", "vehicleId": VID, "params": {"query": "Is my EGT normal when towing?"}},
    )

    await _processor(store, oracle, config).process(job_path, job)

    assert (await store.get(paths.ai_job(UID, "job-3"))).to_dict()["result"] == {"answer": "yes"}
    assert "Is my EGT normal when towing?" in oracle.calls[0][0]


@pytest.mark.asyncio
async def test_unknown_job_type_is_marked_error(store: InMemoryDocumentStore, config: PipelineConfig) -> None:
    await _seed_vehicle(store)
    oracle = FakeOracle()
    job_path, job = await _create_job(store, "job-4", {"type": "horoscope", "vehicleId": VID})

    await _processor(store, oracle, config).process(job_path, job)

    stored = (await store.get(paths.ai_job(UID, "job-4"))).to_dict()
    assert stored["status"] == "error"
    assert "horoscope" in stored["error"]
    assert oracle.calls == []


@pytest.mark.asyncio
async def test_missing_vehicle_id_is_marked_error(store: InMemoryDocumentStore, config: PipelineConfig) -> None:
    job_path, job = await _create_job(store, "job-5", {"type": "custom_query"})

    await _processor(store, FakeOracle(), config).process(job_path, job)

    stored = (await store.get(paths.ai_job(UID, "job-5"))).to_dict()
    assert stored["status"] == "error"
    assert "vehicleId" in stored["error"]


@pytest.mark.asyncio
async def test_oracle_failure_is_terminal(store: InMemoryDocumentStore, config: PipelineConfig) -> None:
    await _seed_vehicle(store)
    oracle = FailingOracle("quota exceeded")
    job_path, job = await _create_job(store, "job-6", {"type": "custom_query", "vehicleId": VID})

    await _processor(store, oracle, config).process(job_path, job)

    stored = (await store.get(paths.ai_job(UID, "job-6"))).to_dict()
    assert stored["status"] == "error"
    assert stored["error"] == "quota exceeded"
    assert oracle.calls == 1


@pytest.mark.asyncio
async def test_analysis_processor_ignores_dedicated_types(
    store: InMemoryDocumentStore, config: PipelineConfig
) -> None:
    job_path, job = await _create_job(store, "job-7", {"type": "export", "vehicleId": VID})

    await _processor(store, FakeOracle(), config).process(job_path, job)

    assert (await store.get(paths.ai_job(UID, "job-7"))).to_dict()["status"] == "pending"


@pytest.mark.asyncio
async def test_dashboard_job_writes_dashboard(store: InMemoryDocumentStore) -> None:
    await _seed_vehicle(store)
    dashboard = {"name": "Towing", "layout": "grid", "widgets": [{"type": "gauge", "parameter": "egt"}]}
    oracle = FakeOracle(dashboard)
    job_path, job = await _create_job(
        store,
        "job-8",
        {"type": "dashboard_generation", "vehicleId": VID, "params": {"prompt": "towing in the mountains"}},
    )
    log = _ProgressLog(store, paths.ai_job(UID, "job-8"))

    await DashboardJobProcessor(store, oracle, clock=fixed_clock).process(job_path, job)

    stored = (await store.get(paths.ai_job(UID, "job-8"))).to_dict()
    assert stored["status"] == "completed"
    assert log.values == [0.2, 0.5, 1.0]
    result = stored["result"]
    assert result["name"] == "Towing"
    saved = (await store.get(f"{paths.dashboards(UID)}/{result['dashboardId']}")).to_dict()
    assert saved["source"] == "ai_generated"
    assert saved["aiJobId"] == "job-8"
    assert saved["vehicleId"] == VID
    assert saved["widgets"] == dashboard["widgets"]
    assert oracle.calls[0][1] is Priority.MEDIUM
    assert "towing in the mountains" in oracle.calls[0][0]


@pytest.mark.asyncio
async def test_dashboard_job_failure_marks_error(store: InMemoryDocumentStore) -> None:
    await _seed_vehicle(store)
    job_path, job = await _create_job(store, "job-9", {"type": "dashboard_generation", "vehicleId": VID})

    await DashboardJobProcessor(store, FailingOracle(), clock=fixed_clock).process(job_path, job)

    stored = (await store.get(paths.ai_job(UID, "job-9"))).to_dict()
    assert stored["status"] == "error"
    assert await store.count(paths.dashboards(UID)) == 0
