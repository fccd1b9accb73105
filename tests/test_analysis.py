from __future__ import annotations

import pytest

from drivepipe import paths
from drivepipe.ai.analysis import DriveAnalyzer, aggregate_drive_stats
from drivepipe.ai.oracle import Priority, parse_oracle_text
from drivepipe.ai.scheduled import ScheduledSweeps
from drivepipe.config import PipelineConfig
from drivepipe.models import Drive
from drivepipe.store.memory import InMemoryDocumentStore
from tests.conftest import FailingOracle, FakeOracle, fixed_clock

UID = "u1"
VID = "v1"
DRIVE = paths.DrivePath(uid=UID, vid=VID, did="d1")


def test_parse_oracle_text_wraps_non_objects() -> None:
    assert parse_oracle_text('{"summary": "ok"}') == {"summary": "ok"}
    assert parse_oracle_text("[1, 2]") == {"raw": "[1, 2]"}
    assert parse_oracle_text("not json") == {"raw": "not json"}


def test_aggregate_drive_stats_flattens_parameter_stats() -> None:
    drive = Drive.from_document(
        "d1",
        {
            "datapointCount": 120,
            "durationSeconds": 600,
            "sensorList": ["rpm", "egt"],
            "parameterStats": {"egt": {"min": 400, "max": 1150, "avg": 780.5, "count": 120}},
        },
    )
    stats = aggregate_drive_stats(drive)
    assert stats["datapointCount"] == 120
    assert stats["distanceMiles"] == 0
    assert stats["avg_egt"] == 780.5
    assert stats["max_egt"] == 1150
    assert stats["count_egt"] == 120


@pytest.mark.asyncio
async def test_analyzer_writes_verdict(store: InMemoryDocumentStore) -> None:
    await store.set(paths.vehicle(UID, VID), {"year": 2021, "make": "Ram", "model": "3500"})
    doc = {"timeseriesUploaded": True, "durationSeconds": 900, "averageMPG": 15.2}
    await store.set(paths.drive(UID, VID, "d1"), doc)
    oracle = FakeOracle(
        {
            "summary": "Normal highway drive.",
            "anomalies": [{"parameter": "egt", "severity": "info"}],
            "healthScore": 92,
            "recommendations": ["none"],
            "autoTags": ["highway"],
        }
    )

    await DriveAnalyzer(store, oracle, clock=fixed_clock).handle(DRIVE, Drive.from_document("d1", doc))

    stored = (await store.get(paths.drive(UID, VID, "d1"))).to_dict()
    assert stored["aiSummary"] == "Normal highway drive."
    assert stored["aiHealthScore"] == 92
    assert stored["autoTags"] == ["highway"]
    assert stored["aiAnalyzedAt"] == fixed_clock().isoformat()
    assert stored["status"] == "analysisComplete"
    assert oracle.calls[0][1] is Priority.LOW
    assert "2021 Ram 3500" in oracle.calls[0][0]


@pytest.mark.asyncio
async def test_analyzer_defaults_missing_fields(store: InMemoryDocumentStore) -> None:
    doc = {"timeseriesUploaded": True}
    await store.set(paths.drive(UID, VID, "d1"), doc)

    await DriveAnalyzer(store, FakeOracle({"raw": "garbled"}), clock=fixed_clock).handle(
        DRIVE, Drive.from_document("d1", doc)
    )

    stored = (await store.get(paths.drive(UID, VID, "d1"))).to_dict()
    assert stored["aiSummary"] == ""
    assert stored["aiAnomalies"] == []
    assert stored["aiHealthScore"] == 0


@pytest.mark.asyncio
async def test_analyzer_records_error(store: InMemoryDocumentStore) -> None:
    doc = {"timeseriesUploaded": True}
    await store.set(paths.drive(UID, VID, "d1"), doc)

    result = await DriveAnalyzer(store, FailingOracle("model overloaded"), clock=fixed_clock).handle(
        DRIVE, Drive.from_document("d1", doc)
    )

    assert result is None
    stored = (await store.get(paths.drive(UID, VID, "d1"))).to_dict()
    assert stored["aiError"] == "model overloaded"
    assert "aiSummary" not in stored


# ---- scheduled sweeps -----------------------------------------------------


async def _seed_fleet(store: InMemoryDocumentStore) -> None:
    await store.set(paths.user(UID), {"email": "owner@example.com"})
    await store.set(paths.vehicle(UID, "busy"), {"make": "Ram"})
    await store.set(paths.vehicle(UID, "idle"), {"make": "Ram"})
    await store.set(
        paths.drive(UID, "busy", "d1"),
        {"startTime": "2026-02-20T08:00:00+00:00", "averageMPG": 16.4},
    )


@pytest.mark.asyncio
async def test_predictive_maintenance_sweep_writes_records(
    store: InMemoryDocumentStore, config: PipelineConfig
) -> None:
    await _seed_fleet(store)
    oracle = FakeOracle(
        {
            "predictions": [
                {"type": "oil_change", "urgency": "medium", "estimatedMiles": 50000, "confidence": 0.8},
                "not-a-prediction",
            ]
        }
    )

    report = await ScheduledSweeps(store, oracle, config, clock=fixed_clock).predictive_maintenance()

    assert report.processed == 1
    assert report.skipped == 1
    assert report.written == 1
    records = await store.query(paths.maintenance(UID, "busy"))
    assert len(records) == 1
    record = records[0].to_dict()
    assert record["type"] == "oil_change"
    assert record["source"] == "ai_prediction"
    assert record["status"] == "predicted"
    assert record["createdAt"] == fixed_clock().isoformat()


@pytest.mark.asyncio
async def test_baseline_sweep_updates_vehicle(store: InMemoryDocumentStore, config: PipelineConfig) -> None:
    await _seed_fleet(store)
    baselines = {"baselines": {"egt": {"low": 300, "high": 1200, "typical": 750}}}
    oracle = FakeOracle(baselines)

    report = await ScheduledSweeps(store, oracle, config, clock=fixed_clock).compute_baselines()

    assert report.processed == 1 and report.skipped == 1
    vehicle = (await store.get(paths.vehicle(UID, "busy"))).to_dict()
    assert vehicle["baselineData"] == baselines
    assert vehicle["baselineUpdatedAt"] == fixed_clock().isoformat()
    assert oracle.light_calls[0][1] == config.oracle_flash_max_output_tokens


@pytest.mark.asyncio
async def test_sweep_continues_past_failing_vehicle(store: InMemoryDocumentStore, config: PipelineConfig) -> None:
    await _seed_fleet(store)
    await store.set(paths.drive(UID, "idle", "d9"), {"startTime": "2026-02-25T08:00:00+00:00"})

    report = await ScheduledSweeps(store, FailingOracle(), config, clock=fixed_clock).predictive_maintenance()

    assert sorted(report.failed) == [paths.vehicle(UID, "busy"), paths.vehicle(UID, "idle")]
    assert report.processed == 0
