"""Document and blob path builders.

Paths alternate collection/document segments. Every component addresses
records through these helpers so the layout stays in one place.
"""

from __future__ import annotations

from dataclasses import dataclass

from drivepipe._constants import (
    AI_JOBS,
    DASHBOARDS,
    DATAPOINTS,
    DRIVES,
    MAINTENANCE,
    ROUTES,
    USERS,
    VEHICLES,
)


def user(uid: str) -> str:
    return f"{USERS}/{uid}"


def vehicles(uid: str) -> str:
    return f"{USERS}/{uid}/{VEHICLES}"


def vehicle(uid: str, vid: str) -> str:
    return f"{USERS}/{uid}/{VEHICLES}/{vid}"


def drives(uid: str, vid: str) -> str:
    return f"{vehicle(uid, vid)}/{DRIVES}"


def drive(uid: str, vid: str, did: str) -> str:
    return f"{drives(uid, vid)}/{did}"


def datapoints(uid: str, vid: str, did: str) -> str:
    return f"{drive(uid, vid, did)}/{DATAPOINTS}"


def routes(uid: str, vid: str) -> str:
    return f"{vehicle(uid, vid)}/{ROUTES}"


def maintenance(uid: str, vid: str) -> str:
    return f"{vehicle(uid, vid)}/{MAINTENANCE}"


def ai_jobs(uid: str) -> str:
    return f"{user(uid)}/{AI_JOBS}"


def ai_job(uid: str, job_id: str) -> str:
    return f"{ai_jobs(uid)}/{job_id}"


def dashboards(uid: str) -> str:
    return f"{user(uid)}/{DASHBOARDS}"


# ------------------------------------------------------------------
# Blob paths
# ------------------------------------------------------------------


def timeseries_blob(uid: str, vid: str, did: str) -> str:
    return f"drives/{uid}/{vid}/{did}/timeseries.json.gz"


def parquet_blob(uid: str, vid: str, did: str) -> str:
    return f"parquet/{uid}/{vid}/{did}.parquet"


def export_blob(uid: str, vid: str, job_id: str, ext: str) -> str:
    return f"exports/{uid}/{vid}/{job_id}.{ext}"


# ------------------------------------------------------------------
# Path parsing
# ------------------------------------------------------------------


@dataclass(frozen=True)
class DrivePath:
    uid: str
    vid: str
    did: str


@dataclass(frozen=True)
class VehiclePath:
    uid: str
    vid: str


@dataclass(frozen=True)
class JobPath:
    uid: str
    job_id: str


def parse_drive_path(path: str) -> DrivePath | None:
    """Return the identity of a drive document path, or ``None``."""
    parts = path.strip("/").split("/")
    if len(parts) != 6:
        return None
    if parts[0] != USERS or parts[2] != VEHICLES or parts[4] != DRIVES:
        return None
    return DrivePath(uid=parts[1], vid=parts[3], did=parts[5])


def parse_vehicle_path(path: str) -> VehiclePath | None:
    """Return the identity of a vehicle document path, or ``None``."""
    parts = path.strip("/").split("/")
    if len(parts) != 4:
        return None
    if parts[0] != USERS or parts[2] != VEHICLES:
        return None
    return VehiclePath(uid=parts[1], vid=parts[3])


def parse_job_path(path: str) -> JobPath | None:
    """Return the identity of an AI job document path, or ``None``."""
    parts = path.strip("/").split("/")
    if len(parts) != 4:
        return None
    if parts[0] != USERS or parts[2] != AI_JOBS:
        return None
    return JobPath(uid=parts[1], job_id=parts[3])


def split(path: str) -> tuple[str, str]:
    """Split a document path into ``(collection, document_id)``."""
    collection, _, doc_id = path.strip("/").rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id
