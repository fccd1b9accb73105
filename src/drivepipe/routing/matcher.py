"""Find-or-create the route a completed drive belongs to.

A route is keyed by the geohashes of a drive's start and end points. The
read-modify-write runs inside :meth:`DocumentStore.run_transaction` so two
drives updating the *same existing* route cannot lose an increment. Two
drives that both find *no* route for a new geohash pair can still each
create one; later drives match whichever the query returns first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from drivepipe import paths
from drivepipe._constants import GEOHASH_PRECISION, ROUTE_NAME_PREFIX
from drivepipe.models import Drive, Route
from drivepipe.models._base import utcnow
from drivepipe.routing import geohash
from drivepipe.routing.aggregates import Extreme, running_mean, track_best, track_worst
from drivepipe.store.documents import DocumentStore, Filter, Transaction

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteMatch:
    """Outcome of matching one drive."""

    route_id: str
    route_name: str
    created: bool
    drive_count: int


def _average_updates(route: Route, drive: Drive) -> dict[str, Any]:
    count = route.drive_count
    samples = (
        ("avgMPG", route.avg_mpg, drive.average_mpg),
        ("avgDurationSeconds", route.avg_duration_seconds, drive.duration_seconds),
        ("avgMaxEgtF", route.avg_max_egt_f, drive.peak_egt),
        ("avgMaxBoostPsi", route.avg_max_boost_psi, drive.peak_boost),
        ("avgMaxTransTempF", route.avg_max_trans_temp_f, drive.peak_trans_temp),
    )
    updates: dict[str, Any] = {}
    for key, previous, value in samples:
        if value is not None:
            updates[key] = running_mean(previous, count, value)
    return updates


def build_match_patch(route: Route, drive: Drive, *, now: str) -> dict[str, Any]:
    """Patch that folds *drive* into an existing *route*."""
    drive_id = drive.id or ""
    patch: dict[str, Any] = {
        "driveCount": route.drive_count + 1,
        "lastDriveDate": now,
    }
    patch.update(_average_updates(route, drive))

    mpg = drive.average_mpg
    best = track_best(Extreme(route.best_mpg, route.best_mpg_drive_id), mpg, drive_id)
    if best != Extreme(route.best_mpg, route.best_mpg_drive_id):
        patch["bestMPG"] = best.value
        patch["bestMPGDriveId"] = best.drive_id
    worst = track_worst(Extreme(route.worst_mpg, route.worst_mpg_drive_id), mpg, drive_id)
    if worst != Extreme(route.worst_mpg, route.worst_mpg_drive_id):
        patch["worstMPG"] = worst.value
        patch["worstMPGDriveId"] = worst.drive_id
    return patch


def build_new_route(
    drive: Drive,
    *,
    name: str,
    start_geohash: str,
    end_geohash: str,
    now: str,
) -> dict[str, Any]:
    """Document for a route seeded from its first drive."""
    mpg = drive.average_mpg
    route = Route(
        name=name,
        start_geohash=start_geohash,
        end_geohash=end_geohash,
        start_latitude=drive.start_latitude,
        start_longitude=drive.start_longitude,
        end_latitude=drive.end_latitude,
        end_longitude=drive.end_longitude,
        drive_count=1,
        avg_mpg=mpg,
        avg_duration_seconds=drive.duration_seconds,
        avg_max_egt_f=drive.peak_egt,
        avg_max_boost_psi=drive.peak_boost,
        avg_max_trans_temp_f=drive.peak_trans_temp,
        best_mpg=mpg,
        best_mpg_drive_id=drive.id if mpg is not None else None,
        worst_mpg=mpg,
        worst_mpg_drive_id=drive.id if mpg is not None else None,
        last_drive_date=now,
        created_at=now,
    )
    # Averages absent on the seed drive are stored as explicit nulls.
    return route.model_dump(by_alias=True, mode="json")


class RouteMatcher:
    """Assigns drives to routes and maintains per-route aggregates.

    Output marker on the drive is ``routeId``; failures are recorded in
    ``routeError`` by :meth:`handle`.

    Parameters
    ----------
    store : DocumentStore
        Document store holding drives and routes.
    clock : callable
        Returns the current UTC time; injectable for tests.
    precision : int
        Geohash length used as the route key.
    """

    marker = "routeId"
    error_field = "routeError"

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        precision: int = GEOHASH_PRECISION,
    ) -> None:
        self._store = store
        self._clock = clock
        self._precision = precision

    async def match(self, drive_path: paths.DrivePath, drive: Drive) -> RouteMatch | None:
        """Match *drive* to a route and record the route on the drive.

        Returns ``None`` without writing anything when the drive lacks any
        of its four GPS endpoint coordinates.
        """
        if not drive.has_endpoints:
            _logger.debug("Drive %s has no GPS endpoints; skipping route match", drive_path.did)
            return None

        assert drive.start_latitude is not None and drive.start_longitude is not None
        assert drive.end_latitude is not None and drive.end_longitude is not None
        start_hash = geohash.encode(drive.start_latitude, drive.start_longitude, self._precision)
        end_hash = geohash.encode(drive.end_latitude, drive.end_longitude, self._precision)

        uid, vid, did = drive_path.uid, drive_path.vid, drive_path.did
        routes_collection = paths.routes(uid, vid)
        drive_doc_path = paths.drive(uid, vid, did)
        if drive.id is None:
            drive = drive.model_copy(update={"id": did})

        async def _apply(tx: Transaction) -> RouteMatch | None:
            current = await tx.get(drive_doc_path)
            if not current.exists:
                return None
            current_data = current.to_dict()
            if current_data.get("routeId"):
                # Already matched by an earlier delivery.
                return RouteMatch(
                    route_id=str(current_data["routeId"]),
                    route_name=str(current_data.get("routeName") or ""),
                    created=False,
                    drive_count=0,
                )

            existing = await tx.query(
                routes_collection,
                where=[
                    Filter("startGeohash", "==", start_hash),
                    Filter("endGeohash", "==", end_hash),
                ],
                limit=1,
            )
            now = self._clock().isoformat()

            if existing:
                snapshot = existing[0]
                route = Route.from_document(snapshot.id, snapshot.to_dict())
                patch = build_match_patch(route, drive, now=now)
                tx.update(snapshot.path, patch)
                tx.update(drive_doc_path, {"routeId": snapshot.id, "routeName": route.name})
                return RouteMatch(
                    route_id=snapshot.id,
                    route_name=route.name,
                    created=False,
                    drive_count=patch["driveCount"],
                )

            route_count = await self._store.count(routes_collection)
            name = f"{ROUTE_NAME_PREFIX}{route_count + 1}"
            new_path = tx.create(
                routes_collection,
                build_new_route(drive, name=name, start_geohash=start_hash, end_geohash=end_hash, now=now),
            )
            route_id = new_path.rsplit("/", 1)[-1]
            tx.update(drive_doc_path, {"routeId": route_id, "routeName": name})
            return RouteMatch(route_id=route_id, route_name=name, created=True, drive_count=1)

        result = await self._store.run_transaction(_apply)
        if result is None:
            _logger.debug("Drive %s vanished before route match", did)
        elif result.created:
            _logger.info("Created %s (%s) for drive %s", result.route_name, result.route_id, did)
        elif result.drive_count:
            _logger.info(
                "Matched drive %s to %s (%s), driveCount=%d",
                did,
                result.route_name,
                result.route_id,
                result.drive_count,
            )
        return result

    async def handle(self, drive_path: paths.DrivePath, drive: Drive) -> RouteMatch | None:
        try:
            return await self.match(drive_path, drive)
        except Exception as exc:
            _logger.exception("Route matching failed for drive %s", drive_path.did)
            await self._store.update(
                paths.drive(drive_path.uid, drive_path.vid, drive_path.did),
                {self.error_field: str(exc)},
            )
            return None
