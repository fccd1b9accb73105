"""VIN decoding for newly created vehicles.

When a vehicle document is created with a ``vin``, :class:`VinDecoder`
looks it up in the NHTSA vPIC ``decodevin`` endpoint and writes the result
back onto the vehicle::

    {"vinDecoded": {"make": ..., "model": ..., "year": ..., ...},
     "vinDecodedAt": "<iso timestamp>"}

A failed lookup writes ``vinError`` instead. ``vinDecodedAt`` doubles as the
redelivery marker: a vehicle that already carries it is not looked up again.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from drivepipe import paths
from drivepipe._constants import USER_AGENT
from drivepipe.config import PipelineConfig
from drivepipe.exceptions import VinDecodeError
from drivepipe.feed.events import ChangeEvent
from drivepipe.models import Vehicle, VinDetails
from drivepipe.models._base import utcnow
from drivepipe.store.documents import DocumentStore

_logger = logging.getLogger(__name__)


class VinDecoder:
    """Decodes a vehicle's VIN through the vPIC REST API.

    Parameters
    ----------
    store : DocumentStore
        Store the decoded details are written to.
    http_session : aiohttp.ClientSession
        Session used for lookups; owned by the caller.
    config : PipelineConfig
        Supplies the vPIC base URL and request timeout.
    clock : callable
        Source of ``vinDecodedAt`` timestamps.
    """

    marker = "vinDecodedAt"
    error_field = "vinError"

    def __init__(
        self,
        store: DocumentStore,
        http_session: aiohttp.ClientSession,
        config: PipelineConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._http = http_session
        self._config = config
        self._clock = clock

    async def lookup(self, vin: str) -> VinDetails:
        """Fetch and decode one VIN; raises :class:`VinDecodeError` on failure."""
        url = f"{self._config.vin_decoder_base_url.rstrip('/')}/decodevin/{quote(vin, safe='')}"
        timeout = aiohttp.ClientTimeout(total=self._config.vin_decoder_timeout)
        _logger.debug("GET %s", url)
        try:
            async with self._http.get(
                url,
                params={"format": "json"},
                headers={"accept": "application/json", "user-agent": USER_AGENT},
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise VinDecodeError(
                        f"HTTP {resp.status} decoding VIN {vin}: {text[:200]}",
                        vin=vin,
                        status_code=resp.status,
                    )
        except VinDecodeError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise VinDecodeError(f"VIN lookup for {vin} failed: {exc}", vin=vin) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise VinDecodeError(f"Invalid JSON decoding VIN {vin}: {text[:200]}", vin=vin) from exc
        results = body.get("Results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            raise VinDecodeError(f"No Results decoding VIN {vin}", vin=vin)
        return VinDetails.from_vpic_results(item for item in results if isinstance(item, dict))

    async def decode(self, vehicle_path: paths.VehiclePath, vehicle: Vehicle) -> VinDetails | None:
        """Decode and store the vehicle's VIN; ``None`` when it has none."""
        vin = (vehicle.vin or "").strip()
        if not vin:
            _logger.debug("Vehicle %s has no VIN; skipping decode", vehicle_path.vid)
            return None

        details = await self.lookup(vin)
        await self._store.update(
            paths.vehicle(vehicle_path.uid, vehicle_path.vid),
            {"vinDecoded": details.to_document(), "vinDecodedAt": self._clock().isoformat()},
        )
        _logger.info(
            "Decoded VIN for vehicle %s: %s %s %s",
            vehicle_path.vid,
            details.year,
            details.make,
            details.model,
        )
        return details

    async def handle(self, vehicle_path: paths.VehiclePath, vehicle: Vehicle) -> VinDetails | None:
        try:
            return await self.decode(vehicle_path, vehicle)
        except Exception as exc:
            _logger.exception("VIN decode failed for vehicle %s", vehicle_path.vid)
            await self._store.update(
                paths.vehicle(vehicle_path.uid, vehicle_path.vid),
                {self.error_field: str(exc)},
            )
            return None

    async def on_vehicle_created(self, event: ChangeEvent) -> VinDetails | None:
        """Change-feed entry point for vehicle creations."""
        vehicle_path = paths.parse_vehicle_path(event.path)
        if vehicle_path is None or event.after is None:
            return None

        current = await self._store.get(event.path)
        if not current.exists:
            return None
        data = current.to_dict()
        if data.get(self.marker):
            _logger.debug("Vehicle %s VIN already decoded", vehicle_path.vid)
            return None

        try:
            vehicle = Vehicle.from_document(vehicle_path.vid, data)
        except ValidationError as exc:
            _logger.warning("Vehicle %s is malformed: %s", vehicle_path.vid, exc)
            await self._store.update(event.path, {self.error_field: str(exc)})
            return None
        return await self.handle(vehicle_path, vehicle)
