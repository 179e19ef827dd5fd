"""High-level async client for the fleet backend query interface."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from fleetsync._api import fleet as _fleet_api
from fleetsync._transport import HttpTransport, QueryTransport
from fleetsync.config import FleetConfig
from fleetsync.exceptions import FleetError
from fleetsync.models.health import HealthStatus
from fleetsync.models.history import VehicleHistory
from fleetsync.models.overview import FleetOverview
from fleetsync.models.route import Route
from fleetsync.models.statistics import FleetStatistics
from fleetsync.models.vehicle import VehicleRecord

_logger = logging.getLogger(__name__)


class FleetClient:
    """Async client for the fleet backend.

    Usage::

        async with FleetClient(config) as client:
            buses = await client.get_vehicles()

    A prepared *transport* can be passed instead of an HTTP session, which
    is how tests run the client without a network.
    """

    def __init__(
        self,
        config: FleetConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: QueryTransport | None = None,
    ) -> None:
        self._config = config or FleetConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport: QueryTransport | None = transport

    @property
    def config(self) -> FleetConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    def _require_transport(self) -> QueryTransport:
        if self._transport is None:
            raise FleetError("Client not initialized. Use 'async with FleetClient(...) as client:'")
        return self._transport

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------

    async def get_overview(self) -> FleetOverview:
        """Fleet-wide totals as computed by the backend."""
        return await _fleet_api.fetch_overview(self._require_transport())

    async def get_vehicles(self) -> list[VehicleRecord]:
        """Full fleet listing (the snapshot fed to the store)."""
        return await _fleet_api.fetch_vehicles(self._require_transport())

    async def get_vehicle(self, vehicle_id: str) -> VehicleRecord | None:
        """One vehicle, or ``None`` if the backend does not know it."""
        return await _fleet_api.fetch_vehicle(self._require_transport(), vehicle_id)

    async def get_history(self, vehicle_id: str, *, hours: int = 24, limit: int = 100) -> VehicleHistory:
        """Readings of the last *hours*, newest first."""
        return await _fleet_api.fetch_history(self._require_transport(), vehicle_id, hours=hours, limit=limit)

    async def get_map_data(self) -> list[VehicleRecord]:
        return await _fleet_api.fetch_map_data(self._require_transport())

    async def get_routes(self) -> list[Route]:
        return await _fleet_api.fetch_routes(self._require_transport())

    async def get_statistics(self) -> FleetStatistics:
        return await _fleet_api.fetch_statistics(self._require_transport())

    async def health_check(self) -> HealthStatus:
        return await _fleet_api.fetch_health(self._require_transport())
