"""Fleet backend query endpoints.

Endpoints:
  - /api/fleet/overview
  - /api/fleet/buses
  - /api/fleet/buses/{vehicle_id}
  - /api/fleet/buses/{vehicle_id}/history
  - /api/fleet/map-data
  - /api/fleet/routes
  - /api/fleet/statistics
  - /health
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from fleetsync._constants import (
    HEALTH_ENDPOINT,
    MAP_DATA_ENDPOINT,
    OVERVIEW_ENDPOINT,
    ROUTES_ENDPOINT,
    STATISTICS_ENDPOINT,
    VEHICLES_ENDPOINT,
    history_endpoint,
    vehicle_endpoint,
)
from fleetsync._transport import QueryTransport
from fleetsync.exceptions import FleetApiError
from fleetsync.models.health import HealthStatus
from fleetsync.models.history import VehicleHistory
from fleetsync.models.overview import FleetOverview
from fleetsync.models.route import Route
from fleetsync.models.statistics import FleetStatistics
from fleetsync.models.vehicle import VehicleRecord

_logger = logging.getLogger(__name__)


def _require_object(payload: Any, endpoint: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise FleetApiError(f"{endpoint} returned {type(payload).__name__}, expected an object", endpoint=endpoint)
    return payload


def _validate(model: type[Any], payload: Any, endpoint: str) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise FleetApiError(f"{endpoint} returned an invalid {model.__name__}: {exc}", endpoint=endpoint) from exc


def _parse_vehicle_list(payload: Any, endpoint: str, key: str = "buses") -> list[VehicleRecord]:
    """Parse ``{<key>: [...]}`` into records, skipping entries without a usable id."""
    if isinstance(payload, list):
        items: Any = payload
    else:
        items = _require_object(payload, endpoint).get(key)
    if items is None:
        return []
    if not isinstance(items, list):
        raise FleetApiError(f"{endpoint} field {key!r} is not a list", endpoint=endpoint)

    records: list[VehicleRecord] = []
    for item in items:
        try:
            records.append(VehicleRecord.model_validate(item))
        except ValidationError:
            _logger.warning("Skipping vehicle entry without a valid vehicle_id from %s: %r", endpoint, item)
    return records


async def fetch_overview(transport: QueryTransport) -> FleetOverview:
    payload = await transport.get_json(OVERVIEW_ENDPOINT)
    return _validate(FleetOverview, _require_object(payload, OVERVIEW_ENDPOINT), OVERVIEW_ENDPOINT)


async def fetch_vehicles(transport: QueryTransport) -> list[VehicleRecord]:
    """Full fleet listing; the snapshot source of the store."""
    payload = await transport.get_json(VEHICLES_ENDPOINT)
    return _parse_vehicle_list(payload, VEHICLES_ENDPOINT)


async def fetch_vehicle(transport: QueryTransport, vehicle_id: str) -> VehicleRecord | None:
    """Single vehicle detail, ``None`` when the backend does not know it."""
    endpoint = vehicle_endpoint(vehicle_id)
    payload = await transport.get_json(endpoint, allow_not_found=True)
    if payload is None:
        return None
    data = _require_object(payload, endpoint)
    nested = data.get("bus")
    if isinstance(nested, dict):
        data = nested
    if not data or ("vehicle_id" not in data and "vehicleId" not in data):
        # Some backends answer 200 with an error object for unknown ids.
        _logger.debug("No vehicle record in %s response: %r", endpoint, data)
        return None
    return _validate(VehicleRecord, data, endpoint)


async def fetch_history(
    transport: QueryTransport,
    vehicle_id: str,
    *,
    hours: int = 24,
    limit: int = 100,
) -> VehicleHistory:
    """Readings for the last *hours*, newest first, at most *limit* entries.

    An unknown vehicle yields an empty history rather than an error.
    """
    endpoint = history_endpoint(vehicle_id)
    payload = await transport.get_json(endpoint, {"hours": hours, "limit": limit}, allow_not_found=True)
    if payload is None:
        return VehicleHistory(vehicle_id=vehicle_id, hours=hours)
    if isinstance(payload, list):
        payload = {"history": payload}
    data = dict(_require_object(payload, endpoint))
    data.setdefault("vehicle_id", vehicle_id)
    data.setdefault("hours", hours)
    return _validate(VehicleHistory, data, endpoint)


async def fetch_map_data(transport: QueryTransport) -> list[VehicleRecord]:
    """Vehicles with coordinates, as served for the map."""
    payload = await transport.get_json(MAP_DATA_ENDPOINT)
    return [record for record in _parse_vehicle_list(payload, MAP_DATA_ENDPOINT) if record.has_position]


async def fetch_routes(transport: QueryTransport) -> list[Route]:
    payload = await transport.get_json(ROUTES_ENDPOINT)
    items = payload if isinstance(payload, list) else _require_object(payload, ROUTES_ENDPOINT).get("routes", [])
    if not isinstance(items, list):
        raise FleetApiError(f"{ROUTES_ENDPOINT} field 'routes' is not a list", endpoint=ROUTES_ENDPOINT)
    routes: list[Route] = []
    for item in items:
        try:
            routes.append(Route.model_validate(item))
        except ValidationError:
            _logger.warning("Skipping route entry without a route id: %r", item)
    return routes


async def fetch_statistics(transport: QueryTransport) -> FleetStatistics:
    payload = await transport.get_json(STATISTICS_ENDPOINT)
    return _validate(FleetStatistics, _require_object(payload, STATISTICS_ENDPOINT), STATISTICS_ENDPOINT)


async def fetch_health(transport: QueryTransport) -> HealthStatus:
    payload = await transport.get_json(HEALTH_ENDPOINT)
    if isinstance(payload, str):
        return HealthStatus(status=payload)
    if isinstance(payload, bool):
        return HealthStatus(status="ok" if payload else "down")
    return _validate(HealthStatus, _require_object(payload, HEALTH_ENDPOINT), HEALTH_ENDPOINT)
