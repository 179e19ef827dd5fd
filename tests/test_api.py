from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import aiohttp
import pytest

from fleetsync._transport import HttpTransport
from fleetsync.client import FleetClient
from fleetsync.config import FleetConfig
from fleetsync.exceptions import FleetApiError, FleetError, FleetTransportError


class _FakeTransport:
    """Canned JSON bodies keyed by endpoint; unknown endpoints behave like a 404."""

    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    async def get_json(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        allow_not_found: bool = False,
    ) -> Any:
        self.calls.append((endpoint, dict(params) if params else None))
        if endpoint not in self.responses:
            if allow_not_found:
                return None
            raise FleetTransportError(f"HTTP 404 from {endpoint}", status_code=404, endpoint=endpoint)
        return self.responses[endpoint]


def _client(responses: dict[str, Any]) -> tuple[FleetClient, _FakeTransport]:
    transport = _FakeTransport(responses)
    return FleetClient(FleetConfig(), transport=transport), transport


@pytest.mark.asyncio
async def test_get_vehicles_skips_entries_without_id() -> None:
    client, _ = _client(
        {
            "/api/fleet/buses": {
                "buses": [
                    {"vehicle_id": "BUS-001", "status": "online", "safe_speed": 40},
                    {"route_id": "R1"},
                    {"vehicleId": "BUS-002", "status": "offline"},
                ]
            }
        }
    )

    records = await client.get_vehicles()

    assert [record.vehicle_id for record in records] == ["BUS-001", "BUS-002"]


@pytest.mark.asyncio
async def test_get_vehicle_unknown_id_is_none() -> None:
    client, transport = _client({})

    assert await client.get_vehicle("BUS-404") is None
    assert transport.calls == [("/api/fleet/buses/BUS-404", None)]


@pytest.mark.asyncio
async def test_get_vehicle_unwraps_and_quotes_id() -> None:
    client, _ = _client({"/api/fleet/buses/BUS%2F7": {"bus": {"vehicle_id": "BUS/7", "safe_speed": 12}}})

    record = await client.get_vehicle("BUS/7")

    assert record is not None
    assert record.vehicle_id == "BUS/7"
    assert record.safe_speed == 12


@pytest.mark.asyncio
async def test_get_vehicle_error_object_is_none() -> None:
    client, _ = _client({"/api/fleet/buses/BUS-9": {"error": "Bus not found"}})

    assert await client.get_vehicle("BUS-9") is None


@pytest.mark.asyncio
async def test_get_history_sends_window_and_fills_defaults() -> None:
    client, transport = _client(
        {"/api/fleet/buses/BUS-1/history": [{"timestamp": "2026-01-02T03:00:00Z", "safe_speed": 30}]}
    )

    history = await client.get_history("BUS-1", hours=6, limit=10)

    assert transport.calls == [("/api/fleet/buses/BUS-1/history", {"hours": 6, "limit": 10})]
    assert history.vehicle_id == "BUS-1"
    assert history.hours == 6
    assert len(history) == 1


@pytest.mark.asyncio
async def test_get_history_for_unknown_vehicle_is_empty() -> None:
    client, _ = _client({})

    history = await client.get_history("BUS-404")

    assert history.vehicle_id == "BUS-404"
    assert history.history == []


@pytest.mark.asyncio
async def test_map_data_only_keeps_positioned_vehicles() -> None:
    client, _ = _client(
        {
            "/api/fleet/map-data": {
                "buses": [
                    {"vehicle_id": "B1", "latitude": 51.5, "longitude": -0.1},
                    {"vehicle_id": "B2", "latitude": None, "longitude": -0.1},
                ]
            }
        }
    )

    assert [record.vehicle_id for record in await client.get_map_data()] == ["B1"]


@pytest.mark.asyncio
async def test_overview_statistics_routes_and_health() -> None:
    client, _ = _client(
        {
            "/api/fleet/overview": {"total_buses": 3, "online_buses": 2, "road_conditions": {"dry": 3}},
            "/api/fleet/statistics": {"speed_distribution": [{"range": "0-20", "count": 1}]},
            "/api/fleet/routes": {"routes": [{"route_id": "R1", "name": "Loop"}, {"name": "no id"}]},
            "/health": {"status": "ok"},
        }
    )

    overview = await client.get_overview()
    statistics = await client.get_statistics()
    routes = await client.get_routes()
    health = await client.health_check()

    assert overview.offline_buses == 1
    assert statistics.speed_distribution[0].range == "0-20"
    assert [route.route_id for route in routes] == ["R1"]
    assert health.healthy


@pytest.mark.asyncio
async def test_unexpected_shape_raises_api_error() -> None:
    client, _ = _client({"/api/fleet/overview": ["not", "an", "object"]})

    with pytest.raises(FleetApiError) as excinfo:
        await client.get_overview()
    assert excinfo.value.endpoint == "/api/fleet/overview"


@pytest.mark.asyncio
async def test_query_failure_propagates() -> None:
    client, _ = _client({})

    with pytest.raises(FleetTransportError):
        await client.get_vehicles()


@pytest.mark.asyncio
async def test_client_requires_context_without_transport() -> None:
    client = FleetClient(FleetConfig())

    with pytest.raises(FleetError):
        await client.get_vehicles()


class _FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeSession:
    def __init__(self, status: int = 200, text: str = "", error: Exception | None = None) -> None:
        self.status = status
        self.text = text
        self.error = error
        self.requests: list[tuple[str, Any]] = []

    def get(self, url: str, *, params: Any = None, headers: Any = None, timeout: Any = None) -> _FakeResponse:
        self.requests.append((url, params))
        if self.error is not None:
            raise self.error
        return _FakeResponse(self.status, self.text)


def _http(session: _FakeSession) -> HttpTransport:
    return HttpTransport(FleetConfig(base_url="http://fleet.test/"), session)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_http_transport_decodes_json() -> None:
    session = _FakeSession(text='{"buses": []}')

    assert await _http(session).get_json("/api/fleet/buses") == {"buses": []}
    assert session.requests == [("http://fleet.test/api/fleet/buses", None)]


@pytest.mark.asyncio
async def test_http_transport_not_found_handling() -> None:
    session = _FakeSession(status=404, text="missing")

    assert await _http(session).get_json("/api/fleet/buses/X", allow_not_found=True) is None
    with pytest.raises(FleetTransportError) as excinfo:
        await _http(session).get_json("/api/fleet/buses/X")
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("session", "message"),
    [
        (_FakeSession(status=500, text="boom"), "HTTP 500"),
        (_FakeSession(text="<html>"), "Invalid JSON"),
        (_FakeSession(text="  "), "Empty response"),
        (_FakeSession(error=asyncio.TimeoutError()), "timed out"),
        (_FakeSession(error=aiohttp.ClientConnectionError("refused")), "failed"),
    ],
)
async def test_http_transport_failures(session: _FakeSession, message: str) -> None:
    with pytest.raises(FleetTransportError, match=message):
        await _http(session).get_json("/api/fleet/overview")
