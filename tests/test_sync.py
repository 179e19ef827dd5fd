from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from fleetsync._channel import ChannelEvent, ChannelState
from fleetsync.client import FleetClient
from fleetsync.config import FleetConfig
from fleetsync.exceptions import FleetTransportError
from fleetsync.models.vehicle import VehicleStatus
from fleetsync.sync import FleetSync, PollError, SyncEvent, VehicleDetail


async def _settle(rounds: int = 30) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class _VirtualClock:
    def __init__(self) -> None:
        self._waiters: list[asyncio.Future[None]] = []

    async def sleep(self, _delay: float) -> None:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    async def tick(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        await _settle()


class _Backend:
    """Query transport double; responses and failures can change between polls."""

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {
            "/api/fleet/buses": {
                "buses": [
                    {"vehicle_id": "B1", "status": "online", "safe_speed": 40, "route_id": "R1"},
                    {"vehicle_id": "B3", "status": "offline"},
                ]
            },
            "/api/fleet/map-data": {"buses": [{"vehicle_id": "B1", "latitude": 1.0, "longitude": 2.0}]},
            "/api/fleet/overview": {"total_buses": 2, "online_buses": 1},
            "/api/fleet/statistics": {"speed_distribution": []},
            "/api/fleet/buses/B1": {"vehicle_id": "B1", "safe_speed": 41},
        }
        self.failures: dict[str, Exception] = {}

    async def get_json(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        allow_not_found: bool = False,
    ) -> Any:
        if endpoint in self.failures:
            raise self.failures[endpoint]
        if endpoint not in self.responses:
            if allow_not_found:
                return None
            raise FleetTransportError(f"HTTP 404 from {endpoint}", status_code=404, endpoint=endpoint)
        return self.responses[endpoint]


class _Link:
    def __init__(self) -> None:
        self.closed = False

    async def announce(self, message: Mapping[str, Any]) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


class _Connector:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.attempts = 0
        self.on_frame: Any = None

    async def open(self, on_frame: Any, on_lost: Any) -> _Link:
        self.attempts += 1
        if self.fail:
            raise FleetTransportError("broker unreachable")
        self.on_frame = on_frame
        return _Link()


def _sync(connector: _Connector | None = None, **config: Any) -> tuple[FleetSync, _Backend, _VirtualClock]:
    backend = _Backend()
    clock = _VirtualClock()
    client = FleetClient(FleetConfig(**config), transport=backend)
    sync = FleetSync(client, connector=connector or _Connector(), sleep=clock.sleep)
    return sync, backend, clock


@pytest.mark.asyncio
async def test_start_loads_snapshot_and_connects_push() -> None:
    sync, _, _ = _sync()
    changes: list[list[str]] = []
    sync.dispatcher.subscribe(SyncEvent.FLEET_CHANGED, changes.append)

    assert sync.loading
    await sync.start()
    await _settle()

    assert not sync.loading
    assert sync.channel is not None
    assert sync.channel.state == ChannelState.CONNECTED
    assert sorted(sync.store.vehicle_ids()) == ["B1", "B3"]
    assert sync.store.get("B3").status == VehicleStatus.OFFLINE  # type: ignore[union-attr]
    assert changes == [["B1", "B3"]]
    assert sync.overview is not None and sync.overview.total_buses == 2
    assert sync.statistics is not None
    assert [record.vehicle_id for record in sync.map_vehicles] == ["B1"]
    await sync.stop()


@pytest.mark.asyncio
async def test_push_update_merges_into_store() -> None:
    connector = _Connector()
    sync, _, _ = _sync(connector)
    changes: list[list[str]] = []

    async with sync:
        await _settle()
        sync.dispatcher.subscribe(SyncEvent.FLEET_CHANGED, changes.append)
        connector.on_frame({"vehicleId": "B1", "safeSpeed": 55})
        connector.on_frame({"vehicleId": "B2", "passengerCount": 12})

    b1 = sync.store.get("B1")
    b2 = sync.store.get("B2")
    assert b1 is not None and b1.safe_speed == 55 and b1.route_id == "R1"
    assert b2 is not None and b2.passenger_count == 12 and b2.safe_speed is None
    assert b2.status == VehicleStatus.ONLINE
    assert changes == [["B1"], ["B2"]]


@pytest.mark.asyncio
async def test_push_update_merges_into_map_data() -> None:
    connector = _Connector()
    sync, _, _ = _sync(connector)
    published: list[list[Any]] = []

    async with sync:
        await _settle()
        sync.dispatcher.subscribe(SyncEvent.MAP_DATA, published.append)
        connector.on_frame({"vehicleId": "B1", "latitude": 9.0, "safeSpeed": 60})
        connector.on_frame({"vehicleId": "B2", "latitude": 3.0, "longitude": 4.0})
        await _settle()

        assert [record.vehicle_id for record in sync.map_vehicles] == ["B1", "B2"]
        b1, b2 = sync.map_vehicles
        assert (b1.latitude, b1.longitude, b1.safe_speed) == (9.0, 2.0, 60)
        assert b1.status == VehicleStatus.ONLINE
        assert (b2.latitude, b2.longitude) == (3.0, 4.0)
        assert len(published) == 2
        assert published[-1] == sync.map_vehicles


@pytest.mark.asyncio
async def test_malformed_push_update_is_dropped() -> None:
    connector = _Connector()
    sync, _, _ = _sync(connector)

    async with sync:
        await _settle()
        before = sync.store.view()
        connector.on_frame({"safeSpeed": 99})

        assert sync.store.view() == before


@pytest.mark.asyncio
async def test_failed_snapshot_keeps_last_good_view() -> None:
    sync, backend, clock = _sync()
    errors: list[PollError] = []
    sync.dispatcher.subscribe(SyncEvent.POLL_ERROR, errors.append)

    async with sync:
        await _settle()
        before = sync.store.view()
        backend.failures["/api/fleet/buses"] = FleetTransportError("HTTP 503", status_code=503)
        await clock.tick()

        assert sync.store.view() == before
        assert [error.source for error in errors] == ["fleet"]
        assert "fleet" in sync.last_errors

        del backend.failures["/api/fleet/buses"]
        await clock.tick()

        assert "fleet" not in sync.last_errors


@pytest.mark.asyncio
async def test_push_failure_leaves_polling_running() -> None:
    sync, _, _ = _sync(_Connector(fail=True), reconnect_attempts=1)
    terminal: list[Any] = []
    sync.dispatcher.subscribe(ChannelEvent.DISCONNECTED, terminal.append)

    async with sync:
        await _settle()

        assert sync.channel is not None
        assert sync.channel.state == ChannelState.DISCONNECTED
        assert len(terminal) == 1 and terminal[0].terminal
        assert sync.fleet_poller.running
        assert len(sync.store) == 2


@pytest.mark.asyncio
async def test_push_disabled_runs_without_channel() -> None:
    backend = _Backend()
    client = FleetClient(FleetConfig(push_enabled=False), transport=backend)
    sync = FleetSync(client, sleep=_VirtualClock().sleep)

    async with sync:
        await _settle()
        assert sync.channel is None
        assert len(sync.store) == 2


@pytest.mark.asyncio
async def test_no_store_changes_after_stop() -> None:
    connector = _Connector()
    sync, _, clock = _sync(connector)
    await sync.start()
    await _settle()
    before = sync.store.view()

    await sync.stop()
    connector.on_frame({"vehicle_id": "B1", "safe_speed": 1})
    await clock.tick()

    assert sync.store.view() == before
    assert not any(poller.running for poller in sync.pollers)


@pytest.mark.asyncio
async def test_watch_vehicle_polls_detail() -> None:
    sync, _, _ = _sync()
    details: list[VehicleDetail] = []
    sync.dispatcher.subscribe(SyncEvent.DETAIL, details.append)

    async with sync:
        sync.watch_vehicle("B1")
        sync.watch_vehicle("B404")
        await _settle()

        assert sync.details["B1"] is not None
        assert sync.details["B1"].safe_speed == 41  # type: ignore[union-attr]
        assert sync.details["B404"] is None
        assert {detail.vehicle_id for detail in details} == {"B1", "B404"}
        # Detail polling never writes into the fleet view.
        assert sync.store.get("B1").safe_speed == 40  # type: ignore[union-attr]

        sync.unwatch_vehicle("B404")
        assert "B404" not in sync.details
