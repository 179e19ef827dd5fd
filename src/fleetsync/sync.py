"""Fleet synchronization context.

Wires the query client, the push channel, the pollers and the store
together. It is constructed explicitly and passed around by reference; its
lifetime is whatever the owning application makes it::

    async with FleetClient(config) as client, FleetSync(client) as sync:
        ...
        online = sync.store.filter(status="online")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from fleetsync._channel import ChannelEvent, FleetChannel, PushConnector, SleepFn
from fleetsync._mqtt import MqttPushConnector
from fleetsync.client import FleetClient
from fleetsync.config import FleetConfig
from fleetsync.dispatcher import EventDispatcher, Unsubscribe
from fleetsync.exceptions import FleetMalformedFragmentError
from fleetsync.models.overview import FleetOverview
from fleetsync.models.statistics import FleetStatistics
from fleetsync.models.vehicle import VehicleRecord
from fleetsync.poller import SnapshotPoller
from fleetsync.state.store import FleetStore, merge_fragment

_logger = logging.getLogger(__name__)


class SyncEvent(StrEnum):
    FLEET_CHANGED = "fleet_changed"
    OVERVIEW = "overview"
    STATISTICS = "statistics"
    MAP_DATA = "map_data"
    DETAIL = "detail"
    POLL_ERROR = "poll_error"


@dataclass(frozen=True)
class PollError:
    """Payload of ``poll_error`` events."""

    source: str
    error: Exception


@dataclass(frozen=True)
class VehicleDetail:
    """Payload of ``detail`` events; ``record`` is ``None`` for unknown vehicles."""

    vehicle_id: str
    record: VehicleRecord | None


class FleetSync:
    """Keeps a :class:`FleetStore` in sync with the backend.

    * the fleet listing poller feeds :meth:`FleetStore.apply_snapshot`;
    * push ``update`` events feed :meth:`FleetStore.apply_partial_update`
      and are merged into ``map_vehicles`` the same way;
    * overview, statistics and map data are polled and kept as the latest
      good value, never cleared by a failed poll.
    """

    def __init__(
        self,
        client: FleetClient,
        *,
        config: FleetConfig | None = None,
        connector: PushConnector | None = None,
        dispatcher: EventDispatcher | None = None,
        store: FleetStore | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client = client
        self._config = config or client.config
        self._sleep = sleep
        self.dispatcher = dispatcher or EventDispatcher()
        self.store = store or FleetStore(evict_after=self._config.evict_after)

        if connector is None and self._config.push_enabled:
            connector = MqttPushConnector(self._config)
        self.channel: FleetChannel | None = None
        if connector is not None:
            self.channel = FleetChannel(
                connector,
                self.dispatcher,
                attempts=self._config.reconnect_attempts,
                delay=self._config.reconnect_delay,
                sleep=sleep,
            )

        self.overview: FleetOverview | None = None
        self.statistics: FleetStatistics | None = None
        self.map_vehicles: list[VehicleRecord] = []
        self.details: dict[str, VehicleRecord | None] = {}
        self.last_errors: dict[str, Exception] = {}

        self.fleet_poller: SnapshotPoller[list[VehicleRecord]] = self._poller(
            "fleet", client.get_vehicles, self._config.fleet_interval, self._on_fleet
        )
        self.map_poller: SnapshotPoller[list[VehicleRecord]] = self._poller(
            "map_data", client.get_map_data, self._config.map_interval, self._on_map_data
        )
        self.overview_poller: SnapshotPoller[FleetOverview] = self._poller(
            "overview", client.get_overview, self._config.overview_interval, self._on_overview
        )
        self.statistics_poller: SnapshotPoller[FleetStatistics] = self._poller(
            "statistics", client.get_statistics, self._config.statistics_interval, self._on_statistics
        )
        self._detail_pollers: dict[str, SnapshotPoller[VehicleRecord | None]] = {}
        self._unsubscribes: list[Unsubscribe] = []
        self._started = False

    def _poller(
        self,
        name: str,
        query: Callable[[], Awaitable[Any]],
        interval: float,
        on_result: Callable[[Any], None],
    ) -> SnapshotPoller[Any]:
        def on_success(result: Any) -> None:
            self.last_errors.pop(name, None)
            on_result(result)

        return SnapshotPoller(
            query,
            interval,
            on_result=on_success,
            on_error=lambda exc: self._on_poll_error(name, exc),
            sleep=self._sleep,
            name=name,
        )

    @property
    def pollers(self) -> list[SnapshotPoller[Any]]:
        return [
            self.fleet_poller,
            self.map_poller,
            self.overview_poller,
            self.statistics_poller,
            *self._detail_pollers.values(),
        ]

    @property
    def loading(self) -> bool:
        """True until the first fleet listing arrived."""
        return not self.store.has_snapshot

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetSync:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        """Start polling and connect the push channel (if configured)."""
        if self._started:
            return
        self._started = True
        self._unsubscribes.append(self.dispatcher.subscribe(ChannelEvent.UPDATE, self._on_update))
        for poller in self.pollers:
            poller.start()
        if self.channel is not None:
            await self.channel.connect()

    async def stop(self) -> None:
        """Stop every poller and tear down the push channel."""
        if not self._started:
            return
        self._started = False
        for poller in self.pollers:
            poller.stop()
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()
        if self.channel is not None:
            await self.channel.disconnect()

    def watch_vehicle(self, vehicle_id: str) -> SnapshotPoller[VehicleRecord | None]:
        """Poll one vehicle's detail record into ``details[vehicle_id]``."""
        existing = self._detail_pollers.get(vehicle_id)
        if existing is not None:
            return existing

        async def query() -> VehicleRecord | None:
            return await self._client.get_vehicle(vehicle_id)

        def on_result(record: VehicleRecord | None) -> None:
            self.details[vehicle_id] = record
            self.dispatcher.publish(SyncEvent.DETAIL, VehicleDetail(vehicle_id=vehicle_id, record=record))

        poller = self._poller(f"detail:{vehicle_id}", query, self._config.detail_interval, on_result)
        self._detail_pollers[vehicle_id] = poller
        if self._started:
            poller.start()
        return poller

    def unwatch_vehicle(self, vehicle_id: str) -> None:
        poller = self._detail_pollers.pop(vehicle_id, None)
        if poller is not None:
            poller.stop()
        self.details.pop(vehicle_id, None)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_update(self, fragment: Any) -> None:
        try:
            record = self.store.apply_partial_update(fragment)
        except FleetMalformedFragmentError as exc:
            _logger.warning("Dropping push update: %s", exc)
            return
        self.dispatcher.publish(SyncEvent.FLEET_CHANGED, [record.vehicle_id])
        self._merge_into_map(fragment)

    def _merge_into_map(self, fragment: Any) -> None:
        # Same entry updated in place, unknown vehicles appended.
        by_id = {entry.vehicle_id: entry for entry in self.map_vehicles}
        entry = merge_fragment(by_id, fragment)
        if entry.vehicle_id in by_id:
            records = [entry if item.vehicle_id == entry.vehicle_id else item for item in self.map_vehicles]
        else:
            records = [*self.map_vehicles, entry]
        self.map_vehicles = records
        self.dispatcher.publish(SyncEvent.MAP_DATA, records)

    def _on_fleet(self, records: list[VehicleRecord]) -> None:
        self.store.apply_snapshot(records)
        self.dispatcher.publish(SyncEvent.FLEET_CHANGED, self.store.vehicle_ids())

    def _on_map_data(self, records: list[VehicleRecord]) -> None:
        self.map_vehicles = records
        self.dispatcher.publish(SyncEvent.MAP_DATA, records)

    def _on_overview(self, overview: FleetOverview) -> None:
        self.overview = overview
        self.dispatcher.publish(SyncEvent.OVERVIEW, overview)

    def _on_statistics(self, statistics: FleetStatistics) -> None:
        self.statistics = statistics
        self.dispatcher.publish(SyncEvent.STATISTICS, statistics)

    def _on_poll_error(self, source: str, error: Exception) -> None:
        self.last_errors[source] = error
        self.dispatcher.publish(SyncEvent.POLL_ERROR, PollError(source=source, error=error))
