#!/usr/bin/env python3
"""Watch the live fleet view in a terminal.

Starts a :class:`fleetsync.FleetSync` against the configured backend and
prints a compact table every time the fleet view changes.

Usage
-----
Set environment variables and run::

    export FLEET_API_URL="http://localhost:5000"
    export FLEET_MQTT_HOST="localhost"
    python scripts/watch_fleet.py

Options::

    --no-push            Poll only, do not connect the push channel
    --status STATUS      Only show online/offline vehicles
    --search TEXT        Filter on vehicle id, route or location
    --vehicle ID         Also poll the detail record of one vehicle
    --history ID         Print the last --hours of history for ID and exit
    --json               Print the view as JSON instead of a table
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetsync import (  # noqa: E402
    ChannelEvent,
    ChannelStatus,
    FleetClient,
    FleetConfig,
    FleetSync,
    PollError,
    SyncEvent,
    VehicleRecord,
)

_LOG = logging.getLogger("watch_fleet")


def _fmt(value: Any, suffix: str = "") -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.1f}{suffix}"
    return f"{value}{suffix}"


def _render_table(records: list[VehicleRecord]) -> str:
    header = f"{'vehicle':<12} {'route':<10} {'status':<8} {'speed':>8} {'pax':>5} {'road':<6} location"
    lines = [header, "-" * len(header)]
    for record in sorted(records, key=lambda r: r.vehicle_id):
        lines.append(
            f"{record.vehicle_id:<12} {_fmt(record.route_id):<10} {_fmt(record.status):<8} "
            f"{_fmt(record.safe_speed):>8} {_fmt(record.passenger_count):>5} "
            f"{_fmt(record.road_condition):<6} {_fmt(record.location_name)}"
        )
    return "\n".join(lines)


def _render_json(records: list[VehicleRecord]) -> str:
    return json.dumps(
        [record.model_dump(mode="json", include=set(record.present_fields())) for record in records],
        indent=2,
        ensure_ascii=False,
    )


async def _print_history(config: FleetConfig, vehicle_id: str, hours: int, limit: int) -> None:
    async with FleetClient(config) as client:
        history = await client.get_history(vehicle_id, hours=hours, limit=limit)
    if not history.history:
        print(f"No history for {vehicle_id} in the last {hours}h")
        return
    for entry in history.history:
        when = entry.timestamp.isoformat() if entry.timestamp else "-"
        print(
            f"{when}  speed={_fmt(entry.safe_speed)}  pax={_fmt(entry.passenger_count)}  "
            f"road={_fmt(entry.road_condition)}  {_fmt(entry.location_name)}"
        )


async def run(args: argparse.Namespace) -> None:
    overrides: dict[str, Any] = {}
    if args.no_push:
        overrides["push_enabled"] = False
    config = FleetConfig.from_env(**overrides)

    if args.history:
        await _print_history(config, args.history, args.hours, args.limit)
        return

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    async with FleetClient(config) as client:
        sync = FleetSync(client)

        def render(_payload: Any = None) -> None:
            records = sync.store.filter(search=args.search, status=args.status)
            counts = sync.store.counts()
            output = _render_json(records) if args.json_mode else _render_table(records)
            print(f"\n{len(sync.store)} vehicles, {counts['online']} online, {counts['offline']} offline")
            print(output)

        def on_disconnected(status: ChannelStatus) -> None:
            if status.terminal:
                _LOG.warning("Push channel down (%s); continuing with polling only", status.reason)

        def on_poll_error(error: PollError) -> None:
            _LOG.warning("%s refresh failed, showing last known data: %s", error.source, error.error)

        sync.dispatcher.subscribe(SyncEvent.FLEET_CHANGED, render)
        sync.dispatcher.subscribe(ChannelEvent.DISCONNECTED, on_disconnected)
        sync.dispatcher.subscribe(SyncEvent.POLL_ERROR, on_poll_error)
        if args.vehicle:
            sync.dispatcher.subscribe(
                SyncEvent.DETAIL,
                lambda detail: print(f"detail {detail.vehicle_id}: {detail.record or 'does not exist'}"),
            )
            sync.watch_vehicle(args.vehicle)

        async with sync:
            if sync.loading:
                print("Loading fleet...")
            await stop.wait()


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch the live fleet view.")
    parser.add_argument("--no-push", action="store_true", help="Poll only, do not connect the push channel")
    parser.add_argument("--status", choices=["online", "offline"], help="Only show vehicles with this status")
    parser.add_argument("--search", help="Filter on vehicle id, route or location")
    parser.add_argument("--vehicle", help="Also poll the detail record of this vehicle")
    parser.add_argument("--history", metavar="ID", help="Print history for ID and exit")
    parser.add_argument("--hours", type=int, default=24, help="History lookback in hours (default: 24)")
    parser.add_argument("--limit", type=int, default=100, help="Maximum history entries (default: 100)")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Print the view as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
