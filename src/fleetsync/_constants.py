"""Internal constants shared across the library."""

from urllib.parse import quote

BASE_URL = "http://localhost:5000"
USER_AGENT = "fleetsync/1"

# Query endpoints of the fleet backend.
OVERVIEW_ENDPOINT = "/api/fleet/overview"
VEHICLES_ENDPOINT = "/api/fleet/buses"
MAP_DATA_ENDPOINT = "/api/fleet/map-data"
ROUTES_ENDPOINT = "/api/fleet/routes"
STATISTICS_ENDPOINT = "/api/fleet/statistics"
HEALTH_ENDPOINT = "/health"

# Push channel.
SUBSCRIBE_EVENT = "subscribe_updates"
UPDATE_EVENT = "bus_update"
DEFAULT_UPDATE_TOPIC = "fleet/bus_update"
DEFAULT_CONTROL_TOPIC = "fleet/control"


def vehicle_endpoint(vehicle_id: str) -> str:
    return f"{VEHICLES_ENDPOINT}/{quote(vehicle_id, safe='')}"


def history_endpoint(vehicle_id: str) -> str:
    return f"{VEHICLES_ENDPOINT}/{quote(vehicle_id, safe='')}/history"
