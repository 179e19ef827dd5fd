"""Vehicle history models."""

from __future__ import annotations

from pydantic import Field

from fleetsync.models._base import FleetBaseModel, OptionalFloat, OptionalInt, OptionalStr, Timestamp
from fleetsync.models.vehicle import RoadConditionValue


class HistoryRecord(FleetBaseModel):
    """One immutable telemetry reading, owned by the backend."""

    timestamp: Timestamp = None
    vehicle_id: OptionalStr = None
    location_name: OptionalStr = None
    latitude: OptionalFloat = None
    longitude: OptionalFloat = None
    safe_speed: OptionalFloat = None
    passenger_count: OptionalInt = None
    passenger_load_kg: OptionalFloat = None
    temperature: OptionalFloat = None
    humidity: OptionalFloat = None
    road_condition: RoadConditionValue = None


class VehicleHistory(FleetBaseModel):
    """Readings for one vehicle over a lookback window, newest first as delivered."""

    vehicle_id: str = ""
    hours: int = 24
    history: list[HistoryRecord] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.history)

    @property
    def latest(self) -> HistoryRecord | None:
        return self.history[0] if self.history else None
