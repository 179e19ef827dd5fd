"""Fleet overview model."""

from __future__ import annotations

from pydantic import Field

from fleetsync.models._base import FleetBaseModel, OptionalFloat


class RoadConditionCounts(FleetBaseModel):
    dry: int = 0
    wet: int = 0


class FleetOverview(FleetBaseModel):
    """Aggregate numbers computed by the backend.

    The client only displays these; it never recomputes them from the view.
    """

    total_buses: int = 0
    online_buses: int = 0
    average_speed: OptionalFloat = None
    total_passengers: int = 0
    road_conditions: RoadConditionCounts = Field(default_factory=RoadConditionCounts)

    @property
    def offline_buses(self) -> int:
        return max(self.total_buses - self.online_buses, 0)
