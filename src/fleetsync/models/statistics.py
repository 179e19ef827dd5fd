"""Fleet statistics model."""

from __future__ import annotations

from pydantic import Field

from fleetsync.models._base import FleetBaseModel


class SpeedBucket(FleetBaseModel):
    range: str
    count: int = 0


class FleetStatistics(FleetBaseModel):
    speed_distribution: list[SpeedBucket] = Field(default_factory=list)
