"""Route model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from fleetsync.models._base import FleetBaseModel, OptionalInt, OptionalStr


class Route(FleetBaseModel):
    """A route known to the backend. Unknown keys are ignored."""

    route_id: str = Field(validation_alias=AliasChoices("route_id", "routeId", "id"))
    name: OptionalStr = None
    bus_count: OptionalInt = None

    @field_validator("route_id", mode="before")
    @classmethod
    def _coerce_route_id(cls, value: Any) -> Any:
        return str(value).strip() if isinstance(value, int) else value
