"""Vehicle record models."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any

from pydantic import BeforeValidator, field_validator

from fleetsync.models._base import FleetBaseModel, OptionalFloat, OptionalInt, OptionalStr, Timestamp


class VehicleStatus(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"

    @classmethod
    def _missing_(cls, value: object) -> VehicleStatus | None:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class RoadCondition(StrEnum):
    DRY = "Dry"
    WET = "Wet"

    @classmethod
    def _missing_(cls, value: object) -> RoadCondition | None:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        return None


def coerce_road_condition(value: Any) -> RoadCondition | str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return RoadCondition(text)
    except ValueError:
        return text


RoadConditionValue = Annotated[RoadCondition | str | None, BeforeValidator(coerce_road_condition)]


class VehicleRecord(FleetBaseModel):
    """Latest known state of one bus.

    Only ``vehicle_id`` is required. Every other field stays unset until a
    snapshot or a push update reports it; ``None`` means "never reported",
    not zero.

    Parameters
    ----------
    vehicle_id : str
        Stable unique identifier, primary key of the fleet view.
    route_id, location_name, direction : str or None
        Descriptive fields.
    latitude, longitude : float or None
        Last reported position in degrees.
    safe_speed : float or None
        Backend computed safe speed in km/h.
    passenger_count : int or None
        Passengers on board.
    passenger_load_kg : float or None
        Estimated passenger load.
    temperature, humidity : float or None
        Cabin/ambient readings.
    road_condition : RoadCondition, str or None
        ``Dry``/``Wet``; unrecognised values are kept verbatim.
    status : VehicleStatus or None
        ``online``/``offline``. Derived by the store, only some sources
        transmit it.
    last_update : datetime or None
        Backend reported time of the latest reading, as delivered.
    """

    vehicle_id: str
    route_id: OptionalStr = None
    location_name: OptionalStr = None
    direction: OptionalStr = None
    latitude: OptionalFloat = None
    longitude: OptionalFloat = None
    safe_speed: OptionalFloat = None
    passenger_count: OptionalInt = None
    passenger_load_kg: OptionalFloat = None
    temperature: OptionalFloat = None
    humidity: OptionalFloat = None
    road_condition: RoadConditionValue = None
    status: VehicleStatus | None = None
    last_update: Timestamp = None

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _normalize_vehicle_id(cls, value: Any) -> str:
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise ValueError("vehicle_id must be a string")
        vehicle_id = str(value).strip()
        if not vehicle_id:
            raise ValueError("vehicle_id must be non-empty")
        return vehicle_id

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> VehicleStatus | None:
        if value is None:
            return None
        if isinstance(value, bool):
            return VehicleStatus.ONLINE if value else VehicleStatus.OFFLINE
        try:
            return VehicleStatus(str(value))
        except ValueError:
            return None

    @property
    def is_online(self) -> bool:
        return self.status == VehicleStatus.ONLINE

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def patch(self) -> dict[str, Any]:
        """Fields this record carries, keyed by field name."""
        return self.model_dump(include=set(self.present_fields()))


class VehicleFragment(VehicleRecord):
    """A partial vehicle record as delivered by one push update.

    Same fields as :class:`VehicleRecord`; what matters is which of them
    were set. :meth:`patch` returns exactly those, which is what the store
    merges.
    """
