"""Base model for fleet backend payloads.

Every fleet model inherits from :class:`FleetBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase keys are accepted next to the
  backend's snake_case keys.
* A ``model_validator(mode="before")`` that strips placeholder values
  (``None``, ``""``, ``"--"``, NaN) so the field stays *unset* rather than
  being reported as a value.

The unset/set distinction matters: a record only carries the fields that
were actually reported, see :meth:`FleetBaseModel.present_fields`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from fleetsync.ingestion.normalize import is_meaningful, parse_timestamp, safe_float, safe_int, safe_str


OptionalFloat = Annotated[float | None, BeforeValidator(safe_float)]
OptionalInt = Annotated[int | None, BeforeValidator(safe_int)]
OptionalStr = Annotated[str | None, BeforeValidator(safe_str)]
Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces epoch seconds/ms and ISO strings to UTC datetimes."""


class FleetBaseModel(BaseModel):
    """Base for fleet backend models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _strip_placeholders(cls, values: Any) -> Any:
        """Drop placeholder values so the field default is used instead."""
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if is_meaningful(value)}

    def present_fields(self) -> frozenset[str]:
        """Names of the fields this instance actually carries a value for."""
        return frozenset(name for name in self.model_fields_set if getattr(self, name) is not None)
