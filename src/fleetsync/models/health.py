"""Backend health model."""

from __future__ import annotations

from fleetsync.models._base import FleetBaseModel, OptionalStr

_HEALTHY_STATES = frozenset({"ok", "healthy", "up", "pass", "running"})


class HealthStatus(FleetBaseModel):
    status: str = "unknown"
    message: OptionalStr = None

    @property
    def healthy(self) -> bool:
        return self.status.strip().lower() in _HEALTHY_STATES
