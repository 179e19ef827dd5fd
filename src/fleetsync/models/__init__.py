"""Data models for fleet backend payloads."""

from fleetsync.models._base import FleetBaseModel
from fleetsync.models.health import HealthStatus
from fleetsync.models.history import HistoryRecord, VehicleHistory
from fleetsync.models.overview import FleetOverview, RoadConditionCounts
from fleetsync.models.route import Route
from fleetsync.models.statistics import FleetStatistics, SpeedBucket
from fleetsync.models.vehicle import RoadCondition, VehicleFragment, VehicleRecord, VehicleStatus

FleetView = dict[str, VehicleRecord]
"""Vehicle id -> record. Order carries no meaning."""

__all__ = [
    "FleetBaseModel",
    "FleetOverview",
    "FleetStatistics",
    "FleetView",
    "HealthStatus",
    "HistoryRecord",
    "RoadCondition",
    "RoadConditionCounts",
    "Route",
    "SpeedBucket",
    "VehicleFragment",
    "VehicleHistory",
    "VehicleRecord",
    "VehicleStatus",
]
