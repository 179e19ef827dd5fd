"""fleetsync - Async Python client keeping a live view of a bus fleet."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetsync")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetsync._channel import ChannelEvent, ChannelState, ChannelStatus, FleetChannel
from fleetsync._mqtt import MqttPushConnector
from fleetsync.client import FleetClient
from fleetsync.config import FleetConfig
from fleetsync.dispatcher import EventDispatcher
from fleetsync.exceptions import (
    FleetApiError,
    FleetChannelError,
    FleetConfigError,
    FleetError,
    FleetMalformedFragmentError,
    FleetTransportError,
)
from fleetsync.models import (
    FleetOverview,
    FleetStatistics,
    FleetView,
    HealthStatus,
    HistoryRecord,
    RoadCondition,
    RoadConditionCounts,
    Route,
    SpeedBucket,
    VehicleFragment,
    VehicleHistory,
    VehicleRecord,
    VehicleStatus,
)
from fleetsync.poller import SnapshotPoller
from fleetsync.state.store import FleetStore
from fleetsync.sync import FleetSync, PollError, SyncEvent, VehicleDetail

__all__ = [
    "__version__",
    "ChannelEvent",
    "ChannelState",
    "ChannelStatus",
    "EventDispatcher",
    "FleetApiError",
    "FleetChannel",
    "FleetChannelError",
    "FleetClient",
    "FleetConfig",
    "FleetConfigError",
    "FleetError",
    "FleetMalformedFragmentError",
    "FleetOverview",
    "FleetStatistics",
    "FleetStore",
    "FleetSync",
    "FleetTransportError",
    "FleetView",
    "HealthStatus",
    "HistoryRecord",
    "MqttPushConnector",
    "PollError",
    "RoadCondition",
    "RoadConditionCounts",
    "Route",
    "SnapshotPoller",
    "SpeedBucket",
    "SyncEvent",
    "VehicleDetail",
    "VehicleFragment",
    "VehicleHistory",
    "VehicleRecord",
    "VehicleStatus",
]
