"""Client configuration for fleetsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from fleetsync._constants import BASE_URL, DEFAULT_CONTROL_TOPIC, DEFAULT_UPDATE_TOPIC
from fleetsync.exceptions import FleetConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_optional_float(value: str | None) -> float | None:
    if value is None:
        return None
    stripped = value.strip().lower()
    if stripped in {"", "none", "never", "0"}:
        return None
    return float(stripped)


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Fleet backend base URL used for queries.
    query_timeout : float
        Total timeout in seconds for a single query.
    mqtt_host : str
        Push broker host name.
    mqtt_port : int
        Push broker port.
    mqtt_tls : bool
        Wrap the push connection in TLS.
    mqtt_username : str or None
        Optional broker user name.
    mqtt_password : str or None
        Optional broker password.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_client_id : str or None
        Broker client id. A random ``fleetsync-<hex>`` id is used when unset.
    update_topic : str
        Topic the backend publishes partial vehicle updates on.
    control_topic : str
        Topic the subscription intent is announced on.
    connect_timeout : float
        Seconds to wait for the broker to acknowledge a connection.
    reconnect_attempts : int
        Connection attempts before the channel gives up and reports a
        terminal ``disconnected`` state.
    reconnect_delay : float
        Seconds between two connection attempts.
    fleet_interval : float
        Fleet listing poll interval in seconds.
    map_interval : float
        Map data poll interval in seconds.
    overview_interval : float
        Fleet overview poll interval in seconds.
    statistics_interval : float
        Statistics poll interval in seconds.
    detail_interval : float
        Single vehicle detail poll interval in seconds.
    evict_after : float or None
        Remove a vehicle from the view once no snapshot or update has
        listed it for this many seconds. ``None`` keeps it forever
        (marked offline).
    push_enabled : bool
        Connect the push channel when synchronization starts.
    """

    base_url: str = BASE_URL
    query_timeout: float = 10.0
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_tls: bool = False
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_keepalive: int = 60
    mqtt_client_id: str | None = None
    update_topic: str = DEFAULT_UPDATE_TOPIC
    control_topic: str = DEFAULT_CONTROL_TOPIC
    connect_timeout: float = 10.0
    reconnect_attempts: int = 5
    reconnect_delay: float = 1.0
    fleet_interval: float = 5.0
    map_interval: float = 5.0
    overview_interval: float = 10.0
    statistics_interval: float = 30.0
    detail_interval: float = 5.0
    evict_after: float | None = None
    push_enabled: bool = True

    def validate(self) -> FleetConfig:
        """Check value ranges, returning ``self`` so calls can be chained."""
        for name in (
            "query_timeout",
            "connect_timeout",
            "fleet_interval",
            "map_interval",
            "overview_interval",
            "statistics_interval",
            "detail_interval",
        ):
            if getattr(self, name) <= 0:
                raise FleetConfigError(f"{name} must be positive, got {getattr(self, name)!r}")
        if self.reconnect_attempts < 1:
            raise FleetConfigError(f"reconnect_attempts must be at least 1, got {self.reconnect_attempts!r}")
        if self.reconnect_delay < 0:
            raise FleetConfigError(f"reconnect_delay must not be negative, got {self.reconnect_delay!r}")
        if self.evict_after is not None and self.evict_after <= 0:
            raise FleetConfigError(f"evict_after must be positive or None, got {self.evict_after!r}")
        if not self.base_url:
            raise FleetConfigError("base_url must not be empty")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from environment variables.

        Reads ``FLEET_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FleetConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "FLEET_API_URL": "base_url",
            "FLEET_MQTT_HOST": "mqtt_host",
            "FLEET_MQTT_USERNAME": "mqtt_username",
            "FLEET_MQTT_PASSWORD": "mqtt_password",
            "FLEET_MQTT_CLIENT_ID": "mqtt_client_id",
            "FLEET_UPDATE_TOPIC": "update_topic",
            "FLEET_CONTROL_TOPIC": "control_topic",
        }
        _ENV_INT_MAP = {
            "FLEET_MQTT_PORT": "mqtt_port",
            "FLEET_MQTT_KEEPALIVE": "mqtt_keepalive",
            "FLEET_RECONNECT_ATTEMPTS": "reconnect_attempts",
        }
        _ENV_FLOAT_MAP = {
            "FLEET_QUERY_TIMEOUT": "query_timeout",
            "FLEET_CONNECT_TIMEOUT": "connect_timeout",
            "FLEET_RECONNECT_DELAY": "reconnect_delay",
            "FLEET_FLEET_INTERVAL": "fleet_interval",
            "FLEET_MAP_INTERVAL": "map_interval",
            "FLEET_OVERVIEW_INTERVAL": "overview_interval",
            "FLEET_STATISTICS_INTERVAL": "statistics_interval",
            "FLEET_DETAIL_INTERVAL": "detail_interval",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = float(val)
            evict_env = env.get("FLEET_EVICT_AFTER")
            if evict_env is not None:
                config_kwargs["evict_after"] = _env_optional_float(evict_env)
        except ValueError as exc:
            raise FleetConfigError(f"Invalid numeric environment value: {exc}") from exc

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("FLEET_MQTT_TLS"), False)
        if "push_enabled" not in overrides:
            config_kwargs["push_enabled"] = _env_bool(env.get("FLEET_PUSH_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs).validate()
