"""Custom exception hierarchy for fleetsync."""

from __future__ import annotations

from typing import Any


class FleetError(Exception):
    """Base exception for all fleetsync errors."""


class FleetConfigError(FleetError):
    """Invalid or missing configuration."""


class FleetTransportError(FleetError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class FleetChannelError(FleetError):
    """A push link could not be opened or was refused by the broker.

    Raised by connectors while the channel walks its reconnection policy.
    :meth:`fleetsync._channel.FleetChannel.connect` never lets it escape;
    exhausting the policy is reported as a terminal ``disconnected`` event.
    """


class FleetMalformedFragmentError(FleetError):
    """A push update could not be merged because it carries no vehicle id."""

    def __init__(self, message: str, *, payload: Any = None) -> None:
        self.payload = payload
        super().__init__(message)


class FleetApiError(FleetError):
    """The backend answered, but with a payload of an unexpected shape."""

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)
