"""Shared constants for the dish exporter."""

from __future__ import annotations

from typing import Final

DEFAULT_BIND_ADDRESS: Final[str] = "0.0.0.0:9184"
DEFAULT_STARLINK_ADDRESS: Final[str] = "http://192.168.100.1:9200"
DEFAULT_DEVICE_TIMEOUT: Final[float] = 10.0
DEFAULT_DEVICE_PROTO_MODULE: Final[str] = "spacex.api.device.device_pb2"
DEFAULT_REGISTRY_PREFIX: Final[str] = "starlink"
DEFAULT_CONTEXT_ENABLED: Final[bool] = False
DEFAULT_IDENTITY_ATTEMPTS: Final[int] = 5
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_LOG_SYSLOG: Final[bool] = False

DEVICE_HANDLE_METHOD: Final[str] = "/SpaceX.API.Device.Device/Handle"

METRIC_NAMESPACE: Final[str] = "dish"
WEDGE_COUNT: Final[int] = 12
WEDGE_LABEL: Final[str] = "wedge"

IDENTITY_MIN_BACKOFF: Final[float] = 1.0
IDENTITY_MAX_BACKOFF: Final[float] = 30.0

SUPERVISOR_MIN_BACKOFF: Final[float] = 0.5
SUPERVISOR_MAX_BACKOFF: Final[float] = 30.0
SUPERVISOR_MAX_RESTARTS: Final[int] = 5
SUPERVISOR_HEALTHY_INTERVAL: Final[float] = 60.0
