"""Settings loader for the dish exporter.

Configuration comes from the process environment, layered over an optional
``.env`` file in the working directory. Values from the environment win.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import msgspec
from dotenv import dotenv_values
from marshmallow import ValidationError

from ..const import (
    DEFAULT_BIND_ADDRESS,
    DEFAULT_CONTEXT_ENABLED,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_DEVICE_PROTO_MODULE,
    DEFAULT_DEVICE_TIMEOUT,
    DEFAULT_IDENTITY_ATTEMPTS,
    DEFAULT_LOG_SYSLOG,
    DEFAULT_REGISTRY_PREFIX,
    DEFAULT_STARLINK_ADDRESS,
)

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = Path(".env")


def split_host_port(address: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``) into its parts."""

    host, sep, port = address.strip().rpartition(":")
    if not sep or not host or not port:
        raise ValueError(f"address {address!r} must be in host:port form")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"address {address!r} has a non-numeric port") from None
    if not 0 <= port_number <= 65535:
        raise ValueError(f"address {address!r} port is out of range")
    return host, port_number


class RuntimeConfig(msgspec.Struct, frozen=True, kw_only=True):
    """Strongly typed configuration for the exporter."""

    bind_address: str = DEFAULT_BIND_ADDRESS
    starlink_address: str = DEFAULT_STARLINK_ADDRESS
    device_timeout: float = DEFAULT_DEVICE_TIMEOUT
    device_proto_module: str = DEFAULT_DEVICE_PROTO_MODULE
    registry_prefix: str = DEFAULT_REGISTRY_PREFIX
    context_enabled: bool = DEFAULT_CONTEXT_ENABLED
    identity_attempts: int = DEFAULT_IDENTITY_ATTEMPTS
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    log_syslog: bool = DEFAULT_LOG_SYSLOG

    @property
    def bind_host(self) -> str:
        return split_host_port(self.bind_address)[0]

    @property
    def bind_port(self) -> int:
        return split_host_port(self.bind_address)[1]

    @property
    def rpc_timeout(self) -> float | None:
        """Per-call timeout, ``None`` when disabled."""
        return self.device_timeout if self.device_timeout > 0 else None


def _load_raw_config(env_file: Path = DEFAULT_ENV_FILE) -> dict[str, str]:
    raw: dict[str, str] = {}
    if env_file.is_file():
        logger.debug("Reading configuration overrides from %s", env_file)
        raw.update({key: value for key, value in dotenv_values(env_file).items() if value is not None})
    raw.update(os.environ)
    return raw


def load_runtime_config(environ: Mapping[str, str] | None = None) -> RuntimeConfig:
    """Load and validate configuration from the environment."""

    # Lazy import keeps schema -> settings a one-way dependency.
    from .schema import RuntimeConfigSchema

    raw = dict(environ) if environ is not None else _load_raw_config()
    try:
        return RuntimeConfigSchema().load(raw)
    except ValidationError as exc:
        fields = ", ".join(sorted(str(name) for name in exc.normalized_messages()))
        raise ValueError(f"invalid configuration ({fields}): {exc.normalized_messages()}") from exc


__all__ = [
    "RuntimeConfig",
    "load_runtime_config",
    "split_host_port",
]
