"""Marshmallow schema for RuntimeConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, pre_load, validate, validates

from ..const import (
    DEFAULT_BIND_ADDRESS,
    DEFAULT_DEVICE_PROTO_MODULE,
    DEFAULT_DEVICE_TIMEOUT,
    DEFAULT_IDENTITY_ATTEMPTS,
    DEFAULT_REGISTRY_PREFIX,
    DEFAULT_STARLINK_ADDRESS,
)
from .settings import RuntimeConfig, split_host_port

_METRIC_PREFIX_RE = r"^$|^[a-zA-Z_][a-zA-Z0-9_]*$"
_MODULE_PATH_RE = r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$"


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for exporter configuration.

    Field keys are the environment variable names; anything else in the
    environment is ignored.
    """

    class Meta:
        unknown = EXCLUDE

    # Endpoints
    bind_address = fields.Str(data_key="BIND_ADDRESS", load_default=DEFAULT_BIND_ADDRESS)
    starlink_address = fields.Str(
        data_key="STARLINK_ADDRESS",
        load_default=DEFAULT_STARLINK_ADDRESS,
        validate=validate.Length(min=1),
    )

    # Device
    device_timeout = fields.Float(
        data_key="DEVICE_TIMEOUT",
        load_default=DEFAULT_DEVICE_TIMEOUT,
        validate=validate.Range(min=0.0),
    )
    device_proto_module = fields.Str(
        data_key="DEVICE_PROTO_MODULE",
        load_default=DEFAULT_DEVICE_PROTO_MODULE,
        validate=validate.Regexp(_MODULE_PATH_RE),
    )
    context_enabled = fields.Bool(data_key="CONTEXT_ENABLED", load_default=False)
    identity_attempts = fields.Int(
        data_key="IDENTITY_ATTEMPTS",
        load_default=DEFAULT_IDENTITY_ATTEMPTS,
        validate=validate.Range(min=1),
    )

    # Exposition
    registry_prefix = fields.Str(
        data_key="REGISTRY_PREFIX",
        load_default=DEFAULT_REGISTRY_PREFIX,
        validate=validate.Regexp(_METRIC_PREFIX_RE),
    )

    # Logging
    debug_logging = fields.Bool(data_key="DEBUG", load_default=False)
    log_syslog = fields.Bool(data_key="LOG_SYSLOG", load_default=False)

    @validates("bind_address")
    def validate_bind_address(self, value: str, **kwargs: Any) -> None:
        try:
            split_host_port(value)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    @pre_load
    def strip_values(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        # Empty DEBUG= style assignments fall back to defaults, except for the
        # prefix where an empty value explicitly disables it.
        cleaned: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
                if not value and key != "REGISTRY_PREFIX":
                    continue
            cleaned[key] = value
        return cleaned

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        return RuntimeConfig(**data)
