"""Typed device request/response structures.

Every field is optional: ``None`` means the dish did not report it in this
response, which is distinct from reporting zero. Repeated fields default to an
empty tuple, which likewise carries no update.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import msgspec

from ..errors import PayloadError


class RequestKind(StrEnum):
    """Request variants understood by the dish ``Handle`` method."""

    GET_DEVICE_INFO = "get_device_info"
    GET_STATUS = "get_status"
    DISH_GET_CONTEXT = "dish_get_context"

    @property
    def message_name(self) -> str:
        return _REQUEST_MESSAGES[self]

    @property
    def response_variant(self) -> str:
        return _RESPONSE_VARIANTS[self]


_REQUEST_MESSAGES: dict[RequestKind, str] = {
    RequestKind.GET_DEVICE_INFO: "GetDeviceInfoRequest",
    RequestKind.GET_STATUS: "GetStatusRequest",
    RequestKind.DISH_GET_CONTEXT: "DishGetContextRequest",
}

_RESPONSE_VARIANTS: dict[RequestKind, str] = {
    RequestKind.GET_DEVICE_INFO: "get_device_info",
    RequestKind.GET_STATUS: "dish_get_status",
    RequestKind.DISH_GET_CONTEXT: "dish_get_context",
}


class DeviceInfo(msgspec.Struct, frozen=True, omit_defaults=True):
    id: str | None = None
    hardware_version: str | None = None
    software_version: str | None = None
    country_code: str | None = None


class DeviceState(msgspec.Struct, frozen=True, omit_defaults=True):
    uptime_s: int | None = None


class DishAlerts(msgspec.Struct, frozen=True, omit_defaults=True):
    motors_stuck: bool | None = None
    thermal_throttle: bool | None = None
    thermal_shutdown: bool | None = None
    mast_not_near_vertical: bool | None = None
    unexpected_location: bool | None = None
    slow_ethernet_speeds: bool | None = None


class DishObstructionStats(msgspec.Struct, frozen=True, omit_defaults=True):
    currently_obstructed: bool | None = None
    fraction_obstructed: float | None = None
    last_24h_obstructed_s: float | None = None
    valid_s: float | None = None
    wedge_fraction_obstructed: tuple[float, ...] = ()
    wedge_abs_fraction_obstructed: tuple[float, ...] = ()


class DishGetStatusResponse(msgspec.Struct, frozen=True, omit_defaults=True):
    device_info: DeviceInfo | None = None
    device_state: DeviceState | None = None
    state: int | None = None
    alerts: DishAlerts | None = None
    snr: float | None = None
    seconds_to_first_nonempty_slot: float | None = None
    pop_ping_drop_rate: float | None = None
    downlink_throughput_bps: float | None = None
    uplink_throughput_bps: float | None = None
    pop_ping_latency_ms: float | None = None
    obstruction_stats: DishObstructionStats | None = None


class DishGetContextResponse(msgspec.Struct, frozen=True, omit_defaults=True):
    device_info: DeviceInfo | None = None
    device_state: DeviceState | None = None
    cell_id: int | None = None
    pop_rack_id: int | None = None
    initial_satellite_id: int | None = None
    initial_gateway_id: int | None = None
    on_backup_beam: bool | None = None
    seconds_to_slot_end: float | None = None


class GetDeviceInfoResponse(msgspec.Struct, frozen=True, omit_defaults=True):
    device_info: DeviceInfo | None = None


class DeviceResponse(msgspec.Struct, frozen=True, omit_defaults=True):
    """Tagged response envelope; at most one variant is populated."""

    id: int | None = None
    get_device_info: GetDeviceInfoResponse | None = None
    dish_get_status: DishGetStatusResponse | None = None
    dish_get_context: DishGetContextResponse | None = None

    def variant(self, name: str) -> Any | None:
        return getattr(self, name, None)


class DeviceStatusSnapshot(msgspec.Struct, frozen=True):
    """Everything fetched during one scrape cycle."""

    status: DishGetStatusResponse | None = None
    context: DishGetContextResponse | None = None

    @property
    def is_empty(self) -> bool:
        return self.status is None and self.context is None


def decode_response(raw: dict[str, Any]) -> DeviceResponse:
    """Convert a decoded protobuf mapping into a :class:`DeviceResponse`.

    64-bit integers arrive as JSON strings from ``MessageToDict``, so the
    conversion runs in lax mode.
    """

    try:
        return msgspec.convert(raw, DeviceResponse, strict=False)
    except msgspec.ValidationError as exc:
        raise PayloadError(f"unexpected device response shape: {exc}") from exc


__all__ = [
    "DeviceInfo",
    "DeviceResponse",
    "DeviceState",
    "DeviceStatusSnapshot",
    "DishAlerts",
    "DishGetContextResponse",
    "DishGetStatusResponse",
    "DishObstructionStats",
    "GetDeviceInfoResponse",
    "RequestKind",
    "decode_response",
]
