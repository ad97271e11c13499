"""Dish RPC client and typed response structures."""

from .client import DeviceClient, GrpcDeviceClient, ProtobufDeviceCodec
from .structures import DeviceResponse, DeviceStatusSnapshot, RequestKind

__all__ = [
    "DeviceClient",
    "DeviceResponse",
    "DeviceStatusSnapshot",
    "GrpcDeviceClient",
    "ProtobufDeviceCodec",
    "RequestKind",
]
