"""gRPC client for the dish ``Handle`` RPC.

The wire messages come from the generated SpaceX device protobuf module,
imported by name when the client starts. Responses are decoded through
``MessageToDict`` into the msgspec structures of
:mod:`dishexporter.device.structures`, so nothing downstream touches
protobuf types.
"""

from __future__ import annotations

import importlib
import logging
from types import ModuleType, TracebackType
from typing import Any, Protocol

import grpc
from google.protobuf import json_format
from google.protobuf.message import DecodeError

from ..const import DEVICE_HANDLE_METHOD
from ..errors import PayloadError, TransportError
from .structures import DeviceResponse, RequestKind, decode_response

logger = logging.getLogger("dishexporter.device")


class DeviceClient(Protocol):
    """Anything that can answer typed dish requests."""

    async def request(self, kind: RequestKind) -> DeviceResponse: ...


class ProtobufDeviceCodec:
    """Encode requests and decode responses with the generated stub module."""

    def __init__(self, module_name: str) -> None:
        self._module_name = module_name
        self._module: ModuleType | None = None

    @property
    def module(self) -> ModuleType:
        if self._module is None:
            self.load()
        assert self._module is not None
        return self._module

    def load(self) -> None:
        if self._module is not None:
            return
        try:
            self._module = importlib.import_module(self._module_name)
        except ImportError as exc:
            raise RuntimeError(
                f"device protobuf module {self._module_name!r} is not importable; "
                "generate it from the dish proto files"
            ) from exc

    def encode(self, kind: RequestKind) -> bytes:
        module = self.module
        inner = getattr(module, kind.message_name)()
        message = module.Request(**{kind.value: inner})
        return message.SerializeToString()

    def decode(self, data: bytes) -> DeviceResponse:
        message = self.module.Response()
        try:
            message.ParseFromString(data)
        except DecodeError as exc:
            raise PayloadError(f"undecodable device response: {exc}") from exc
        raw: dict[str, Any] = json_format.MessageToDict(
            message,
            preserving_proto_field_name=True,
            use_integers_for_enums=True,
        )
        return decode_response(raw)


def channel_target(address: str) -> tuple[str, bool]:
    """Return the gRPC target for *address* and whether it needs TLS."""

    candidate = address.strip()
    if candidate.startswith("https://"):
        return candidate[len("https://") :].rstrip("/"), True
    if candidate.startswith("http://"):
        return candidate[len("http://") :].rstrip("/"), False
    return candidate.rstrip("/"), False


class GrpcDeviceClient:
    """Async client for a single dish endpoint."""

    def __init__(
        self,
        address: str,
        codec: ProtobufDeviceCodec,
        *,
        timeout: float | None = None,
    ) -> None:
        self._address = address
        self._codec = codec
        self._timeout = timeout
        self._channel: grpc.aio.Channel | None = None
        self._handle: Any = None

    @property
    def address(self) -> str:
        return self._address

    async def __aenter__(self) -> GrpcDeviceClient:
        self._codec.load()
        target, secure = channel_target(self._address)
        if secure:
            self._channel = grpc.aio.secure_channel(target, grpc.ssl_channel_credentials())
        else:
            self._channel = grpc.aio.insecure_channel(target)
        # Raw bytes in and out; the codec owns (de)serialisation.
        self._handle = self._channel.unary_unary(DEVICE_HANDLE_METHOD)
        logger.info("Opened channel to dish", extra={"target": target, "tls": secure})
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
            self._handle = None

    async def request(self, kind: RequestKind) -> DeviceResponse:
        if self._handle is None:
            raise TransportError("device channel is not open")
        payload = self._codec.encode(kind)
        logger.debug("Sending %s request to dish", kind.value)
        try:
            data = await self._handle(payload, timeout=self._timeout)
        except grpc.aio.AioRpcError as exc:
            if exc.code() == grpc.StatusCode.DEADLINE_EXCEEDED:
                raise TransportError(f"{kind.value} timed out after {self._timeout}s") from exc
            raise TransportError(f"{kind.value} failed: {exc.code().name} {exc.details()}") from exc
        return self._codec.decode(data)


__all__ = [
    "DeviceClient",
    "GrpcDeviceClient",
    "ProtobufDeviceCodec",
    "channel_target",
]
