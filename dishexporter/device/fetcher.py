"""Request sequences issued against the dish."""

from __future__ import annotations

import logging
from typing import Any

import tenacity

from ..const import IDENTITY_MAX_BACKOFF, IDENTITY_MIN_BACKOFF
from ..errors import ProtocolError, TransportError
from ..metrics.catalog import ConstantLabelSet
from .client import DeviceClient
from .structures import DeviceStatusSnapshot, RequestKind

logger = logging.getLogger("dishexporter.device")


async def fetch_variant(client: DeviceClient, kind: RequestKind) -> Any:
    """Issue *kind* and return the matching response payload.

    Raises :class:`ProtocolError` when the dish answers with another variant.
    """

    response = await client.request(kind)
    payload = response.variant(kind.response_variant)
    if payload is None:
        raise ProtocolError(f"{kind.value} answered without a {kind.response_variant} payload")
    return payload


async def _fetch_optional(client: DeviceClient, kind: RequestKind) -> Any | None:
    try:
        return await fetch_variant(client, kind)
    except ProtocolError as exc:
        logger.warning("No data from dish this cycle: %s", exc)
        return None


async def fetch_snapshot(client: DeviceClient, *, include_context: bool = False) -> DeviceStatusSnapshot:
    """Fetch one snapshot, status first then the optional network context.

    Transport and payload errors propagate and abort the cycle.
    """

    status = await _fetch_optional(client, RequestKind.GET_STATUS)
    context = None
    if include_context:
        context = await _fetch_optional(client, RequestKind.DISH_GET_CONTEXT)
    return DeviceStatusSnapshot(status=status, context=context)


def _log_identity_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.error(
        "Device identity query failed (%s); retrying in %.1fs",
        exc,
        delay,
        extra={"attempt": retry_state.attempt_number},
    )


async def resolve_identity(
    client: DeviceClient,
    *,
    attempts: int = 1,
    min_backoff: float = IDENTITY_MIN_BACKOFF,
    max_backoff: float = IDENTITY_MAX_BACKOFF,
) -> ConstantLabelSet:
    """Query the dish identity once at start-up.

    Only transport failures are retried. A dish that answers without device
    info yields an empty label set.
    """

    retryer = tenacity.AsyncRetrying(
        wait=tenacity.wait_exponential(multiplier=min_backoff, max=max_backoff),
        retry=tenacity.retry_if_exception_type(TransportError),
        stop=tenacity.stop_after_attempt(attempts),
        before_sleep=_log_identity_retry,
        reraise=True,
    )

    payload = None
    async for attempt in retryer:
        with attempt:
            payload = await _fetch_optional(client, RequestKind.GET_DEVICE_INFO)

    device_info = payload.device_info if payload is not None else None
    if device_info is None:
        logger.warning("Dish reported no device info; exposing metrics without identity labels")
        return ConstantLabelSet()

    labels = ConstantLabelSet(id=device_info.id, hardware_version=device_info.hardware_version)
    for name, value in labels.as_labels().items():
        logger.info("setting registry label %s = %s", name, value)
    return labels


__all__ = ["fetch_snapshot", "fetch_variant", "resolve_identity"]
