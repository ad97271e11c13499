"""Tests for the Prometheus scrape endpoint."""

from __future__ import annotations

import asyncio
import gc
import logging

import pytest

from conftest import status_response
from dishexporter.device.structures import DeviceResponse, DishGetStatusResponse, DishObstructionStats, RequestKind
from dishexporter.errors import PayloadError, TransportError
from dishexporter.exporter import PrometheusExporter
from dishexporter.metrics.catalog import MetricCatalog
from mocks import FakeDeviceClient


def _exporter(catalog: MetricCatalog, client: FakeDeviceClient, **kwargs: object) -> PrometheusExporter:
    return PrometheusExporter(catalog, client, "127.0.0.1", 0, registry_prefix="starlink", **kwargs)  # type: ignore[arg-type]


async def _http(port: int, request: bytes) -> tuple[int, dict[str, str], bytes]:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(request)
    await writer.drain()
    raw = await reader.read()
    writer.close()
    await writer.wait_closed()

    head, _, body = raw.partition(b"\r\n\r\n")
    status_line, *header_lines = head.decode("ascii").split("\r\n")
    headers = {}
    for line in header_lines:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return int(status_line.split()[1]), headers, body


async def _get(port: int, path: str = "/metrics", method: str = "GET") -> tuple[int, dict[str, str], bytes]:
    return await _http(port, f"{method} {path} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode())


@pytest.mark.asyncio
async def test_scrape_serves_metrics(catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    exporter = _exporter(catalog, fake_client)
    await exporter.start()
    try:
        status, headers, body = await _get(exporter.port)
    finally:
        await exporter.stop()

    assert status == 200
    assert headers["content-type"].startswith("text/plain; version=0.0.4")
    assert int(headers["content-length"]) == len(body)
    text = body.decode()
    assert "# TYPE starlink_dish_uptime_s counter" in text
    assert 'starlink_dish_snr{hardware_version="rev2_proto3",id="ut01000000-00000000-00abcdef"} 9.0' in text
    assert 'starlink_dish_obstruction_wedge_fraction_obstructed{hardware_version="rev2_proto3"' in text
    assert fake_client.calls == [RequestKind.GET_STATUS]


@pytest.mark.asyncio
async def test_query_string_is_ignored(catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    exporter = _exporter(catalog, fake_client)
    await exporter.start()
    try:
        status, _, _ = await _get(exporter.port, "/metrics?name[]=dish_snr")
    finally:
        await exporter.stop()
    assert status == 200


@pytest.mark.asyncio
async def test_unknown_path_returns_404(catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    exporter = _exporter(catalog, fake_client)
    await exporter.start()
    try:
        status, _, body = await _get(exporter.port, "/")
    finally:
        await exporter.stop()
    assert status == 404
    assert body == b""
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_wrong_method_returns_405(catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    exporter = _exporter(catalog, fake_client)
    await exporter.start()
    try:
        status, _, _ = await _get(exporter.port, method="POST")
    finally:
        await exporter.stop()
    assert status == 405
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_malformed_request_returns_400(catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    exporter = _exporter(catalog, fake_client)
    await exporter.start()
    try:
        status, _, _ = await _http(exporter.port, b"garbage\r\n\r\n")
    finally:
        await exporter.stop()
    assert status == 400


@pytest.mark.asyncio
async def test_transport_failure_returns_500_and_keeps_state(
    catalog: MetricCatalog,
    fake_client: FakeDeviceClient,
    caplog: pytest.LogCaptureFixture,
) -> None:
    fake_client.queue(RequestKind.GET_STATUS, TransportError("dish unreachable"), DeviceResponse())
    exporter = _exporter(catalog, fake_client)
    await exporter.start()
    try:
        first_status, _, first_body = await _get(exporter.port)
        with caplog.at_level(logging.WARNING, logger="dishexporter.exporter"):
            failed_status, _, failed_body = await _get(exporter.port)
        empty_status, _, empty_body = await _get(exporter.port)
    finally:
        await exporter.stop()

    assert first_status == 200
    assert failed_status == 500
    assert failed_body == b""
    assert "dish unreachable" in caplog.text
    # The dish then answers without a status payload; values stay as they were.
    assert empty_status == 200
    assert empty_body == first_body


@pytest.mark.asyncio
async def test_payload_error_returns_500(catalog: MetricCatalog) -> None:
    client = FakeDeviceClient()
    client.queue(RequestKind.GET_STATUS, PayloadError("garbled"))
    exporter = _exporter(catalog, client)
    await exporter.start()
    try:
        status, _, _ = await _get(exporter.port)
    finally:
        await exporter.stop()
    assert status == 500


@pytest.mark.asyncio
async def test_wedge_cardinality_error_returns_500(
    catalog: MetricCatalog,
    caplog: pytest.LogCaptureFixture,
) -> None:
    client = FakeDeviceClient()
    oversized = DishGetStatusResponse(
        obstruction_stats=DishObstructionStats(wedge_abs_fraction_obstructed=tuple([0.1] * 13))
    )
    client.queue(RequestKind.GET_STATUS, DeviceResponse(dish_get_status=oversized))
    exporter = _exporter(catalog, client)
    await exporter.start()
    try:
        with caplog.at_level(logging.ERROR, logger="dishexporter.exporter"):
            status, _, _ = await _get(exporter.port)
    finally:
        await exporter.stop()
    assert status == 500
    assert "shape changed" in caplog.text


@pytest.mark.asyncio
async def test_concurrent_scrapes_are_serialised(catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    fake_client.delay = 0.01
    exporter = _exporter(catalog, fake_client)

    bodies = await asyncio.gather(*(exporter.scrape() for _ in range(5)))

    assert len(fake_client.calls) == 5
    assert fake_client.max_in_flight == 1
    assert len(set(bodies)) == 1
    assert catalog.counter("dish_uptime_s").value == 3600.0


@pytest.mark.asyncio
async def test_concurrent_http_scrapes(catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    fake_client.delay = 0.01
    exporter = _exporter(catalog, fake_client)
    await exporter.start()
    try:
        results = await asyncio.gather(*(_get(exporter.port) for _ in range(4)))
    finally:
        await exporter.stop()

    assert [status for status, _, _ in results] == [200] * 4
    assert fake_client.max_in_flight == 1
    assert len(fake_client.calls) == 4


@pytest.mark.asyncio
async def test_cancelled_scrape_finishes_its_cycle(catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    fake_client.delay = 0.05
    exporter = _exporter(catalog, fake_client)

    task = asyncio.create_task(exporter.scrape())
    while not fake_client.calls:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    fake_client.queue(RequestKind.GET_STATUS, status_response(snr=2.0))
    await exporter.scrape()

    assert fake_client.completed == [RequestKind.GET_STATUS, RequestKind.GET_STATUS]
    assert fake_client.max_in_flight == 1
    assert catalog.gauge("dish_snr").value == 2.0


@pytest.mark.asyncio
async def test_context_requested_when_enabled(context_catalog: MetricCatalog, fake_client: FakeDeviceClient) -> None:
    exporter = _exporter(context_catalog, fake_client, include_context=True)

    body = await exporter.scrape()

    assert fake_client.calls == [RequestKind.GET_STATUS, RequestKind.DISH_GET_CONTEXT]
    assert b"starlink_dish_context_cell_id" in body


@pytest.mark.asyncio
async def test_failed_cycle_of_cancelled_scrape_is_collected(
    catalog: MetricCatalog,
    caplog: pytest.LogCaptureFixture,
) -> None:
    client = FakeDeviceClient(delay=0.02)
    client.queue(RequestKind.GET_STATUS, TransportError("dish unreachable"))
    exporter = _exporter(catalog, client)

    loop = asyncio.get_running_loop()
    unhandled: list[dict[str, object]] = []
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: unhandled.append(context))
    try:
        with caplog.at_level(logging.DEBUG, logger="dishexporter.exporter"):
            task = asyncio.create_task(exporter.scrape())
            while not client.calls:
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            while not client.completed:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0)
            del task
            gc.collect()
    finally:
        loop.set_exception_handler(previous_handler)

    assert "Scrape cycle ended with TransportError" in caplog.text
    assert not [context for context in unhandled if "never retrieved" in str(context.get("message"))]
