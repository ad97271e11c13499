"""Prometheus exporter serving dish metrics on scrape."""

from __future__ import annotations

import asyncio
import logging
from typing import cast

from prometheus_client import CollectorRegistry

from .device.client import DeviceClient
from .device.fetcher import fetch_snapshot
from .errors import ExporterError, LabelCardinalityError
from .metrics.catalog import CatalogCollector, MetricCatalog
from .metrics.exposition import CONTENT_TYPE, render_registry
from .metrics.reconciler import SnapshotReconciler

logger = logging.getLogger("dishexporter.exporter")

_METRICS_PATH = "/metrics"
_PHRASES = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
}


def _consume_cycle_result(cycle: asyncio.Future[bytes]) -> None:
    # The scrape that started the cycle may be gone by the time it ends.
    if cycle.cancelled():
        return
    exc = cycle.exception()
    if exc is not None:
        logger.debug("Scrape cycle ended with %s: %s", type(exc).__name__, exc)


class PrometheusExporter:
    """Fetch, reconcile and render dish metrics for every scrape.

    One lock covers the whole fetch, reconcile and render cycle, so
    concurrent scrapes reach the dish one after another and each sees the
    state left by the previous one. A cycle keeps running when its scrape
    client goes away.
    """

    def __init__(
        self,
        catalog: MetricCatalog,
        client: DeviceClient,
        host: str,
        port: int,
        *,
        include_context: bool = False,
        registry_prefix: str = "",
    ) -> None:
        self._catalog = catalog
        self._client = client
        self._host = host
        self._port = port
        self._include_context = include_context
        self._lock = asyncio.Lock()
        self._server: asyncio.AbstractServer | None = None
        self._resolved_port: int | None = None
        self._registry = CollectorRegistry(auto_describe=False)
        self._registry.register(CatalogCollector(catalog, registry_prefix))
        self._reconciler = SnapshotReconciler(catalog)

    @property
    def port(self) -> int:
        return self._resolved_port or self._port

    @property
    def catalog(self) -> MetricCatalog:
        return self._catalog

    async def scrape(self) -> bytes:
        """Run one cycle and return the rendered exposition text."""
        cycle = asyncio.ensure_future(self._scrape_cycle())
        cycle.add_done_callback(_consume_cycle_result)
        return await asyncio.shield(cycle)

    async def _scrape_cycle(self) -> bytes:
        async with self._lock:
            snapshot = await fetch_snapshot(self._client, include_context=self._include_context)
            self._reconciler.reconcile(snapshot)
            return self._render_metrics()

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(
            self._handle_client,
            host=self._host,
            port=self._port,
        )
        sockets = self._server.sockets or []
        if sockets:
            sockname = sockets[0].getsockname()
            if isinstance(sockname, tuple):
                typed_sockname = cast(tuple[object, ...], sockname)
                if len(typed_sockname) >= 2:
                    port_candidate = typed_sockname[1]
                    if isinstance(port_candidate, int):
                        self._resolved_port = port_candidate
        logger.info(
            "binding Prometheus exporter on http://%s:%d",
            self._host,
            self.port,
            extra={"host": self._host, "port": self.port},
        )

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Prometheus exporter stopped")

    async def run(self) -> None:
        await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            raise
        finally:
            await self.stop()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            request_line = await reader.readline()
            if not request_line:
                return
            parts = request_line.decode("ascii", errors="ignore").split()
            if len(parts) < 2:
                await self._write_response(writer, 400, b"")
                return
            method, target = parts[0], parts[1]
            while True:
                line = await reader.readline()
                if not line or line in {b"\r\n", b"\n"}:
                    break
            path = target.split("?", 1)[0]
            if path != _METRICS_PATH:
                await self._write_response(writer, 404, b"")
                return
            if method != "GET":
                await self._write_response(writer, 405, b"")
                return

            peer = writer.get_extra_info("peername")
            if peer:
                logger.info("incoming request from %s", peer[0], extra={"peer": peer})

            try:
                payload = await self.scrape()
            except LabelCardinalityError as exc:
                logger.error("Dish data shape changed; scrape failed: %s", exc)
                await self._write_response(writer, 500, b"")
                return
            except ExporterError as exc:
                logger.warning("Scrape failed: %s", exc, extra={"error": type(exc).__name__})
                await self._write_response(writer, 500, b"")
                return
            except (TypeError, AttributeError, RuntimeError) as exc:
                logger.critical("Unexpected error during scrape: %s", exc, exc_info=True)
                await self._write_response(writer, 500, b"")
                return

            await self._write_response(
                writer,
                200,
                payload,
                content_type=CONTENT_TYPE,
            )
        except asyncio.CancelledError:
            raise
        except (OSError, ValueError, IndexError) as e:
            logger.warning("Prometheus client request error: %s", e)
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, ValueError, RuntimeError):
                logger.debug("Error closing metrics client connection", exc_info=True)

    async def _write_response(
        self,
        writer: asyncio.StreamWriter,
        status: int,
        body: bytes,
        *,
        content_type: str = "text/plain; charset=utf-8",
    ) -> None:
        status_line = f"HTTP/1.1 {status} {_PHRASES.get(status, 'Error')}\r\n"
        headers = f"Content-Type: {content_type}\r\n" f"Content-Length: {len(body)}\r\n" "Connection: close\r\n\r\n"
        writer.write(status_line.encode("ascii") + headers.encode("ascii") + body)
        await writer.drain()

    def _render_metrics(self) -> bytes:
        return render_registry(self._registry)


__all__ = ["PrometheusExporter"]
