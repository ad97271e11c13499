#!/usr/bin/env python3
"""Async entry point for the dish exporter.

Architecture:
    main() -> ExporterDaemon
        ├── GrpcDeviceClient (one channel for the process lifetime)
        ├── resolve_identity (start-up, retried)
        └── prometheus-exporter (supervised)
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from typing import NoReturn

import msgspec
import tenacity
import uvloop

from dishexporter.config.logging import configure_logging
from dishexporter.config.settings import RuntimeConfig, load_runtime_config
from dishexporter.const import (
    SUPERVISOR_HEALTHY_INTERVAL,
    SUPERVISOR_MAX_BACKOFF,
    SUPERVISOR_MAX_RESTARTS,
    SUPERVISOR_MIN_BACKOFF,
)
from dishexporter.device.client import GrpcDeviceClient, ProtobufDeviceCodec
from dishexporter.device.fetcher import resolve_identity
from dishexporter.errors import ExporterError, TransportError
from dishexporter.exporter import PrometheusExporter
from dishexporter.metrics.catalog import MetricCatalog

logger = logging.getLogger("dishexporter")


class SupervisedTaskSpec(msgspec.Struct):
    """Specification for a supervised async task."""

    name: str
    factory: Callable[[], Awaitable[None]]
    max_restarts: int | None = SUPERVISOR_MAX_RESTARTS
    healthy_interval: float = SUPERVISOR_HEALTHY_INTERVAL
    min_backoff: float = SUPERVISOR_MIN_BACKOFF
    max_backoff: float = SUPERVISOR_MAX_BACKOFF


class ExporterDaemon:
    """Owns the device client, the catalog and the HTTP exporter.

    Attributes:
        config: Runtime configuration loaded from the environment.
        exporter: The HTTP exporter, available once :meth:`run` has
            resolved the dish identity.
    """

    def __init__(self, config: RuntimeConfig):
        self.config = config
        self.exporter: PrometheusExporter | None = None

    def _build_client(self) -> GrpcDeviceClient:
        codec = ProtobufDeviceCodec(self.config.device_proto_module)
        return GrpcDeviceClient(
            self.config.starlink_address,
            codec,
            timeout=self.config.rpc_timeout,
        )

    async def run(self) -> None:
        """Main async entry point."""
        logger.info("connecting to Starlink device on %s", self.config.starlink_address)
        async with self._build_client() as client:
            identity = await resolve_identity(client, attempts=self.config.identity_attempts)
            catalog = MetricCatalog.build(identity, include_context=self.config.context_enabled)
            self.exporter = PrometheusExporter(
                catalog,
                client,
                self.config.bind_host,
                self.config.bind_port,
                include_context=self.config.context_enabled,
                registry_prefix=self.config.registry_prefix,
            )
            await self._supervise_task(
                SupervisedTaskSpec(name="prometheus-exporter", factory=self.exporter.run)
            )

    async def _supervise_task(self, spec: SupervisedTaskSpec) -> None:
        """Run *spec.factory* restarting it on failures using tenacity."""
        log = logging.getLogger("dishexporter.supervisor")
        callbacks = self._SupervisorCallbacks(spec.name, log)

        retryer = tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(multiplier=spec.min_backoff, max=spec.max_backoff),
            retry=tenacity.retry_if_exception_type(OSError),
            stop=(
                tenacity.stop_after_attempt(spec.max_restarts + 1)
                if spec.max_restarts is not None
                else tenacity.stop_never
            ),
            before_sleep=callbacks.before_sleep,
            reraise=True,
        )

        last_start_time = 0.0
        try:
            while True:
                try:
                    async for attempt in retryer:
                        with attempt:
                            last_start_time = time.monotonic()
                            await spec.factory()
                            log.warning("%s task exited cleanly; supervisor exiting", spec.name)
                            return
                except OSError:
                    if last_start_time > 0 and (time.monotonic() - last_start_time) > spec.healthy_interval:
                        log.info("%s was healthy long enough; resetting backoff", spec.name)
                        continue
                    log.error("%s exceeded max restarts (%s); giving up", spec.name, spec.max_restarts)
                    raise
        except asyncio.CancelledError:
            log.debug("%s supervisor cancelled", spec.name)
            raise

    class _SupervisorCallbacks:
        """Helper to avoid nested functions in supervisor."""

        __slots__ = ("name", "log")

        def __init__(self, name: str, log: logging.Logger):
            self.name = name
            self.log = log

        def before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            self.log.error("%s failed (%s); restarting in %.1fs", self.name, exc, delay)


def main() -> NoReturn:
    try:
        config = load_runtime_config()
    except ValueError as exc:
        logging.basicConfig()
        logger.critical("%s", exc)
        sys.exit(2)
    configure_logging(config)

    try:
        daemon = ExporterDaemon(config)
        asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Exporter interrupted by user.")
        sys.exit(0)
    except TransportError as exc:
        logger.critical("Could not reach Starlink device: %s", exc)
        sys.exit(1)
    except ExporterError as exc:
        logger.critical("Starlink device gave an unusable answer at startup: %s", exc)
        sys.exit(1)
    except RuntimeError as exc:
        logger.critical("Startup aborted due to runtime error: %s", exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during exporter execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
