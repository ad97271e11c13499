"""Apply a fetched dish snapshot to the metric catalog."""

from __future__ import annotations

import logging
from typing import Any

from ..device.structures import (
    DeviceInfo,
    DeviceStatusSnapshot,
    DishAlerts,
    DishGetContextResponse,
    DishGetStatusResponse,
    DishObstructionStats,
)
from .catalog import MetricCatalog
from .state import reconcile_counter, update_gauge, update_info, update_vector

logger = logging.getLogger("dishexporter.reconciler")

_ALERT_FIELDS: tuple[str, ...] = (
    "motors_stuck",
    "thermal_throttle",
    "thermal_shutdown",
    "mast_not_near_vertical",
    "unexpected_location",
    "slow_ethernet_speeds",
)

_STATUS_GAUGE_FIELDS: tuple[str, ...] = (
    "state",
    "snr",
    "seconds_to_first_nonempty_slot",
    "pop_ping_drop_rate",
    "downlink_throughput_bps",
    "uplink_throughput_bps",
    "pop_ping_latency_ms",
)

_CONTEXT_GAUGE_FIELDS: tuple[str, ...] = (
    "cell_id",
    "pop_rack_id",
    "initial_satellite_id",
    "initial_gateway_id",
    "on_backup_beam",
    "seconds_to_slot_end",
)


class SnapshotReconciler:
    """Walk a :class:`DeviceStatusSnapshot` and update the catalog in place.

    Fields are visited in a fixed order. Absent fields leave their metric
    untouched; a :class:`~dishexporter.errors.LabelCardinalityError` from a
    wedge vector propagates to the caller.
    """

    def __init__(self, catalog: MetricCatalog) -> None:
        self._catalog = catalog

    def reconcile(self, snapshot: DeviceStatusSnapshot) -> None:
        if snapshot.is_empty:
            logger.info("Dish returned no status payload; metrics unchanged")
            return
        if snapshot.status is not None:
            self._apply_status(snapshot.status)
        if snapshot.context is not None:
            self._apply_context(snapshot.context)
        logger.info("Updated metrics from Starlink device")

    def _apply_status(self, status: DishGetStatusResponse) -> None:
        if status.device_info is not None:
            self._apply_device_info(status.device_info)

        if status.device_state is not None and status.device_state.uptime_s is not None:
            self._counter("dish_uptime_s", status.device_state.uptime_s)

        if status.alerts is not None:
            self._apply_alerts(status.alerts)

        for field in _STATUS_GAUGE_FIELDS:
            self._gauge(f"dish_{field}", getattr(status, field))

        if status.obstruction_stats is not None:
            self._apply_obstruction(status.obstruction_stats)

    def _apply_device_info(self, device_info: DeviceInfo) -> None:
        # id and hardware_version are constant labels resolved at start-up.
        state = self._catalog.info("dish_device_info")
        if update_info(state, (device_info.software_version, device_info.country_code)):
            logger.info(
                "Device info changed",
                extra={
                    "software_version": device_info.software_version,
                    "country_code": device_info.country_code,
                },
            )

    def _apply_alerts(self, alerts: DishAlerts) -> None:
        for field in _ALERT_FIELDS:
            self._gauge(f"dish_alert_{field}", getattr(alerts, field))

    def _apply_obstruction(self, stats: DishObstructionStats) -> None:
        self._gauge("dish_obstruction_currently_obstructed", stats.currently_obstructed)
        self._gauge("dish_obstruction_fraction_obstructed", stats.fraction_obstructed)
        if stats.last_24h_obstructed_s is not None:
            self._counter("dish_obstruction_last_24h_obstructed_s", stats.last_24h_obstructed_s)
        if stats.valid_s is not None:
            self._counter("dish_obstruction_valid_s", stats.valid_s)
        self._vector("dish_obstruction_wedge_fraction_obstructed", stats.wedge_fraction_obstructed)
        self._vector("dish_obstruction_wedge_abs_fraction_obstructed", stats.wedge_abs_fraction_obstructed)

    def _apply_context(self, context: DishGetContextResponse) -> None:
        for field in _CONTEXT_GAUGE_FIELDS:
            name = f"dish_context_{field}"
            if name not in self._catalog:
                continue
            self._gauge(name, getattr(context, field))

    def _counter(self, name: str, raw: float) -> None:
        logger.debug("%s: %s", name, raw)
        reconcile_counter(self._catalog.counter(name), raw)

    def _gauge(self, name: str, value: Any) -> None:
        if update_gauge(self._catalog.gauge(name), value):
            logger.debug("%s: %s", name, value)

    def _vector(self, name: str, values: tuple[float, ...]) -> None:
        if not values:
            return
        logger.debug("%s: %s", name, values)
        update_vector(self._catalog.vector(name), values)


__all__ = ["SnapshotReconciler"]
