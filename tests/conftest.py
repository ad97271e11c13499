"""Pytest configuration for dish exporter tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

TESTS_ROOT = Path(__file__).resolve().parent
if str(TESTS_ROOT) not in sys.path:
    sys.path.insert(0, str(TESTS_ROOT))

import pytest

from dishexporter.config.settings import RuntimeConfig
from dishexporter.device.structures import (
    DeviceInfo,
    DeviceResponse,
    DeviceState,
    DishAlerts,
    DishGetContextResponse,
    DishGetStatusResponse,
    DishObstructionStats,
    GetDeviceInfoResponse,
    RequestKind,
)
from dishexporter.metrics.catalog import ConstantLabelSet, MetricCatalog
from mocks import FakeDeviceClient


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture()
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(
        bind_address="127.0.0.1:0",
        starlink_address="http://127.0.0.1:9200",
        device_timeout=1.0,
        identity_attempts=1,
    )


@pytest.fixture()
def identity() -> ConstantLabelSet:
    return ConstantLabelSet(id="ut01000000-00000000-00abcdef", hardware_version="rev2_proto3")


@pytest.fixture()
def catalog(identity: ConstantLabelSet) -> MetricCatalog:
    return MetricCatalog.build(identity)


@pytest.fixture()
def context_catalog(identity: ConstantLabelSet) -> MetricCatalog:
    return MetricCatalog.build(identity, include_context=True)


def make_status(**overrides: object) -> DishGetStatusResponse:
    """A fully populated status payload, individual fields overridable."""
    base: dict[str, object] = {
        "device_info": DeviceInfo(
            id="ut01000000-00000000-00abcdef",
            hardware_version="rev2_proto3",
            software_version="e1f4b2c3.uterm.release",
            country_code="DE",
        ),
        "device_state": DeviceState(uptime_s=3600),
        "state": 1,
        "alerts": DishAlerts(
            motors_stuck=False,
            thermal_throttle=True,
            thermal_shutdown=False,
            mast_not_near_vertical=False,
            unexpected_location=False,
            slow_ethernet_speeds=True,
        ),
        "snr": 9.0,
        "seconds_to_first_nonempty_slot": 0.5,
        "pop_ping_drop_rate": 0.01,
        "downlink_throughput_bps": 125000.5,
        "uplink_throughput_bps": 8000.25,
        "pop_ping_latency_ms": 38.5,
        "obstruction_stats": DishObstructionStats(
            currently_obstructed=False,
            fraction_obstructed=0.02,
            last_24h_obstructed_s=120.0,
            valid_s=86000.0,
            wedge_fraction_obstructed=tuple(i / 100 for i in range(12)),
            wedge_abs_fraction_obstructed=tuple(i / 1000 for i in range(12)),
        ),
    }
    base.update(overrides)
    return DishGetStatusResponse(**base)  # type: ignore[arg-type]


def status_response(**overrides: object) -> DeviceResponse:
    return DeviceResponse(dish_get_status=make_status(**overrides))


def context_response(**fields: object) -> DeviceResponse:
    return DeviceResponse(dish_get_context=DishGetContextResponse(**fields))  # type: ignore[arg-type]


def device_info_response(**fields: object) -> DeviceResponse:
    return DeviceResponse(get_device_info=GetDeviceInfoResponse(device_info=DeviceInfo(**fields)))  # type: ignore[arg-type]


@pytest.fixture()
def fake_client() -> FakeDeviceClient:
    client = FakeDeviceClient()
    client.queue(RequestKind.GET_STATUS, status_response())
    return client
