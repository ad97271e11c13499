"""Metric definitions and the state object that owns their values.

Family names follow the ``dish[_subsystem]_name`` layout that dashboards
built on the exporter already depend on; do not rename them.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import StrEnum

import msgspec
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from ..const import METRIC_NAMESPACE, WEDGE_COUNT, WEDGE_LABEL
from .state import CounterState, GaugeState, IndexedVectorState, InfoState, MetricState


class MetricKind(StrEnum):
    COUNTER = "counter"
    GAUGE = "gauge"
    GAUGE_VECTOR = "gauge_vector"

    @property
    def exposition_type(self) -> str:
        return "counter" if self is MetricKind.COUNTER else "gauge"


class MetricSpec(msgspec.Struct, frozen=True):
    """Immutable definition of one metric family."""

    name: str
    kind: MetricKind
    help: str
    label_names: tuple[str, ...] = ()
    cardinality: int | None = None

    def new_state(self) -> MetricState:
        if self.kind is MetricKind.COUNTER:
            return CounterState()
        if self.kind is MetricKind.GAUGE:
            return GaugeState()
        if self.cardinality is not None:
            return IndexedVectorState(self.cardinality)
        return InfoState(self.label_names)


class ConstantLabelSet(msgspec.Struct, frozen=True):
    """Identity labels attached to every exposed sample."""

    id: str | None = None
    hardware_version: str | None = None

    def as_labels(self) -> dict[str, str]:
        labels: dict[str, str] = {}
        if self.id is not None:
            labels["id"] = self.id
        if self.hardware_version is not None:
            labels["hardware_version"] = self.hardware_version
        return labels


def _spec(
    name: str,
    kind: MetricKind,
    help: str,
    *,
    subsystem: str | None = None,
    label_names: tuple[str, ...] = (),
    cardinality: int | None = None,
) -> MetricSpec:
    parts = [METRIC_NAMESPACE]
    if subsystem:
        parts.append(subsystem)
    parts.append(name)
    return MetricSpec(
        name="_".join(parts),
        kind=kind,
        help=help,
        label_names=label_names,
        cardinality=cardinality,
    )


def _alert(name: str, help: str) -> MetricSpec:
    return _spec(name, MetricKind.GAUGE, help, subsystem="alert")


def _obstruction(
    name: str,
    kind: MetricKind,
    help: str,
    *,
    label_names: tuple[str, ...] = (),
    cardinality: int | None = None,
) -> MetricSpec:
    return _spec(
        name,
        kind,
        help,
        subsystem="obstruction",
        label_names=label_names,
        cardinality=cardinality,
    )


def _context(name: str, help: str) -> MetricSpec:
    return _spec(name, MetricKind.GAUGE, help, subsystem="context")


STATUS_SPECS: tuple[MetricSpec, ...] = (
    _spec(
        "device_info",
        MetricKind.GAUGE_VECTOR,
        "Device information. Exposing `software_version` and `country_code` as additional labels.",
        label_names=("software_version", "country_code"),
    ),
    _spec("uptime_s", MetricKind.COUNTER, "Dish uptime in seconds."),
    _spec("state", MetricKind.GAUGE, "Dish state. 0: Unknown, 1: Connected, 2: Searching, 3: Booting."),
    _alert("motors_stuck", "Alert: Motors stuck."),
    _alert("thermal_throttle", "Alert: Thermal throttle."),
    _alert("thermal_shutdown", "Alert: Thermal shutdown."),
    _alert("mast_not_near_vertical", "Alert: Mast not near vertical."),
    _alert("unexpected_location", "Alert: Unexpected location."),
    _alert("slow_ethernet_speeds", "Alert: Slow ethernet speeds."),
    _spec("snr", MetricKind.GAUGE, "Signal-to-noise ratio."),
    _spec("seconds_to_first_nonempty_slot", MetricKind.GAUGE, "Seconds to first non-empty slot."),
    _spec("pop_ping_drop_rate", MetricKind.GAUGE, "Pop ping drop rate."),
    _spec("downlink_throughput_bps", MetricKind.GAUGE, "Downlink throughput in Bps."),
    _spec("uplink_throughput_bps", MetricKind.GAUGE, "Uplink throughput in Bps."),
    _spec("pop_ping_latency_ms", MetricKind.GAUGE, "Pop ping latency in ms."),
    _obstruction("currently_obstructed", MetricKind.GAUGE, "Obstruction: Currently obstructed."),
    _obstruction(
        "fraction_obstructed",
        MetricKind.GAUGE,
        "Obstruction: Obstructed fraction. Sum of obstructed fractions.",
    ),
    _obstruction(
        "last_24h_obstructed_s",
        MetricKind.COUNTER,
        "Obstruction: Obstructed seconds in the last 24 hours.",
    ),
    _obstruction("valid_s", MetricKind.COUNTER, "Obstruction: Valid seconds."),
    _obstruction(
        "wedge_fraction_obstructed",
        MetricKind.GAUGE_VECTOR,
        "Obstruction: Wedge fraction obstructed. "
        "Measure of obstruction in twelve 30 degree wedges around the dish.",
        label_names=(WEDGE_LABEL,),
        cardinality=WEDGE_COUNT,
    ),
    _obstruction(
        "wedge_abs_fraction_obstructed",
        MetricKind.GAUGE_VECTOR,
        "Obstruction: Wedge fraction obstruction average. "
        "Measure of average obstruction in twelve 30 degree wedges around the dish.",
        label_names=(WEDGE_LABEL,),
        cardinality=WEDGE_COUNT,
    ),
)

CONTEXT_SPECS: tuple[MetricSpec, ...] = (
    _context("cell_id", "Context: Serving cell id."),
    _context("pop_rack_id", "Context: Point of presence rack id."),
    _context("initial_satellite_id", "Context: Initial satellite id."),
    _context("initial_gateway_id", "Context: Initial gateway id."),
    _context("on_backup_beam", "Context: Connected through a backup beam."),
    _context("seconds_to_slot_end", "Context: Seconds to the end of the current slot."),
)


class MetricCatalog:
    """All metric specs plus their current values.

    The catalog is not thread-safe; the exporter serialises access with a
    single lock around each scrape cycle.
    """

    def __init__(
        self,
        specs: Iterable[MetricSpec],
        constant_labels: ConstantLabelSet | None = None,
    ) -> None:
        self._specs: dict[str, MetricSpec] = {}
        self._states: dict[str, MetricState] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"duplicate metric {spec.name}")
            self._specs[spec.name] = spec
            self._states[spec.name] = spec.new_state()
        self.constant_labels = constant_labels or ConstantLabelSet()

    @classmethod
    def build(
        cls,
        constant_labels: ConstantLabelSet | None = None,
        *,
        include_context: bool = False,
    ) -> MetricCatalog:
        specs = STATUS_SPECS + CONTEXT_SPECS if include_context else STATUS_SPECS
        return cls(specs, constant_labels)

    @property
    def specs(self) -> tuple[MetricSpec, ...]:
        return tuple(self._specs.values())

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def spec(self, name: str) -> MetricSpec:
        return self._specs[name]

    def state(self, name: str) -> MetricState:
        return self._states[name]

    def counter(self, name: str) -> CounterState:
        state = self._states[name]
        assert isinstance(state, CounterState), name
        return state

    def gauge(self, name: str) -> GaugeState:
        state = self._states[name]
        assert isinstance(state, GaugeState), name
        return state

    def vector(self, name: str) -> IndexedVectorState:
        state = self._states[name]
        assert isinstance(state, IndexedVectorState), name
        return state

    def info(self, name: str) -> InfoState:
        state = self._states[name]
        assert isinstance(state, InfoState), name
        return state

    def families(self, prefix: str = "") -> Iterator[Metric]:
        """Project the current state into exposition metric families."""

        constant = self.constant_labels.as_labels()
        for spec in self._specs.values():
            name = f"{prefix}_{spec.name}" if prefix else spec.name
            family = Metric(name, spec.help, spec.kind.exposition_type)
            state = self._states[spec.name]
            if isinstance(state, (GaugeState, CounterState)):
                family.add_sample(name, dict(constant), state.value)
            elif isinstance(state, IndexedVectorState):
                label_name = spec.label_names[0]
                for label, value in state.items():
                    family.add_sample(name, {**constant, label_name: label}, value)
            elif state.labels is not None:
                family.add_sample(name, {**constant, **dict(zip(state.label_names, state.labels))}, 1.0)
            yield family


class CatalogCollector(Collector):
    """Prometheus collector that projects a :class:`MetricCatalog`."""

    def __init__(self, catalog: MetricCatalog, prefix: str = "") -> None:
        self._catalog = catalog
        self._prefix = prefix

    def collect(self) -> Iterator[Metric]:
        yield from self._catalog.families(self._prefix)


__all__ = [
    "CONTEXT_SPECS",
    "STATUS_SPECS",
    "CatalogCollector",
    "ConstantLabelSet",
    "MetricCatalog",
    "MetricKind",
    "MetricSpec",
]
