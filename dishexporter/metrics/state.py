"""Mutable metric state and the per-field update policies.

The update functions are the only place where device values are written
into metric state:

* :func:`reconcile_counter` keeps counters monotonic between dish restarts
  and follows the raw value down when the dish reboots.
* :func:`update_gauge` overwrites a gauge only when the field was reported.
* :func:`update_vector` writes wedge slots by index and rejects sequences
  longer than the declared cardinality before touching any slot.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence

from ..errors import LabelCardinalityError


class GaugeState:
    __slots__ = ("value",)

    def __init__(self) -> None:
        self.value = 0.0


class CounterState:
    """Exposed counter value plus the last raw value seen from the dish."""

    __slots__ = ("value", "last_raw_observed")

    def __init__(self) -> None:
        self.value = 0.0
        self.last_raw_observed = 0.0


class IndexedVectorState:
    """Fixed number of slots keyed by their index; unset slots are not exposed."""

    __slots__ = ("cardinality", "slots")

    def __init__(self, cardinality: int) -> None:
        self.cardinality = cardinality
        self.slots: list[float | None] = [None] * cardinality

    def items(self) -> Iterator[tuple[str, float]]:
        for index, value in enumerate(self.slots):
            if value is not None:
                yield str(index), value

    def get(self, label: str) -> float | None:
        return self.slots[int(label)]


class InfoState:
    """A single labelled series set to 1 that follows the latest label values."""

    __slots__ = ("label_names", "labels")

    def __init__(self, label_names: tuple[str, ...]) -> None:
        self.label_names = label_names
        self.labels: tuple[str, ...] | None = None


MetricState = GaugeState | CounterState | IndexedVectorState | InfoState


def reconcile_counter(state: CounterState, raw: float) -> None:
    raw = float(raw)
    if raw > state.last_raw_observed:
        state.value += raw - state.last_raw_observed
    elif raw < state.last_raw_observed:
        # The dish restarted; start over from what it reports now.
        state.value = 0.0
        state.value += raw
    state.last_raw_observed = raw


def update_gauge(state: GaugeState, field: float | int | bool | None) -> bool:
    """Set *state* from *field*; returns False when the field was absent."""
    if field is None:
        return False
    state.value = float(field)
    return True


def update_vector(state: IndexedVectorState, values: Sequence[float]) -> None:
    if len(values) > state.cardinality:
        raise LabelCardinalityError(
            f"received {len(values)} values for a vector of {state.cardinality} labels"
        )
    for index, value in enumerate(values):
        state.slots[index] = float(value)


def update_info(state: InfoState, values: Sequence[str | None]) -> bool:
    """Point the info series at *values*; returns True when it changed.

    A ``None`` value keeps the label it had before; a label never reported
    is exposed as an empty string.
    """
    if len(values) != len(state.label_names):
        raise LabelCardinalityError(
            f"received {len(values)} label values for {len(state.label_names)} label names"
        )
    previous = state.labels
    labels = tuple(
        value if value is not None else (previous[index] if previous is not None else "")
        for index, value in enumerate(values)
    )
    changed = labels != state.labels
    state.labels = labels
    return changed


__all__ = [
    "CounterState",
    "GaugeState",
    "IndexedVectorState",
    "InfoState",
    "MetricState",
    "reconcile_counter",
    "update_gauge",
    "update_info",
    "update_vector",
]
