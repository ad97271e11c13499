"""Text exposition (format 0.0.4) for collected metric families.

``prometheus_client.generate_latest`` appends ``_total`` to every counter
family. The dish counters (``dish_uptime_s``, ``dish_obstruction_valid_s``,
...) are published without that suffix, so families are rendered here with
their names untouched. Value formatting reuses the client library helpers.
"""

from __future__ import annotations

from collections.abc import Iterable

from prometheus_client import CONTENT_TYPE_LATEST
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import CollectorRegistry
from prometheus_client.samples import Sample
from prometheus_client.utils import floatToGoString

from ..errors import SerializationError

CONTENT_TYPE = CONTENT_TYPE_LATEST


def _escape_help(text: str) -> str:
    return text.replace("\\", r"\\").replace("\n", r"\n")


def _escape_label_value(value: str) -> str:
    return value.replace("\\", r"\\").replace("\n", r"\n").replace('"', r"\"")


def _sample_line(sample: Sample) -> str:
    labelstr = ""
    if sample.labels:
        pairs = ",".join(
            f'{name}="{_escape_label_value(str(value))}"' for name, value in sorted(sample.labels.items())
        )
        labelstr = "{" + pairs + "}"
    timestamp = ""
    if sample.timestamp is not None:
        timestamp = f" {int(float(sample.timestamp) * 1000):d}"
    return f"{sample.name}{labelstr} {floatToGoString(sample.value)}{timestamp}\n"


def render_families(families: Iterable[Metric]) -> bytes:
    output: list[str] = []
    for family in families:
        try:
            output.append(f"# HELP {family.name} {_escape_help(family.documentation)}\n")
            output.append(f"# TYPE {family.name} {family.type}\n")
            output.extend(_sample_line(sample) for sample in family.samples)
        except (TypeError, ValueError, AttributeError) as exc:
            raise SerializationError(f"cannot render {getattr(family, 'name', family)!r}: {exc}") from exc
    try:
        return "".join(output).encode("utf-8")
    except UnicodeError as exc:
        raise SerializationError(f"cannot encode exposition text: {exc}") from exc


def render_registry(registry: CollectorRegistry) -> bytes:
    return render_families(registry.collect())


__all__ = ["CONTENT_TYPE", "render_families", "render_registry"]
