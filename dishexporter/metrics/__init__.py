"""Metric catalog, update policies and exposition."""

from .catalog import CatalogCollector, ConstantLabelSet, MetricCatalog, MetricKind, MetricSpec
from .reconciler import SnapshotReconciler

__all__ = [
    "CatalogCollector",
    "ConstantLabelSet",
    "MetricCatalog",
    "MetricKind",
    "MetricSpec",
    "SnapshotReconciler",
]
