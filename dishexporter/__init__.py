"""Starlink dish Prometheus exporter."""

__version__ = "0.3.0"
