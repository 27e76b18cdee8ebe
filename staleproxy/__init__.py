"""Prometheus exposition proxy that suppresses series with unchanged values."""

__version__ = "0.1.0"
