"""Synthetic write load for InfluxDB."""

__version__ = "0.1.0"
