"""Sentinel log monitor: threshold alerts on error signatures in log files."""

__version__ = "0.1.0"
