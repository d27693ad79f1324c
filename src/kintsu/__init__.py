"""Kintsu long-term memory pipeline."""

__version__ = "0.1.0"
