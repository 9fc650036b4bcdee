"""Keyword search over text documents backed by a single SQLite index."""

__version__ = "0.1.0"
