"""Inkwell - local-first poem journal with background remote sync."""

__version__ = "0.1.0"
