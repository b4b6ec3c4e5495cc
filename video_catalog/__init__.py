"""Versioned video asset catalog."""

__version__ = "0.1.0"
