"""Plainness: editorial suggestions and version history for a working document."""

__version__ = "0.1.0"
