"""Reactive terminal client for a Transmission download engine."""

__version__ = "0.1.0"
