"""Headless MakeMyTrip flight listing extraction."""

__version__ = "1.0.0"
