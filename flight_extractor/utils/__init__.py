"""Utility modules for Flight Extractor."""

from flight_extractor.utils.url_builder import build_search_url, resolve_dates

__all__ = ["build_search_url", "resolve_dates"]
