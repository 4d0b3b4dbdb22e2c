"""Utility modules for the GAP engine."""

from .config import Settings, get_settings, configure_logging
from .timeouts import run_with_timeout
from .urls import extract_domain, normalize_website_url

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "run_with_timeout",
    "extract_domain",
    "normalize_website_url",
]
