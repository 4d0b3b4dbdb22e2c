"""
URL Helpers

Normalizes company website values before they are handed to Lab engines.
Company records come from a spreadsheet-style store, so websites arrive as
anything from "acme.com" to "HTTPS://www.Acme.com/about/".
"""

from typing import Optional
from urllib.parse import urlparse


def normalize_website_url(website: Optional[str]) -> str:
    """
    Normalize a website value into an absolute https URL.

    - Adds https:// when no scheme is present
    - Lowercases the host
    - Drops query strings, fragments and trailing slashes

    Returns an empty string for empty input.
    """
    if not website:
        return ""

    raw = website.strip()
    if not raw:
        return ""

    if "://" not in raw:
        raw = f"https://{raw}"

    parsed = urlparse(raw)
    host = (parsed.netloc or "").lower()
    if not host:
        return ""

    scheme = parsed.scheme if parsed.scheme in ("http", "https") else "https"
    path = parsed.path.rstrip("/")

    return f"{scheme}://{host}{path}"


def extract_domain(website: Optional[str]) -> str:
    """Extract bare domain (no www.) from a website value."""
    url = normalize_website_url(website)
    if not url:
        return ""

    host = urlparse(url).netloc
    if host.startswith("www."):
        host = host[4:]

    # Remove port if present
    return host.split(":")[0]
