from __future__ import annotations

import re
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def clean_content(text: str, max_length: int = 8000) -> str:
    """Collapse whitespace and trim to max length."""
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return text


def normalize_website(website: str) -> str:
    """Ensure a website has a scheme so it can be parsed and linked."""
    value = (website or "").strip()
    if not value:
        return ""
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", value):
        value = f"https://{value.lstrip('/')}"
    return value


def normalize_domain(website: str) -> str:
    """Lower-cased hostname without `www.` or port, used as the dedup key."""
    value = normalize_website(website)
    if not value:
        return ""
    try:
        host = urlparse(value).hostname or ""
    except ValueError:
        return ""
    host = host.lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host
