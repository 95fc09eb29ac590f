"""
Supported source sites.

Helpers for recognising story URLs from the archive sites the analysis
collaborator knows how to read. Only URL inspection happens here; nothing
is fetched.
"""

import re
from typing import Dict, Optional
from urllib.parse import urlparse

SUPPORTED_SITES: Dict[str, str] = {
    "archiveofourown.org": "Archive of Our Own",
    "fanfiction.net": "FanFiction.Net",
    "fictionpress.com": "FictionPress",
    "fimfiction.net": "FIMFiction",
    "wattpad.com": "Wattpad",
}

UNKNOWN_SITE = "Unknown"

# Path pattern holding the numeric story id, per site
_STORY_ID_PATTERNS = {
    "archiveofourown.org": re.compile(r'/works/(\d+)'),
    "fanfiction.net": re.compile(r'/s/(\d+)'),
    "fictionpress.com": re.compile(r'/s/(\d+)'),
    "fimfiction.net": re.compile(r'/story/(\d+)'),
    "wattpad.com": re.compile(r'/story/(\d+)'),
}


def _hostname(url: str) -> Optional[str]:
    try:
        parsed = urlparse(url.strip())
    except (AttributeError, ValueError):
        return None
    if not parsed.scheme or not parsed.hostname:
        return None
    return parsed.hostname.lower()


def _match_site(url: str) -> Optional[str]:
    hostname = _hostname(url)
    if not hostname:
        return None
    for domain in SUPPORTED_SITES:
        if domain in hostname:
            return domain
    return None


def get_site_from_url(url: str) -> str:
    """
    Name the archive site a URL belongs to.

    Returns:
        Display name such as "Archive of Our Own", or "Unknown"
    """
    if not url:
        return UNKNOWN_SITE
    if isinstance(url, str):
        lowered = url.lower()
        for domain, name in SUPPORTED_SITES.items():
            if domain in lowered:
                return name
    return UNKNOWN_SITE


def is_valid_story_url(url: str) -> bool:
    """True when ``url`` parses with a host on a supported site, whatever the scheme."""
    if not isinstance(url, str):
        return False
    return _match_site(url) is not None


def extract_story_id(url: str) -> Optional[str]:
    """
    Pull the site's numeric story id out of a story URL.

    Returns:
        The id as a string, or None when the URL is not a recognised story URL
    """
    if not isinstance(url, str):
        return None
    domain = _match_site(url)
    if domain is None:
        return None
    match = _STORY_ID_PATTERNS[domain].search(urlparse(url.strip()).path)
    return match.group(1) if match else None
