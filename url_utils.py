# url_utils.py
"""
Normalization of the configured upstream base URL and composition of request
URLs against it.

An unusable base URL never fails the caller: the hard-coded DEFAULT_BASE_URL
is substituted and a warning is logged so the misconfiguration stays visible.
"""
import logging
import re
from typing import Optional
from urllib.parse import urlencode, urlparse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://drakorkita3.nicewap.sbs"

_SCHEME_RE = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*://')

# Upstream slugs: detail endpoints and genre names
SLUG_RE = re.compile(r'^[\w-]+$')


def _strip_unprintable(raw: str) -> str:
    return ''.join(ch for ch in raw if ch.isprintable()).strip()


def is_well_formed(url: str) -> bool:
    """True for an absolute http(s) URL with a host and no embedded whitespace."""
    if not url or any(ch.isspace() for ch in url):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.hostname)


def normalize_base_url(raw: Optional[str], default: str = DEFAULT_BASE_URL) -> str:
    """
    Normalize a configured base URL.

    Rules:
    1) Drop non-printable characters and surrounding whitespace
    2) Prepend "https://" when no scheme is present
    3) Strip a single trailing slash
    4) Validate; fall back to `default` (with a warning) when malformed

    Examples:
        >>> normalize_base_url("example.com/")
        'https://example.com'
        >>> normalize_base_url("\\x00\\x01") == DEFAULT_BASE_URL
        True
    """
    cleaned = _strip_unprintable(raw) if isinstance(raw, str) else ''

    if cleaned and not _SCHEME_RE.match(cleaned):
        cleaned = f"https://{cleaned}"

    if cleaned.endswith('/'):
        cleaned = cleaned[:-1]

    if not is_well_formed(cleaned):
        logger.warning(f"Configured base URL {raw!r} is invalid, falling back to {default}")
        return default

    return cleaned


def compose_url(base_url: str, path: str = '', params: Optional[dict] = None) -> str:
    """
    Build an absolute upstream URL from the base URL, a path suffix and
    optional query parameters.

    >>> compose_url("https://example.com", "/api/episode.php", {"movie_id": "12", "tag": "x"})
    'https://example.com/api/episode.php?movie_id=12&tag=x'
    """
    base = normalize_base_url(base_url)
    if path and not path.startswith('/'):
        path = '/' + path

    url = f"{base}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"

    if not is_well_formed(url):
        logger.warning(f"Composed URL {url!r} is invalid, falling back to {DEFAULT_BASE_URL}")
        url = f"{DEFAULT_BASE_URL}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"

    return url
