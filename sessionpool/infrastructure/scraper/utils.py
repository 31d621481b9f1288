"""Helper utilities for origin URLs and session cookies."""

import re
from typing import Iterable, Optional
from urllib.parse import urlparse

TOKEN_COOKIE_NAME = "access_token_web"

_TOKEN_PATTERN = re.compile(rf"{TOKEN_COOKIE_NAME}=([^;,\s]+)")
_ORIGIN_PATTERN = re.compile(r"(?:^|\.)vinted\.([a-z.]+)$")

DEFAULT_ORIGIN = "com"


def origin_base_url(origin: str) -> str:
    """Landing URL for an origin key, e.g. "co.uk" -> https://www.vinted.co.uk"""
    return f"https://www.vinted.{origin}"


def origin_from_url(url: str, default: str = DEFAULT_ORIGIN) -> str:
    """Derive the origin key from a Vinted URL.

    Examples:
    - https://www.vinted.co.uk/items/1 → "co.uk"
    - https://www.vinted.fr/catalog → "fr"

    Args:
        url: Any URL on a Vinted host
        default: Origin returned for non-Vinted hosts

    Returns:
        Origin key
    """
    host = (urlparse(url).hostname or "").lower()
    match = _ORIGIN_PATTERN.search(host)
    return match.group(1) if match else default


def validate_url(url: str) -> bool:
    """Check if URL is well-formed and from a Vinted domain.

    Args:
        url: URL to validate

    Returns:
        True if valid Vinted URL, False otherwise
    """
    parsed = urlparse(url)

    if parsed.scheme not in ('http', 'https'):
        return False

    host = (parsed.hostname or "").lower()
    return bool(_ORIGIN_PATTERN.search(host))


def extract_item_id_from_url(url: str) -> str:
    """Extract Vinted item ID from URL.

    Handles various URL formats:
    - https://www.vinted.co.uk/items/1234567890
    - https://www.vinted.co.uk/items/1234567890-nike-joggers?referrer=catalog

    Args:
        url: Vinted product URL

    Returns:
        Item ID as string

    Raises:
        ValueError: If item ID cannot be extracted
    """
    path_parts = urlparse(url).path.strip('/').split('/')

    if 'items' in path_parts:
        items_index = path_parts.index('items')
        if items_index + 1 < len(path_parts):
            item_id = path_parts[items_index + 1].split('-')[0]
            if item_id.isdigit():
                return item_id

    raise ValueError(f"Could not extract item ID from URL: {url}")


def extract_access_token(cookie_text: Optional[str]) -> Optional[str]:
    """Find the session token in a Cookie or Set-Cookie value."""
    if not cookie_text:
        return None
    match = _TOKEN_PATTERN.search(cookie_text)
    return match.group(1) if match else None


def find_access_token(set_cookie_values: Iterable[str]) -> Optional[str]:
    """Return the token from the first Set-Cookie value that carries one."""
    for value in set_cookie_values:
        token = extract_access_token(value)
        if token:
            return token
    return None


def token_cookie(token: str) -> str:
    return f"{TOKEN_COOKIE_NAME}={token}"


def replace_access_token(cookie_header: str, token: str) -> str:
    """Swap the session token inside a Cookie header, keeping other cookies."""
    if extract_access_token(cookie_header) is None:
        return f"{cookie_header}; {token_cookie(token)}" if cookie_header else token_cookie(token)
    return _TOKEN_PATTERN.sub(lambda _: token_cookie(token), cookie_header, count=1)
