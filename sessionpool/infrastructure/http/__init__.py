# HTTP Package
"""
Hardened outbound HTTP.

This module provides:
- HardenedClient: Disguised aiohttp client with 401 token rotation
- BrowserProfile: TLS context and header set of one Chrome build
- ProxyConfig / load_proxy_settings: Optional SOCKS5 tunnel settings
"""

from sessionpool.infrastructure.http.browser_profile import BrowserProfile
from sessionpool.infrastructure.http.hardened_client import HardenedClient, HttpResponse
from sessionpool.infrastructure.http.proxy import ProxyConfig, load_proxy_settings

__all__ = [
    "BrowserProfile",
    "HardenedClient",
    "HttpResponse",
    "ProxyConfig",
    "load_proxy_settings",
]
