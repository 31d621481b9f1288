"""
Browser disguise profile: TLS parameters and the matching header set.

The header values and the TLS cipher list describe the same desktop
Chrome build so the transport and the HTTP layer tell one story.
"""

from __future__ import annotations

import secrets
import ssl
from dataclasses import dataclass

from sessionpool.utils.config import HttpConfig

# Chrome's TLS 1.2 suites in its preference order. TLS 1.3 suites are
# negotiated by OpenSSL's defaults and cannot be narrowed from Python.
CHROME_TLS12_CIPHERS = ":".join([
    "ECDHE-ECDSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES128-GCM-SHA256",
    "ECDHE-ECDSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES256-GCM-SHA384",
    "ECDHE-ECDSA-CHACHA20-POLY1305",
    "ECDHE-RSA-CHACHA20-POLY1305",
])

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"
JSON_ACCEPT = "application/json, text/plain, */*"


@dataclass(frozen=True)
class BrowserProfile:
    """
    A consistent desktop Chrome fingerprint.

    Attributes:
        chrome_version: Full version string, e.g. "120.0.0.0".
        platform: Operating system reported in the UA and client hints.
        accept_language: Accept-Language header value.
    """

    chrome_version: str = "120.0.0.0"
    platform: str = "Windows"
    accept_language: str = "en-US,en;q=0.9"

    @classmethod
    def from_config(cls, config: HttpConfig) -> "BrowserProfile":
        return cls(
            chrome_version=config.chrome_version,
            platform=config.platform,
            accept_language=config.accept_language,
        )

    @property
    def major_version(self) -> str:
        return self.chrome_version.split(".")[0]

    @property
    def user_agent(self) -> str:
        if self.platform == "macOS":
            system = "Macintosh; Intel Mac OS X 10_15_7"
        else:
            system = "Windows NT 10.0; Win64; x64"
        return (
            f"Mozilla/5.0 ({system}) AppleWebKit/537.36 (KHTML, like Gecko) "
            f"Chrome/{self.chrome_version} Safari/537.36"
        )

    def headers(self, base_url: str) -> dict[str, str]:
        """
        Navigation-style headers for a request against ``base_url``.

        A random ``cf_clearance`` cookie is included; callers that send
        their own Cookie header replace it.
        """
        major = self.major_version
        return {
            "sec-ch-ua": f'"Not_A Brand";v="8", "Chromium";v="{major}", "Google Chrome";v="{major}"',
            "sec-ch-ua-mobile": "?0",
            "sec-ch-ua-platform": f'"{self.platform}"',
            "Accept": HTML_ACCEPT,
            "Accept-Language": self.accept_language,
            "Cache-Control": "max-age=0",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Sec-Fetch-User": "?1",
            "Upgrade-Insecure-Requests": "1",
            "User-Agent": self.user_agent,
            "Referer": f"{base_url.rstrip('/')}/",
            "Cookie": f"cf_clearance={secrets.token_hex(32)}",
        }

    def ssl_context(self) -> ssl.SSLContext:
        """
        Client TLS context limited to the profile's versions and ciphers.

        Certificate verification stays on.
        """
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        context.maximum_version = ssl.TLSVersion.TLSv1_3
        context.set_ciphers(CHROME_TLS12_CIPHERS)
        context.set_alpn_protocols(["http/1.1"])
        return context
