"""
Optional SOCKS5 proxy settings.

Settings come from a JSON file (``proxy-settings.json`` by default) or,
when that file is absent, from the PROXY_HOST / PROXY_PORT / PROXY_USER /
PROXY_PASS environment variables (a ``.env`` file is honoured). No
settings means direct connections.
"""

import json
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from sessionpool.utils.logger import get_logger

logger = get_logger(__name__)


class ProxyConfig(BaseModel):
    """Connection details for a SOCKS5 proxy."""

    host: str = Field(..., min_length=1, description="Proxy host name or address")
    port: int = Field(..., ge=1, le=65535, description="Proxy port")
    username: Optional[str] = Field(default=None, description="Optional user name")
    password: Optional[str] = Field(default=None, description="Optional password")

    @property
    def url(self) -> str:
        if self.username and self.password:
            credentials = f"{quote(self.username, safe='')}:{quote(self.password, safe='')}@"
            return f"socks5://{credentials}{self.host}:{self.port}"
        return f"socks5://{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"socks5://{self.host}:{self.port}"


def load_proxy_settings(settings_path: Path | str = "proxy-settings.json") -> Optional[ProxyConfig]:
    """Load proxy settings from file or environment.

    Invalid settings are logged and treated as "no proxy".

    Args:
        settings_path: JSON settings file checked before the environment

    Returns:
        ProxyConfig, or None for direct connections
    """
    settings_path = Path(settings_path)

    try:
        if settings_path.exists():
            data = json.loads(settings_path.read_text(encoding='utf-8'))
            proxy = ProxyConfig.model_validate(data)
            logger.info(f"Using proxy {proxy} from {settings_path}")
            return proxy

        load_dotenv()
        host = os.environ.get('PROXY_HOST')
        port = os.environ.get('PROXY_PORT')
        if host and port:
            proxy = ProxyConfig(
                host=host,
                port=int(port),
                username=os.environ.get('PROXY_USER') or None,
                password=os.environ.get('PROXY_PASS') or None,
            )
            logger.info(f"Using proxy {proxy} from environment")
            return proxy
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Error loading proxy settings: {e}")
        return None

    logger.debug("No proxy configured, using direct connections")
    return None
