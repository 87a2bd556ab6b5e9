# HTTP Helper for TV Connections
# Session configuration for the TV's local HTTPS control API (self-signed certificates)

import aiohttp
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

def create_tv_session(timeout_seconds: float = 5, headers: Optional[Dict[str, str]] = None) -> aiohttp.ClientSession:
    """
    Create properly configured aiohttp session for local TV connections
    TVs serve HTTPS with self-signed certificates, so verification is disabled
    """
    connector = aiohttp.TCPConnector(
        limit_per_host=2,           # Max 2 connections per TV IP
        ssl=False,                  # Self-signed certificates on the TV
        force_close=True,           # Force connection cleanup
        enable_cleanup_closed=True  # Additional cleanup
    )

    return aiohttp.ClientSession(
        connector=connector,
        headers=headers or {},
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )
