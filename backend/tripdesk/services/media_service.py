"""
Signed URL generation for media referenced by storage key.

Signed URLs are never stored; they are generated per read with an expiry
that depends on the media type.
"""

import asyncio
from typing import List, Optional

import structlog

from tripdesk.services.storage_service import StorageService

logger = structlog.get_logger()

# Expiration times in seconds
EXPIRY_TIMES = {
    "AUDIO": 900,
    "VIDEO": 900,
    "IMAGE": 300,
    "PROFILE": 600,
    "LOCALE": 300,
    "DEFAULT": 600,
}


async def generate_signed_url(storage_key: Optional[str], media_type: str = "DEFAULT") -> Optional[str]:
    """
    Returns None for blank keys or when signing fails.
    """
    if not storage_key or not isinstance(storage_key, str) or not storage_key.strip():
        logger.warning("signed_url_invalid_key", storage_key=storage_key, media_type=media_type)
        return None

    expiry = EXPIRY_TIMES.get(media_type.upper(), EXPIRY_TIMES["DEFAULT"])
    try:
        return await StorageService.get_download_url(storage_key.strip(), expiry)
    except Exception as e:
        logger.error("signed_url_failed", storage_key=storage_key, media_type=media_type, error=str(e))
        return None


async def generate_signed_urls(storage_keys: Optional[List[str]], media_type: str = "DEFAULT") -> List[Optional[str]]:
    if not storage_keys:
        return []
    return list(await asyncio.gather(*(generate_signed_url(key, media_type) for key in storage_keys)))
