"""
Redis client for shipquote

Backs the rate store: quoted rates are kept here so a stateless quote id can
be redeemed for a label, and whole result sets are kept for the CACHED_RATES
fallback. Shared across instances, unlike the in-process store.
"""
import logging
from typing import Optional

import redis.asyncio as redis

from shipquote.core.config import settings

logger = logging.getLogger(__name__)

# Global Redis client (initialized lazily)
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get Redis client, initializing if needed.

    Returns None if REDIS_URL not configured (graceful degradation).
    """
    global _redis_client

    if not settings.REDIS_URL:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True
            )
            await _redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}. Falling back to in-memory.")
            _redis_client = None

    return _redis_client


async def close_redis():
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


# ----- Rate Store Keys -----

RATE_KEY_PREFIX = "shipquote:rate:"
RATE_SET_KEY_PREFIX = "shipquote:rates:"


def rate_key(merchant_id: str, rate_id: str) -> str:
    """Key for a single redeemable quote."""
    return f"{RATE_KEY_PREFIX}{merchant_id}:{rate_id}"


def rate_set_key(merchant_id: str, shipment_digest: str) -> str:
    """Key for a full result set, used by the CACHED_RATES fallback."""
    return f"{RATE_SET_KEY_PREFIX}{merchant_id}:{shipment_digest}"
