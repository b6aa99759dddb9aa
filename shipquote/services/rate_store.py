"""
Rate store

Quotes are stateless to the caller: the only handle is the quote id. Every
quote returned by an aggregation is written here under its id so it can be
redeemed for a label until it expires. Full result sets are also written
under a digest of the shipment so the CACHED_RATES fallback can serve them
when every carrier is down.

RateStore is a plain key-value interface (get / set with TTL). Redis is the
shared backend; InMemoryRateStore only works for a single process.
"""
import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from shipquote.core.redis_client import get_redis, rate_key, rate_set_key
from shipquote.modules.shipping.carriers.base import RateQuote, ShipmentDetails, to_money

logger = logging.getLogger(__name__)


class RateStore(ABC):
    """Key-value store with per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        pass


class RedisRateStore(RateStore):
    def __init__(self, client):
        self._client = client

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        await self._client.setex(key, ttl_seconds, value)


class InMemoryRateStore(RateStore):
    """Process-local store. Expired keys are dropped on read and on every write."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[float, str]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        now = self._clock()
        self._purge_expired(now)
        self._data[key] = (now + ttl_seconds, value)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._data.items() if now >= expires_at]
        for key in expired:
            del self._data[key]


async def create_rate_store() -> RateStore:
    """Redis when REDIS_URL is configured and reachable, in-memory otherwise."""
    client = await get_redis()
    if client is None:
        logger.warning("Redis unavailable; quotes are stored in-process and cannot be redeemed across instances")
        return InMemoryRateStore()
    return RedisRateStore(client)


def _canonical_value(value) -> str:
    # 5, 5.0 and 5.00 must hash the same
    if isinstance(value, Decimal):
        return str(value.normalize())
    return str(value)


def shipment_digest(shipment: ShipmentDetails) -> str:
    """
    Stable digest of the fields that determine a carrier's price.

    Ship date and line items are left out: they do not change what the
    carriers charge and would make cached sets miss on every request.
    """
    canonical = {
        "origin": asdict(shipment.origin) if shipment.origin else None,
        "destination": asdict(shipment.destination),
        "parcels": [asdict(parcel) for parcel in shipment.parcels],
        "total_order_value": str(to_money(shipment.total_order_value)),
        "currency": shipment.currency.upper(),
    }
    encoded = json.dumps(canonical, sort_keys=True, default=_canonical_value, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class QuoteCache:
    """
    Domain operations over a RateStore.

    Store failures are logged and reported as a miss / not-saved; they never
    fail the request that triggered them.
    """

    def __init__(self, store: RateStore):
        self._store = store

    async def save_quotes(self, merchant_id: str, quotes: List[RateQuote], ttl_seconds: int) -> List[RateQuote]:
        """Persist each quote under its id. Returns the quotes that were stored."""
        saved = []
        for quote in quotes:
            try:
                await self._store.set(rate_key(merchant_id, quote.id), json.dumps(quote.to_dict()), ttl_seconds)
                saved.append(quote)
            except Exception as e:
                logger.warning(f"Failed to store quote {quote.id} for merchant {merchant_id}: {e}")
        return saved

    async def get_quote(self, merchant_id: str, rate_id: str) -> Optional[RateQuote]:
        try:
            raw = await self._store.get(rate_key(merchant_id, rate_id))
        except Exception as e:
            logger.warning(f"Rate store read failed for quote {rate_id}: {e}")
            return None
        if not raw:
            return None
        try:
            return RateQuote.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, ArithmeticError) as e:
            logger.warning(f"Stored quote {rate_id} could not be decoded: {e}")
            return None

    async def save_rate_set(
        self,
        merchant_id: str,
        shipment: ShipmentDetails,
        quotes: List[RateQuote],
        ttl_seconds: int,
    ) -> bool:
        key = rate_set_key(merchant_id, shipment_digest(shipment))
        try:
            await self._store.set(key, json.dumps([q.to_dict() for q in quotes]), ttl_seconds)
            return True
        except Exception as e:
            logger.warning(f"Failed to cache rate set for merchant {merchant_id}: {e}")
            return False

    async def get_rate_set(self, merchant_id: str, shipment: ShipmentDetails) -> List[RateQuote]:
        key = rate_set_key(merchant_id, shipment_digest(shipment))
        try:
            raw = await self._store.get(key)
        except Exception as e:
            logger.warning(f"Rate store read failed for cached rate set: {e}")
            return []
        if not raw:
            return []
        try:
            return [RateQuote.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError, ArithmeticError) as e:
            logger.warning(f"Cached rate set could not be decoded: {e}")
            return []
