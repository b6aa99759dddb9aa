"""
Fallback Engine

Produces rates when no carrier (and no rule-level fallback) produced any.
The policy is built once per aggregation and never changes mid-request.

- DISABLED: nothing; the caller raises ShippingRateUnavailableError
- FLAT_RATE: one configured flat-rate quote
- CACHED_RATES: the last real result set seen for the same shipment
"""
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from shipquote.core.config import settings
from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers.base import (
    FALLBACK_ID_PREFIX,
    RateQuote,
    ShipmentDetails,
    new_quote_id,
    to_money,
)
from shipquote.services.rate_store import QuoteCache

logger = logging.getLogger(__name__)

FLAT_RATE_SERVICE_CODE = "FLAT_RATE"
FLAT_RATE_SERVICE_NAME = "Flat Rate Shipping"
CACHED_SUFFIX = " (Cached)"


class FallbackMechanism(str, enum.Enum):
    DISABLED = "DISABLED"
    FLAT_RATE = "FLAT_RATE"
    CACHED_RATES = "CACHED_RATES"


@dataclass(frozen=True)
class FallbackPolicy:
    mechanism: FallbackMechanism = FallbackMechanism.DISABLED
    flat_rate_amount: Optional[Decimal] = None
    flat_rate_currency: Optional[str] = None
    cache_ttl_seconds: int = 0

    @classmethod
    def disabled(cls) -> "FallbackPolicy":
        return cls(FallbackMechanism.DISABLED)

    @classmethod
    def flat_rate(cls, amount, currency: Optional[str]) -> "FallbackPolicy":
        return cls(
            FallbackMechanism.FLAT_RATE,
            flat_rate_amount=to_money(amount) if amount is not None else None,
            flat_rate_currency=currency.upper() if currency else None,
        )

    @classmethod
    def cached_rates(cls, ttl_seconds: int) -> "FallbackPolicy":
        return cls(FallbackMechanism.CACHED_RATES, cache_ttl_seconds=int(ttl_seconds))

    @classmethod
    def from_settings(cls, s=None) -> "FallbackPolicy":
        s = s or settings
        mechanism = FallbackMechanism(s.DEFAULT_FALLBACK_MECHANISM)
        if mechanism == FallbackMechanism.FLAT_RATE:
            return cls.flat_rate(s.DEFAULT_FALLBACK_FLAT_RATE_AMOUNT, s.DEFAULT_FALLBACK_FLAT_RATE_CURRENCY)
        if mechanism == FallbackMechanism.CACHED_RATES:
            return cls.cached_rates(s.DEFAULT_FALLBACK_CACHE_TTL_SECONDS)
        return cls.disabled()


class FallbackEngine:
    """Builds fallback quotes for a policy. Never raises."""

    def __init__(self, quote_cache: QuoteCache, default_policy: Optional[FallbackPolicy] = None):
        self._cache = quote_cache
        self.default_policy = default_policy or FallbackPolicy.from_settings()
        self._handlers = {
            FallbackMechanism.DISABLED: self._disabled,
            FallbackMechanism.FLAT_RATE: self._flat_rate,
            FallbackMechanism.CACHED_RATES: self._cached_rates,
        }
        missing = set(FallbackMechanism) - set(self._handlers)
        if missing:
            raise RuntimeError(f"Unhandled fallback mechanisms: {sorted(m.value for m in missing)}")

    async def get_fallback_rates(
        self,
        shipment: ShipmentDetails,
        policy: FallbackPolicy,
        merchant_id: str,
    ) -> List[RateQuote]:
        handler = self._handlers[policy.mechanism]
        quotes = await handler(shipment, policy, merchant_id)
        logger.info(
            f"Fallback {policy.mechanism.value} produced {len(quotes)} rate(s) for merchant {merchant_id}"
        )
        return quotes

    async def _disabled(self, shipment, policy, merchant_id) -> List[RateQuote]:
        return []

    async def _flat_rate(self, shipment, policy, merchant_id) -> List[RateQuote]:
        if policy.flat_rate_amount is None or not policy.flat_rate_currency:
            logger.warning("FLAT_RATE fallback selected but amount or currency is not configured")
            return []
        return [
            RateQuote(
                id=new_quote_id(FALLBACK_ID_PREFIX),
                carrier_code=CarrierCode.FALLBACK,
                service_code=FLAT_RATE_SERVICE_CODE,
                service_name=FLAT_RATE_SERVICE_NAME,
                amount=to_money(policy.flat_rate_amount),
                currency=policy.flat_rate_currency,
                description="Standard flat rate shipping",
            )
        ]

    async def _cached_rates(self, shipment, policy, merchant_id) -> List[RateQuote]:
        if policy.cache_ttl_seconds <= 0:
            logger.warning("CACHED_RATES fallback selected with a non-positive TTL")
            return []
        cached = await self._cache.get_rate_set(merchant_id, shipment)
        return [
            quote.derive(
                id_prefix=FALLBACK_ID_PREFIX,
                carrier_code=CarrierCode.FALLBACK,
                service_name=f"{quote.service_name}{CACHED_SUFFIX}",
                original_provider_rate={
                    "cached_carrier_code": quote.carrier_code.value,
                    "cached_service_code": quote.service_code,
                },
            )
            for quote in cached
        ]
