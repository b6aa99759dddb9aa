"""
Rate Aggregator

Quotes a shipment across every carrier the merchant may use:

1. default the ship-from address
2. load the merchant's carrier configs and decide eligibility from rules
3. query eligible carriers concurrently, each under its own timeout
4. merge, apply rule pricing, then rule-level fallback
5. fall back to the FallbackEngine when nothing survived
6. persist every returned quote so it can be redeemed for a label

A carrier that errors or times out contributes no quotes; it never fails
the request. The only terminal failure is having no quotes at all.
"""
import asyncio
import logging
from typing import List, Optional

from shipquote.core.config import settings
from shipquote.core.exceptions import ShippingRateUnavailableError
from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers import ProviderRegistry
from shipquote.modules.shipping.carriers.base import (
    Address,
    MerchantProviderConfig,
    RateQuote,
    ShipmentDetails,
)
from shipquote.modules.shipping.rules.actions import RuleActionApplier
from shipquote.modules.shipping.rules.engine import RuleEngine
from shipquote.services.fallback_engine import FallbackEngine, FallbackMechanism, FallbackPolicy
from shipquote.services.rate_store import QuoteCache

logger = logging.getLogger(__name__)


def default_origin(s=None) -> Optional[Address]:
    """Ship-from address from settings, or None if not configured."""
    s = s or settings
    if not (s.DEFAULT_SHIPPING_ORIGIN_STREET1 and s.DEFAULT_SHIPPING_ORIGIN_POSTAL_CODE):
        return None
    return Address(
        street1=s.DEFAULT_SHIPPING_ORIGIN_STREET1,
        street2=s.DEFAULT_SHIPPING_ORIGIN_STREET2 or None,
        city=s.DEFAULT_SHIPPING_ORIGIN_CITY,
        state_province=s.DEFAULT_SHIPPING_ORIGIN_STATE,
        postal_code=s.DEFAULT_SHIPPING_ORIGIN_POSTAL_CODE,
        country_code=s.DEFAULT_SHIPPING_ORIGIN_COUNTRY_CODE,
        company_name=s.DEFAULT_SHIPPING_ORIGIN_COMPANY or None,
        phone=s.DEFAULT_SHIPPING_ORIGIN_PHONE or None,
    )


class RateAggregator:
    def __init__(
        self,
        registry: ProviderRegistry,
        rule_engine: RuleEngine,
        action_applier: RuleActionApplier,
        fallback_engine: FallbackEngine,
        quote_cache: QuoteCache,
        config_repository,
    ):
        self.registry = registry
        self.rule_engine = rule_engine
        self.action_applier = action_applier
        self.fallback_engine = fallback_engine
        self.quote_cache = quote_cache
        self.config_repository = config_repository

    async def get_rates(
        self,
        merchant_id: str,
        shipment: ShipmentDetails,
        fallback_policy: Optional[FallbackPolicy] = None,
    ) -> List[RateQuote]:
        """
        Get priced shipping options for a shipment.

        Args:
            merchant_id: Merchant whose rules and carrier configs apply
            shipment: What is being shipped, and where
            fallback_policy: Overrides the configured default policy

        Returns:
            Quotes sorted by amount, lowest first

        Raises:
            ShippingRateUnavailableError: no carrier, rule or fallback produced a rate
        """
        policy = fallback_policy or self.fallback_engine.default_policy

        if shipment.origin is None:
            origin = default_origin()
            if origin is None:
                logger.warning("Shipment has no origin and no default ship-from address is configured")
            else:
                shipment = shipment.with_origin(origin)

        enabled = self.registry.enabled_codes
        configs = await self.config_repository.get_configs(merchant_id, enabled)

        rules = await self.rule_engine.evaluate(merchant_id, shipment)
        eligibility = self.action_applier.resolve_eligibility(rules, enabled, set(configs))

        carriers = [
            code for code in eligibility.carriers
            if self.registry.get(code) is not None and code in configs
        ]
        logger.info(f"Merchant {merchant_id}: querying carriers {[c.value for c in carriers]}")

        results = await asyncio.gather(
            *(self._fetch_carrier_rates(code, shipment, configs[code]) for code in carriers)
        )
        merged = [quote for carrier_quotes in results for quote in carrier_quotes]

        quotes = self.action_applier.apply(merged, rules, eligibility)
        from_carriers = bool(quotes)

        if not quotes:
            quotes = self.action_applier.rule_fallback_quotes(rules, shipment.currency)

        if not quotes:
            quotes = await self.fallback_engine.get_fallback_rates(shipment, policy, merchant_id)

        if not quotes:
            logger.warning(f"No shipping rates available for merchant {merchant_id}")
            raise ShippingRateUnavailableError()

        quotes = sorted(quotes, key=lambda q: q.amount)

        # Only quotes that can be redeemed later are returned
        stored = await self.quote_cache.save_quotes(merchant_id, quotes, settings.RATE_QUOTE_TTL_SECONDS)
        if len(stored) < len(quotes):
            logger.error(
                f"Merchant {merchant_id}: stored {len(stored)} of {len(quotes)} quotes; "
                f"dropping the rest"
            )
        if not stored:
            raise ShippingRateUnavailableError("Shipping rates could not be stored for label redemption.")
        quotes = stored

        if from_carriers and policy.mechanism == FallbackMechanism.CACHED_RATES:
            await self.quote_cache.save_rate_set(merchant_id, shipment, quotes, policy.cache_ttl_seconds)

        return quotes

    async def _fetch_carrier_rates(
        self,
        carrier_code: CarrierCode,
        shipment: ShipmentDetails,
        merchant_config: MerchantProviderConfig,
    ) -> List[RateQuote]:
        """One carrier's quotes. Errors and timeouts become an empty list."""
        provider = self.registry.get(carrier_code)
        timeout = settings.provider_timeout(carrier_code.value)
        try:
            quotes = await asyncio.wait_for(provider.get_rates(shipment, merchant_config), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{carrier_code.value} rate request timed out after {timeout}s")
            return []
        except Exception as e:
            logger.error(f"{carrier_code.value} rate request failed: {e}")
            return []

        logger.debug(f"{carrier_code.value} returned {len(quotes)} rate(s)")
        return list(quotes)
