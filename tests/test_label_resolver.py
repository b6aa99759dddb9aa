"""
Tests for redeeming quotes into labels.
"""
from decimal import Decimal

import pytest

from shipquote.core.exceptions import (
    CarrierRateError,
    LabelGenerationFailedError,
    OperationNotSupportedError,
    ProviderConfigurationError,
    SelectedRateInvalidError,
)
from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers import ProviderRegistry
from shipquote.modules.shipping.carriers.fallback import FallbackCarrier
from shipquote.modules.shipping.rules.actions import RuleActionApplier
from shipquote.modules.shipping.rules.engine import RuleEngine
from shipquote.services.fallback_engine import FallbackEngine, FallbackPolicy
from shipquote.services.label_resolver import LabelResolver
from shipquote.services.merchant_config_service import InMemoryMerchantConfigRepository
from shipquote.services.rate_aggregator import RateAggregator
from shipquote.services.rate_store import InMemoryRateStore, QuoteCache
from shipquote.services.rule_repository import InMemoryRuleRepository


@pytest.fixture
def ups(fake_carrier):
    return fake_carrier(CarrierCode.UPS, rates=[("03", "20.00")])


@pytest.fixture
def registry(ups, quote_cache):
    engine = FallbackEngine(quote_cache, default_policy=FallbackPolicy.disabled())
    return ProviderRegistry(
        {CarrierCode.UPS: ups, CarrierCode.FALLBACK: FallbackCarrier(engine)},
        [CarrierCode.UPS],
    )


@pytest.fixture
def configs(make_config):
    return InMemoryMerchantConfigRepository([make_config(CarrierCode.UPS)])


@pytest.fixture
def resolver(registry, quote_cache, configs):
    return LabelResolver(registry, quote_cache, configs)


class TestLabelResolver:

    @pytest.mark.asyncio
    async def test_redeem_immediately_after_quoting(self, registry, quote_cache, configs, ups, resolver, shipment, merchant_id):
        aggregator = RateAggregator(
            registry=registry,
            rule_engine=RuleEngine(InMemoryRuleRepository()),
            action_applier=RuleActionApplier(),
            fallback_engine=FallbackEngine(quote_cache, default_policy=FallbackPolicy.disabled()),
            quote_cache=quote_cache,
            config_repository=configs,
        )
        [quote] = await aggregator.get_rates(merchant_id, shipment)

        label = await resolver.create_label(merchant_id, shipment, quote.id)

        assert label.carrier_code == CarrierCode.UPS
        assert label.rate_id == quote.id
        assert ups.label_calls == [quote]

    @pytest.mark.asyncio
    async def test_unknown_rate(self, resolver, shipment, merchant_id):
        with pytest.raises(SelectedRateInvalidError) as exc_info:
            await resolver.create_label(merchant_id, shipment, "nope")
        assert exc_info.value.rate_id == "nope"
        assert exc_info.value.http_status == 400

    @pytest.mark.asyncio
    async def test_expired_rate(self, registry, configs, shipment, merchant_id, make_quote):
        now = [0.0]
        cache = QuoteCache(InMemoryRateStore(clock=lambda: now[0]))
        quote = make_quote(CarrierCode.UPS)
        await cache.save_quotes(merchant_id, [quote], 1800)
        now[0] = 1801.0

        with pytest.raises(SelectedRateInvalidError):
            await LabelResolver(registry, cache, configs).create_label(merchant_id, shipment, quote.id)

    @pytest.mark.asyncio
    async def test_rate_from_another_merchant_is_invalid(self, resolver, quote_cache, shipment, make_quote):
        quote = make_quote(CarrierCode.UPS)
        await quote_cache.save_quotes("merchant-2", [quote], 600)

        with pytest.raises(SelectedRateInvalidError):
            await resolver.create_label("merchant-1", shipment, quote.id)

    @pytest.mark.asyncio
    async def test_fallback_quote_cannot_be_labelled(self, resolver, quote_cache, shipment, merchant_id, make_quote):
        quote = make_quote(CarrierCode.FALLBACK, "FLAT_RATE", "9.99")
        await quote_cache.save_quotes(merchant_id, [quote], 600)

        with pytest.raises(OperationNotSupportedError) as exc_info:
            await resolver.create_label(merchant_id, shipment, quote.id)
        assert exc_info.value.http_status == 501

    @pytest.mark.asyncio
    async def test_unregistered_carrier(self, resolver, quote_cache, shipment, merchant_id, make_quote):
        quote = make_quote(CarrierCode.DHL, "P")
        await quote_cache.save_quotes(merchant_id, [quote], 600)

        with pytest.raises(ProviderConfigurationError) as exc_info:
            await resolver.create_label(merchant_id, shipment, quote.id)
        assert exc_info.value.message == "Carrier DHL is not available"

    @pytest.mark.asyncio
    async def test_missing_merchant_config(self, registry, quote_cache, shipment, merchant_id, make_quote):
        quote = make_quote(CarrierCode.UPS)
        await quote_cache.save_quotes(merchant_id, [quote], 600)
        resolver = LabelResolver(registry, quote_cache, InMemoryMerchantConfigRepository())

        with pytest.raises(ProviderConfigurationError):
            await resolver.create_label(merchant_id, shipment, quote.id)

    @pytest.mark.asyncio
    async def test_carrier_error_is_wrapped(self, resolver, ups, quote_cache, shipment, merchant_id, make_quote):
        ups.label_error = CarrierRateError("odd failure", carrier_code="UPS")
        quote = make_quote(CarrierCode.UPS, amount="12.00")
        await quote_cache.save_quotes(merchant_id, [quote], 600)

        with pytest.raises(LabelGenerationFailedError) as exc_info:
            await resolver.create_label(merchant_id, shipment, quote.id)
        assert exc_info.value.details["rate_id"] == quote.id

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self, resolver, ups, quote_cache, shipment, merchant_id, make_quote):
        ups.label_error = RuntimeError("boom")
        quote = make_quote(CarrierCode.UPS, amount=str(Decimal("12.00")))
        await quote_cache.save_quotes(merchant_id, [quote], 600)

        with pytest.raises(LabelGenerationFailedError):
            await resolver.create_label(merchant_id, shipment, quote.id)
