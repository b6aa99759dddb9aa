"""
API dependencies

Long-lived objects (provider registry, quote cache, fallback engine) are
built once in the app lifespan and read from app.state. Repositories are
per request, bound to the request's database session.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shipquote.core.database import get_db
from shipquote.modules.shipping.carriers import ProviderRegistry
from shipquote.modules.shipping.rules.actions import RuleActionApplier
from shipquote.modules.shipping.rules.engine import RuleEngine
from shipquote.services.fallback_engine import FallbackEngine
from shipquote.services.label_resolver import LabelResolver
from shipquote.services.merchant_config_service import (
    MerchantConfigRepository,
    SqlMerchantConfigRepository,
)
from shipquote.services.rate_aggregator import RateAggregator
from shipquote.services.rate_store import QuoteCache
from shipquote.services.rule_repository import RuleRepository, SqlRuleRepository
from shipquote.services.tracking_resolver import TrackingResolver


def get_provider_registry(request: Request) -> ProviderRegistry:
    return request.app.state.provider_registry


def get_quote_cache(request: Request) -> QuoteCache:
    return request.app.state.quote_cache


def get_fallback_engine(request: Request) -> FallbackEngine:
    return request.app.state.fallback_engine


def get_rule_repository(db: AsyncSession = Depends(get_db)) -> RuleRepository:
    return SqlRuleRepository(db)


def get_config_repository(db: AsyncSession = Depends(get_db)) -> MerchantConfigRepository:
    return SqlMerchantConfigRepository(db)


def get_rate_aggregator(
    registry: ProviderRegistry = Depends(get_provider_registry),
    quote_cache: QuoteCache = Depends(get_quote_cache),
    fallback_engine: FallbackEngine = Depends(get_fallback_engine),
    rules: RuleRepository = Depends(get_rule_repository),
    configs: MerchantConfigRepository = Depends(get_config_repository),
) -> RateAggregator:
    return RateAggregator(
        registry=registry,
        rule_engine=RuleEngine(rules),
        action_applier=RuleActionApplier(),
        fallback_engine=fallback_engine,
        quote_cache=quote_cache,
        config_repository=configs,
    )


def get_label_resolver(
    registry: ProviderRegistry = Depends(get_provider_registry),
    quote_cache: QuoteCache = Depends(get_quote_cache),
    configs: MerchantConfigRepository = Depends(get_config_repository),
) -> LabelResolver:
    return LabelResolver(registry, quote_cache, configs)


def get_tracking_resolver(
    registry: ProviderRegistry = Depends(get_provider_registry),
    configs: MerchantConfigRepository = Depends(get_config_repository),
) -> TrackingResolver:
    return TrackingResolver(registry, configs)
