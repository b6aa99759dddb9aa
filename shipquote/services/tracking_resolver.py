"""
Tracking Resolver

Finds tracking details when the caller may not know which carrier shipped
the package. The hinted carrier is asked first; every other carrier the
merchant has configured is then tried in registry order, one at a time.
"""
import logging
from typing import List, Optional

from shipquote.core.exceptions import TrackingInfoUnavailableError
from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers import ProviderRegistry
from shipquote.modules.shipping.carriers.base import TrackingDetails

logger = logging.getLogger(__name__)


class TrackingResolver:
    def __init__(self, registry: ProviderRegistry, config_repository):
        self.registry = registry
        self.config_repository = config_repository

    async def get_tracking(
        self,
        merchant_id: str,
        tracking_number: str,
        carrier_hint: Optional[CarrierCode] = None,
    ) -> TrackingDetails:
        candidates = [
            code for code in self.registry.registered_codes
            if code != CarrierCode.FALLBACK and self.registry.is_enabled(code)
        ]
        configs = await self.config_repository.get_configs(merchant_id, candidates)

        order: List[CarrierCode] = []
        if carrier_hint is not None and carrier_hint in configs:
            order.append(carrier_hint)
        elif carrier_hint is not None:
            logger.info(f"Tracking hint {carrier_hint.value} is not usable for merchant {merchant_id}")
        order.extend(code for code in candidates if code in configs and code not in order)

        if not order:
            raise TrackingInfoUnavailableError(
                "No configured carrier can track this shipment",
                tracking_number=tracking_number,
            )

        for code in order:
            provider = self.registry.get(code)
            try:
                details = await provider.get_tracking_details(tracking_number, configs[code])
            except Exception as e:
                logger.warning(f"{code.value} tracking lookup for {tracking_number} failed: {e}")
                continue
            if details is not None and not details.is_empty:
                logger.info(f"Tracking {tracking_number} resolved by {code.value}")
                return details

        raise TrackingInfoUnavailableError(
            f"Tracking information for {tracking_number} is not available",
            tracking_number=tracking_number,
        )
