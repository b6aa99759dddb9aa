"""
Fallback Provider

Synthetic provider behind FALLBACK quotes. It can quote (through the fallback
engine, using the configured default policy) but has nothing to buy a label
from and nothing to track.
"""
import logging
from typing import List

from shipquote.core.exceptions import OperationNotSupportedError
from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers import register_carrier
from shipquote.modules.shipping.carriers.base import (
    BaseCarrier,
    MerchantProviderConfig,
    RateQuote,
    ShipmentDetails,
    ShippingLabel,
    TrackingDetails,
)

logger = logging.getLogger(__name__)


@register_carrier(CarrierCode.FALLBACK)
class FallbackCarrier(BaseCarrier):

    def __init__(self, fallback_engine):
        super().__init__()
        self._engine = fallback_engine

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.FALLBACK

    @property
    def carrier_name(self) -> str:
        return "Fallback"

    async def get_rates(
        self,
        shipment: ShipmentDetails,
        merchant_config: MerchantProviderConfig,
    ) -> List[RateQuote]:
        return await self._engine.get_fallback_rates(
            shipment, self._engine.default_policy, merchant_config.merchant_id
        )

    async def create_label(
        self,
        shipment: ShipmentDetails,
        selected_rate: RateQuote,
        merchant_config: MerchantProviderConfig,
    ) -> ShippingLabel:
        raise OperationNotSupportedError("Label generation", CarrierCode.FALLBACK.value)

    async def get_tracking_details(
        self,
        tracking_number: str,
        merchant_config: MerchantProviderConfig,
    ) -> TrackingDetails:
        raise OperationNotSupportedError("Tracking", CarrierCode.FALLBACK.value)
