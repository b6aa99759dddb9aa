"""
Label Resolver

Redeems a quote id from an earlier rate response for a label from the
carrier that produced the quote.
"""
import logging

from shipquote.core.exceptions import (
    LabelGenerationFailedError,
    OperationNotSupportedError,
    ProviderConfigurationError,
    SelectedRateInvalidError,
    ShippingError,
)
from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers import ProviderRegistry
from shipquote.modules.shipping.carriers.base import ShipmentDetails, ShippingLabel
from shipquote.services.rate_store import QuoteCache

logger = logging.getLogger(__name__)


class LabelResolver:
    def __init__(self, registry: ProviderRegistry, quote_cache: QuoteCache, config_repository):
        self.registry = registry
        self.quote_cache = quote_cache
        self.config_repository = config_repository

    async def create_label(
        self,
        merchant_id: str,
        shipment: ShipmentDetails,
        selected_rate_id: str,
    ) -> ShippingLabel:
        """
        Buy a label for a previously quoted rate.

        Raises:
            SelectedRateInvalidError: the quote id is unknown or has expired
            OperationNotSupportedError: the quote came from the fallback provider
            ProviderConfigurationError: carrier missing or not configured for the merchant
            LabelGenerationFailedError: the carrier rejected the request
        """
        quote = await self.quote_cache.get_quote(merchant_id, selected_rate_id)
        if quote is None:
            logger.warning(f"Merchant {merchant_id} selected unknown or expired rate {selected_rate_id}")
            raise SelectedRateInvalidError(selected_rate_id, reason="Rate not found or expired")

        if quote.carrier_code == CarrierCode.FALLBACK:
            raise OperationNotSupportedError("Label generation", CarrierCode.FALLBACK.value)

        if not self.registry.is_registered(quote.carrier_code):
            raise ProviderConfigurationError(
                f"Carrier {quote.carrier_code.value} is not available",
                carrier_code=quote.carrier_code.value,
            )
        provider = self.registry.get(quote.carrier_code)

        configs = await self.config_repository.get_configs(merchant_id, [quote.carrier_code])
        merchant_config = configs.get(quote.carrier_code)
        if merchant_config is None:
            raise ProviderConfigurationError(
                f"Merchant {merchant_id} has no configuration for {quote.carrier_code.value}",
                carrier_code=quote.carrier_code.value,
            )

        try:
            label = await provider.create_label(shipment, quote, merchant_config)
        except (ProviderConfigurationError, OperationNotSupportedError, LabelGenerationFailedError):
            raise
        except ShippingError as e:
            raise LabelGenerationFailedError(
                e.message, carrier_code=quote.carrier_code.value, rate_id=quote.id
            )
        except Exception as e:
            logger.error(f"Unexpected error creating {quote.carrier_code.value} label: {e}")
            raise LabelGenerationFailedError(
                f"Label generation failed: {e}", carrier_code=quote.carrier_code.value, rate_id=quote.id
            )

        logger.info(
            f"Label created for merchant {merchant_id}: {quote.carrier_code.value} "
            f"{quote.service_code} tracking={label.tracking_number}"
        )
        return label
