"""
Merchant carrier configuration

Which carriers a merchant has set up, and the account details to use with
each. A carrier absent from the result is simply not configured for the
merchant and is never called on its behalf.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shipquote.models.carrier import CarrierCode, MerchantCarrierConfigRecord
from shipquote.modules.shipping.carriers.base import MerchantProviderConfig

logger = logging.getLogger(__name__)


class MerchantConfigRepository(ABC):

    @abstractmethod
    async def get_configs(
        self,
        merchant_id: str,
        carrier_codes: Iterable[CarrierCode],
    ) -> Dict[CarrierCode, MerchantProviderConfig]:
        pass


def record_to_config(record: MerchantCarrierConfigRecord) -> Optional[MerchantProviderConfig]:
    try:
        code = CarrierCode(record.carrier_code)
    except ValueError:
        logger.warning(
            f"Merchant {record.merchant_id} has a config for unknown carrier {record.carrier_code}"
        )
        return None
    return MerchantProviderConfig(
        merchant_id=record.merchant_id,
        carrier_code=code,
        credentials_ref=record.credentials_ref,
        account_number=record.account_number,
        custom_properties=dict(record.custom_properties or {}),
    )


class SqlMerchantConfigRepository(MerchantConfigRepository):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_configs(
        self,
        merchant_id: str,
        carrier_codes: Iterable[CarrierCode],
    ) -> Dict[CarrierCode, MerchantProviderConfig]:
        wanted = [code.value for code in carrier_codes]
        if not wanted:
            return {}

        result = await self.db.execute(
            select(MerchantCarrierConfigRecord).where(
                MerchantCarrierConfigRecord.merchant_id == merchant_id,
                MerchantCarrierConfigRecord.carrier_code.in_(wanted),
                MerchantCarrierConfigRecord.is_active == True,  # noqa: E712
            )
        )

        configs: Dict[CarrierCode, MerchantProviderConfig] = {}
        for record in result.scalars().all():
            config = record_to_config(record)
            if config is not None:
                configs[config.carrier_code] = config
        return configs


class InMemoryMerchantConfigRepository(MerchantConfigRepository):
    def __init__(self, configs: Optional[Iterable[MerchantProviderConfig]] = None):
        self._configs: Dict[str, Dict[CarrierCode, MerchantProviderConfig]] = {}
        for config in configs or []:
            self.add(config)

    def add(self, config: MerchantProviderConfig) -> None:
        self._configs.setdefault(config.merchant_id, {})[config.carrier_code] = config

    async def get_configs(
        self,
        merchant_id: str,
        carrier_codes: Iterable[CarrierCode],
    ) -> Dict[CarrierCode, MerchantProviderConfig]:
        merchant = self._configs.get(merchant_id, {})
        return {code: merchant[code] for code in carrier_codes if code in merchant}
