"""
Carrier models

CarrierCode identifies every provider the registry can hold.
MerchantCarrierConfigRecord stores which carriers a merchant has set up and
where its credentials live. Secrets themselves are never stored here, only a
reference resolved by the secret store at call time.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, JSON, Index, UniqueConstraint
)
import enum

from shipquote.core.database import Base


class CarrierCode(str, enum.Enum):
    """
    Supported shipping providers.

    SHIPPO is an aggregator: its quotes may be for USPS/UPS/etc, but label
    and tracking calls still go through Shippo. FALLBACK is the synthetic
    provider used when no real carrier answers; it only ever quotes.
    """
    FEDEX = "FEDEX"
    UPS = "UPS"
    DHL = "DHL"
    SHIPPO = "SHIPPO"
    FALLBACK = "FALLBACK"


class MerchantCarrierConfigRecord(Base):
    """
    A merchant's configuration for one carrier.

    A carrier with no row (or an inactive row) for a merchant is never
    queried for that merchant, even when globally enabled.
    """
    __tablename__ = "merchant_carrier_configs"
    __table_args__ = (
        UniqueConstraint("merchant_id", "carrier_code", name="uq_merchant_carrier"),
        Index("ix_merchant_carrier_configs_merchant", "merchant_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    merchant_id = Column(String(64), nullable=False)
    carrier_code = Column(String(20), nullable=False)

    # Name looked up in the secret store, e.g. "ACME_UPS"
    credentials_ref = Column(String(255), nullable=False)
    account_number = Column(String(64), nullable=True)

    # Carrier-specific extras, e.g. {"service_type": "FEDEX_GROUND"}
    custom_properties = Column(JSON, default=dict)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return (
            f"<MerchantCarrierConfigRecord(merchant={self.merchant_id}, "
            f"carrier={self.carrier_code}, active={self.is_active})>"
        )
