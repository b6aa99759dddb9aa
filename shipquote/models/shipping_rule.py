"""
Shipping rule model

Conditions and action are stored as JSON and validated into
schemas.shipping_rule.ShippingRule when loaded, so a malformed row is
rejected at read time instead of part-way through a rate request.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, Index

from shipquote.core.database import Base


class ShippingRuleRecord(Base):
    __tablename__ = "shipping_rules"
    __table_args__ = (
        Index("ix_shipping_rules_merchant_active", "merchant_id", "is_active"),
    )

    id = Column(String(64), primary_key=True)
    merchant_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)

    # Lower runs first; ties broken by name
    priority = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # [{"type": "WEIGHT", "operator": "GT", "value": 10}, ...]
    conditions = Column(JSON, default=list)
    # {"carriers": ["UPS"], "cost_adjustment": {"type": "PERCENTAGE_SUBTRACT", "amount": 10}}
    action = Column(JSON, default=dict)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<ShippingRuleRecord(id={self.id}, merchant={self.merchant_id}, name={self.name}, priority={self.priority})>"
