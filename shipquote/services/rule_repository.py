"""
Rule Repository

Read side of the merchant's shipping rules. Rows are validated into
ShippingRule on load; a row that fails validation is logged and skipped so
the remaining rules still apply.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shipquote.models.shipping_rule import ShippingRuleRecord
from shipquote.schemas.shipping_rule import ShippingRule

logger = logging.getLogger(__name__)


class RuleRepository(ABC):

    @abstractmethod
    async def find_active_by_merchant(self, merchant_id: str) -> List[ShippingRule]:
        """Active rules for a merchant, ordered by priority then name."""
        pass


def _validate(record) -> Optional[ShippingRule]:
    try:
        return ShippingRule.model_validate(record)
    except ValidationError as e:
        logger.error(f"Skipping invalid shipping rule {getattr(record, 'id', '?')}: {e}")
        return None


class SqlRuleRepository(RuleRepository):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_active_by_merchant(self, merchant_id: str) -> List[ShippingRule]:
        result = await self.db.execute(
            select(ShippingRuleRecord)
            .where(
                ShippingRuleRecord.merchant_id == merchant_id,
                ShippingRuleRecord.is_active == True,  # noqa: E712
            )
            .order_by(ShippingRuleRecord.priority, ShippingRuleRecord.name)
        )
        rules = [_validate(record) for record in result.scalars().all()]
        return [rule for rule in rules if rule is not None]


class InMemoryRuleRepository(RuleRepository):
    """Rules held in memory, keyed by merchant. Used by tests and local runs."""

    def __init__(self, rules: Optional[Iterable[ShippingRule]] = None):
        self._rules: Dict[str, List[ShippingRule]] = {}
        for rule in rules or []:
            self.add(rule)

    def add(self, rule: ShippingRule) -> None:
        self._rules.setdefault(rule.merchant_id, []).append(rule)

    async def find_active_by_merchant(self, merchant_id: str) -> List[ShippingRule]:
        rules = [rule for rule in self._rules.get(merchant_id, []) if rule.is_active]
        return sorted(rules, key=lambda rule: (rule.priority, rule.name))
