"""
Rule Engine

Selects the merchant's active rules whose conditions all hold for a
shipment, in the order their actions must be applied: ascending priority,
ties broken by name. Rules are read from the repository on every call.
"""
import logging
from typing import List, Optional

from shipquote.modules.shipping.carriers.base import ShipmentDetails
from shipquote.modules.shipping.rules.conditions import ConditionEvaluator
from shipquote.schemas.shipping_rule import ShippingRule

logger = logging.getLogger(__name__)


def rule_sort_key(rule: ShippingRule):
    return (rule.priority, rule.name)


class RuleEngine:
    def __init__(self, rule_repository, evaluator: Optional[ConditionEvaluator] = None):
        self._rules = rule_repository
        self._evaluator = evaluator or ConditionEvaluator()

    async def evaluate(self, merchant_id: str, shipment: ShipmentDetails) -> List[ShippingRule]:
        rules = await self._rules.find_active_by_merchant(merchant_id)
        active = sorted((rule for rule in rules if rule.is_active), key=rule_sort_key)

        matched = [
            rule for rule in active
            if self._evaluator.satisfies_all(shipment, rule.conditions)
        ]
        logger.debug(
            f"Merchant {merchant_id}: {len(matched)}/{len(active)} active rules matched "
            f"{[rule.name for rule in matched]}"
        )
        return matched
