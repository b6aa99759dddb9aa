"""
Rule Action Applier

Turns matched rules into:
1. an EligibilityPolicy - which carriers to query and which of their
   services may survive;
2. a pricing transform over the merged carrier quotes;
3. rule-level fallback quotes, used only when nothing else survived.

Matched rules arrive in priority order. The first exclusive rule wins
outright: everything accumulated before it is discarded and nothing after
it is considered. Otherwise eligibility is the union of all matched rules,
and each quote is priced by the first rule that covers it (no stacking).
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers.base import (
    FALLBACK_ID_PREFIX,
    ZERO,
    RateQuote,
    new_quote_id,
    to_money,
)
from shipquote.schemas.shipping_rule import (
    CostAdjustmentType,
    OverrideAdjustment,
    RuleAction,
    ShippingRule,
)

logger = logging.getLogger(__name__)

RULE_FALLBACK_SERVICE_CODE = "RULE_FALLBACK"
OVERRIDE_SUFFIX = " (Override)"
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class EligibilityPolicy:
    """
    Carriers to query, in query order, and per-carrier service allow-lists.
    A service allow-list of None means every service of that carrier.
    """
    carriers: List[CarrierCode] = field(default_factory=list)
    services: Dict[CarrierCode, Optional[FrozenSet[str]]] = field(default_factory=dict)
    exclusive_rule: Optional[ShippingRule] = None

    def allows(self, quote: RateQuote) -> bool:
        if quote.carrier_code not in self.services:
            return False
        allowed = self.services[quote.carrier_code]
        return allowed is None or quote.service_code in allowed


# ----- Cost adjustments -----

def _fixed_add(amount: Decimal, adj) -> Decimal:
    return amount + adj.amount


def _fixed_subtract(amount: Decimal, adj) -> Decimal:
    return amount - adj.amount


def _percentage_add(amount: Decimal, adj) -> Decimal:
    return amount * (HUNDRED + adj.amount) / HUNDRED


def _percentage_subtract(amount: Decimal, adj) -> Decimal:
    return amount * (HUNDRED - adj.amount) / HUNDRED


def _override(amount: Decimal, adj) -> Decimal:
    return adj.amount


ADJUSTMENTS: Dict[CostAdjustmentType, Callable[[Decimal, object], Decimal]] = {
    CostAdjustmentType.FIXED_ADD: _fixed_add,
    CostAdjustmentType.FIXED_SUBTRACT: _fixed_subtract,
    CostAdjustmentType.PERCENTAGE_ADD: _percentage_add,
    CostAdjustmentType.PERCENTAGE_SUBTRACT: _percentage_subtract,
    CostAdjustmentType.OVERRIDE: _override,
}

_missing = set(CostAdjustmentType) - set(ADJUSTMENTS)
if _missing:
    raise RuntimeError(f"Cost adjustments without a handler: {sorted(t.value for t in _missing)}")


def _has_pricing_effect(action: RuleAction) -> bool:
    return (
        action.offer_free_shipping
        or action.cost_adjustment is not None
        or action.override_delivery_days is not None
        or bool(action.display_message)
    )


def _covers(action: RuleAction, quote: RateQuote) -> bool:
    if action.carriers is not None and quote.carrier_code not in action.carriers:
        return False
    if action.services is not None and quote.service_code not in action.services:
        return False
    return True


class RuleActionApplier:

    def resolve_eligibility(
        self,
        rules: Sequence[ShippingRule],
        enabled: Iterable[CarrierCode],
        configured: Set[CarrierCode],
    ) -> EligibilityPolicy:
        """
        Work out which carriers/services may be used.

        Args:
            rules: matched rules, in priority order
            enabled: globally enabled carriers, in query order
            configured: carriers the merchant has a config for
        """
        enabled = [code for code in enabled if code != CarrierCode.FALLBACK]
        available = [code for code in enabled if code in configured]

        accumulated: Dict[CarrierCode, Optional[Set[str]]] = {}
        exclusive: Optional[ShippingRule] = None

        for rule in rules:
            action = rule.action
            if action.is_rule_fallback:
                continue
            if action.is_exclusive:
                accumulated = {}
                exclusive = rule

            for carrier in action.carriers or enabled:
                if action.services is None:
                    accumulated[carrier] = None
                elif carrier in accumulated and accumulated[carrier] is None:
                    continue
                else:
                    accumulated.setdefault(carrier, set()).update(action.services)

            if exclusive is not None:
                logger.info(f"Exclusive rule '{rule.name}' decides eligible carriers")
                break

        carriers = [code for code in available if code in accumulated]
        services = {
            code: frozenset(accumulated[code]) if accumulated[code] is not None else None
            for code in carriers
        }

        if exclusive is None and not carriers:
            carriers = list(available)
            services = {code: None for code in carriers}

        dropped = [code.value for code in accumulated if code not in carriers]
        if dropped:
            logger.debug(f"Rule-selected carriers not enabled/configured: {dropped}")

        return EligibilityPolicy(carriers=carriers, services=services, exclusive_rule=exclusive)

    def apply(
        self,
        quotes: Iterable[RateQuote],
        rules: Sequence[ShippingRule],
        policy: EligibilityPolicy,
    ) -> List[RateQuote]:
        """Filter quotes to the policy and apply each quote's pricing rule."""
        survivors = [quote for quote in quotes if policy.allows(quote)]

        if policy.exclusive_rule is not None:
            return [self.apply_action(quote, policy.exclusive_rule) for quote in survivors]

        pricing_rules = [
            rule for rule in rules
            if not rule.action.is_exclusive
            and not rule.action.is_rule_fallback
            and _has_pricing_effect(rule.action)
        ]

        result = []
        for quote in survivors:
            rule = next((r for r in pricing_rules if _covers(r.action, quote)), None)
            result.append(self.apply_action(quote, rule) if rule else quote)
        return result

    def apply_action(self, quote: RateQuote, rule: ShippingRule) -> RateQuote:
        """Apply one rule's action. Returns the same quote if nothing changed."""
        action = rule.action
        changes = {}

        if action.offer_free_shipping:
            changes["amount"] = to_money(ZERO)
        elif action.cost_adjustment is not None:
            adj = action.cost_adjustment
            currency = getattr(adj, "currency", None)
            if currency is not None and currency != quote.currency.upper():
                logger.warning(
                    f"Rule '{rule.name}': {adj.type} in {currency} skipped for "
                    f"{quote.carrier_code.value}/{quote.service_code} quoted in {quote.currency}"
                )
            else:
                adjusted = ADJUSTMENTS[CostAdjustmentType(adj.type)](quote.amount, adj)
                changes["amount"] = to_money(max(ZERO, adjusted))
                if isinstance(adj, OverrideAdjustment):
                    changes["service_name"] = f"{quote.service_name}{OVERRIDE_SUFFIX}"

        if action.override_delivery_days is not None:
            changes["delivery_days"] = action.override_delivery_days
            changes["estimated_delivery_min"] = None
            changes["estimated_delivery_max"] = None

        if action.display_message:
            changes["display_message"] = action.display_message

        if not changes:
            return quote
        return quote.derive(**changes)

    def rule_fallback_quotes(self, rules: Sequence[ShippingRule], currency: str) -> List[RateQuote]:
        """
        Quote from the first matched rule-fallback rule that sets its own
        price (free shipping or an override). Empty if there is none.
        """
        for rule in rules:
            action = rule.action
            if not action.is_rule_fallback or not action.produces_fixed_price:
                continue

            if action.offer_free_shipping:
                amount, quote_currency = ZERO, currency
            else:
                amount, quote_currency = action.cost_adjustment.amount, action.cost_adjustment.currency

            logger.info(f"Rule fallback '{rule.name}' supplies the shipping rate")
            return [
                RateQuote(
                    id=new_quote_id(FALLBACK_ID_PREFIX),
                    carrier_code=CarrierCode.FALLBACK,
                    service_code=RULE_FALLBACK_SERVICE_CODE,
                    service_name=action.display_message or rule.name,
                    amount=to_money(amount),
                    currency=quote_currency.upper(),
                    delivery_days=action.override_delivery_days,
                    display_message=action.display_message,
                    original_provider_rate={"rule_id": rule.id},
                )
            ]
        return []
