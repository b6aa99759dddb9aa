"""
Condition Evaluator

Decides whether a single rule condition holds for a shipment. Pure: no I/O,
no mutation. An operator that makes no sense for a fact (GT on a country
code), or an operand that cannot be compared with the fact, is logged and
treated as "does not match" so one bad rule cannot break quoting.

Facts come in three kinds:
- numeric: compared as Decimal, in whatever units the shipment declares
- string: compared case-insensitively after stripping
- list (product types): membership / intersection
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List

from shipquote.modules.shipping.carriers.base import ShipmentDetails
from shipquote.schemas.shipping_rule import ConditionOperator, ConditionType, RuleCondition

logger = logging.getLogger(__name__)

Op = ConditionOperator


class OperandError(ValueError):
    """Operand cannot be compared with the fact."""


def _number(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise OperandError(f"boolean is not a number: {value!r}")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise OperandError(f"not a number: {value!r}")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _operands(condition: RuleCondition) -> List[Any]:
    if condition.values:
        return list(condition.values)
    return [condition.value]


# ----- Facts -----

NUMERIC_FACTS: Dict[ConditionType, Callable[[ShipmentDetails], Any]] = {
    ConditionType.WEIGHT: lambda s: s.total_weight,
    ConditionType.VOLUME: lambda s: s.total_volume,
    ConditionType.ORDER_VALUE: lambda s: s.total_order_value,
    ConditionType.ITEM_QUANTITY: lambda s: s.total_quantity,
    ConditionType.ITEM_COUNT: lambda s: s.item_count,
}

STRING_FACTS: Dict[ConditionType, Callable[[ShipmentDetails], Any]] = {
    ConditionType.DESTINATION_COUNTRY: lambda s: s.destination.country_code,
    ConditionType.DESTINATION_STATE: lambda s: s.destination.state_province,
    ConditionType.DESTINATION_POSTAL_CODE: lambda s: s.destination.postal_code,
}

LIST_FACTS: Dict[ConditionType, Callable[[ShipmentDetails], Iterable[Any]]] = {
    ConditionType.PRODUCT_TYPE: lambda s: s.product_types,
}


# ----- Operators per fact kind -----

NUMERIC_OPERATORS: Dict[ConditionOperator, Callable[[Decimal, RuleCondition], bool]] = {
    Op.EQ: lambda fact, c: fact == _number(c.value),
    Op.NE: lambda fact, c: fact != _number(c.value),
    Op.GT: lambda fact, c: fact > _number(c.value),
    Op.LT: lambda fact, c: fact < _number(c.value),
    Op.GTE: lambda fact, c: fact >= _number(c.value),
    Op.LTE: lambda fact, c: fact <= _number(c.value),
    Op.BETWEEN: lambda fact, c: _number(c.min_value) <= fact <= _number(c.max_value),
    Op.IN: lambda fact, c: any(fact == _number(v) for v in c.values),
    Op.NOT_IN: lambda fact, c: all(fact != _number(v) for v in c.values),
}

STRING_OPERATORS: Dict[ConditionOperator, Callable[[str, RuleCondition], bool]] = {
    Op.EQ: lambda fact, c: fact == _text(c.value),
    Op.NE: lambda fact, c: fact != _text(c.value),
    Op.IN: lambda fact, c: fact in {_text(v) for v in c.values},
    Op.NOT_IN: lambda fact, c: fact not in {_text(v) for v in c.values},
    Op.STARTS_WITH: lambda fact, c: fact.startswith(_text(c.value)),
    Op.ENDS_WITH: lambda fact, c: fact.endswith(_text(c.value)),
    Op.CONTAINS: lambda fact, c: any(_text(v) in fact for v in _operands(c)),
    Op.NOT_CONTAINS: lambda fact, c: not any(_text(v) in fact for v in _operands(c)),
}

LIST_OPERATORS: Dict[ConditionOperator, Callable[[set, RuleCondition], bool]] = {
    Op.EQ: lambda facts, c: _text(c.value) in facts,
    Op.NE: lambda facts, c: _text(c.value) not in facts,
    Op.IN: lambda facts, c: any(_text(v) in facts for v in c.values),
    Op.NOT_IN: lambda facts, c: not any(_text(v) in facts for v in c.values),
    Op.CONTAINS: lambda facts, c: any(_text(v) in facts for v in _operands(c)),
    Op.NOT_CONTAINS: lambda facts, c: not any(_text(v) in facts for v in _operands(c)),
}


def _check_exhaustive() -> None:
    """Fail at import if a condition type or operator has no handler."""
    fact_types = set(NUMERIC_FACTS) | set(STRING_FACTS) | set(LIST_FACTS)
    missing_types = set(ConditionType) - fact_types
    if missing_types:
        raise RuntimeError(f"Condition types without a fact: {sorted(t.value for t in missing_types)}")
    handled = set(NUMERIC_OPERATORS) | set(STRING_OPERATORS) | set(LIST_OPERATORS)
    missing_ops = set(ConditionOperator) - handled
    if missing_ops:
        raise RuntimeError(f"Operators without a handler: {sorted(o.value for o in missing_ops)}")


_check_exhaustive()


class ConditionEvaluator:
    """Evaluates rule conditions against a shipment."""

    def satisfies(self, shipment: ShipmentDetails, condition: RuleCondition) -> bool:
        ctype, op = condition.type, condition.operator

        if ctype in NUMERIC_FACTS:
            handler = NUMERIC_OPERATORS.get(op)
            fact = NUMERIC_FACTS[ctype](shipment)
        elif ctype in STRING_FACTS:
            handler = STRING_OPERATORS.get(op)
            fact = _text(STRING_FACTS[ctype](shipment))
        else:
            handler = LIST_OPERATORS.get(op)
            fact = {_text(v) for v in LIST_FACTS[ctype](shipment)}

        if handler is None:
            logger.warning(f"Unsupported condition: operator {op.value} on {ctype.value}")
            return False

        try:
            if ctype in NUMERIC_FACTS:
                fact = _number(fact)
            return bool(handler(fact, condition))
        except OperandError as e:
            logger.warning(f"Condition {ctype.value} {op.value} could not be evaluated: {e}")
            return False

    def satisfies_all(self, shipment: ShipmentDetails, conditions: Iterable[RuleCondition]) -> bool:
        """AND of all conditions. An empty list matches every shipment."""
        return all(self.satisfies(shipment, condition) for condition in conditions)
