"""
Tests for rule condition evaluation.
"""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from shipquote.modules.shipping.carriers.base import LineItem, Parcel
from shipquote.modules.shipping.rules.conditions import ConditionEvaluator
from shipquote.schemas.shipping_rule import RuleCondition


def condition(**kwargs) -> RuleCondition:
    return RuleCondition.model_validate(kwargs)


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


class TestNumericConditions:

    @pytest.mark.parametrize("order_value, expected", [
        ("100.00", True),
        ("150.00", True),
        ("99.99", False),
    ])
    def test_order_value_gte_boundary(self, evaluator, make_shipment, order_value, expected):
        c = condition(type="ORDER_VALUE", operator="GTE", value=100)
        shipment = make_shipment(total_order_value=Decimal(order_value))
        assert evaluator.satisfies(shipment, c) is expected

    def test_weight_sums_all_parcels(self, evaluator, make_shipment):
        shipment = make_shipment(parcels=[Parcel(weight=Decimal("4")), Parcel(weight=Decimal("7"))])
        assert evaluator.satisfies(shipment, condition(type="WEIGHT", operator="GT", value="10"))
        assert not evaluator.satisfies(shipment, condition(type="WEIGHT", operator="LT", value=11))

    def test_between_is_inclusive(self, evaluator, make_shipment):
        c = condition(type="WEIGHT", operator="BETWEEN", min_value=2, max_value=5)
        assert evaluator.satisfies(make_shipment(parcels=[Parcel(weight=Decimal("2"))]), c)
        assert evaluator.satisfies(make_shipment(parcels=[Parcel(weight=Decimal("5"))]), c)
        assert not evaluator.satisfies(make_shipment(parcels=[Parcel(weight=Decimal("5.01"))]), c)

    def test_volume(self, evaluator, shipment):
        # 10 x 8 x 4
        assert evaluator.satisfies(shipment, condition(type="VOLUME", operator="EQ", value=320))

    def test_item_quantity_and_count(self, evaluator, make_shipment):
        shipment = make_shipment(line_items=[
            LineItem(sku="A", quantity=3),
            LineItem(sku="B", quantity=2),
        ])
        assert evaluator.satisfies(shipment, condition(type="ITEM_QUANTITY", operator="EQ", value=5))
        assert evaluator.satisfies(shipment, condition(type="ITEM_COUNT", operator="EQ", value=2))

    def test_numeric_in(self, evaluator, shipment):
        assert evaluator.satisfies(shipment, condition(type="ITEM_COUNT", operator="IN", values=[1, 3]))
        assert evaluator.satisfies(shipment, condition(type="ITEM_COUNT", operator="NOT_IN", values=[2, 3]))

    def test_non_numeric_operand_does_not_match(self, evaluator, shipment):
        assert not evaluator.satisfies(shipment, condition(type="WEIGHT", operator="GT", value="heavy"))

    def test_boolean_operand_does_not_match(self, evaluator, shipment):
        assert not evaluator.satisfies(shipment, condition(type="ITEM_COUNT", operator="EQ", value=True))


class TestStringConditions:

    def test_country_is_case_insensitive(self, evaluator, shipment):
        assert evaluator.satisfies(shipment, condition(type="DESTINATION_COUNTRY", operator="EQ", value="us"))
        assert not evaluator.satisfies(shipment, condition(type="DESTINATION_COUNTRY", operator="NE", value="US"))

    def test_state_in_list(self, evaluator, shipment):
        c = condition(type="DESTINATION_STATE", operator="IN", values=["CA", "tx"])
        assert evaluator.satisfies(shipment, c)
        c = condition(type="DESTINATION_STATE", operator="NOT_IN", values=["AK", "HI"])
        assert evaluator.satisfies(shipment, c)

    def test_postal_code_prefix(self, evaluator, shipment):
        assert evaluator.satisfies(shipment, condition(type="DESTINATION_POSTAL_CODE", operator="STARTS_WITH", value="787"))
        assert evaluator.satisfies(shipment, condition(type="DESTINATION_POSTAL_CODE", operator="ENDS_WITH", value="01"))
        assert not evaluator.satisfies(shipment, condition(type="DESTINATION_POSTAL_CODE", operator="STARTS_WITH", value="9"))

    def test_contains(self, evaluator, shipment):
        assert evaluator.satisfies(shipment, condition(type="DESTINATION_POSTAL_CODE", operator="CONTAINS", value="870"))
        assert evaluator.satisfies(shipment, condition(type="DESTINATION_POSTAL_CODE", operator="NOT_CONTAINS", values=["999"]))

    def test_numeric_operator_on_string_fact_does_not_match(self, evaluator, shipment):
        assert not evaluator.satisfies(shipment, condition(type="DESTINATION_COUNTRY", operator="GT", value="A"))


class TestProductTypeConditions:

    @pytest.fixture
    def mixed_cart(self, make_shipment):
        return make_shipment(line_items=[
            LineItem(sku="A", product_type="Book"),
            LineItem(sku="B", product_type="POSTER"),
        ])

    def test_contains_any(self, evaluator, mixed_cart):
        assert evaluator.satisfies(mixed_cart, condition(type="PRODUCT_TYPE", operator="CONTAINS", values=["book"]))
        assert evaluator.satisfies(mixed_cart, condition(type="PRODUCT_TYPE", operator="IN", values=["GAME", "POSTER"]))

    def test_not_contains(self, evaluator, mixed_cart):
        assert evaluator.satisfies(mixed_cart, condition(type="PRODUCT_TYPE", operator="NOT_CONTAINS", value="HAZMAT"))
        assert not evaluator.satisfies(mixed_cart, condition(type="PRODUCT_TYPE", operator="NOT_IN", values=["POSTER"]))

    def test_eq_is_membership(self, evaluator, mixed_cart):
        assert evaluator.satisfies(mixed_cart, condition(type="PRODUCT_TYPE", operator="EQ", value="poster"))
        assert not evaluator.satisfies(mixed_cart, condition(type="PRODUCT_TYPE", operator="EQ", value="GAME"))

    def test_ne_is_absence(self, evaluator, mixed_cart):
        assert evaluator.satisfies(mixed_cart, condition(type="PRODUCT_TYPE", operator="NE", value="GAME"))
        assert not evaluator.satisfies(mixed_cart, condition(type="PRODUCT_TYPE", operator="NE", value="BOOK"))

    def test_between_on_list_fact_does_not_match(self, evaluator, mixed_cart):
        c = condition(type="PRODUCT_TYPE", operator="BETWEEN", min_value=1, max_value=2)
        assert not evaluator.satisfies(mixed_cart, c)


class TestSatisfiesAll:

    def test_empty_conditions_match(self, evaluator, shipment):
        assert evaluator.satisfies_all(shipment, [])

    def test_all_must_hold(self, evaluator, shipment):
        conditions = [
            condition(type="DESTINATION_COUNTRY", operator="EQ", value="US"),
            condition(type="ORDER_VALUE", operator="GT", value=1000),
        ]
        assert not evaluator.satisfies_all(shipment, conditions)


class TestConditionValidation:

    def test_between_requires_ordered_bounds(self):
        with pytest.raises(ValidationError):
            condition(type="WEIGHT", operator="BETWEEN", min_value=5, max_value=1)

    def test_in_requires_values(self):
        with pytest.raises(ValidationError):
            condition(type="DESTINATION_STATE", operator="IN", value="TX")

    def test_eq_requires_value(self):
        with pytest.raises(ValidationError):
            condition(type="WEIGHT", operator="EQ")
