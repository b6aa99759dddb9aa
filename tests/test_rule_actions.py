"""
Tests for carrier eligibility, rule pricing and rule-level fallback.
"""
from decimal import Decimal

import pytest

from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.rules.actions import EligibilityPolicy, RuleActionApplier

ENABLED = [CarrierCode.FEDEX, CarrierCode.UPS, CarrierCode.DHL, CarrierCode.SHIPPO]
CONFIGURED = {CarrierCode.FEDEX, CarrierCode.UPS, CarrierCode.DHL}


@pytest.fixture
def applier():
    return RuleActionApplier()


def open_policy(*codes):
    return EligibilityPolicy(carriers=list(codes), services={code: None for code in codes})


class TestEligibility:

    def test_no_rules_means_every_enabled_and_configured_carrier(self, applier):
        policy = applier.resolve_eligibility([], ENABLED, CONFIGURED)
        assert policy.carriers == [CarrierCode.FEDEX, CarrierCode.UPS, CarrierCode.DHL]
        assert all(services is None for services in policy.services.values())
        assert policy.exclusive_rule is None

    def test_fallback_is_never_eligible(self, applier):
        policy = applier.resolve_eligibility([], ENABLED + [CarrierCode.FALLBACK], CONFIGURED | {CarrierCode.FALLBACK})
        assert CarrierCode.FALLBACK not in policy.carriers

    def test_exclusive_rule_limits_carriers(self, applier, make_rule):
        rules = [
            make_rule("ups only", {"carriers": ["UPS"], "services": ["03"], "is_exclusive": True}),
            make_rule("later", {"carriers": ["FEDEX"]}, priority=5),
        ]
        policy = applier.resolve_eligibility(rules, ENABLED, CONFIGURED)
        assert policy.carriers == [CarrierCode.UPS]
        assert policy.services == {CarrierCode.UPS: frozenset({"03"})}
        assert policy.exclusive_rule.name == "ups only"

    def test_exclusive_rule_discards_earlier_rules(self, applier, make_rule):
        rules = [
            make_rule("dhl", {"carriers": ["DHL"]}, priority=0),
            make_rule("fedex exclusive", {"carriers": ["FEDEX"], "is_exclusive": True}, priority=1),
        ]
        policy = applier.resolve_eligibility(rules, ENABLED, CONFIGURED)
        assert policy.carriers == [CarrierCode.FEDEX]

    def test_exclusive_rule_for_unconfigured_carrier_leaves_nothing(self, applier, make_rule):
        rules = [make_rule("shippo exclusive", {"carriers": ["SHIPPO"], "is_exclusive": True})]
        policy = applier.resolve_eligibility(rules, ENABLED, CONFIGURED)
        assert policy.carriers == []

    def test_non_exclusive_rules_union(self, applier, make_rule):
        rules = [
            make_rule("ups ground", {"carriers": ["UPS"], "services": ["03"]}),
            make_rule("ups air", {"carriers": ["UPS"], "services": ["01"]}),
            make_rule("dhl", {"carriers": ["DHL"]}),
        ]
        policy = applier.resolve_eligibility(rules, ENABLED, CONFIGURED)
        assert policy.carriers == [CarrierCode.UPS, CarrierCode.DHL]
        assert policy.services[CarrierCode.UPS] == frozenset({"01", "03"})
        assert policy.services[CarrierCode.DHL] is None

    def test_open_service_list_wins_over_allow_list(self, applier, make_rule):
        rules = [
            make_rule("all ups", {"carriers": ["UPS"]}),
            make_rule("ups ground", {"carriers": ["UPS"], "services": ["03"]}),
        ]
        policy = applier.resolve_eligibility(rules, ENABLED, CONFIGURED)
        assert policy.services[CarrierCode.UPS] is None

    def test_empty_allow_lists_mean_no_restriction(self, applier, make_rule):
        rule = make_rule("everyone", {"carriers": [], "services": []})
        assert rule.action.carriers is None
        assert rule.action.services is None

        policy = applier.resolve_eligibility([rule], ENABLED, CONFIGURED)

        assert policy.carriers == [CarrierCode.FEDEX, CarrierCode.UPS, CarrierCode.DHL]
        assert all(services is None for services in policy.services.values())

    def test_rule_fallback_rules_do_not_affect_eligibility(self, applier, make_rule):
        rules = [make_rule("safety net", {
            "carriers": ["UPS"],
            "is_exclusive": True,
            "is_rule_fallback": True,
            "offer_free_shipping": True,
        })]
        policy = applier.resolve_eligibility(rules, ENABLED, CONFIGURED)
        assert policy.carriers == [CarrierCode.FEDEX, CarrierCode.UPS, CarrierCode.DHL]


class TestPricing:

    def test_percentage_discount(self, applier, make_rule, make_quote):
        rule = make_rule("ten off", {"cost_adjustment": {"type": "PERCENTAGE_SUBTRACT", "amount": "10"}})
        quote = make_quote(CarrierCode.UPS, "03", "20.00")

        [priced] = applier.apply([quote], [rule], open_policy(CarrierCode.UPS))

        assert priced.amount == Decimal("18.00")
        assert priced.id != quote.id
        assert priced.carrier_code == CarrierCode.UPS

    def test_percentage_add_rounds_half_up(self, applier, make_rule, make_quote):
        rule = make_rule("markup", {"cost_adjustment": {"type": "PERCENTAGE_ADD", "amount": "12.5"}})
        [priced] = applier.apply([make_quote(amount="10.02")], [rule], open_policy(CarrierCode.UPS))
        # 10.02 * 1.125 = 11.2725
        assert priced.amount == Decimal("11.27")

    def test_fixed_subtract_floors_at_zero(self, applier, make_rule, make_quote):
        rule = make_rule("big discount", {"cost_adjustment": {"type": "FIXED_SUBTRACT", "amount": "50", "currency": "USD"}})
        [priced] = applier.apply([make_quote(amount="20.00")], [rule], open_policy(CarrierCode.UPS))
        assert priced.amount == Decimal("0.00")

    def test_fixed_adjustment_in_other_currency_is_skipped(self, applier, make_rule, make_quote):
        rule = make_rule("eur fee", {"cost_adjustment": {"type": "FIXED_ADD", "amount": "5", "currency": "EUR"}})
        quote = make_quote(amount="20.00")
        [priced] = applier.apply([quote], [rule], open_policy(CarrierCode.UPS))
        assert priced is quote

    def test_override_renames_service(self, applier, make_rule, make_quote):
        rule = make_rule("flat", {"cost_adjustment": {"type": "OVERRIDE", "amount": "7.5", "currency": "usd"}})
        [priced] = applier.apply([make_quote(amount="20.00", service_name="UPS Ground")], [rule], open_policy(CarrierCode.UPS))
        assert priced.amount == Decimal("7.50")
        assert priced.service_name == "UPS Ground (Override)"

    def test_free_shipping_and_delivery_override(self, applier, make_rule, make_quote):
        rule = make_rule("free", {
            "offer_free_shipping": True,
            "cost_adjustment": {"type": "FIXED_ADD", "amount": "3", "currency": "USD"},
            "override_delivery_days": 3,
            "display_message": "Free shipping!",
        })
        [priced] = applier.apply([make_quote(amount="12.00")], [rule], open_policy(CarrierCode.UPS))
        assert priced.amount == Decimal("0.00")
        assert priced.delivery_days == 3
        assert priced.estimated_delivery_min is None
        assert priced.display_message == "Free shipping!"

    def test_first_matching_rule_wins(self, applier, make_rule, make_quote):
        rules = [
            make_rule("ten off", {"cost_adjustment": {"type": "PERCENTAGE_SUBTRACT", "amount": "10"}}, priority=0),
            make_rule("five off", {"cost_adjustment": {"type": "FIXED_SUBTRACT", "amount": "5", "currency": "USD"}}, priority=1),
        ]
        [priced] = applier.apply([make_quote(amount="20.00")], rules, open_policy(CarrierCode.UPS))
        assert priced.amount == Decimal("18.00")

    def test_rule_only_prices_the_quotes_it_covers(self, applier, make_rule, make_quote):
        rule = make_rule("ups discount", {
            "carriers": ["UPS"],
            "services": ["03"],
            "cost_adjustment": {"type": "FIXED_SUBTRACT", "amount": "2", "currency": "USD"},
        })
        ground = make_quote(CarrierCode.UPS, "03", "10.00")
        air = make_quote(CarrierCode.UPS, "01", "30.00")
        dhl = make_quote(CarrierCode.DHL, "P", "25.00")

        policy = open_policy(CarrierCode.UPS, CarrierCode.DHL)
        result = applier.apply([ground, air, dhl], [rule], policy)

        assert [q.amount for q in result] == [Decimal("8.00"), Decimal("30.00"), Decimal("25.00")]
        assert result[1] is air
        assert result[2] is dhl

    def test_rule_with_empty_allow_lists_prices_every_quote(self, applier, make_rule, make_quote):
        rule = make_rule("ten off everything", {
            "carriers": [],
            "services": [],
            "cost_adjustment": {"type": "PERCENTAGE_SUBTRACT", "amount": "10"},
        })
        policy = applier.resolve_eligibility([rule], ENABLED, CONFIGURED)

        [priced] = applier.apply([make_quote(CarrierCode.UPS, "03", "20.00")], [rule], policy)

        assert priced.amount == Decimal("18.00")

    def test_quotes_outside_policy_are_dropped(self, applier, make_quote):
        policy = EligibilityPolicy(
            carriers=[CarrierCode.UPS],
            services={CarrierCode.UPS: frozenset({"03"})},
        )
        result = applier.apply(
            [make_quote(CarrierCode.UPS, "03"), make_quote(CarrierCode.UPS, "01"), make_quote(CarrierCode.DHL, "P")],
            [],
            policy,
        )
        assert [(q.carrier_code, q.service_code) for q in result] == [(CarrierCode.UPS, "03")]

    def test_exclusive_rule_prices_every_survivor(self, applier, make_rule, make_quote):
        rule = make_rule("exclusive", {
            "carriers": ["UPS"],
            "is_exclusive": True,
            "cost_adjustment": {"type": "FIXED_ADD", "amount": "1", "currency": "USD"},
        })
        policy = applier.resolve_eligibility([rule], ENABLED, CONFIGURED)
        result = applier.apply([make_quote(amount="5.00"), make_quote(service_code="01", amount="9.00")], [rule], policy)
        assert [q.amount for q in result] == [Decimal("6.00"), Decimal("10.00")]


class TestRuleFallback:

    def test_free_shipping_rule_fallback(self, applier, make_rule):
        rule = make_rule("always ship", {"is_rule_fallback": True, "offer_free_shipping": True, "display_message": "On us"})

        [quote] = applier.rule_fallback_quotes([rule], "USD")

        assert quote.carrier_code == CarrierCode.FALLBACK
        assert quote.service_code == "RULE_FALLBACK"
        assert quote.amount == Decimal("0.00")
        assert quote.currency == "USD"
        assert quote.id.startswith("fallback_")
        assert quote.original_provider_rate == {"rule_id": rule.id}

    def test_override_rule_fallback_uses_its_currency(self, applier, make_rule):
        rule = make_rule("flat", {
            "is_rule_fallback": True,
            "cost_adjustment": {"type": "OVERRIDE", "amount": "9.99", "currency": "CAD"},
        })
        [quote] = applier.rule_fallback_quotes([rule], "USD")
        assert quote.amount == Decimal("9.99")
        assert quote.currency == "CAD"
        assert quote.service_name == "flat"

    def test_percentage_rule_fallback_produces_nothing(self, applier, make_rule):
        rule = make_rule("pct", {
            "is_rule_fallback": True,
            "cost_adjustment": {"type": "PERCENTAGE_SUBTRACT", "amount": "10"},
        })
        assert applier.rule_fallback_quotes([rule], "USD") == []

    def test_only_rule_fallback_rules_count(self, applier, make_rule):
        rule = make_rule("free", {"offer_free_shipping": True})
        assert applier.rule_fallback_quotes([rule], "USD") == []
