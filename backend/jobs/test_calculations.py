from decimal import Decimal

from django.test import SimpleTestCase, override_settings

from .constants import CompanyId, PurchaseOrderStatus, RoutingType
from .costs import (
    SplitRules,
    aggregate_costs,
    calculate_paper_markup,
    calculate_profit_split,
    is_cost_bearing,
    round2,
)
from .pathway import classify_pathway, count_active_vendors


def _po(origin, *, vendor_id=None, target_company=None, buy_cost=None, **extra):
    return {
        "origin_company": origin,
        "target_vendor_id": vendor_id,
        "target_company": target_company,
        "buy_cost": buy_cost,
        **extra,
    }


class CostAggregationTests(SimpleTestCase):
    def test_only_buyer_origin_orders_bear_cost(self):
        purchase_orders = [
            _po(CompanyId.BUYER, vendor_id=1, buy_cost="500.00"),
            _po(CompanyId.PARTNER, target_company=CompanyId.PRODUCER, buy_cost="300.00"),
        ]
        breakdown = aggregate_costs(purchase_orders)
        self.assertEqual(breakdown.total_cost, Decimal("500.00"))
        self.assertEqual(breakdown.po_count, 1)

    def test_missing_values_count_as_zero(self):
        breakdown = aggregate_costs(
            [
                _po(CompanyId.BUYER, vendor_id=1, buy_cost=None),
                _po(
                    CompanyId.BUYER,
                    target_company=CompanyId.PARTNER,
                    buy_cost="250.10",
                    paper_cost="100.00",
                    paper_markup="18.00",
                ),
            ]
        )
        self.assertEqual(breakdown.total_cost, Decimal("250.10"))
        self.assertEqual(breakdown.paper_cost, Decimal("100.00"))
        self.assertEqual(breakdown.paper_markup, Decimal("18.00"))
        self.assertEqual(breakdown.print_cost, Decimal("132.10"))
        self.assertEqual(breakdown.po_count, 2)

    def test_order_without_target_is_not_cost_bearing(self):
        self.assertFalse(is_cost_bearing(_po(CompanyId.BUYER)))
        self.assertEqual(aggregate_costs([]).total_cost, Decimal("0.00"))


class ProfitSplitCalculationTests(SimpleTestCase):
    def test_partner_mediated_split_adds_markup_to_intermediary(self):
        result = calculate_profit_split(
            sell_price=Decimal("1000"),
            total_cost=Decimal("600"),
            paper_markup=Decimal("50"),
            routing_type=RoutingType.PARTNER_MEDIATED,
        )
        self.assertEqual(result.gross_margin, Decimal("400.00"))
        self.assertEqual(result.intermediary_share, Decimal("250.00"))
        self.assertEqual(result.buyer_share, Decimal("200.00"))
        self.assertEqual(result.paper_markup, Decimal("50.00"))

    def test_direct_split_ignores_paper_markup(self):
        result = calculate_profit_split(
            sell_price=Decimal("1000"),
            total_cost=Decimal("600"),
            paper_markup=Decimal("50"),
            routing_type=RoutingType.DIRECT,
        )
        self.assertEqual(result.intermediary_share, Decimal("140.00"))
        self.assertEqual(result.buyer_share, Decimal("260.00"))
        self.assertEqual(result.paper_markup, Decimal("0.00"))

    def test_third_party_routing_uses_direct_rates(self):
        result = calculate_profit_split(
            sell_price="200",
            total_cost="100",
            paper_markup="0",
            routing_type=RoutingType.THIRD_PARTY_VENDOR,
        )
        self.assertEqual(result.intermediary_share, Decimal("35.00"))
        self.assertEqual(result.buyer_share, Decimal("65.00"))

    def test_rounding_is_half_up_to_cents(self):
        result = calculate_profit_split(
            sell_price="100.01",
            total_cost="0",
            paper_markup="0",
            routing_type=RoutingType.PARTNER_MEDIATED,
        )
        self.assertEqual(result.buyer_share, Decimal("50.01"))
        self.assertEqual(round2(Decimal("0.005")), Decimal("0.01"))

    def test_negative_margin_is_returned_as_is(self):
        result = calculate_profit_split(
            sell_price="400",
            total_cost="600",
            paper_markup="0",
            routing_type=RoutingType.DIRECT,
        )
        self.assertTrue(result.is_negative_margin)
        self.assertEqual(result.gross_margin, Decimal("-200.00"))
        self.assertEqual(result.intermediary_share, Decimal("-70.00"))
        self.assertIn("Negative margin: job is losing $200.00.", result.warnings)
        self.assertIn("Intermediary share is negative.", result.warnings)

    def test_margin_warnings(self):
        low = calculate_profit_split(
            sell_price="1000", total_cost="950", paper_markup="0", routing_type=RoutingType.DIRECT
        )
        below_target = calculate_profit_split(
            sell_price="1000", total_cost="880", paper_markup="0", routing_type=RoutingType.DIRECT
        )
        healthy = calculate_profit_split(
            sell_price="1000", total_cost="600", paper_markup="0", routing_type=RoutingType.DIRECT
        )
        self.assertEqual(low.margin_percent, Decimal("5.00"))
        self.assertTrue(low.warnings[0].startswith("Low margin"))
        self.assertIn("target", below_target.warnings[0])
        self.assertEqual(healthy.warnings, [])

    def test_zero_sell_price_reports_zero_percent(self):
        result = calculate_profit_split(
            sell_price="0", total_cost="0", paper_markup="0", routing_type=RoutingType.DIRECT
        )
        self.assertEqual(result.margin_percent, Decimal("0"))

    def test_rules_can_be_injected(self):
        rules = SplitRules(partner_rate=Decimal("0.40"))
        result = calculate_profit_split(
            sell_price="100",
            total_cost="0",
            paper_markup="0",
            routing_type=RoutingType.PARTNER_MEDIATED,
            rules=rules,
        )
        self.assertEqual(result.buyer_share, Decimal("40.00"))

    @override_settings(PROFIT_SPLIT_PARTNER_RATE=Decimal("0.60"))
    def test_rules_are_read_from_settings(self):
        self.assertEqual(SplitRules.from_settings().partner_rate, Decimal("0.60"))

    def test_paper_markup_rate(self):
        self.assertEqual(calculate_paper_markup("100.00"), Decimal("18.00"))
        self.assertEqual(calculate_paper_markup(None), Decimal("0.00"))


class PathwayClassificationTests(SimpleTestCase):
    def test_partner_routing_is_always_p1(self):
        for vendor_count in (0, 1, 2, 5):
            pathway, inconsistency = classify_pathway(
                routing_type=RoutingType.PARTNER_MEDIATED,
                current_pathway=None,
                vendor_count=vendor_count,
            )
            self.assertEqual(pathway, "P1")
            self.assertIsNone(inconsistency)

    def test_vendor_count_selects_p2_or_p3(self):
        self.assertEqual(
            classify_pathway(routing_type=RoutingType.DIRECT, current_pathway="P2", vendor_count=0)[0],
            "P2",
        )
        self.assertEqual(
            classify_pathway(routing_type=RoutingType.DIRECT, current_pathway="P2", vendor_count=1)[0],
            "P2",
        )
        self.assertEqual(
            classify_pathway(routing_type=RoutingType.DIRECT, current_pathway="P2", vendor_count=2)[0],
            "P3",
        )

    def test_p1_without_partner_routing_is_reported_not_repaired(self):
        pathway, inconsistency = classify_pathway(
            routing_type=RoutingType.DIRECT,
            current_pathway="P1",
            vendor_count=3,
        )
        self.assertEqual(pathway, "P1")
        self.assertIn("left unchanged", inconsistency)

    def test_active_vendor_count_is_distinct_and_skips_inactive(self):
        purchase_orders = [
            _po(CompanyId.BUYER, vendor_id=1, status=PurchaseOrderStatus.ISSUED),
            _po(CompanyId.BUYER, vendor_id=1, status=PurchaseOrderStatus.PENDING),
            _po(CompanyId.BUYER, vendor_id=2, status=PurchaseOrderStatus.CANCELLED),
            _po(CompanyId.BUYER, vendor_id=3, status=PurchaseOrderStatus.REJECTED),
            _po(CompanyId.PARTNER, vendor_id=4, status=PurchaseOrderStatus.PENDING),
        ]
        self.assertEqual(count_active_vendors(purchase_orders), 1)
