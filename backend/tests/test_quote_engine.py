"""
test_quote_engine.py — Quote aggregation, item pricing persistence and
quote -> order conversion on transient ORM objects.
"""

import pytest

from app.models.orm_models import Quote, QuoteItem
from app.services.pricing_engine import FabricSpec, MotorSpec, RemoteSpec
from app.services.quote_engine import (
    DEFAULT_TAX_RATE, apply_item_pricing, build_order_from_quote, compute_quote_totals,
    next_line_number, recalculate_quote, renumber_items, spec_from_item,
)


def _quote(*totals, discount_rate=0, tax_rate=20):
    return Quote(
        id="q-1",
        quote_number="TKL-2026-0007",
        dealer_id="d-1",
        customer_id="c-1",
        status="APPROVED",
        currency="EUR",
        discount_rate=discount_rate,
        tax_rate=tax_rate,
        items=[
            QuoteItem(line_number=i, system_type="BYD100", width=3000, height=2000, quantity=1, total_price=t)
            for i, t in enumerate(totals, start=1)
        ],
    )


class TestComputeQuoteTotals:

    def test_discount_then_tax(self):
        """
        subtotal 150; discount 10% = 15; after discount 135;
        tax 20% = 27; total 162.
        """
        totals = compute_quote_totals([100.0, 50.0], discount_rate=10, tax_rate=20)
        assert totals.subtotal == 150.0
        assert abs(totals.discount_amount - 15.0) < 1e-9
        assert abs(totals.tax_amount - 27.0) < 1e-9
        assert abs(totals.total_amount - 162.0) < 1e-9

    def test_unset_tax_rate_uses_default(self):
        totals = compute_quote_totals([100.0], discount_rate=0, tax_rate=None)
        assert abs(totals.tax_amount - DEFAULT_TAX_RATE) < 1e-9

    def test_zero_tax_rate_is_kept(self):
        totals = compute_quote_totals([100.0], discount_rate=0, tax_rate=0)
        assert totals.tax_amount == 0.0
        assert totals.total_amount == 100.0

    def test_empty_quote(self):
        totals = compute_quote_totals([], discount_rate=5, tax_rate=20)
        assert (totals.subtotal, totals.discount_amount, totals.tax_amount, totals.total_amount) == (0, 0, 0, 0)


class TestRecalculateQuote:

    def test_writes_rounded_totals(self):
        quote = _quote(100.0, 50.0, discount_rate=10, tax_rate=20)
        recalculate_quote(quote)
        assert quote.subtotal == 150.0
        assert quote.discount_amount == 15.0
        assert quote.tax_amount == 27.0
        assert quote.total_amount == 162.0

    def test_idempotent(self):
        quote = _quote(123.456, 78.9, discount_rate=7.5, tax_rate=18)
        recalculate_quote(quote)
        first = (quote.subtotal, quote.discount_amount, quote.tax_amount, quote.total_amount)
        recalculate_quote(quote)
        assert (quote.subtotal, quote.discount_amount, quote.tax_amount, quote.total_amount) == first

    def test_follows_item_removal(self):
        quote = _quote(100.0, 50.0, tax_rate=0)
        quote.items.remove(quote.items[0])
        recalculate_quote(quote)
        assert quote.total_amount == 50.0


class TestItemPricing:

    def test_breakdown_copied_onto_item(self, pricing_engine, make_spec):
        spec = make_spec(quantity=2, fabric=FabricSpec(included=True, price=6.0))
        breakdown = pricing_engine.compute_item_price(spec)
        item = apply_item_pricing(QuoteItem(line_number=1), spec, breakdown)

        assert item.total_price == breakdown.grand_total
        assert abs(item.unit_price * 2 - breakdown.grand_total) < 1e-9
        assert item.total_kg == breakdown.total_profile_kg
        assert item.fabric_total == breakdown.fabric_cost
        assert item.include_fabric is True
        assert len(item.details["profiles"]) == 6
        assert item.details["missing_codes"] == ["WB5-5"]

    def test_spec_round_trip(self, pricing_engine, make_spec):
        spec = make_spec(
            paint_code="RAL9016",
            motor=MotorSpec(included=True, motor_type="Somfy", price=150.0, count=1),
            remote=RemoteSpec(remote_type="5ch", price=25.0, count=1),
        )
        item = apply_item_pricing(QuoteItem(line_number=1), spec, pricing_engine.compute_item_price(spec))
        assert spec_from_item(item) == spec


class TestLineNumbers:

    def test_next_line_number(self):
        assert next_line_number(_quote()) == 1
        assert next_line_number(_quote(10.0, 20.0)) == 3

    def test_renumber_after_delete(self):
        quote = _quote(10.0, 20.0, 30.0, 40.0)
        quote.items.remove(quote.items[1])
        renumber_items(quote)
        assert [i.line_number for i in quote.items] == [1, 2, 3]
        assert [i.total_price for i in quote.items] == [10.0, 30.0, 40.0]


class TestBuildOrder:

    def test_order_carries_quote_totals(self):
        quote = _quote(100.0, 50.0, tax_rate=0)
        recalculate_quote(quote)
        order = build_order_from_quote(quote, "SIP-2026-0003")
        assert order.order_number == "SIP-2026-0003"
        assert order.quote_id == "q-1"
        assert order.dealer_id == "d-1"
        assert order.status == "PENDING"
        assert order.total_amount == 150.0
        assert order.currency == "EUR"

    def test_one_recipe_per_item(self):
        quote = _quote(10.0, 20.0, 30.0)
        quote.items[2].paint_code = "RAL7016"
        order = build_order_from_quote(quote, "SIP-2026-0004")
        assert [r.line_number for r in order.recipes] == [1, 2, 3]
        assert all(r.status == "PENDING" for r in order.recipes)
        assert order.recipes[2].paint_code == "RAL7016"
        assert (order.recipes[0].width, order.recipes[0].height) == (3000, 2000)


@pytest.mark.parametrize("discount", [0, 12.5, 100])
def test_total_never_negative(discount):
    totals = compute_quote_totals([10.0, 20.0], discount_rate=discount, tax_rate=20)
    assert totals.total_amount >= 0
