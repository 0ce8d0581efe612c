"""
Quote aggregation and quote -> order conversion.

Quote totals are a separate pipeline from item pricing: item totals already
carry the dealer margin and discount; here the quote-level discount is taken
off the item subtotal and tax is added on what remains.
"""
import os
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from app.models.orm_models import Order, ProductionRecipe, Quote, QuoteItem
from app.services.pricing_engine import (
    FabricSpec, MotorSpec, PriceBreakdown, QuoteItemSpec, RemoteSpec,
)
from app.services.status_machine import OrderStatus, RecipeStatus

logger = logging.getLogger("bayedi-quotes")

DEFAULT_TAX_RATE = float(os.getenv("DEFAULT_TAX_RATE", "20"))
QUOTE_VALIDITY_DAYS = int(os.getenv("QUOTE_VALIDITY_DAYS", "30"))


@dataclass
class QuoteTotals:
    subtotal: float
    discount_amount: float
    tax_amount: float
    total_amount: float


def compute_quote_totals(
    item_totals: Iterable[float],
    discount_rate: Optional[float] = None,
    tax_rate: Optional[float] = None,
) -> QuoteTotals:
    """
    subtotal        = sum(item totals)
    discount_amount = subtotal × discount/100
    tax_amount      = (subtotal − discount_amount) × tax/100
    total_amount    = subtotal − discount_amount + tax_amount

    An unset tax rate means the default rate; an explicit 0 is kept.
    """
    discount_rate = float(discount_rate or 0)
    tax_rate = DEFAULT_TAX_RATE if tax_rate is None else float(tax_rate)

    subtotal = sum(float(t or 0) for t in item_totals)
    discount_amount = subtotal * discount_rate / 100
    after_discount = subtotal - discount_amount
    tax_amount = after_discount * tax_rate / 100
    return QuoteTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total_amount=after_discount + tax_amount,
    )


def recalculate_quote(quote: Quote) -> QuoteTotals:
    """Recompute the quote's money fields from its current in-memory items."""
    totals = compute_quote_totals(
        (item.total_price for item in quote.items),
        quote.discount_rate,
        quote.tax_rate,
    )
    quote.subtotal = round(totals.subtotal, 2)
    quote.discount_amount = round(totals.discount_amount, 2)
    quote.tax_amount = round(totals.tax_amount, 2)
    quote.total_amount = round(totals.total_amount, 2)
    logger.debug(
        f"Quote {quote.quote_number} totals: subtotal={quote.subtotal} total={quote.total_amount}",
        extra={"quote_id": quote.id},
    )
    return totals


def apply_item_pricing(item: QuoteItem, spec: QuoteItemSpec, breakdown: PriceBreakdown) -> QuoteItem:
    """Copy an item spec and its computed breakdown onto a QuoteItem row."""
    item.system_type = spec.system_type
    item.width = int(spec.width_mm)
    item.height = int(spec.height_mm)
    item.quantity = spec.quantity
    item.paint_code = spec.paint_code

    item.include_fabric = spec.fabric.included
    item.fabric_price = spec.fabric.price
    item.fabric_multiplier = spec.fabric.multiplier
    item.fabric_total = breakdown.fabric_cost

    item.include_motor = spec.motor.included
    item.motor_type = spec.motor.motor_type
    item.motor_price = spec.motor.price
    item.motor_qty = spec.motor.count
    item.remote_type = spec.remote.remote_type
    item.remote_price = spec.remote.price
    item.remote_qty = spec.remote.count
    item.motor_total = breakdown.motor_cost

    item.unit_price = breakdown.unit_price
    item.total_price = breakdown.grand_total
    item.total_kg = breakdown.total_profile_kg
    data = breakdown.to_dict()
    item.details = {
        "profiles": data["profiles"],
        "accessories": data["accessories"],
        "missing_codes": data["missing_codes"],
    }
    return item


def spec_from_item(item: QuoteItem) -> QuoteItemSpec:
    """Rebuild the item spec stored on a QuoteItem row."""
    return QuoteItemSpec(
        system_type=item.system_type,
        width_mm=item.width,
        height_mm=item.height,
        quantity=item.quantity,
        paint_code=item.paint_code,
        fabric=FabricSpec(
            included=bool(item.include_fabric),
            price=_opt_float(item.fabric_price),
            multiplier=_opt_float(item.fabric_multiplier),
        ),
        motor=MotorSpec(
            included=bool(item.include_motor),
            motor_type=item.motor_type,
            price=_opt_float(item.motor_price),
            count=item.motor_qty,
        ),
        remote=RemoteSpec(
            remote_type=item.remote_type,
            price=_opt_float(item.remote_price),
            count=item.remote_qty,
        ),
    )


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def next_line_number(quote: Quote) -> int:
    return max((item.line_number for item in quote.items), default=0) + 1


def renumber_items(quote: Quote) -> None:
    """Make line numbers contiguous (1..n) in their current order."""
    ordered = sorted(quote.items, key=lambda i: i.line_number or 0)
    for index, item in enumerate(ordered, start=1):
        item.line_number = index


def build_order_from_quote(quote: Quote, order_number: str) -> Order:
    """New PENDING order for a quote, with one PENDING production recipe per item."""
    order = Order(
        order_number=order_number,
        quote_id=quote.id,
        dealer_id=quote.dealer_id,
        status=OrderStatus.PENDING.value,
        total_amount=quote.total_amount,
        currency=quote.currency or "EUR",
        notes=quote.notes,
    )
    for item in sorted(quote.items, key=lambda i: i.line_number):
        order.recipes.append(ProductionRecipe(
            system_type=item.system_type,
            line_number=item.line_number,
            width=item.width,
            height=item.height,
            quantity=item.quantity,
            paint_code=item.paint_code,
            status=RecipeStatus.PENDING.value,
        ))
    logger.info(
        f"Order {order_number} built from quote {quote.quote_number} with {len(order.recipes)} recipes",
        extra={"quote_id": quote.id},
    )
    return order
