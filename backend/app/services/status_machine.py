"""
Status transition guard for quotes, orders and production recipes.

Transition tables are exhaustive over their status enums; the module refuses
to import if a state is missing from its table or a target is not a member.
Accepted transitions stamp the matching timestamp field on the record.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional, Type, Union

logger = logging.getLogger("bayedi-status")


class QuoteStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CONVERTED = "CONVERTED"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PRODUCTION = "IN_PRODUCTION"
    READY = "READY"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class RecipeStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


QUOTE_TRANSITIONS: Dict[QuoteStatus, FrozenSet[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SENT}),
    QuoteStatus.SENT: frozenset({QuoteStatus.APPROVED, QuoteStatus.REJECTED}),
    QuoteStatus.APPROVED: frozenset({QuoteStatus.CONVERTED, QuoteStatus.REJECTED}),
    QuoteStatus.REJECTED: frozenset(),
    QuoteStatus.CONVERTED: frozenset(),
}

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.IN_PRODUCTION, OrderStatus.CANCELLED}),
    OrderStatus.IN_PRODUCTION: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

QUOTE_TIMESTAMPS = {
    QuoteStatus.SENT: "sent_at",
    QuoteStatus.APPROVED: "approved_at",
    QuoteStatus.REJECTED: "rejected_at",
    QuoteStatus.CONVERTED: "converted_at",
}

ORDER_TIMESTAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def _check_table(enum_cls: Type[Enum], table: Dict) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} transition table missing states: {sorted(m.value for m in missing)}")
    for source, targets in table.items():
        if not isinstance(source, enum_cls) or not all(isinstance(t, enum_cls) for t in targets):
            raise RuntimeError(f"{enum_cls.__name__} transition table has a foreign state at {source!r}")


_check_table(QuoteStatus, QUOTE_TRANSITIONS)
_check_table(OrderStatus, ORDER_TRANSITIONS)

Status = Union[QuoteStatus, OrderStatus]


class InvalidTransitionError(ValueError):
    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from {_name(current)} to {_name(requested)}")


def _name(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def _table_for(status) -> Dict:
    if isinstance(status, QuoteStatus):
        return QUOTE_TRANSITIONS
    if isinstance(status, OrderStatus):
        return ORDER_TRANSITIONS
    raise TypeError(f"Not a quote or order status: {status!r}")


def can_transition(current: Status, requested: Status) -> bool:
    if type(current) is not type(requested):
        return False
    return requested in _table_for(current)[current]


def ensure_transition(current: Status, requested: Status) -> None:
    if not can_transition(current, requested):
        raise InvalidTransitionError(current, requested)


def _coerce(enum_cls: Type[Enum], value):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidTransitionError(value, value) from None


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def transition_quote(quote, requested, now: Optional[datetime] = None) -> QuoteStatus:
    """Validate and apply a quote status change, stamping its timestamp field."""
    current = _coerce(QuoteStatus, quote.status)
    target = QuoteStatus(requested)
    ensure_transition(current, target)
    quote.status = target.value
    field_name = QUOTE_TIMESTAMPS.get(target)
    if field_name:
        setattr(quote, field_name, _now(now))
    logger.info(f"Quote {getattr(quote, 'quote_number', '')} {current.value} -> {target.value}")
    return target


def transition_order(order, requested, now: Optional[datetime] = None) -> OrderStatus:
    """Validate and apply an order status change, stamping its timestamp field."""
    current = _coerce(OrderStatus, order.status)
    target = OrderStatus(requested)
    ensure_transition(current, target)
    order.status = target.value
    field_name = ORDER_TIMESTAMPS.get(target)
    if field_name:
        setattr(order, field_name, _now(now))
    logger.info(f"Order {getattr(order, 'order_number', '')} {current.value} -> {target.value}")
    return target


def update_recipe_status(order, recipe, requested, now: Optional[datetime] = None) -> bool:
    """
    Set a production recipe's status.

    When every recipe of the order is COMPLETED the order is advanced to
    READY, provided the order guard allows it from the current order status.
    Returns True when the order was advanced.
    """
    target = RecipeStatus(requested)
    recipe.status = target.value
    if target is RecipeStatus.COMPLETED:
        recipe.completed_at = _now(now)

    recipes = list(order.recipes)
    if not recipes or not all(r.status == RecipeStatus.COMPLETED.value for r in recipes):
        return False

    current = _coerce(OrderStatus, order.status)
    if not can_transition(current, OrderStatus.READY):
        logger.warning(
            f"Order {order.order_number}: all recipes completed but order is {current.value}; not advancing"
        )
        return False
    transition_order(order, OrderStatus.READY, now=now)
    return True
