"""Dealer margin/discount lookup for pricing."""
import logging
from typing import Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm_models import Dealer
from app.services.pricing_engine import DealerContext, NO_DEALER

logger = logging.getLogger("bayedi-dealers")


class DealerLookup(Protocol):
    async def get_dealer_margins(self, dealer_id: Optional[str]) -> DealerContext:
        ...


class StaticDealerLookup:
    """Fixed margins keyed by dealer id."""

    def __init__(self, margins: Optional[Dict[str, DealerContext]] = None):
        self.margins = dict(margins or {})

    async def get_dealer_margins(self, dealer_id: Optional[str]) -> DealerContext:
        if not dealer_id:
            return NO_DEALER
        return self.margins.get(dealer_id, NO_DEALER)


class SqlDealerLookup:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_dealer_margins(self, dealer_id: Optional[str]) -> DealerContext:
        """Active dealer's margin and discount; zero defaults for no or unknown dealer."""
        if not dealer_id:
            return NO_DEALER
        result = await self.db.execute(
            select(Dealer.profit_margin, Dealer.discount_rate).where(
                Dealer.id == dealer_id,
                Dealer.deleted_at.is_(None),
            )
        )
        row = result.first()
        if row is None:
            logger.warning(f"Dealer {dealer_id} not found, pricing without margin/discount")
            return NO_DEALER
        return DealerContext(
            profit_margin=float(row.profit_margin or 0),
            discount_rate=float(row.discount_rate or 0),
        )
