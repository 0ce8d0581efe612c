"""
Product catalog lookup for the pricing engine.

The engine reads the catalog through the small ``ProductCatalog`` protocol.
``StaticCatalog`` answers from memory; ``SqlProductCatalog`` loads the rows a
single system type needs and hands back a ``StaticCatalog`` snapshot, so
pricing itself never awaits the database.

Rows whose stored enums do not parse (an unknown system family or unit) are
left out of the snapshot and listed in ``skipped_codes``; they never fail a
price calculation.
"""
import logging
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog_schema import (
    AccessoryRole, LengthMultipliers, Product, ProductCategory, ProductUnit, SystemType,
    classify_accessory,
)
from app.models.orm_models import CatalogProduct
from app.services.system_config import get_accessory_codes

logger = logging.getLogger("bayedi-catalog")


class ProductCatalog(Protocol):
    skipped_codes: Sequence[str]

    def find_active_products(self, category: ProductCategory, system_type: str) -> List[Product]:
        ...

    def find_active_by_codes(self, category: ProductCategory, codes: Sequence[str]) -> List[Product]:
        ...


class StaticCatalog:
    """In-memory catalog. Inactive products are never returned."""

    def __init__(self, products: Iterable[Product], skipped_codes: Sequence[str] = ()):
        self._products: List[Product] = list(products)
        self.skipped_codes: List[str] = list(skipped_codes)

    def __len__(self) -> int:
        return len(self._products)

    def find_active_products(self, category: ProductCategory, system_type: str) -> List[Product]:
        return [
            p for p in self._products
            if p.is_active and p.category is category and p.applies_to(system_type)
        ]

    def find_active_by_codes(self, category: ProductCategory, codes: Sequence[str]) -> List[Product]:
        by_code: Dict[str, Product] = {
            p.code: p for p in self._products if p.is_active and p.category is category
        }
        return [by_code[c] for c in codes if c in by_code]


def record_to_product(row: CatalogProduct) -> Product:
    """
    Convert an ORM row into a catalog ``Product``.

    Raises ValueError when a stored category, unit, system type or role is
    not one this build knows.
    """
    category = ProductCategory(row.category)
    weight = float(row.weight_per_meter) if row.weight_per_meter is not None else None
    multipliers: Optional[LengthMultipliers] = None
    if row.width_multiplier is not None or row.height_multiplier is not None:
        multipliers = LengthMultipliers(
            width=float(row.width_multiplier or 0),
            height=float(row.height_multiplier or 0),
        )
    if category is ProductCategory.PROFILE and (weight is None or multipliers is None):
        # Legacy rows: weight 0 and width-only length
        logger.warning(f"Profile {row.code} missing weight/multipliers, using legacy defaults")
        weight = weight if weight is not None else 0.0
        multipliers = multipliers or LengthMultipliers(width=1.0, height=0.0)
    return Product(
        code=row.code,
        name=row.name,
        category=category,
        base_price=float(row.base_price or 0),
        unit=ProductUnit(row.unit or ProductUnit.PIECE.value),
        system_type=SystemType(row.system_type or SystemType.ALL.value),
        weight_per_meter=weight,
        multipliers=multipliers,
        accessory_role=AccessoryRole(row.accessory_role or AccessoryRole.GENERIC.value),
        is_active=row.is_active is not False,
    )


def author_product(
    code: str,
    name: str,
    category,
    base_price: float = 0.0,
    unit=None,
    system_type=None,
    weight_per_meter: Optional[float] = None,
    width_multiplier: Optional[float] = None,
    height_multiplier: Optional[float] = None,
    is_active: bool = True,
) -> Product:
    """
    Build a validated catalog entry from admin input.

    The code is normalized to upper case and the accessory role is decided
    here from it; pricing only ever reads the stored role.
    """
    code = (code or "").strip().upper()
    if not code:
        raise ValueError("Product code is required")
    category = ProductCategory(category)
    multipliers = None
    if width_multiplier is not None or height_multiplier is not None:
        multipliers = LengthMultipliers(float(width_multiplier or 0), float(height_multiplier or 0))
    role = classify_accessory(code) if category is ProductCategory.ACCESSORY else AccessoryRole.GENERIC
    return Product(
        code=code,
        name=name,
        category=category,
        base_price=float(base_price or 0),
        unit=ProductUnit(unit or ProductUnit.PIECE.value),
        system_type=SystemType(system_type or SystemType.ALL.value),
        weight_per_meter=float(weight_per_meter) if weight_per_meter is not None else None,
        multipliers=multipliers,
        accessory_role=role,
        is_active=is_active,
    )


def write_product(product: Product, row: Optional[CatalogProduct] = None) -> CatalogProduct:
    """Copy a ``Product`` onto a row (a new one when ``row`` is None)."""
    if row is None:
        row = CatalogProduct(code=product.code)
    mult = product.multipliers
    row.name = product.name
    row.category = product.category.value
    row.system_type = product.system_type.value
    row.unit = product.unit.value
    row.weight_per_meter = product.weight_per_meter
    row.width_multiplier = mult.width if mult else None
    row.height_multiplier = mult.height if mult else None
    row.accessory_role = product.accessory_role.value
    row.base_price = product.base_price
    row.is_active = product.is_active
    return row


class SqlProductCatalog:
    """Loads active, non-deleted catalog rows for one system type."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def snapshot(self, system_type: str) -> StaticCatalog:
        accessory_codes = list(get_accessory_codes(system_type))
        conditions = [
            (CatalogProduct.category == ProductCategory.PROFILE.value)
            & CatalogProduct.system_type.in_([system_type, SystemType.ALL.value])
        ]
        if accessory_codes:
            conditions.append(
                (CatalogProduct.category == ProductCategory.ACCESSORY.value)
                & CatalogProduct.code.in_(accessory_codes)
            )
        result = await self.db.execute(
            select(CatalogProduct)
            .where(
                CatalogProduct.is_active.is_(True),
                CatalogProduct.deleted_at.is_(None),
                or_(*conditions),
            )
            .order_by(CatalogProduct.sort_order, CatalogProduct.code)
        )
        products: List[Product] = []
        skipped: List[str] = []
        for row in result.scalars().all():
            try:
                products.append(record_to_product(row))
            except ValueError as e:
                logger.warning(f"Catalog row {row.code} skipped: {e}")
                skipped.append(row.code)
        catalog = StaticCatalog(products, skipped)
        logger.debug(f"Catalog snapshot for {system_type}: {len(catalog)} products, {len(skipped)} skipped")
        return catalog


# ── Bulk repricing ────────────────────────────────────────────────────────────

def repriced_value(base_price: float, percentage_change: float) -> float:
    """New base price after a percentage change, rounded to 2 decimals."""
    new_price = round(float(base_price) * (1 + percentage_change / 100), 2)
    if new_price < 0:
        raise ValueError(f"percentage_change {percentage_change} would make price negative")
    return new_price


def reprice_by_percentage(rows: Iterable[CatalogProduct], percentage_change: float) -> int:
    """Apply a percentage change to every row in place. Returns the number of rows changed."""
    count = 0
    for row in rows:
        row.base_price = repriced_value(row.base_price or 0, percentage_change)
        count += 1
    logger.info(f"Bulk repricing {percentage_change:+}% applied to {count} products")
    return count


def apply_price_updates(rows: Iterable[CatalogProduct], prices: Dict[str, float]) -> List[str]:
    """
    Set explicit base prices keyed by product id.

    Returns the ids from ``prices`` that matched no row.
    """
    remaining = dict(prices)
    for row in rows:
        if row.id in remaining:
            price = float(remaining.pop(row.id))
            if price < 0:
                raise ValueError(f"Product {row.code}: base_price must be >= 0")
            row.base_price = price
    return list(remaining)
