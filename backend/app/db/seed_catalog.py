"""
Reference product catalog: BYD100/BYD125 zip-blind profiles, shared
accessories and motors.

``SEED_PRODUCTS`` is the authoring-time source of truth (accessory roles are
classified here, once). ``seed_catalog`` inserts the entries a database is
missing and never rewrites rows that already exist.
"""
import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog_schema import (
    Product, ProductCategory, ProductUnit, SystemType, LengthMultipliers, classify_accessory,
)
from app.models.orm_models import CatalogProduct
from app.services.catalog_engine import write_product

logger = logging.getLogger("bayedi-seed")

_ALONG_WIDTH = LengthMultipliers(width=1.0, height=0.0)
_BOTH_SIDES = LengthMultipliers(width=0.0, height=2.0)


def _profile(code, name, weight, price, multipliers, system):
    return Product(
        code=code, name=name, category=ProductCategory.PROFILE, base_price=price,
        unit=ProductUnit.METER, system_type=system,
        weight_per_meter=weight, multipliers=multipliers,
    )


def _accessory(code, name, unit, price):
    return Product(
        code=code, name=name, category=ProductCategory.ACCESSORY, base_price=price,
        unit=unit, accessory_role=classify_accessory(code),
    )


def _motor(code, name, price):
    return Product(code=code, name=name, category=ProductCategory.MOTOR, base_price=price)


SEED_PRODUCTS: List[Product] = [
    # BYD100 profiles (price per kg)
    _profile("10614", "ALÜMİNYUM KASA", 1.401, 4.8, _ALONG_WIDTH, SystemType.BYD100),
    _profile("10613", "KASA KAPAK", 0.607, 4.8, _ALONG_WIDTH, SystemType.BYD100),
    _profile("10624", "ETEK ÇITASI", 1.087, 4.8, _ALONG_WIDTH, SystemType.BYD100),
    _profile("10623", "YAN DİKME KAPAĞI", 0.298, 4.8, _BOTH_SIDES, SystemType.BYD100),
    _profile("10622", "YAN DİKME", 0.875, 4.8, _BOTH_SIDES, SystemType.BYD100),
    _profile("10178", "78mm GALVANİZ BORU", 1.0, 5.5, _ALONG_WIDTH, SystemType.BYD100),
    # BYD125 profiles
    _profile("10627", "ALÜMİNYUM KASA", 1.709, 4.8, _ALONG_WIDTH, SystemType.BYD125),
    _profile("10626", "KASA KAPAK", 1.033, 4.8, _ALONG_WIDTH, SystemType.BYD125),
    _profile("10624B", "ETEK ÇITASI", 1.087, 4.8, _ALONG_WIDTH, SystemType.BYD125),
    # Accessories shared by every system
    _accessory("BYD10-114DK", "Yan Sac", ProductUnit.SET, 10.0),
    _accessory("BYD10-113SK", "Süs Kapağı", ProductUnit.SET, 10.0),
    _accessory("ZG0256", "Fermuar Kılavuzu", ProductUnit.PIECE, 1.2),
    _accessory("ZIP-REG-101", "Fermuar", ProductUnit.METER, 2.1),
    # Motors
    _motor("MTR-SOMFY-001", "Somfy Motor", 150.0),
    _motor("MTR-MOSEL-001", "Mosel Motor", 120.0),
    _motor("MTR-NICE-001", "Nice Motor", 130.0),
]


def product_to_record(product: Product, sort_order: int = 0) -> CatalogProduct:
    row = write_product(product)
    row.sort_order = sort_order
    return row


async def seed_catalog(db: AsyncSession) -> int:
    """
    Insert the seed products that are missing. Returns rows created.

    Existing rows are left alone, so prices and weights changed through the
    API survive a restart.
    """
    result = await db.execute(select(CatalogProduct.code))
    existing = set(result.scalars().all())
    created = 0
    for position, product in enumerate(SEED_PRODUCTS, start=1):
        if product.code in existing:
            continue
        db.add(product_to_record(product, sort_order=position))
        created += 1
    await db.flush()
    logger.info("seed_catalog: %d created, %d already present", created, len(SEED_PRODUCTS) - created)
    return created
