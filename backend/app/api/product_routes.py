"""
Product Catalog API Routes

GET    /api/products                      — active catalog, optional category / system filter
GET    /api/products/{id}                 — one product
POST   /api/products                      — author a catalog entry (admin)
PUT    /api/products/{id}                 — edit a catalog entry (admin)
DELETE /api/products/{id}                 — soft delete (admin)
POST   /api/products/bulk-update-prices   — explicit prices or a percentage change (admin)
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.api.deps import TokenUser, get_current_user, require_admin
from app.models.catalog_schema import ProductCategory, ProductUnit, SystemType
from app.models.orm_models import CatalogProduct
from app.services.catalog_engine import (
    apply_price_updates, author_product, reprice_by_percentage, write_product,
)

router = APIRouter(prefix="/api/products", tags=["Products"])
logger = logging.getLogger("bayedi-product-routes")

# Columns an admin may author; ``code`` is fixed once created
_AUTHORED_FIELDS = (
    "name", "category", "base_price", "unit", "system_type",
    "weight_per_meter", "width_multiplier", "height_multiplier", "is_active",
)


class PriceUpdate(BaseModel):
    id: str
    base_price: float = Field(..., ge=0)


class BulkPriceUpdateRequest(BaseModel):
    updates: Optional[List[PriceUpdate]] = None
    percentage_change: Optional[float] = Field(None, gt=-100)
    category: Optional[ProductCategory] = None


class ProductCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: ProductCategory
    system_type: SystemType = SystemType.ALL
    unit: ProductUnit = ProductUnit.PIECE
    base_price: float = Field(0, ge=0)
    currency: str = Field("EUR", min_length=3, max_length=3)
    weight_per_meter: Optional[float] = Field(None, ge=0)
    width_multiplier: Optional[float] = Field(None, ge=0)
    height_multiplier: Optional[float] = Field(None, ge=0)
    sort_order: Optional[int] = None
    is_active: bool = True


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[ProductCategory] = None
    system_type: Optional[SystemType] = None
    unit: Optional[ProductUnit] = None
    base_price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    weight_per_meter: Optional[float] = Field(None, ge=0)
    width_multiplier: Optional[float] = Field(None, ge=0)
    height_multiplier: Optional[float] = Field(None, ge=0)
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


def product_to_dict(row: CatalogProduct) -> dict:
    def num(v):
        return float(v) if v is not None else None
    return {
        "id": row.id,
        "code": row.code,
        "name": row.name,
        "description": row.description,
        "category": row.category,
        "system_type": row.system_type,
        "unit": row.unit,
        "weight_per_meter": num(row.weight_per_meter),
        "width_multiplier": num(row.width_multiplier),
        "height_multiplier": num(row.height_multiplier),
        "accessory_role": row.accessory_role,
        "base_price": num(row.base_price),
        "currency": row.currency,
        "sort_order": row.sort_order,
        "is_active": row.is_active,
    }


def _authored_values(row: CatalogProduct) -> dict:
    return {name: getattr(row, name) for name in _AUTHORED_FIELDS}


def _build_product(code: str, values: dict):
    try:
        return author_product(code=code, **values)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _get_product(product_id: str, db: AsyncSession) -> CatalogProduct:
    result = await db.execute(
        select(CatalogProduct).where(CatalogProduct.id == product_id, CatalogProduct.deleted_at.is_(None))
    )
    row = result.scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return row


@router.get("")
async def list_products(
    category: Optional[ProductCategory] = None,
    system_type: Optional[SystemType] = None,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(CatalogProduct).where(
        CatalogProduct.is_active.is_(True),
        CatalogProduct.deleted_at.is_(None),
    )
    if category:
        stmt = stmt.where(CatalogProduct.category == category.value)
    if system_type:
        stmt = stmt.where(CatalogProduct.system_type.in_([system_type.value, SystemType.ALL.value]))
    result = await db.execute(
        stmt.order_by(CatalogProduct.category, CatalogProduct.sort_order, CatalogProduct.code)
    )
    return {"success": True, "data": [product_to_dict(p) for p in result.scalars().all()]}


@router.post("", status_code=201)
async def create_product(
    req: ProductCreateRequest,
    user: TokenUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Author a catalog entry; accessory roles are classified from the code here."""
    product = _build_product(req.code, req.model_dump(include=set(_AUTHORED_FIELDS)))

    # Codes are unique across the table, soft-deleted rows included
    result = await db.execute(select(CatalogProduct).where(CatalogProduct.code == product.code))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail=f"Product code {product.code} is already in use")

    sort_order = req.sort_order
    if sort_order is None:
        current_max = (await db.execute(select(func.max(CatalogProduct.sort_order)))).scalar_one_or_none()
        sort_order = (current_max or 0) + 1

    row = write_product(product)
    row.description = req.description
    row.currency = req.currency
    row.sort_order = sort_order
    db.add(row)
    await db.flush()
    logger.info(f"Product {row.code} created by {user.id} ({row.category}, role {row.accessory_role})")
    return {"success": True, "data": product_to_dict(row)}


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _get_product(product_id, db)
    return {"success": True, "data": product_to_dict(row)}


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    req: ProductUpdateRequest,
    user: TokenUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _get_product(product_id, db)
    changes = req.model_dump(exclude_unset=True)
    values = _authored_values(row)
    values.update({k: v for k, v in changes.items() if k in _AUTHORED_FIELDS and v is not None})
    product = _build_product(row.code, values)

    write_product(product, row)
    for name in ("description", "currency", "sort_order"):
        if changes.get(name) is not None:
            setattr(row, name, changes[name])
    await db.flush()
    logger.info(f"Product {row.code} updated by {user.id}: {sorted(changes)}")
    return {"success": True, "data": product_to_dict(row)}


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    user: TokenUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete; quote items priced from the product keep their stored lines."""
    row = await _get_product(product_id, db)
    row.deleted_at = datetime.now(timezone.utc)
    row.is_active = False
    await db.flush()
    logger.info(f"Product {row.code} deleted by {user.id}")
    return {"success": True, "data": {"id": row.id, "code": row.code}}


@router.post("/bulk-update-prices")
async def bulk_update_prices(
    req: BulkPriceUpdateRequest,
    user: TokenUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Either set explicit base prices (``updates``) or move every active
    product's price by ``percentage_change`` percent, rounded to 2 decimals,
    optionally limited to one category. Existing quote items keep their prices.
    """
    if req.updates:
        prices = {u.id: u.base_price for u in req.updates}
        result = await db.execute(
            select(CatalogProduct).where(
                CatalogProduct.id.in_(list(prices)),
                CatalogProduct.deleted_at.is_(None),
            )
        )
        unmatched = apply_price_updates(result.scalars().all(), prices)
        if unmatched:
            raise HTTPException(status_code=404, detail=f"Products not found: {unmatched}")
        await db.flush()
        logger.info(f"Bulk price update by {user.id}: {len(prices)} products")
        return {"success": True, "data": {"updated": len(prices)}}

    if req.percentage_change is not None:
        stmt = select(CatalogProduct).where(
            CatalogProduct.is_active.is_(True),
            CatalogProduct.deleted_at.is_(None),
        )
        if req.category:
            stmt = stmt.where(CatalogProduct.category == req.category.value)
        result = await db.execute(stmt.with_for_update())
        count = reprice_by_percentage(result.scalars().all(), req.percentage_change)
        await db.flush()
        return {
            "success": True,
            "data": {
                "updated": count,
                "percentage_change": req.percentage_change,
                "category": req.category.value if req.category else "ALL",
            },
        }

    raise HTTPException(status_code=400, detail="Provide either updates or percentage_change")
