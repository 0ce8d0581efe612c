"""
Order API Routes

GET /api/orders                                   — list orders (dealers see their own)
GET /api/orders/stats                             — order counts and delivered revenue
GET /api/orders/{id}                              — order with production recipes
PUT /api/orders/{id}/status                       — status change (admin)
PUT /api/orders/{id}/notes                        — append a note
PUT /api/orders/{id}/recipes/{recipe_id}/status   — recipe progress (admin)
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.api.deps import TokenUser, ensure_dealer_access, get_current_user, require_admin
from app.models.orm_models import Order, ProductionRecipe
from app.services.status_machine import OrderStatus, RecipeStatus, transition_order, update_recipe_status

router = APIRouter(prefix="/api/orders", tags=["Orders"])
logger = logging.getLogger("bayedi-order-routes")


class OrderStatusRequest(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None
    tracking_number: Optional[str] = None


class OrderNotesRequest(BaseModel):
    notes: str = Field(..., min_length=1)


class RecipeStatusRequest(BaseModel):
    status: RecipeStatus
    notes: Optional[str] = None


def _ts(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def recipe_to_dict(recipe: ProductionRecipe) -> dict:
    return {
        "id": recipe.id,
        "line_number": recipe.line_number,
        "system_type": recipe.system_type,
        "width": recipe.width,
        "height": recipe.height,
        "quantity": recipe.quantity,
        "paint_code": recipe.paint_code,
        "status": recipe.status,
        "notes": recipe.notes,
        "completed_at": _ts(recipe.completed_at),
    }


def order_to_dict(order: Order, include_recipes: bool = True) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "quote_id": order.quote_id,
        "dealer_id": order.dealer_id,
        "status": order.status,
        "total_amount": float(order.total_amount) if order.total_amount is not None else None,
        "currency": order.currency,
        "notes": order.notes,
        "tracking_number": order.tracking_number,
        "confirmed_at": _ts(order.confirmed_at),
        "shipped_at": _ts(order.shipped_at),
        "delivered_at": _ts(order.delivered_at),
        "cancelled_at": _ts(order.cancelled_at),
        "created_at": _ts(order.created_at),
    }
    if include_recipes:
        data["recipes"] = [recipe_to_dict(r) for r in order.recipes]
    return data


async def _get_order(order_id: str, user: TokenUser, db: AsyncSession, lock: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    ensure_dealer_access(user, order.dealer_id)
    return order


def _append_note(existing: Optional[str], note: Optional[str]) -> Optional[str]:
    if not note:
        return existing
    return f"{existing}\n{note}" if existing else note


@router.get("")
async def list_orders(
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conditions = []
    if not user.is_admin:
        conditions.append(Order.dealer_id == user.dealer_id)
    if status:
        conditions.append(Order.status == status.value)

    total = (await db.execute(select(func.count(Order.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    orders = result.scalars().all()
    return {
        "success": True,
        "data": [order_to_dict(o, include_recipes=False) for o in orders],
        "meta": {"page": page, "limit": limit, "total": total, "total_pages": -(-total // limit)},
    }


RECENT_ORDER_DAYS = 30


def order_stats_statement(dealer_id: Optional[str], since: datetime):
    """One aggregate row: total, pending, in production, delivered, recent, delivered revenue."""
    delivered = Order.status == OrderStatus.DELIVERED.value
    stmt = select(
        func.count(Order.id),
        func.count(Order.id).filter(Order.status == OrderStatus.PENDING.value),
        func.count(Order.id).filter(Order.status == OrderStatus.IN_PRODUCTION.value),
        func.count(Order.id).filter(delivered),
        func.count(Order.id).filter(Order.created_at >= since),
        func.coalesce(func.sum(Order.total_amount).filter(delivered), 0),
    )
    if dealer_id is not None:
        stmt = stmt.where(Order.dealer_id == dealer_id)
    return stmt


@router.get("/stats")
async def get_order_stats(
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Dashboard counters; dealers only see their own orders."""
    since = datetime.now(timezone.utc) - timedelta(days=RECENT_ORDER_DAYS)
    dealer_id = None if user.is_admin else user.dealer_id
    total, pending, in_production, delivered, recent, revenue = (
        await db.execute(order_stats_statement(dealer_id, since))
    ).one()
    return {
        "success": True,
        "data": {
            "total_orders": total,
            "pending_orders": pending,
            "in_production_orders": in_production,
            "completed_orders": delivered,
            "recent_orders": recent,
            "total_revenue": float(revenue or 0),
        },
    }


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await _get_order(order_id, user, db)
    return {"success": True, "data": order_to_dict(order)}


@router.put("/{order_id}/status")
async def update_order_status(
    order_id: str,
    req: OrderStatusRequest,
    user: TokenUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await _get_order(order_id, user, db, lock=True)
    transition_order(order, req.status)
    order.notes = _append_note(order.notes, req.notes)
    if req.tracking_number:
        order.tracking_number = req.tracking_number
    await db.flush()
    logger.info(f"Order {order.order_number} -> {order.status}", extra={"order_id": order.id})
    return {"success": True, "data": order_to_dict(order)}


@router.put("/{order_id}/notes")
async def update_order_notes(
    order_id: str,
    req: OrderNotesRequest,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await _get_order(order_id, user, db, lock=True)
    order.notes = _append_note(order.notes, req.notes)
    await db.flush()
    return {"success": True, "data": order_to_dict(order, include_recipes=False)}


@router.put("/{order_id}/recipes/{recipe_id}/status")
async def update_production_recipe_status(
    order_id: str,
    recipe_id: str,
    req: RecipeStatusRequest,
    user: TokenUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Update one recipe; the order moves to READY once every recipe is COMPLETED."""
    order = await _get_order(order_id, user, db, lock=True)
    recipe = next((r for r in order.recipes if r.id == recipe_id), None)
    if recipe is None:
        raise HTTPException(status_code=404, detail=f"Production recipe {recipe_id} not found")

    advanced = update_recipe_status(order, recipe, req.status)
    if req.notes:
        recipe.notes = req.notes
    await db.flush()
    return {
        "success": True,
        "data": {
            "recipe": recipe_to_dict(recipe),
            "order_status": order.status,
            "order_advanced": advanced,
        },
    }
