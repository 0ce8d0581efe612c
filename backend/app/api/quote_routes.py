"""
Quote API Routes

POST   /api/quotes/calculate               — price preview for one item (no persistence)
GET    /api/quotes                         — list quotes (dealers see their own)
POST   /api/quotes                         — create a DRAFT quote
GET    /api/quotes/{id}                    — quote with items
PUT    /api/quotes/{id}                    — update notes / validity / discount (DRAFT only)
POST   /api/quotes/{id}/items              — add item (DRAFT only)
PUT    /api/quotes/{id}/items/{item_id}    — edit and re-price item (DRAFT only)
DELETE /api/quotes/{id}/items/{item_id}    — remove item (DRAFT only)
POST   /api/quotes/{id}/send|approve|reject|convert — status changes
"""
import time
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.api.deps import (
    TokenUser, ensure_dealer_access, get_current_user, get_dealer_lookup,
    get_product_catalog, require_admin,
)
from app.api.order_routes import order_to_dict
from app.models.orm_models import Customer, Quote, QuoteItem
from app.services.document_numbering import DocumentKind, next_number
from app.services.perf_monitor import tracker
from app.services.pricing_engine import (
    DealerContext, FabricSpec, MotorSpec, PriceBreakdown, PricingEngine, QuoteItemSpec, RemoteSpec,
)
from app.services.quote_engine import (
    DEFAULT_TAX_RATE, QUOTE_VALIDITY_DAYS, apply_item_pricing, build_order_from_quote,
    next_line_number, recalculate_quote, renumber_items, spec_from_item,
)
from app.services.status_machine import QuoteStatus, transition_quote

router = APIRouter(prefix="/api/quotes", tags=["Quotes"])
logger = logging.getLogger("bayedi-quote-routes")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class QuoteItemRequest(BaseModel):
    system_type: str = Field(..., min_length=1)
    width: int = Field(..., gt=0)           # mm
    height: int = Field(..., gt=0)          # mm
    quantity: int = Field(..., ge=1)
    paint_code: Optional[str] = None
    include_fabric: bool = False
    fabric_price: Optional[float] = Field(None, ge=0)
    fabric_multiplier: Optional[float] = Field(None, gt=0)
    include_motor: bool = False
    motor_type: Optional[str] = None
    motor_price: Optional[float] = Field(None, ge=0)
    motor_qty: Optional[int] = Field(None, ge=0)
    remote_type: Optional[str] = None
    remote_price: Optional[float] = Field(None, ge=0)
    remote_qty: Optional[int] = Field(None, ge=0)

    def to_spec(self) -> QuoteItemSpec:
        return QuoteItemSpec(
            system_type=self.system_type,
            width_mm=self.width,
            height_mm=self.height,
            quantity=self.quantity,
            paint_code=self.paint_code,
            fabric=FabricSpec(self.include_fabric, self.fabric_price, self.fabric_multiplier),
            motor=MotorSpec(self.include_motor, self.motor_type, self.motor_price, self.motor_qty),
            remote=RemoteSpec(self.remote_type, self.remote_price, self.remote_qty),
        )


class QuoteItemUpdateRequest(BaseModel):
    """Partial item edit; omitted fields keep their stored values."""
    system_type: Optional[str] = Field(None, min_length=1)
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    quantity: Optional[int] = Field(None, ge=1)
    paint_code: Optional[str] = None
    include_fabric: Optional[bool] = None
    fabric_price: Optional[float] = Field(None, ge=0)
    fabric_multiplier: Optional[float] = Field(None, gt=0)
    include_motor: Optional[bool] = None
    motor_type: Optional[str] = None
    motor_price: Optional[float] = Field(None, ge=0)
    motor_qty: Optional[int] = Field(None, ge=0)
    remote_type: Optional[str] = None
    remote_price: Optional[float] = Field(None, ge=0)
    remote_qty: Optional[int] = Field(None, ge=0)

    def merged_spec(self, current: QuoteItemSpec) -> QuoteItemSpec:
        """Overlay the fields sent on an item's stored spec and re-validate."""
        values = {
            "system_type": current.system_type,
            "width": int(current.width_mm),
            "height": int(current.height_mm),
            "quantity": current.quantity,
            "paint_code": current.paint_code,
            "include_fabric": current.fabric.included,
            "fabric_price": current.fabric.price,
            "fabric_multiplier": current.fabric.multiplier,
            "include_motor": current.motor.included,
            "motor_type": current.motor.motor_type,
            "motor_price": current.motor.price,
            "motor_qty": current.motor.count,
            "remote_type": current.remote.remote_type,
            "remote_price": current.remote.price,
            "remote_qty": current.remote.count,
        }
        values.update(self.model_dump(exclude_unset=True))
        try:
            return QuoteItemRequest(**values).to_spec()
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=e.errors(include_url=False))


class QuoteCreateRequest(BaseModel):
    customer_id: str
    dealer_id: Optional[str] = None       # admins only; dealers always quote for themselves
    notes: Optional[str] = None
    valid_until: Optional[date] = None
    discount_rate: float = Field(0, ge=0, le=100)
    tax_rate: Optional[float] = Field(None, ge=0, le=100)


class QuoteUpdateRequest(BaseModel):
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    valid_until: Optional[date] = None
    discount_rate: Optional[float] = Field(None, ge=0, le=100)


class QuoteRejectRequest(BaseModel):
    reason: Optional[str] = None


# ── Serialization ────────────────────────────────────────────────────────────

def _num(value) -> Optional[float]:
    return float(value) if value is not None else None


def _ts(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def item_to_dict(item: QuoteItem) -> dict:
    return {
        "id": item.id,
        "line_number": item.line_number,
        "system_type": item.system_type,
        "width": item.width,
        "height": item.height,
        "quantity": item.quantity,
        "paint_code": item.paint_code,
        "unit_price": _num(item.unit_price),
        "total_price": _num(item.total_price),
        "total_kg": _num(item.total_kg),
        "include_fabric": item.include_fabric,
        "fabric_price": _num(item.fabric_price),
        "fabric_multiplier": _num(item.fabric_multiplier),
        "fabric_total": _num(item.fabric_total),
        "include_motor": item.include_motor,
        "motor_type": item.motor_type,
        "motor_price": _num(item.motor_price),
        "motor_qty": item.motor_qty,
        "remote_type": item.remote_type,
        "remote_price": _num(item.remote_price),
        "remote_qty": item.remote_qty,
        "motor_total": _num(item.motor_total),
        "details": item.details,
    }


def quote_to_dict(quote: Quote, include_items: bool = True) -> dict:
    data = {
        "id": quote.id,
        "quote_number": quote.quote_number,
        "dealer_id": quote.dealer_id,
        "customer_id": quote.customer_id,
        "status": quote.status,
        "valid_until": quote.valid_until.isoformat() if quote.valid_until else None,
        "notes": quote.notes,
        "currency": quote.currency,
        "subtotal": _num(quote.subtotal),
        "discount_rate": _num(quote.discount_rate),
        "discount_amount": _num(quote.discount_amount),
        "tax_rate": _num(quote.tax_rate),
        "tax_amount": _num(quote.tax_amount),
        "total_amount": _num(quote.total_amount),
        "sent_at": _ts(quote.sent_at),
        "approved_at": _ts(quote.approved_at),
        "rejected_at": _ts(quote.rejected_at),
        "converted_at": _ts(quote.converted_at),
        "created_at": _ts(quote.created_at),
    }
    if include_items:
        data["items"] = [item_to_dict(i) for i in quote.items]
    return data


# ── Helpers ──────────────────────────────────────────────────────────────────

async def _price_item(spec: QuoteItemSpec, catalog, dealer: DealerContext) -> PriceBreakdown:
    snapshot = await catalog.snapshot(spec.system_type)
    start = time.perf_counter()
    try:
        breakdown = PricingEngine(snapshot).compute_item_price(spec, dealer)
    except Exception:
        tracker.record_error("compute_item_price")
        raise
    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    tracker.record_calculation(duration_ms, partial=breakdown.is_partial)
    return breakdown


async def _get_quote(
    quote_id: str, user: TokenUser, db: AsyncSession, lock: bool = False
) -> Quote:
    """Load a quote with its items; ``lock`` takes the row lock for the rest of the transaction."""
    stmt = select(Quote).where(Quote.id == quote_id, Quote.deleted_at.is_(None))
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    quote = result.scalar_one_or_none()
    if not quote:
        raise HTTPException(status_code=404, detail=f"Quote {quote_id} not found")
    ensure_dealer_access(user, quote.dealer_id)
    return quote


def _require_draft(quote: Quote) -> None:
    if quote.status != QuoteStatus.DRAFT.value:
        raise HTTPException(
            status_code=400,
            detail=f"Quote {quote.quote_number} is {quote.status}; only DRAFT quotes can be edited",
        )


def _find_item(quote: Quote, item_id: str) -> QuoteItem:
    for item in quote.items:
        if item.id == item_id:
            return item
    raise HTTPException(status_code=404, detail=f"Quote item {item_id} not found")


# ── Preview ──────────────────────────────────────────────────────────────────

@router.post("/calculate")
async def calculate_price(
    req: QuoteItemRequest,
    dealer_id: Optional[str] = Query(None, description="Admins may preview with a dealer's margins"),
    user: TokenUser = Depends(get_current_user),
    catalog=Depends(get_product_catalog),
    dealers=Depends(get_dealer_lookup),
):
    """Price one item with the caller's dealer margins. Nothing is stored."""
    spec = req.to_spec()
    effective_dealer = dealer_id if user.is_admin else user.dealer_id
    dealer = await dealers.get_dealer_margins(effective_dealer)
    breakdown = await _price_item(spec, catalog, dealer)
    return {"success": True, "data": breakdown.to_dict()}


# ── Quote CRUD ───────────────────────────────────────────────────────────────

@router.get("")
async def list_quotes(
    status: Optional[QuoteStatus] = None,
    customer_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conditions = [Quote.deleted_at.is_(None)]
    if not user.is_admin:
        conditions.append(Quote.dealer_id == user.dealer_id)
    if status:
        conditions.append(Quote.status == status.value)
    if customer_id:
        conditions.append(Quote.customer_id == customer_id)

    total = (await db.execute(select(func.count(Quote.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Quote)
        .where(*conditions)
        .order_by(Quote.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    quotes = result.scalars().all()
    return {
        "success": True,
        "data": [quote_to_dict(q, include_items=False) for q in quotes],
        "meta": {"page": page, "limit": limit, "total": total, "total_pages": -(-total // limit)},
    }


@router.post("", status_code=201)
async def create_quote(
    req: QuoteCreateRequest,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dealer_id = req.dealer_id if user.is_admin else user.dealer_id

    result = await db.execute(
        select(Customer).where(Customer.id == req.customer_id, Customer.deleted_at.is_(None))
    )
    customer = result.scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail=f"Customer {req.customer_id} not found")
    if dealer_id is None:
        dealer_id = customer.dealer_id
    if customer.dealer_id != dealer_id:
        raise HTTPException(status_code=403, detail="Customer belongs to another dealer")

    quote = Quote(
        quote_number=await next_number(db, DocumentKind.QUOTE),
        dealer_id=dealer_id,
        customer_id=customer.id,
        created_by_id=user.id,
        status=QuoteStatus.DRAFT.value,
        valid_until=req.valid_until or (datetime.now(timezone.utc).date() + timedelta(days=QUOTE_VALIDITY_DAYS)),
        notes=req.notes,
        currency="EUR",
        discount_rate=req.discount_rate,
        tax_rate=req.tax_rate if req.tax_rate is not None else DEFAULT_TAX_RATE,
        items=[],
    )
    recalculate_quote(quote)
    db.add(quote)
    await db.flush()
    logger.info(f"Quote {quote.quote_number} created", extra={"quote_id": quote.id})
    return {"success": True, "data": quote_to_dict(quote)}


@router.get("/{quote_id}")
async def get_quote(
    quote_id: str,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    quote = await _get_quote(quote_id, user, db)
    return {"success": True, "data": quote_to_dict(quote)}


@router.put("/{quote_id}")
async def update_quote(
    quote_id: str,
    req: QuoteUpdateRequest,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    quote = await _get_quote(quote_id, user, db, lock=True)
    _require_draft(quote)
    changes = req.model_dump(exclude_unset=True)
    for field_name in ("notes", "internal_notes", "valid_until"):
        if field_name in changes:
            setattr(quote, field_name, changes[field_name])
    if changes.get("discount_rate") is not None:
        quote.discount_rate = changes["discount_rate"]
    recalculate_quote(quote)
    await db.flush()
    return {"success": True, "data": quote_to_dict(quote)}


# ── Items ────────────────────────────────────────────────────────────────────

@router.post("/{quote_id}/items", status_code=201)
async def add_quote_item(
    quote_id: str,
    req: QuoteItemRequest,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    catalog=Depends(get_product_catalog),
    dealers=Depends(get_dealer_lookup),
):
    """Price the item with the quote dealer's margins and recompute quote totals."""
    quote = await _get_quote(quote_id, user, db, lock=True)
    _require_draft(quote)

    spec = req.to_spec()
    dealer = await dealers.get_dealer_margins(quote.dealer_id)
    breakdown = await _price_item(spec, catalog, dealer)

    item = QuoteItem(line_number=next_line_number(quote))
    apply_item_pricing(item, spec, breakdown)
    quote.items.append(item)
    recalculate_quote(quote)
    await db.flush()
    logger.info(
        f"Item {item.line_number} added to {quote.quote_number} ({spec.system_type})",
        extra={"quote_id": quote.id},
    )
    return {"success": True, "data": {"item": item_to_dict(item), "quote": quote_to_dict(quote, include_items=False)}}


@router.put("/{quote_id}/items/{item_id}")
async def update_quote_item(
    quote_id: str,
    item_id: str,
    req: QuoteItemUpdateRequest,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    catalog=Depends(get_product_catalog),
    dealers=Depends(get_dealer_lookup),
):
    """Re-price an item from its stored spec with the sent fields applied."""
    quote = await _get_quote(quote_id, user, db, lock=True)
    _require_draft(quote)
    item = _find_item(quote, item_id)

    spec = req.merged_spec(spec_from_item(item))
    dealer = await dealers.get_dealer_margins(quote.dealer_id)
    breakdown = await _price_item(spec, catalog, dealer)

    apply_item_pricing(item, spec, breakdown)
    recalculate_quote(quote)
    await db.flush()
    return {"success": True, "data": {"item": item_to_dict(item), "quote": quote_to_dict(quote, include_items=False)}}


@router.delete("/{quote_id}/items/{item_id}")
async def delete_quote_item(
    quote_id: str,
    item_id: str,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    quote = await _get_quote(quote_id, user, db, lock=True)
    _require_draft(quote)
    item = _find_item(quote, item_id)

    quote.items.remove(item)
    renumber_items(quote)
    recalculate_quote(quote)
    await db.flush()
    return {"success": True, "data": quote_to_dict(quote)}


# ── Status changes ───────────────────────────────────────────────────────────

@router.post("/{quote_id}/send")
async def send_quote(
    quote_id: str,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    quote = await _get_quote(quote_id, user, db, lock=True)
    if not quote.items:
        raise HTTPException(status_code=400, detail="Cannot send a quote with no items")
    transition_quote(quote, QuoteStatus.SENT)
    await db.flush()
    return {"success": True, "data": quote_to_dict(quote)}


@router.post("/{quote_id}/approve")
async def approve_quote(
    quote_id: str,
    user: TokenUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    quote = await _get_quote(quote_id, user, db, lock=True)
    transition_quote(quote, QuoteStatus.APPROVED)
    await db.flush()
    return {"success": True, "data": quote_to_dict(quote)}


@router.post("/{quote_id}/reject")
async def reject_quote(
    quote_id: str,
    req: Optional[QuoteRejectRequest] = None,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    quote = await _get_quote(quote_id, user, db, lock=True)
    transition_quote(quote, QuoteStatus.REJECTED)
    if req and req.reason:
        quote.internal_notes = f"{quote.internal_notes}\n{req.reason}" if quote.internal_notes else req.reason
    await db.flush()
    return {"success": True, "data": quote_to_dict(quote)}


@router.post("/{quote_id}/convert", status_code=201)
async def convert_quote(
    quote_id: str,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Turn an APPROVED quote into a PENDING order with one production recipe per item."""
    quote = await _get_quote(quote_id, user, db, lock=True)
    transition_quote(quote, QuoteStatus.CONVERTED)
    order = build_order_from_quote(quote, await next_number(db, DocumentKind.ORDER))
    db.add(order)
    await db.flush()
    logger.info(
        f"Quote {quote.quote_number} converted to {order.order_number}",
        extra={"quote_id": quote.id, "order_id": order.id},
    )
    return {"success": True, "data": order_to_dict(order)}
