"""ORM Models for Bayedi Estimator — SQLAlchemy 2.0"""
import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── DEALERS ───────────────────────────────────────────────────────────────────
class Dealer(Base):
    __tablename__ = "dealers"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)   # BAY-001
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(String(100))
    tax_number: Mapped[Optional[str]] = mapped_column(String(50))
    tax_office: Mapped[Optional[str]] = mapped_column(String(100))
    # Percentages: margin is applied to the item subtotal first, discount after
    profit_margin: Mapped[float] = mapped_column(Numeric(5, 2), default=Decimal("25.00"))
    discount_rate: Mapped[float] = mapped_column(Numeric(5, 2), default=Decimal("0.00"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    customers: Mapped[list["Customer"]] = relationship("Customer", back_populates="dealer")
    quotes: Mapped[list["Quote"]] = relationship("Quote", back_populates="dealer")


class Customer(Base):
    __tablename__ = "customers"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    dealer_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("dealers.id"), index=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    address: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    dealer: Mapped["Dealer"] = relationship("Dealer", back_populates="customers")


# ── CATALOG ───────────────────────────────────────────────────────────────────
class CatalogProduct(Base):
    __tablename__ = "products"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    # PROFILE | ACCESSORY | MOTOR | REMOTE | FABRIC
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    # BYD100 | BYD125 | SKY1500 | SKY1600 | ALL
    system_type: Mapped[str] = mapped_column(String(20), default="ALL", index=True)
    unit: Mapped[str] = mapped_column(String(5), default="ad")     # mt | ad | tk
    weight_per_meter: Mapped[Optional[float]] = mapped_column(Numeric(10, 4))   # kg/m
    width_multiplier: Mapped[Optional[float]] = mapped_column(Numeric(8, 4))
    height_multiplier: Mapped[Optional[float]] = mapped_column(Numeric(8, 4))
    # GENERIC | ZIP_FABRIC | ZIP_GUIDE, set when the entry is authored
    accessory_role: Mapped[str] = mapped_column(String(20), default="GENERIC")
    base_price: Mapped[float] = mapped_column(Numeric(12, 4), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    # Catalog position; profile lines are priced and listed in this order
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    __table_args__ = (Index("ix_products_category_system", "category", "system_type"),)


# ── QUOTES ────────────────────────────────────────────────────────────────────
class Quote(Base):
    __tablename__ = "quotes"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    quote_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)  # TKL-2026-0001
    dealer_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("dealers.id"), index=True)
    customer_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("customers.id"))
    created_by_id: Mapped[Optional[str]] = mapped_column(String(64))
    # DRAFT | SENT | APPROVED | REJECTED | CONVERTED
    status: Mapped[str] = mapped_column(String(20), default="DRAFT", index=True)
    valid_until: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    subtotal: Mapped[float] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    discount_rate: Mapped[float] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    discount_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    tax_rate: Mapped[Optional[float]] = mapped_column(Numeric(5, 2), default=Decimal("20"))
    tax_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    total_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    dealer: Mapped[Optional["Dealer"]] = relationship("Dealer", back_populates="quotes")
    customer: Mapped["Customer"] = relationship("Customer")
    items: Mapped[list["QuoteItem"]] = relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.line_number",
        lazy="selectin",
    )
    order: Mapped[Optional["Order"]] = relationship(
        "Order", back_populates="quote", uselist=False, lazy="selectin"
    )
    __mapper_args__ = {"eager_defaults": True}


class QuoteItem(Base):
    __tablename__ = "quote_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    quote_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("quotes.id", ondelete="CASCADE"), index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    system_type: Mapped[str] = mapped_column(String(20), nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)    # mm
    height: Mapped[int] = mapped_column(Integer, nullable=False)   # mm
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    paint_code: Mapped[Optional[str]] = mapped_column(String(50))
    # Priced once at add/update time; never re-priced on catalog changes
    unit_price: Mapped[float] = mapped_column(Numeric(14, 4), default=Decimal("0"))
    total_price: Mapped[float] = mapped_column(Numeric(14, 4), default=Decimal("0"))
    total_kg: Mapped[float] = mapped_column(Numeric(12, 4), default=Decimal("0"))
    details: Mapped[Optional[dict]] = mapped_column(JSONB)   # {"profiles": [...], "accessories": [...]}
    include_fabric: Mapped[bool] = mapped_column(Boolean, default=False)
    fabric_price: Mapped[Optional[float]] = mapped_column(Numeric(12, 4))
    fabric_multiplier: Mapped[Optional[float]] = mapped_column(Numeric(8, 4))
    fabric_total: Mapped[float] = mapped_column(Numeric(14, 4), default=Decimal("0"))
    include_motor: Mapped[bool] = mapped_column(Boolean, default=False)
    motor_type: Mapped[Optional[str]] = mapped_column(String(100))
    motor_price: Mapped[Optional[float]] = mapped_column(Numeric(12, 4))
    motor_qty: Mapped[Optional[int]] = mapped_column(Integer)
    remote_type: Mapped[Optional[str]] = mapped_column(String(100))
    remote_price: Mapped[Optional[float]] = mapped_column(Numeric(12, 4))
    remote_qty: Mapped[Optional[int]] = mapped_column(Integer)
    motor_total: Mapped[float] = mapped_column(Numeric(14, 4), default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    quote: Mapped["Quote"] = relationship("Quote", back_populates="items")


# ── ORDERS ────────────────────────────────────────────────────────────────────
class Order(Base):
    __tablename__ = "orders"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    order_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)  # SIP-2026-0001
    quote_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("quotes.id"), unique=True)
    dealer_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("dealers.id"), index=True)
    # PENDING | CONFIRMED | IN_PRODUCTION | READY | SHIPPED | DELIVERED | CANCELLED
    status: Mapped[str] = mapped_column(String(20), default="PENDING", index=True)
    total_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    shipping_address: Mapped[Optional[str]] = mapped_column(Text)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100))
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    quote: Mapped["Quote"] = relationship("Quote", back_populates="order")
    recipes: Mapped[list["ProductionRecipe"]] = relationship(
        "ProductionRecipe",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="ProductionRecipe.line_number",
        lazy="selectin",
    )
    __mapper_args__ = {"eager_defaults": True}


class ProductionRecipe(Base):
    """Manufacturing work order line, created 1:1 from a quote item on conversion."""
    __tablename__ = "production_recipes"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    order_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("orders.id", ondelete="CASCADE"), index=True
    )
    system_type: Mapped[str] = mapped_column(String(20), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    paint_code: Mapped[Optional[str]] = mapped_column(String(50))
    # PENDING | IN_PROGRESS | COMPLETED | CANCELLED
    status: Mapped[str] = mapped_column(String(20), default="PENDING")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    order: Mapped["Order"] = relationship("Order", back_populates="recipes")


# ── DOCUMENT NUMBERING ────────────────────────────────────────────────────────
class DocumentSequence(Base):
    """Last issued sequence per numbering scope. year=0 marks a global scope."""
    __tablename__ = "document_sequences"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    __table_args__ = (UniqueConstraint("kind", "year", name="uq_document_sequence_scope"),)
