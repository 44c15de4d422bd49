"""
db.models - SQLAlchemy ORM declarations.

Tables
------
categories, brands, suppliers   - reference entities a product points at.
                                  Product imports may create them on demand.
customers                       - standalone entity, imported by name.
products                        - one row per unique product_code.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, DateTime, Text, Numeric, ForeignKey,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class _Timestamps:
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class Category(_Timestamps, Base):
    __tablename__ = "categories"

    id   = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), unique=True, nullable=False, index=True)


class Brand(_Timestamps, Base):
    __tablename__ = "brands"

    id   = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), unique=True, nullable=False, index=True)


class Supplier(_Timestamps, Base):
    __tablename__ = "suppliers"

    id      = Column(Integer, primary_key=True, autoincrement=True)
    name    = Column(String(150), unique=True, nullable=False, index=True)
    address = Column(String(255), default="")
    phone   = Column(String(50), default="")


class Customer(_Timestamps, Base):
    __tablename__ = "customers"

    id      = Column(Integer, primary_key=True, autoincrement=True)
    name    = Column(String(150), unique=True, nullable=False, index=True)
    email   = Column(String(200), unique=True, nullable=True)
    phone   = Column(String(50), default="")
    address = Column(String(255), default="")


class Product(_Timestamps, Base):
    __tablename__ = "products"

    id           = Column(Integer, primary_key=True, autoincrement=True)
    product_code = Column(String(100), unique=True, nullable=False, index=True)
    name         = Column(String(200), unique=True, nullable=False, index=True)
    barcode      = Column(String(100), unique=True, nullable=True)

    # ── Packaging / stock ──────────────────────────────────────────────
    pack_size    = Column(Integer, nullable=False)
    quantity     = Column(Integer, default=0)
    rack         = Column(String(100), default="")

    # ── Pricing ────────────────────────────────────────────────────────
    pack_purchase_price = Column(Numeric(12, 2), nullable=True)
    pack_sale_price     = Column(Numeric(12, 2), nullable=True)
    unit_purchase_price = Column(Numeric(12, 2), nullable=True)
    unit_sale_price     = Column(Numeric(12, 2), nullable=True)
    avg_price           = Column(Numeric(12, 2), nullable=True)
    max_discount        = Column(Integer, nullable=True)

    narcotic     = Column(String(3), nullable=False, default="no")
    formulation  = Column(Text, default="")
    description  = Column(Text, default="")

    # ── References ─────────────────────────────────────────────────────
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    brand_id    = Column(Integer, ForeignKey("brands.id"), nullable=True, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True, index=True)

    category = relationship("Category", lazy="joined")
    brand    = relationship("Brand", lazy="joined")
    supplier = relationship("Supplier", lazy="joined")
