"""Relational tables the search fallback reads from.

The catalog itself is owned by the storefront; these models describe only
the columns search needs. ``products.price`` holds minor currency units.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

VENDOR_APPROVED = "approved"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(String, primary_key=True)
    store_name = Column(String, nullable=False)
    # pending | approved | rejected | suspended
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    products = relationship("Product", back_populates="vendor")


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    vendor_id = Column(String, ForeignKey("vendors.id"), nullable=False, index=True)
    category_id = Column(String, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    brand = Column(String)
    price = Column(Integer, nullable=False, default=0)
    currency = Column(String, nullable=False, default="XOF")
    sku = Column(String)
    quantity = Column(Integer, default=0)
    images = Column(JSON, default=list)
    tags = Column(JSON, default=list)
    is_active = Column(Boolean, default=True)
    is_approved = Column(Boolean, default=False)
    is_featured = Column(Boolean, default=False)
    rating = Column(Float, default=0.0)
    review_count = Column(Integer, default=0)
    popularity_score = Column(Float, default=0.0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    vendor = relationship("Vendor", back_populates="products")


def create_db_engine(url: str | None = None) -> Engine:
    url = url or settings.database_url
    if url.startswith("sqlite") and ":memory:" in url:
        # One shared connection, otherwise every session sees an empty database.
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
