"""Relational fallback used when the search index is missing or failing.

Substring matching only, no facets. The hits carry the same fields as the
index documents so callers cannot tell the two apart.
"""
from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .backends import SearchBackendError
from .db import Product, Vendor
from .filters import build_sql_conditions, visibility_conditions
from .models import ProductHit, SearchRequest, SearchResultPage

logger = logging.getLogger(__name__)

AUTOCOMPLETE_LIMIT = 10


def _order_by(request: SearchRequest):
    field, direction = request.sort
    columns = {
        "price": Product.price,
        "price_cents": Product.price,
        "name": Product.name,
        "title": Product.name,
        "rating": Product.rating,
        "popularity": Product.popularity_score,
        "popularity_score": Product.popularity_score,
    }
    column = columns.get(field)
    if column is None:
        return Product.created_at.desc()
    return column.asc() if direction == "asc" else column.desc()


def to_hit(product: Product, vendor: Optional[Vendor]) -> ProductHit:
    quantity = product.quantity or 0
    return ProductHit(
        id=product.id,
        title=product.name or "",
        description=product.description or "",
        price_cents=int(product.price or 0),
        currency=product.currency or "",
        images=list(product.images or []),
        categories=[product.category_id] if product.category_id else [],
        brand=product.brand or None,
        vendor_id=product.vendor_id,
        vendor_name=vendor.store_name if vendor is not None else "Unknown",
        in_stock=quantity > 0,
        rating=float(product.rating or 0),
        review_count=int(product.review_count or 0),
        published=bool(product.is_active),
        approved=bool(product.is_approved),
    )


class DatabaseBackend:
    """Search over the ``products`` table joined with ``vendors``."""

    name = "fallback"

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def health(self) -> bool:
        try:
            with self.session_factory() as session:
                session.execute(select(1))
            return True
        except SQLAlchemyError as exc:
            logger.warning("Database health check failed: %s", exc)
            return False

    def _run_search(self, session: Session, request: SearchRequest, terms: List[str]) -> SearchResultPage:
        conditions = build_sql_conditions(request.filters, terms)
        where = and_(*conditions)
        base = select(Product, Vendor).join(Vendor, Product.vendor_id == Vendor.id)

        rows = session.execute(
            base.where(where).order_by(_order_by(request), Product.id).limit(request.limit).offset(request.offset)
        ).all()
        total_hits = session.scalar(
            select(func.count(Product.id)).join(Vendor, Product.vendor_id == Vendor.id).where(where)
        ) or 0

        return SearchResultPage(
            hits=[to_hit(product, vendor) for product, vendor in rows],
            query=request.text,
            page=request.page,
            limit=request.limit,
            totalPages=math.ceil(total_hits / request.limit),
            totalHits=total_hits,
        )

    def search(self, request: SearchRequest, expanded_query: str) -> SearchResultPage:
        started = perf_counter()
        terms = expanded_query.lower().split()
        try:
            with self.session_factory() as session:
                page = self._run_search(session, request, terms)
        except SQLAlchemyError as exc:
            raise SearchBackendError(f"Database search failed: {exc}") from exc
        page.processingTimeMs = round((perf_counter() - started) * 1000, 2)
        logger.info(
            "fallback search q=%r terms=%s hits=%s total=%s took=%.2fms",
            request.text,
            len(terms),
            len(page.hits),
            page.totalHits,
            page.processingTimeMs,
        )
        return page

    def autocomplete(self, query: str, expanded_query: str) -> List[str]:
        terms = expanded_query.lower().split()
        name_matches = [func.lower(Product.name).contains(term, autoescape=True) for term in terms]
        if not name_matches:
            return []
        stmt = (
            select(Product.name)
            .join(Vendor, Product.vendor_id == Vendor.id)
            .where(and_(*visibility_conditions(), or_(*name_matches)))
            .distinct()
            .limit(AUTOCOMPLETE_LIMIT)
        )
        try:
            with self.session_factory() as session:
                names = session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise SearchBackendError(f"Database autocomplete failed: {exc}") from exc
        return [name for name in names if name]

    def get_product(self, product_id: str) -> Optional[ProductHit]:
        """A single visible product, as shown on the product page."""
        stmt = (
            select(Product, Vendor)
            .join(Vendor, Product.vendor_id == Vendor.id)
            .where(and_(Product.id == product_id, *visibility_conditions()))
        )
        try:
            with self.session_factory() as session:
                row = session.execute(stmt).first()
        except SQLAlchemyError as exc:
            raise SearchBackendError(f"Database lookup failed: {exc}") from exc
        if row is None:
            return None
        product, vendor = row
        return to_hit(product, vendor)
