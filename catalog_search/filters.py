"""Compile :class:`SearchFilters` into backend-specific predicates.

Both forms start with the visibility clauses; nothing unpublished or
unapproved is ever searchable, whatever the caller asked for.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, List, Sequence

from sqlalchemy import func, or_
from sqlalchemy.sql.elements import ColumnElement

from .db import VENDOR_APPROVED, Product, Vendor
from .models import SearchFilters

logger = logging.getLogger(__name__)

VISIBILITY_EXPRESSION = ("approved:true", "published:true")
PRICE_FIELD = "price_cents"
# Legacy fallback rule: bounds above this are assumed to already be minor units.
MINOR_UNIT_THRESHOLD = 10_000

_QUERY_STRING_SPECIAL = '\\"'


def quote_value(value: str) -> str:
    """Quote a term for the Lucene ``query_string`` syntax."""
    escaped = "".join(f"\\{ch}" if ch in _QUERY_STRING_SPECIAL else ch for ch in value)
    return f'"{escaped}"'


def _or_group(field: str, values: Iterable[str]) -> str:
    clauses = [f"{field}:{quote_value(value)}" for value in sorted(values)]
    return f"({' OR '.join(clauses)})"


def build_filter_expression(filters: SearchFilters) -> str:
    """Single ``query_string`` expression for the search index.

    >>> build_filter_expression(SearchFilters(price_min=500000))
    'approved:true AND published:true AND price_cents:>=500000'
    """
    parts: List[str] = list(VISIBILITY_EXPRESSION)

    if filters.vendor_id:
        parts.append(f"vendor_id:{quote_value(filters.vendor_id)}")
    if filters.currency:
        parts.append(f"currency:{quote_value(filters.currency)}")
    if filters.in_stock is not None:
        parts.append(f"in_stock:{'true' if filters.in_stock else 'false'}")
    if filters.price_min is not None:
        parts.append(f"{PRICE_FIELD}:>={filters.price_min}")
    if filters.price_max is not None:
        parts.append(f"{PRICE_FIELD}:<={filters.price_max}")
    if filters.categories:
        parts.append(_or_group("categories", filters.categories))
    if filters.brands:
        parts.append(_or_group("brand", filters.brands))

    expression = " AND ".join(parts)
    logger.debug("filter expression=%s", expression)
    return expression


def legacy_price_bound(minor: int) -> int:
    """Re-apply the fallback path's unit guess to a normalized bound.

    The fallback historically received the caller's major-unit number and
    guessed its scale: above 10,000 it was taken as minor units already,
    otherwise multiplied by 100. The normalized bound is ``major * 100``, so
    the caller's number is recovered first and the same guess is applied.
    """
    major = Decimal(minor) / 100
    if major > MINOR_UNIT_THRESHOLD:
        return int(major)
    return minor


def text_condition(terms: Sequence[str]) -> ColumnElement | None:
    """Case-insensitive substring match of any term on name, description or SKU."""
    matches = []
    for term in terms:
        term = term.lower()
        if not term:
            continue
        matches.extend(
            [
                func.lower(Product.name).contains(term, autoescape=True),
                func.lower(func.coalesce(Product.description, "")).contains(term, autoescape=True),
                func.lower(func.coalesce(Product.sku, "")).contains(term, autoescape=True),
            ]
        )
    if not matches:
        return None
    return or_(*matches)


def visibility_conditions() -> List[ColumnElement]:
    return [
        Product.is_active.is_(True),
        Product.is_approved.is_(True),
        Vendor.status == VENDOR_APPROVED,
    ]


def build_sql_conditions(filters: SearchFilters, terms: Sequence[str] = ()) -> List[ColumnElement]:
    """Ordered SQLAlchemy predicates for the relational fallback.

    The caller is expected to join ``products`` with ``vendors``.
    """
    conditions = visibility_conditions()

    text_clause = text_condition(terms)
    if text_clause is not None:
        conditions.append(text_clause)

    if filters.vendor_id:
        conditions.append(Product.vendor_id == filters.vendor_id)
    if filters.categories:
        conditions.append(Product.category_id.in_(sorted(filters.categories)))
    if filters.brands:
        conditions.append(Product.brand.in_(sorted(filters.brands)))
    if filters.currency:
        conditions.append(Product.currency == filters.currency)
    if filters.price_min is not None:
        conditions.append(Product.price >= legacy_price_bound(filters.price_min))
    if filters.price_max is not None:
        conditions.append(Product.price <= legacy_price_bound(filters.price_max))
    if filters.in_stock is True:
        conditions.append(Product.quantity > 0)
    elif filters.in_stock is False:
        conditions.append(func.coalesce(Product.quantity, 0) <= 0)
    return conditions
