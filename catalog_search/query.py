"""Raw request parameters -> canonical :class:`SearchRequest`.

Parsing is lenient on purpose: malformed pagination falls back to defaults,
out-of-range values are clamped and unreadable price bounds are dropped.
Nothing here raises for bad input.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Mapping, Optional, Sequence, Union
from urllib.parse import urlencode

from .models import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    DEFAULT_SORT,
    MAX_LIMIT,
    MAX_PAGE,
    SearchFilters,
    SearchRequest,
)

logger = logging.getLogger(__name__)

ParamValue = Union[str, Sequence[str], None]
RawParams = Mapping[str, ParamValue]

CATEGORY_KEYS = ("category", "categories", "category[]")
BRAND_KEYS = ("brand", "brands", "brand[]")
_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}
# Prices are stored and indexed as signed 64-bit integers.
MAX_MINOR_UNITS = 2**63 - 1


def _values(raw: ParamValue) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw]
    return [str(item) for item in raw]


def _first(params: RawParams, key: str) -> Optional[str]:
    values = _values(params.get(key))
    return values[0] if values else None


def _parse_int(value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        logger.debug("Ignoring malformed integer %r", value)
        return default


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))


def to_minor_units(value: Optional[str]) -> Optional[int]:
    """Convert a major-unit amount to integer minor units (x100, half-up).

    Returns ``None`` for blank, malformed, NaN or infinite input, and for
    amounts that do not fit a 64-bit minor-unit value.
    """
    if value is None or not str(value).strip():
        return None
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            return None
        minor = int((amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        logger.debug("Ignoring malformed price %r", value)
        return None
    if abs(minor) > MAX_MINOR_UNITS:
        logger.debug("Ignoring out-of-range price %r", value)
        return None
    return minor


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return None


def _collect(params: RawParams, keys: Iterable[str]) -> frozenset:
    merged = set()
    for key in keys:
        merged.update(item.strip() for item in _values(params.get(key)) if item and item.strip())
    return frozenset(merged)


def parse_sort(value: Optional[str]) -> tuple[str, str]:
    if not value or not value.strip():
        return DEFAULT_SORT
    field, _, direction = value.strip().partition(":")
    field = field.strip() or DEFAULT_SORT[0]
    direction = direction.strip().lower()
    if direction not in {"asc", "desc"}:
        direction = "desc"
    return field, direction


def parse_search_params(params: RawParams, default_currency: str = "") -> SearchRequest:
    """Build a :class:`SearchRequest` from raw (possibly repeated) parameters."""
    text = (_first(params, "q") or "").strip()
    page = clamp(_parse_int(_first(params, "page"), DEFAULT_PAGE), DEFAULT_PAGE, MAX_PAGE)
    limit = clamp(_parse_int(_first(params, "limit"), DEFAULT_LIMIT), 1, MAX_LIMIT)

    currency_param = _first(params, "currency")
    if currency_param is None:
        currency = default_currency or None
    else:
        currency = currency_param.strip() or None

    vendor_id = (_first(params, "vendor_id") or "").strip() or None

    filters = SearchFilters(
        vendor_id=vendor_id,
        categories=_collect(params, CATEGORY_KEYS),
        brands=_collect(params, BRAND_KEYS),
        price_min=to_minor_units(_first(params, "price_min")),
        price_max=to_minor_units(_first(params, "price_max")),
        in_stock=_parse_bool(_first(params, "in_stock")),
        currency=currency,
    )
    return SearchRequest(
        text=text,
        page=page,
        limit=limit,
        sort=parse_sort(_first(params, "sort")),
        filters=filters,
    )


def canonical_query(request: SearchRequest) -> str:
    """Sorted, URL-encoded parameter string used in cache keys."""
    return urlencode(sorted(request.to_query_params()))
