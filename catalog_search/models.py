"""Pydantic models for request/response payloads."""
from __future__ import annotations

from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 24
MAX_LIMIT = 60
# Keeps (page - 1) * limit inside a signed 64-bit offset.
MAX_PAGE = (2**63 - 1) // MAX_LIMIT
DEFAULT_SORT: Tuple[str, str] = ("popularity", "desc")


class SearchFilters(BaseModel):
    """Canonical filters. Prices are integer minor currency units."""

    model_config = ConfigDict(frozen=True)

    vendor_id: Optional[str] = None
    categories: FrozenSet[str] = frozenset()
    brands: FrozenSet[str] = frozenset()
    price_min: Optional[int] = None
    price_max: Optional[int] = None
    in_stock: Optional[bool] = None
    currency: Optional[str] = None


class SearchRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = ""
    page: int = Field(DEFAULT_PAGE, ge=1)
    limit: int = Field(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    sort: Tuple[str, str] = DEFAULT_SORT
    filters: SearchFilters = Field(default_factory=SearchFilters)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def to_query_params(self) -> List[Tuple[str, str]]:
        """Serialize back to raw query parameters, prices in major units.

        Parsing the output again yields an equal request, which is what makes
        the serialization usable as a cache key.
        """
        params: List[Tuple[str, str]] = [
            ("q", self.text),
            ("page", str(self.page)),
            ("limit", str(self.limit)),
            ("sort", f"{self.sort[0]}:{self.sort[1]}"),
        ]
        f = self.filters
        if f.vendor_id:
            params.append(("vendor_id", f.vendor_id))
        params.extend(("category", value) for value in sorted(f.categories))
        params.extend(("brand", value) for value in sorted(f.brands))
        if f.price_min is not None:
            params.append(("price_min", _major(f.price_min)))
        if f.price_max is not None:
            params.append(("price_max", _major(f.price_max)))
        if f.in_stock is not None:
            params.append(("in_stock", "true" if f.in_stock else "false"))
        # Always emitted so an explicit empty currency survives a round trip.
        params.append(("currency", f.currency or ""))
        return params


def _major(minor: int) -> str:
    whole, cents = divmod(abs(minor), 100)
    sign = "-" if minor < 0 else ""
    return f"{sign}{whole}.{cents:02d}" if cents else f"{sign}{whole}"


class ProductHit(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    price_cents: int = 0
    currency: str = ""
    images: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    brand: Optional[str] = None
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    in_stock: bool = False
    rating: float = 0.0
    review_count: int = 0
    published: bool = False
    approved: bool = False


class SearchResultPage(BaseModel):
    hits: List[ProductHit] = Field(default_factory=list)
    query: str = ""
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    totalPages: int = 0
    totalHits: int = 0
    processingTimeMs: float = 0
    facetDistribution: Optional[Dict[str, Dict[str, int]]] = None
    error: Optional[str] = None

    @classmethod
    def empty(cls, request: SearchRequest, error: str | None = None) -> "SearchResultPage":
        return cls(query=request.text, page=request.page, limit=request.limit, error=error)


class AutocompleteResult(BaseModel):
    suggestions: List[str] = Field(default_factory=list)
    query: str = ""
    processingTimeMs: float = 0
