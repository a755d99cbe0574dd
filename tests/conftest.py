"""Shared fixtures: an in-memory catalog and fake search clients."""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import pytest

from catalog_search.cache import InMemoryCache
from catalog_search.db import Base, Product, Vendor, create_db_engine, create_session_factory
from catalog_search.fallback import DatabaseBackend
from catalog_search.models import SearchRequest, SearchResultPage


def _seed(session) -> None:
    session.add_all(
        [
            Vendor(id="v1", store_name="Dakar Tech", status="approved"),
            Vendor(id="v2", store_name="Pending Shop", status="pending"),
        ]
    )
    session.add_all(
        [
            Product(
                id="p1",
                vendor_id="v1",
                category_id="phones",
                name="Smartphone Galaxy A54",
                description="Android handset, 128 GB",
                brand="Samsung",
                price=25_000_000,
                sku="SM-A546",
                quantity=5,
                is_active=True,
                is_approved=True,
                rating=4.5,
                review_count=12,
                popularity_score=80.0,
            ),
            Product(
                id="p2",
                vendor_id="v1",
                category_id="computers",
                name="Laptop ProBook 450",
                description="15 inch business laptop",
                brand="HP",
                price=45_000_000,
                sku="HP-450",
                quantity=0,
                is_active=True,
                is_approved=True,
                rating=4.0,
                popularity_score=50.0,
            ),
            Product(
                id="p3",
                vendor_id="v1",
                category_id="clothing",
                name="Cotton shirt",
                description="Plain white shirt",
                price=500_000,
                sku="SH-01",
                quantity=10,
                is_active=True,
                is_approved=True,
                popularity_score=10.0,
            ),
            Product(
                id="p4",
                vendor_id="v1",
                category_id="phones",
                name="iPhone 13 draft listing",
                price=30_000_000,
                quantity=3,
                is_active=True,
                is_approved=False,
            ),
            Product(
                id="p5",
                vendor_id="v2",
                category_id="phones",
                name="Phone case",
                price=200_000,
                quantity=50,
                is_active=True,
                is_approved=True,
            ),
        ]
    )
    session.commit()


@pytest.fixture()
def session_factory():
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    factory = create_session_factory(engine)
    with factory() as session:
        _seed(session)
    yield factory
    engine.dispose()


@pytest.fixture()
def catalog(session_factory) -> DatabaseBackend:
    return DatabaseBackend(session_factory)


@pytest.fixture()
def cache() -> InMemoryCache:
    return InMemoryCache()


class FakeBackend:
    """Scriptable stand-in for a search backend."""

    def __init__(
        self,
        name: str = "primary",
        *,
        healthy: bool = True,
        error: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.healthy = healthy
        self.error = error
        self.suggestions = suggestions or []
        self.delay = delay
        self.search_calls: List[tuple] = []
        self.autocomplete_calls: List[tuple] = []

    def health(self) -> bool:
        return self.healthy

    def search(self, request: SearchRequest, expanded_query: str) -> SearchResultPage:
        self.search_calls.append((request, expanded_query))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SearchResultPage(
            query=request.text,
            page=request.page,
            limit=request.limit,
            totalHits=0,
            facetDistribution={"brand": {"Samsung": 1}},
        )

    def autocomplete(self, query: str, expanded_query: str) -> List[str]:
        self.autocomplete_calls.append((query, expanded_query))
        if self.error is not None:
            raise self.error
        return list(self.suggestions)


class FakeElasticsearch:
    """Minimal synchronous client: ``options``, ``ping`` and ``search``."""

    def __init__(self, response: Optional[Dict[str, Any]] = None, *, error: Optional[Exception] = None) -> None:
        self.response = response or {"took": 1, "hits": {"total": {"value": 0}, "hits": []}}
        self.error = error
        self.ping_result = True
        self.options_calls: List[Dict[str, Any]] = []
        self.search_calls: List[Dict[str, Any]] = []

    def options(self, **kwargs: Any) -> "FakeElasticsearch":
        self.options_calls.append(kwargs)
        return self

    def ping(self) -> bool:
        if self.error is not None:
            raise self.error
        return self.ping_result

    def search(self, **kwargs: Any) -> Dict[str, Any]:
        self.search_calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture()
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch()
