"""HTTP surface through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from catalog_search.backends import SearchBackendError
from catalog_search.invalidation import CacheInvalidator, CacheKeys
from catalog_search.main import Services, app
from catalog_search.search_service import SearchGateway
from catalog_search.sync import CatalogSync
from conftest import FakeBackend


def _services(catalog, cache, session_factory, primary=None, fallback=None):
    gateway = SearchGateway(fallback or catalog, cache, primary=primary)
    sync = CatalogSync(session_factory, CacheInvalidator(cache))
    return Services(gateway=gateway, catalog=catalog, cache=cache, sync=sync)


@pytest.fixture()
def make_client(monkeypatch, catalog, cache, session_factory):
    def factory(**kwargs):
        services = _services(catalog, cache, session_factory, **kwargs)
        monkeypatch.setattr(app.state, "services", services, raising=False)
        return TestClient(app)

    return factory


def test_search_served_from_fallback(make_client):
    client = make_client()

    response = client.get("/search", params={"q": "tel", "currency": "XOF"})

    assert response.status_code == 200
    assert response.headers["X-Cache"] == "MISS"
    assert response.headers["X-Search-Backend"] == "fallback"
    body = response.json()
    assert [hit["id"] for hit in body["hits"]] == ["p1"]
    assert "facetDistribution" not in body
    assert body["query"] == "tel"


def test_search_from_primary_is_cached(make_client):
    client = make_client(primary=FakeBackend())

    first = client.get("/search?q=tel&price_min=5000")
    second = client.get("/search?price_min=5000&q=tel")

    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert first.headers["X-Cache-Key"] == second.headers["X-Cache-Key"]
    assert second.headers["X-Cache-Key"].startswith("GET:/search?")
    assert second.json()["facetDistribution"] == {"brand": {"Samsung": 1}}


def test_malformed_params_are_coerced(make_client):
    client = make_client()

    body = client.get("/search?page=-2&limit=500&price_min=abc").json()

    assert body["page"] == 1
    assert body["limit"] == 60


def test_oversized_numbers_are_not_server_errors(make_client):
    client = make_client()

    response = client.get("/search?q=tel&page=100000000000000000000&price_min=1e30")

    assert response.status_code == 200
    assert response.json()["hits"] == []


def test_total_failure_is_500_with_schema_valid_page(make_client):
    client = make_client(
        primary=FakeBackend(error=SearchBackendError("down")),
        fallback=FakeBackend("fallback", error=SearchBackendError("down")),
    )

    response = client.get("/search?q=tel")

    assert response.status_code == 500
    body = response.json()
    assert body["hits"] == []
    assert body["totalHits"] == 0
    assert body["error"]


def test_suggestions(make_client):
    client = make_client()

    body = client.get("/search/suggestions", params={"q": "lap"}).json()
    assert body["suggestions"] == ["Laptop ProBook 450"]

    assert client.get("/search/suggestions?q=a").json()["suggestions"] == []


def test_product_detail_is_cached_and_invalidated(make_client, cache):
    """After ``invalidate_product`` the detail entry is gone immediately."""

    client = make_client()

    first = client.get("/products/p1")
    second = client.get("/products/p1")
    assert first.status_code == 200
    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert first.json()["title"] == "Smartphone Galaxy A54"

    CacheInvalidator(cache).invalidate_product("p1")

    assert cache.get(CacheKeys.product("p1")) is None
    assert client.get("/products/p1").headers["X-Cache"] == "MISS"


def test_hidden_product_is_404(make_client):
    client = make_client()

    assert client.get("/products/p4").status_code == 404
    assert client.get("/products/nope").status_code == 404


def test_product_listing(make_client):
    client = make_client()

    first = client.get("/products?category=computers")
    second = client.get("/products?category=computers")

    assert [hit["id"] for hit in first.json()["hits"]] == ["p2"]
    assert first.headers["X-Cache-Key"].startswith("products:")
    assert second.headers["X-Cache"] == "HIT"


def test_health(make_client):
    client = make_client()

    body = client.get("/health").json()

    assert body["database"] == "ok"
    assert body["cache"] == "InMemoryCache"
    assert body["search_index"] == "not_configured"


def test_reindex_without_index(make_client):
    client = make_client()

    assert client.post("/reindex").json() == {"indexed": 0}
