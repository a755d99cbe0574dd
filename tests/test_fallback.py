"""Relational fallback over the in-memory catalog."""

import pytest
from sqlalchemy.exc import OperationalError

from catalog_search.backends import SearchBackendError
from catalog_search.fallback import DatabaseBackend
from catalog_search.query import parse_search_params
from catalog_search.synonyms import expand_query


def _search(catalog, **params):
    request = parse_search_params(params)
    return catalog.search(request, expand_query(request.text))


def _ids(page):
    return [hit.id for hit in page.hits]


def test_tel_finds_smartphones_through_synonyms(catalog):
    """``tel`` alone matches nothing; its expansion reaches the smartphone."""

    page = _search(catalog, q="tel")

    assert _ids(page) == ["p1"]
    assert page.facetDistribution is None
    assert page.query == "tel"


def test_hidden_products_never_match(catalog):
    """Unapproved products and products of unapproved vendors stay out."""

    page = _search(catalog, q="phone")

    assert "p4" not in _ids(page)
    assert "p5" not in _ids(page)


def test_browse_orders_by_popularity(catalog):
    page = _search(catalog)

    assert _ids(page) == ["p1", "p2", "p3"]
    assert page.totalHits == 3
    assert page.totalPages == 1


def test_pagination(catalog):
    page = _search(catalog, limit="2", page="2")

    assert _ids(page) == ["p3"]
    assert page.totalHits == 3
    assert page.totalPages == 2


def test_sku_and_description_match(catalog):
    assert _ids(_search(catalog, q="hp-450")) == ["p2"]
    assert _ids(_search(catalog, q="white")) == ["p3"]


def test_filters(catalog):
    assert _ids(_search(catalog, category="computers")) == ["p2"]
    assert _ids(_search(catalog, brand="Samsung")) == ["p1"]
    assert _ids(_search(catalog, in_stock="true")) == ["p1", "p3"]
    assert _ids(_search(catalog, in_stock="false")) == ["p2"]
    assert _ids(_search(catalog, vendor_id="v2")) == []
    assert _ids(_search(catalog, currency="EUR")) == []


def test_price_bounds_keep_legacy_unit_guess(catalog):
    """Amounts up to 10,000 are scaled to minor units, larger ones are not."""

    assert _ids(_search(catalog, price_max="5000")) == ["p3"]
    assert _ids(_search(catalog, price_min="5000", sort="price:asc")) == ["p3", "p1", "p2"]
    # 600000 is read as minor units already, i.e. 6000 in major units.
    assert _ids(_search(catalog, price_max="600000")) == ["p3"]
    assert _ids(_search(catalog, price_max="300000")) == []


def test_sort_by_price(catalog):
    assert _ids(_search(catalog, sort="price:desc")) == ["p2", "p1", "p3"]


def test_hits_carry_vendor_and_stock(catalog):
    hit = _search(catalog, q="galaxy").hits[0]

    assert hit.vendor_name == "Dakar Tech"
    assert hit.in_stock is True
    assert hit.price_cents == 25_000_000
    assert hit.categories == ["phones"]
    assert hit.published and hit.approved


def test_autocomplete(catalog):
    assert catalog.autocomplete("lap", expand_query("lap")) == ["Laptop ProBook 450"]
    assert catalog.autocomplete("zzz", "zzz") == []


def test_get_product_respects_visibility(catalog):
    assert catalog.get_product("p1").title == "Smartphone Galaxy A54"
    assert catalog.get_product("p4") is None
    assert catalog.get_product("missing") is None


def test_database_errors_are_wrapped():
    class BrokenSession:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def execute(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    backend = DatabaseBackend(BrokenSession)

    assert backend.health() is False
    with pytest.raises(SearchBackendError):
        backend.search(parse_search_params({"q": "tel"}), "tel")
