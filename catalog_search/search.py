"""Primary search backend on top of Elasticsearch."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List

from elasticsearch import ApiError, Elasticsearch, TransportError

from .backends import SearchBackendError
from .filters import VISIBILITY_EXPRESSION, build_filter_expression
from .models import ProductHit, SearchRequest, SearchResultPage

logger = logging.getLogger(__name__)

TEXT_FIELDS = [
    "title^3",
    "brand^2",
    "search_text",
    "description",
    "vendor_name",
]
SORT_FIELDS = {
    "popularity": "popularity_score",
    "popularity_score": "popularity_score",
    "price": "price_cents",
    "price_cents": "price_cents",
    "rating": "rating",
    "created_at": "created_at",
    "createdAt": "created_at",
    "name": "title.keyword",
    "title": "title.keyword",
    "relevance": "_score",
}
FACET_FIELDS = {
    "vendor_name": "vendor_name.keyword",
    "categories": "categories",
    "brand": "brand",
    "currency": "currency",
    "in_stock": "in_stock",
}
FACET_SIZE = 50
AUTOCOMPLETE_FETCH_SIZE = 20
AUTOCOMPLETE_SOURCE = ["id", "title", "brand", "categories"]


def _filter_clause(expression: str) -> dict:
    return {"query_string": {"query": expression, "default_operator": "AND"}}


def _text_clause(expanded_query: str) -> dict:
    if not expanded_query:
        return {"match_all": {}}
    return {
        "multi_match": {
            "query": expanded_query,
            "fields": TEXT_FIELDS,
            "type": "best_fields",
            "operator": "or",
            "fuzziness": "AUTO",
        }
    }


def build_sort(request: SearchRequest) -> List[Any]:
    field, direction = request.sort
    es_field = SORT_FIELDS.get(field, SORT_FIELDS["popularity"])
    if es_field == "_score":
        return ["_score"]
    if es_field == "popularity_score" and request.text:
        # Relevance first, popularity breaks ties.
        return ["_score", {es_field: {"order": direction}}]
    return [{es_field: {"order": direction}}]


def build_search_body(request: SearchRequest, expanded_query: str) -> Dict[str, Any]:
    body = {
        "query": {
            "bool": {
                "must": [_text_clause(expanded_query)],
                "filter": [_filter_clause(build_filter_expression(request.filters))],
            }
        },
        "from_": request.offset,
        "size": request.limit,
        "sort": build_sort(request),
        "aggs": {name: {"terms": {"field": field, "size": FACET_SIZE}} for name, field in FACET_FIELDS.items()},
        "track_total_hits": True,
    }
    logger.debug("ES query payload=%s", body)
    return body


def _to_hit(hit: Dict[str, Any]) -> ProductHit:
    source = hit.get("_source", {})
    return ProductHit(
        id=str(source.get("id") or hit.get("_id") or ""),
        title=source.get("title") or "",
        description=source.get("description") or "",
        price_cents=int(source.get("price_cents") or 0),
        currency=source.get("currency") or "",
        images=list(source.get("images") or []),
        categories=list(source.get("categories") or []),
        brand=source.get("brand") or None,
        vendor_id=source.get("vendor_id"),
        vendor_name=source.get("vendor_name"),
        in_stock=bool(source.get("in_stock")),
        rating=float(source.get("rating") or 0),
        review_count=int(source.get("review_count") or 0),
        published=bool(source.get("published")),
        approved=bool(source.get("approved")),
    )


def _facets(aggregations: Dict[str, Any]) -> Dict[str, Dict[str, int]]:
    distribution: Dict[str, Dict[str, int]] = {}
    for name in FACET_FIELDS:
        buckets = aggregations.get(name, {}).get("buckets", [])
        distribution[name] = {
            str(bucket.get("key_as_string", bucket.get("key"))): int(bucket.get("doc_count", 0))
            for bucket in buckets
        }
    return distribution


def _body(response: Any) -> Dict[str, Any]:
    return getattr(response, "body", response)


class ElasticsearchBackend:
    """Full-text search with facets against the products index."""

    name = "primary"

    def __init__(
        self,
        es: Elasticsearch,
        index: str,
        *,
        request_timeout: float = 5.0,
        health_timeout: float = 2.0,
    ) -> None:
        self.es = es
        self.index = index
        self.request_timeout = request_timeout
        self.health_timeout = health_timeout

    def health(self) -> bool:
        try:
            return bool(self.es.options(request_timeout=self.health_timeout).ping())
        except (ApiError, TransportError) as exc:
            logger.warning("Elasticsearch health check failed: %s", exc)
            return False

    def _search(self, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.es.options(request_timeout=self.request_timeout).search(index=self.index, **kwargs)
        except (ApiError, TransportError) as exc:
            raise SearchBackendError(f"Elasticsearch query failed: {exc}") from exc
        return _body(response)

    def search(self, request: SearchRequest, expanded_query: str) -> SearchResultPage:
        response = self._search(**build_search_body(request, expanded_query))

        hits_block = response.get("hits", {})
        hits = [_to_hit(hit) for hit in hits_block.get("hits", [])]
        total = hits_block.get("total", 0)
        total_hits = int(total.get("value", 0) if isinstance(total, dict) else total)
        took_ms = response.get("took", 0)
        logger.info(
            "search q=%r expanded=%r hits=%s total=%s took=%sms",
            request.text,
            expanded_query,
            len(hits),
            total_hits,
            took_ms,
        )
        return SearchResultPage(
            hits=hits,
            query=request.text,
            page=request.page,
            limit=request.limit,
            totalPages=math.ceil(total_hits / request.limit),
            totalHits=total_hits,
            processingTimeMs=took_ms,
            facetDistribution=_facets(response.get("aggregations", {})),
        )

    def autocomplete(self, query: str, expanded_query: str) -> List[str]:
        response = self._search(
            query={
                "bool": {
                    "must": [_text_clause(expanded_query)],
                    "filter": [_filter_clause(" AND ".join(VISIBILITY_EXPRESSION))],
                }
            },
            size=AUTOCOMPLETE_FETCH_SIZE,
            source=AUTOCOMPLETE_SOURCE,
        )
        titles = [hit.get("_source", {}).get("title") for hit in response.get("hits", {}).get("hits", [])]
        return list(dict.fromkeys(title for title in titles if title))
