"""Search gateway: cache, primary index, relational fallback.

One call walks this path::

    config check -> cache lookup -> health check -> expand + compile
        -> primary query -> cache store
                 \\-> (unconfigured / unhealthy / error) -> fallback query

Only primary results are cached. A fallback page is served as-is so that
degraded results do not outlive the outage. If the fallback also fails the
caller still gets a well-formed empty page flagged with ``error``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, List, Optional, TypeVar, Union
from urllib.parse import urlencode

from pydantic import ValidationError

from .backends import SearchBackend, SearchBackendError
from .cache import CacheBackend
from .invalidation import build_cache_key
from .models import AutocompleteResult, SearchRequest, SearchResultPage
from .query import canonical_query
from .synonyms import MIN_QUERY_LENGTH, expand_query, keyword_hints

logger = logging.getLogger(__name__)

SEARCH_PATH = "/search"
SUGGESTIONS_PATH = "/search/suggestions"
PRIMARY_SUGGESTION_LIMIT = 12
FALLBACK_SUGGESTION_LIMIT = 10
TOTAL_FAILURE_MESSAGE = "Search temporarily unavailable"

CACHE_HIT = "HIT"
CACHE_MISS = "MISS"

T = TypeVar("T")


@dataclass
class GatewayResult:
    payload: Union[SearchResultPage, AutocompleteResult]
    cache_status: str = CACHE_MISS
    cache_key: Optional[str] = None
    backend: str = "none"
    failed: bool = False


def search_cache_key(request: SearchRequest) -> str:
    return build_cache_key("GET", f"{SEARCH_PATH}?{canonical_query(request)}")


def suggestions_cache_key(query: str) -> str:
    return build_cache_key("GET", f"{SUGGESTIONS_PATH}?{urlencode({'q': query})}")


def _merge_suggestions(found: List[str], query: str, limit: int) -> List[str]:
    return list(dict.fromkeys([*found, *keyword_hints(query)]))[:limit]


class SearchGateway:
    def __init__(
        self,
        fallback: SearchBackend,
        cache: CacheBackend,
        *,
        primary: Optional[SearchBackend] = None,
        search_ttl: int = 600,
        autocomplete_ttl: int = 300,
        health_timeout: float = 2.0,
        query_timeout: float = 5.0,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.cache = cache
        self.search_ttl = search_ttl
        self.autocomplete_ttl = autocomplete_ttl
        self.health_timeout = health_timeout
        self.query_timeout = query_timeout

    async def _call(self, func: Callable[..., T], *args: Any, timeout: float) -> T:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)

    async def _primary_healthy(self, primary: SearchBackend) -> bool:
        try:
            return bool(await self._call(primary.health, timeout=self.health_timeout))
        except asyncio.TimeoutError:
            logger.warning("Health check timed out after %.1fs", self.health_timeout)
        except Exception:
            logger.exception("Health check of %s raised", primary.name)
        return False

    async def _cached(self, key: str, model: type) -> Any:
        cached = await asyncio.to_thread(self.cache.get, key)
        if cached is None:
            return None
        try:
            return model.model_validate(cached)
        except ValidationError:
            logger.warning("Discarding unreadable cache entry %s", key)
            await asyncio.to_thread(self.cache.delete, key)
            return None

    async def _store(self, key: str, payload: Any, ttl: int) -> None:
        await asyncio.to_thread(self.cache.set, key, payload.model_dump(mode="json"), ttl)

    async def search(self, request: SearchRequest) -> GatewayResult:
        started = perf_counter()
        primary = self.primary
        if primary is None:
            return await self._search_fallback(request, reason="index not configured")

        key = search_cache_key(request)
        cached = await self._cached(key, SearchResultPage)
        if cached is not None:
            logger.info(
                "timing: total=%.2fms cache_hit=1 q=%r key=%s",
                (perf_counter() - started) * 1000,
                request.text,
                key,
            )
            return GatewayResult(cached, cache_status=CACHE_HIT, cache_key=key, backend="cache")

        if not await self._primary_healthy(primary):
            return await self._search_fallback(request, reason="health check failed")

        t0 = perf_counter()
        expanded = expand_query(request.text)
        try:
            page = await self._call(primary.search, request, expanded, timeout=self.query_timeout)
        except SearchBackendError as exc:
            logger.error("Primary search failed for q=%r: %s", request.text, exc)
            return await self._search_fallback(request, reason="primary error", expanded=expanded)
        except asyncio.TimeoutError:
            logger.error("Primary search timed out after %.1fs for q=%r", self.query_timeout, request.text)
            return await self._search_fallback(request, reason="primary timeout", expanded=expanded)
        except Exception:
            logger.exception("Primary search raised for q=%r", request.text)
            return await self._search_fallback(request, reason="primary fault", expanded=expanded)
        t1 = perf_counter()

        await self._store(key, page, self.search_ttl)
        logger.info(
            "timing: total=%.2fms backend=%.2fms cache_hit=0 q=%r hits=%s total_hits=%s",
            (t1 - started) * 1000,
            (t1 - t0) * 1000,
            request.text,
            len(page.hits),
            page.totalHits,
        )
        logger.debug("cache_store key=%s ttl=%s", key, self.search_ttl)
        return GatewayResult(page, cache_status=CACHE_MISS, cache_key=key, backend=primary.name)

    async def _search_fallback(
        self,
        request: SearchRequest,
        *,
        reason: str,
        expanded: Optional[str] = None,
    ) -> GatewayResult:
        logger.warning("Serving q=%r from fallback: %s", request.text, reason)
        if expanded is None:
            expanded = expand_query(request.text)
        try:
            page = await asyncio.to_thread(self.fallback.search, request, expanded)
        except SearchBackendError as exc:
            logger.error("Fallback search failed for q=%r: %s", request.text, exc)
            return self._hard_failure(request)
        except Exception:
            logger.exception("Fallback search raised for q=%r", request.text)
            return self._hard_failure(request)
        page.facetDistribution = None
        return GatewayResult(page, backend=self.fallback.name)

    @staticmethod
    def _hard_failure(request: SearchRequest) -> GatewayResult:
        return GatewayResult(
            SearchResultPage.empty(request, error=TOTAL_FAILURE_MESSAGE),
            backend="none",
            failed=True,
        )

    async def autocomplete(self, query: str) -> GatewayResult:
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return GatewayResult(AutocompleteResult(query=query), backend="none")

        primary = self.primary
        if primary is None:
            return await self._autocomplete_fallback(query)

        key = suggestions_cache_key(query)
        cached = await self._cached(key, AutocompleteResult)
        if cached is not None:
            return GatewayResult(cached, cache_status=CACHE_HIT, cache_key=key, backend="cache")

        started = perf_counter()
        expanded = expand_query(query)
        try:
            found = await self._call(primary.autocomplete, query, expanded, timeout=self.query_timeout)
        except (SearchBackendError, asyncio.TimeoutError) as exc:
            logger.error("Primary autocomplete failed for q=%r: %r", query, exc)
            return await self._autocomplete_fallback(query, expanded=expanded)
        except Exception:
            logger.exception("Primary autocomplete raised for q=%r", query)
            return await self._autocomplete_fallback(query, expanded=expanded)

        result = AutocompleteResult(
            suggestions=_merge_suggestions(found, query, PRIMARY_SUGGESTION_LIMIT),
            query=query,
            processingTimeMs=round((perf_counter() - started) * 1000, 2),
        )
        await self._store(key, result, self.autocomplete_ttl)
        logger.info("autocomplete q=%r suggestions=%s", query, len(result.suggestions))
        return GatewayResult(result, cache_status=CACHE_MISS, cache_key=key, backend=primary.name)

    async def _autocomplete_fallback(self, query: str, expanded: Optional[str] = None) -> GatewayResult:
        if expanded is None:
            expanded = expand_query(query)
        started = perf_counter()
        try:
            found = await asyncio.to_thread(self.fallback.autocomplete, query, expanded)
        except Exception:
            logger.exception("Fallback autocomplete failed for q=%r", query)
            return GatewayResult(AutocompleteResult(query=query), backend="none", failed=True)
        result = AutocompleteResult(
            suggestions=_merge_suggestions(found, query, FALLBACK_SUGGESTION_LIMIT),
            query=query,
            processingTimeMs=round((perf_counter() - started) * 1000, 2),
        )
        return GatewayResult(result, backend=self.fallback.name)
