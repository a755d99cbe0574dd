"""FastAPI application wiring the search gateway."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from elasticsearch import Elasticsearch
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .backends import SearchBackendError
from .cache import CacheBackend, get_cache
from .config import Settings, settings
from .db import Base, create_db_engine, create_session_factory
from .es_client import get_client
from .fallback import DatabaseBackend
from .indexing import ensure_index, index_is_empty
from .invalidation import CACHE_POLICIES, CacheInvalidator, CacheKeys
from .models import SearchResultPage
from .query import parse_search_params
from .search import ElasticsearchBackend
from .search_service import CACHE_HIT, CACHE_MISS, GatewayResult, SearchGateway
from .sync import CatalogSync

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL = logging.getLevelName(settings.log_level.upper())

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, force=True)
for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "elastic_transport"):
    logging.getLogger(name).setLevel(LOG_LEVEL)

logger = logging.getLogger(__name__)
logger.info("Logging configured at %s", settings.log_level.upper())


@dataclass
class Services:
    gateway: SearchGateway
    catalog: DatabaseBackend
    cache: CacheBackend
    sync: CatalogSync
    es: Optional[Elasticsearch] = None


def build_services(config: Settings = settings) -> Services:
    es = get_client(config)
    engine = create_db_engine(config.database_url)
    Base.metadata.create_all(engine)
    session_factory = create_session_factory(engine)
    catalog = DatabaseBackend(session_factory)
    cache = get_cache(config)
    primary = None
    if es is not None:
        primary = ElasticsearchBackend(
            es,
            config.es_index,
            request_timeout=config.query_timeout,
            health_timeout=config.health_timeout,
        )
    gateway = SearchGateway(
        catalog,
        cache,
        primary=primary,
        search_ttl=config.search_cache_ttl,
        autocomplete_ttl=config.autocomplete_cache_ttl,
        health_timeout=config.health_timeout,
        query_timeout=config.query_timeout,
    )
    sync = CatalogSync(session_factory, CacheInvalidator(cache), es=es, index=config.es_index)
    return Services(gateway=gateway, catalog=catalog, cache=cache, sync=sync, es=es)


app = FastAPI(title="Catalog Search Gateway")


def _services(request: Request) -> Services:
    return request.app.state.services


def _query_params(request: Request) -> Dict[str, List[str]]:
    params = request.query_params
    return {key: params.getlist(key) for key in params.keys()}


def _cache_headers(status: str, key: Optional[str], backend: Optional[str] = None) -> Dict[str, str]:
    headers = {"X-Cache": status}
    if key:
        headers["X-Cache-Key"] = key
    if backend:
        headers["X-Search-Backend"] = backend
    return headers


def _gateway_response(result: GatewayResult) -> JSONResponse:
    return JSONResponse(
        content=result.payload.model_dump(mode="json", exclude_none=True),
        status_code=500 if result.failed and isinstance(result.payload, SearchResultPage) else 200,
        headers=_cache_headers(result.cache_status, result.cache_key, result.backend),
    )


@app.on_event("startup")
async def startup_event() -> None:
    if getattr(app.state, "services", None) is not None:
        return
    services = build_services(settings)
    app.state.services = services
    if services.es is not None:
        try:
            await ensure_index(services.es)
        except Exception:
            logger.exception("Could not prepare index %s; searches will fail over", settings.es_index)


@app.get("/health")
async def health(request: Request) -> dict:
    services = _services(request)
    database = await asyncio.to_thread(services.catalog.health)
    payload = {
        "database": "ok" if database else "error",
        "cache": type(services.cache).__name__,
        "search_index": "not_configured",
    }
    primary = services.gateway.primary
    if primary is not None and services.es is not None:
        healthy = await asyncio.to_thread(primary.health)
        payload["search_index"] = "ok" if healthy else "error"
        if healthy:
            payload["index_empty"] = await index_is_empty(services.es, settings.es_index)
    return payload


@app.get("/search")
async def search(request: Request) -> JSONResponse:
    services = _services(request)
    search_request = parse_search_params(_query_params(request), settings.default_currency)
    result = await services.gateway.search(search_request)
    return _gateway_response(result)


@app.get("/search/suggestions")
async def suggestions(request: Request, q: str = Query("", description="Partial query")) -> JSONResponse:
    result = await _services(request).gateway.autocomplete(q)
    return _gateway_response(result)


@app.get("/products")
async def list_products(request: Request) -> JSONResponse:
    services = _services(request)
    listing = parse_search_params(_query_params(request), settings.default_currency)
    key = CacheKeys.products(listing.to_query_params())
    cached = await asyncio.to_thread(services.cache.get, key)
    if cached is not None:
        return JSONResponse(content=cached, headers=_cache_headers(CACHE_HIT, key))
    try:
        page = await asyncio.to_thread(services.catalog.search, listing, listing.text)
    except SearchBackendError as exc:
        logger.error("Product listing failed: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch products") from exc
    except Exception as exc:
        logger.exception("Product listing raised for %s", key)
        raise HTTPException(status_code=500, detail="Failed to fetch products") from exc
    content = page.model_dump(mode="json", exclude_none=True)
    await asyncio.to_thread(services.cache.set, key, content, CACHE_POLICIES["product_list"].ttl)
    return JSONResponse(content=content, headers=_cache_headers(CACHE_MISS, key))


@app.get("/products/{product_id}")
async def get_product(request: Request, product_id: str) -> JSONResponse:
    services = _services(request)
    key = CacheKeys.product(product_id)
    cached = await asyncio.to_thread(services.cache.get, key)
    if cached is not None:
        return JSONResponse(content=cached, headers=_cache_headers(CACHE_HIT, key))
    try:
        product = await asyncio.to_thread(services.catalog.get_product, product_id)
    except SearchBackendError as exc:
        logger.error("Product lookup failed for %s: %s", product_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch product") from exc
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    content = product.model_dump(mode="json")
    await asyncio.to_thread(services.cache.set, key, content, CACHE_POLICIES["product"].ttl)
    return JSONResponse(content=content, headers=_cache_headers(CACHE_MISS, key))


@app.post("/reindex")
async def reindex(request: Request) -> dict:
    count = await _services(request).sync.full_reindex()
    return {"indexed": count}
