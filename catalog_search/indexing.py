"""Index creation and document maintenance helpers."""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from elasticsearch import Elasticsearch, helpers
from elasticsearch.exceptions import BadRequestError, NotFoundError

from .config import settings
from .db import VENDOR_APPROVED, Product, Vendor

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


def _load_mapping(mapping_path: Path) -> dict:
    with mapping_path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


async def ensure_index(es: Elasticsearch, index: str = settings.es_index) -> None:
    """Create the products index with its analyzers if it is missing."""

    mapping_path = Path(settings.mapping_path)
    body = _load_mapping(mapping_path)

    exists = await asyncio.to_thread(es.indices.exists, index=index)
    if exists:
        return
    logger.info("Creating index %s using %s", index, mapping_path)
    try:
        await asyncio.to_thread(
            es.indices.create,
            index=index,
            settings=body.get("settings"),
            mappings=body.get("mappings"),
        )
    except BadRequestError as exc:
        if getattr(exc, "error", "") == "resource_already_exists_exception":
            logger.info("Index %s already exists", index)
            return
        logger.exception("Failed to create index: %s", exc)
        raise


async def drop_index(es: Elasticsearch, index: str = settings.es_index) -> None:
    try:
        await asyncio.to_thread(es.indices.delete, index=index)
    except NotFoundError:
        return


async def index_is_empty(es: Elasticsearch, index: str = settings.es_index) -> bool:
    try:
        stats = await asyncio.to_thread(es.count, index=index)
        return stats.get("count", 0) == 0
    except NotFoundError:
        return True


def is_product_visible(product: Product, vendor: Optional[Vendor]) -> bool:
    """Published, approved, and sold by an approved vendor."""
    return bool(
        vendor is not None
        and product.is_active
        and product.is_approved
        and vendor.status == VENDOR_APPROVED
    )


def _epoch_ms(value: Optional[datetime]) -> int:
    if value is None:
        value = datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def create_search_doc(product: Product, vendor: Vendor) -> dict:
    categories = [product.category_id] if product.category_id else []
    tags = list(product.tags or [])
    search_text = " ".join(
        part
        for part in (product.name, product.brand, product.description, vendor.store_name, *categories, *tags)
        if part
    )
    quantity = product.quantity or 0
    return {
        "id": product.id,
        "vendor_id": product.vendor_id,
        "vendor_name": vendor.store_name,
        "title": product.name or "",
        "brand": product.brand or "",
        "categories": categories,
        "description": product.description or "",
        "price_cents": int(product.price or 0),
        "currency": product.currency or settings.default_currency,
        "images": list(product.images or []),
        "in_stock": quantity > 0,
        "stock_qty": quantity,
        "published": bool(product.is_active),
        "approved": bool(product.is_approved),
        "rating": float(product.rating or 0),
        "review_count": int(product.review_count or 0),
        "popularity_score": float(product.popularity_score or 0),
        "created_at": _epoch_ms(product.created_at),
        "updated_at": _epoch_ms(product.updated_at),
        "search_text": search_text,
        "tags": tags,
    }


def _iter_actions(index: str, documents: Iterable[dict]) -> Iterable[dict]:
    for document in documents:
        yield {"_index": index, "_id": document["id"], "_source": document}


async def index_documents(es: Elasticsearch, documents: List[dict], index: str = settings.es_index) -> int:
    if not documents:
        return 0
    indexed = 0
    for start in range(0, len(documents), BATCH_SIZE):
        batch = documents[start : start + BATCH_SIZE]
        await asyncio.to_thread(helpers.bulk, es, _iter_actions(index, batch))
        indexed += len(batch)
        logger.info("Indexed batch %s (%s docs)", start // BATCH_SIZE + 1, len(batch))
    return indexed


async def remove_documents(es: Elasticsearch, ids: List[str], index: str = settings.es_index) -> int:
    if not ids:
        return 0
    actions = [{"_op_type": "delete", "_index": index, "_id": doc_id} for doc_id in ids]
    # Deleting an id that was never indexed reports a 404 item; that is fine here.
    await asyncio.to_thread(helpers.bulk, es, actions, raise_on_error=False)
    logger.info("Removed %s documents from %s", len(ids), index)
    return len(ids)
