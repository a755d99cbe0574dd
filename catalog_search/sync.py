"""Write-path hooks keeping the index and the caches in step with the catalog.

Product and vendor mutation flows call these after their transaction
commits. Each hook refreshes the affected index documents (when an index is
configured) and then invalidates the cached reads. Index failures are
logged; the relational store stays the source of truth and the next sync or
full reindex repairs the document.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

from elasticsearch import ApiError, Elasticsearch, TransportError
from elasticsearch.helpers import BulkIndexError
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from .config import settings
from .db import VENDOR_APPROVED, Product, Vendor
from .indexing import create_search_doc, drop_index, ensure_index, index_documents, is_product_visible, remove_documents
from .invalidation import CacheInvalidator

logger = logging.getLogger(__name__)

_INDEX_ERRORS = (ApiError, TransportError, BulkIndexError)


class CatalogSync:
    def __init__(
        self,
        session_factory: sessionmaker,
        invalidator: CacheInvalidator,
        es: Optional[Elasticsearch] = None,
        index: str = settings.es_index,
    ) -> None:
        self.session_factory = session_factory
        self.invalidator = invalidator
        self.es = es
        self.index = index

    def _load_product(self, product_id: str) -> Tuple[Optional[Product], Optional[Vendor]]:
        with self.session_factory() as session:
            product = session.get(Product, product_id)
            if product is None:
                return None, None
            return product, session.get(Vendor, product.vendor_id)

    def _load_vendor_products(self, vendor_id: str) -> Tuple[Optional[Vendor], List[Product]]:
        with self.session_factory() as session:
            vendor = session.get(Vendor, vendor_id)
            if vendor is None:
                return None, []
            products = session.scalars(select(Product).where(Product.vendor_id == vendor_id)).all()
            return vendor, list(products)

    async def reindex_product(self, product_id: str) -> bool:
        """Index the product if visible, otherwise remove it. Returns visibility."""
        if self.es is None:
            return False
        product, vendor = await asyncio.to_thread(self._load_product, product_id)
        try:
            if product is not None and is_product_visible(product, vendor):
                await index_documents(self.es, [create_search_doc(product, vendor)], self.index)
                logger.info("Product %s indexed", product_id)
                return True
            await remove_documents(self.es, [product_id], self.index)
            logger.info("Product %s removed from index (missing or not visible)", product_id)
        except _INDEX_ERRORS as exc:
            logger.error("Error reindexing product %s: %s", product_id, exc)
        return False

    async def reindex_vendor_products(self, vendor_id: str) -> Tuple[int, int]:
        """Re-evaluate every product of a vendor. Returns (indexed, removed)."""
        if self.es is None:
            return 0, 0
        vendor, products = await asyncio.to_thread(self._load_vendor_products, vendor_id)
        if vendor is None:
            logger.warning("Vendor %s not found", vendor_id)
            return 0, 0

        to_index = [create_search_doc(p, vendor) for p in products if is_product_visible(p, vendor)]
        visible_ids = {doc["id"] for doc in to_index}
        to_remove = [p.id for p in products if p.id not in visible_ids]
        try:
            indexed = await index_documents(self.es, to_index, self.index)
            removed = await remove_documents(self.es, to_remove, self.index)
        except _INDEX_ERRORS as exc:
            logger.error("Error reindexing vendor %s products: %s", vendor_id, exc)
            return 0, 0
        logger.info("Vendor %s: indexed %s, removed %s", vendor_id, indexed, removed)
        return indexed, removed

    async def on_product_created(self, product_id: str) -> None:
        logger.info("Product created: %s", product_id)
        await self.reindex_product(product_id)
        self.invalidator.invalidate_product(product_id)

    async def on_product_updated(self, product_id: str) -> None:
        logger.info("Product updated: %s", product_id)
        await self.reindex_product(product_id)
        self.invalidator.invalidate_product(product_id)

    async def on_product_deleted(self, product_id: str) -> None:
        logger.info("Product deleted: %s", product_id)
        if self.es is not None:
            try:
                await remove_documents(self.es, [product_id], self.index)
            except _INDEX_ERRORS as exc:
                logger.error("Error removing product %s from index: %s", product_id, exc)
        self.invalidator.invalidate_product(product_id)

    async def on_stock_updated(self, product_id: str) -> None:
        logger.info("Stock updated: %s", product_id)
        await self.on_product_updated(product_id)

    async def on_product_approval_changed(self, product_id: str) -> None:
        logger.info("Product approval changed: %s", product_id)
        await self.on_product_updated(product_id)

    async def on_product_publication_changed(self, product_id: str) -> None:
        logger.info("Product publication changed: %s", product_id)
        await self.on_product_updated(product_id)

    async def on_vendor_status_changed(self, vendor_id: str) -> None:
        logger.info("Vendor status changed: %s", vendor_id)
        await self.reindex_vendor_products(vendor_id)
        self.invalidator.invalidate_vendor(vendor_id)
        self.invalidator.invalidate_product_list()

    async def on_vendor_updated(self, vendor_id: str) -> None:
        logger.info("Vendor updated: %s", vendor_id)
        await self.on_vendor_status_changed(vendor_id)

    def _load_visible_documents(self) -> List[dict]:
        with self.session_factory() as session:
            rows = session.execute(
                select(Product, Vendor)
                .join(Vendor, Product.vendor_id == Vendor.id)
                .where(Vendor.status == VENDOR_APPROVED)
            ).all()
            return [create_search_doc(p, v) for p, v in rows if is_product_visible(p, v)]

    async def full_reindex(self) -> int:
        """Drop, recreate and refill the index from the relational store."""
        if self.es is None:
            logger.warning("Full reindex skipped: search index not configured")
            return 0
        documents = await asyncio.to_thread(self._load_visible_documents)
        logger.info("Starting full reindex of %s products", len(documents))
        await drop_index(self.es, self.index)
        await ensure_index(self.es, self.index)
        count = await index_documents(self.es, documents, self.index)
        self.invalidator.invalidate_all()
        logger.info("Full reindex completed: %s products", count)
        return count
