"""Cache key builders, TTL policies and write-path invalidation.

Mutation flows (product edits, vendor status changes, cart updates) call the
:class:`CacheInvalidator` after they commit. Invalidation is fire-and-forget:
a failure is logged and the stale entry simply lives until its TTL runs out.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple
from urllib.parse import urlencode

from .cache import CacheBackend

logger = logging.getLogger(__name__)

# Paths containing any of these are cached per user.
PERSONALIZED_PATH_MARKERS: Tuple[str, ...] = ("/cart", "/orders", "/profile")
ANONYMOUS_USER = "anonymous"


def build_cache_key(method: str, path: str, user_id: Optional[str] = None) -> str:
    """``METHOD:PATH`` for public resources, ``METHOD:PATH:USERID`` otherwise.

    ``path`` is the full request target including any query string.
    """
    method = method.upper()
    if any(marker in path for marker in PERSONALIZED_PATH_MARKERS):
        return f"{method}:{path}:{user_id or ANONYMOUS_USER}"
    return f"{method}:{path}"


def _query_string(params: Mapping[str, str] | Iterable[Tuple[str, str]]) -> str:
    items = params.items() if isinstance(params, Mapping) else params
    return urlencode(sorted((str(k), str(v)) for k, v in items))


class CacheKeys:
    @staticmethod
    def product(product_id: str) -> str:
        return f"product:{product_id}"

    @staticmethod
    def products(params: Mapping[str, str] | Iterable[Tuple[str, str]]) -> str:
        return f"products:{_query_string(params)}"

    @staticmethod
    def similar(product_id: str, limit: int = 10) -> str:
        return f"similar:{product_id}:{limit}"

    @staticmethod
    def reviews(product_id: str, enhanced: bool = False) -> str:
        return f"reviews:{product_id}:{'true' if enhanced else 'false'}"

    @staticmethod
    def vendor(vendor_id: str) -> str:
        return f"vendor:{vendor_id}"

    @staticmethod
    def user(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def cart(user_id: str) -> str:
        return f"cart:{user_id}"


@dataclass(frozen=True)
class CachePolicy:
    ttl: int
    description: str


CACHE_POLICIES: Mapping[str, CachePolicy] = {
    "product": CachePolicy(1800, "single product detail"),
    "product_list": CachePolicy(600, "product listings"),
    "similar": CachePolicy(3600, "similar products"),
    "reviews": CachePolicy(1200, "product reviews"),
    "cart": CachePolicy(180, "shopping cart"),
    "vendor": CachePolicy(3600, "vendor profile"),
}


class CacheInvalidator:
    """Invalidation calls issued by write-path code after a commit."""

    def __init__(self, cache: CacheBackend) -> None:
        self.cache = cache

    def _delete(self, key: str) -> None:
        try:
            self.cache.delete(key)
        except Exception:
            logger.exception("Cache delete failed for %s", key)

    def _pattern(self, pattern: str) -> int:
        try:
            return self.cache.invalidate_pattern(pattern)
        except Exception:
            logger.exception("Cache pattern invalidation failed for %s", pattern)
            return 0

    def invalidate_product(self, product_id: str) -> int:
        self._delete(CacheKeys.product(product_id))
        removed = self._pattern("products:*")
        removed += self._pattern(f"similar:{product_id}:*")
        removed += self._pattern(f"reviews:{product_id}:*")
        logger.info("Invalidated cache for product %s (%s list entries)", product_id, removed)
        return removed

    def invalidate_product_list(self) -> int:
        removed = self._pattern("products:*")
        logger.info("Invalidated product list cache (%s entries)", removed)
        return removed

    def invalidate_vendor(self, vendor_id: str) -> int:
        self._delete(CacheKeys.vendor(vendor_id))
        removed = self._pattern(f"products:*vendor_id={vendor_id}*")
        logger.info("Invalidated cache for vendor %s (%s list entries)", vendor_id, removed)
        return removed

    def invalidate_user(self, user_id: str) -> None:
        self._delete(CacheKeys.user(user_id))
        self._delete(CacheKeys.cart(user_id))
        logger.info("Invalidated cache for user %s", user_id)

    def invalidate_all(self) -> int:
        removed = self._pattern("*")
        logger.info("Invalidated all cache: %s keys deleted", removed)
        return removed
