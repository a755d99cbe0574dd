"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


_DEFAULT_MAPPING = str(Path(__file__).with_name("product-mapping.json"))


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides.

    An empty ``ES_HOST`` means the search index is not configured and every
    search is served from the relational store.
    """

    es_host: str = _get_env("ES_HOST", "")
    es_index: str = _get_env("ES_INDEX", "products")
    es_api_key: str = _get_env("ES_API_KEY", "")
    mapping_path: str = _get_env("MAPPING_PATH", _DEFAULT_MAPPING)
    database_url: str = _get_env("DATABASE_URL", "sqlite:///catalog.db")
    redis_host: str = _get_env("REDIS_HOST", "localhost")
    redis_port: int = int(_get_env("REDIS_PORT", "6379"))
    redis_password: str = _get_env("REDIS_PASSWORD", "")
    redis_key_prefix: str = _get_env("REDIS_KEY_PREFIX", "catalog:")
    redis_socket_timeout: float = float(_get_env("REDIS_SOCKET_TIMEOUT", "1.0"))
    search_cache_ttl: int = int(_get_env("SEARCH_CACHE_TTL", "600"))
    autocomplete_cache_ttl: int = int(_get_env("AUTOCOMPLETE_CACHE_TTL", "300"))
    health_timeout: float = float(_get_env("HEALTH_TIMEOUT", "2.0"))
    query_timeout: float = float(_get_env("QUERY_TIMEOUT", "5.0"))
    default_currency: str = _get_env("DEFAULT_CURRENCY", "XOF")
    log_level: str = _get_env("LOG_LEVEL", "INFO")

    @property
    def search_configured(self) -> bool:
        return bool(self.es_host.strip())


settings = Settings()
