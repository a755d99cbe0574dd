"""Elasticsearch client factory.

The rest of the code works against the official synchronous client. Blocking
calls are wrapped via ``asyncio.to_thread`` by the caller where necessary.
An unconfigured host yields ``None``: search then runs on the database only.
"""
from __future__ import annotations

import logging
from typing import Optional

from elasticsearch import Elasticsearch

from .config import Settings, settings

logger = logging.getLogger(__name__)


def get_client(config: Settings = settings) -> Optional[Elasticsearch]:
    if not config.search_configured:
        logger.warning("ES_HOST not set; search runs in database fallback mode")
        return None
    logger.info("Connecting to Elasticsearch at %s", config.es_host)
    if config.es_api_key:
        return Elasticsearch(config.es_host, api_key=config.es_api_key)
    return Elasticsearch(config.es_host)
