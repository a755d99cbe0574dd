"""Common contract for the search backends."""
from __future__ import annotations

from typing import List, Protocol

from .models import SearchRequest, SearchResultPage


class SearchBackendError(RuntimeError):
    """A backend could not execute a query; the gateway fails over on it."""


class SearchBackend(Protocol):
    name: str

    def health(self) -> bool: ...

    def search(self, request: SearchRequest, expanded_query: str) -> SearchResultPage: ...

    def autocomplete(self, query: str, expanded_query: str) -> List[str]: ...
