"""French/English search synonyms and query expansion.

The table maps terms shoppers type (mostly French, sometimes a brand) to the
English and brand vocabulary the catalog is written in. Expansions are added
next to the original tokens, never substituted for them, so an expanded
query always matches at least what the raw query matched.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from unidecode import unidecode

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
# Keys at or below this length only match whole tokens.
PARTIAL_MATCH_MIN_KEY_LENGTH = 3

_PHONE = ("phone", "telephone", "mobile", "smartphone", "iphone", "samsung", "android", "cellular")
_CLOTHING = ("clothing", "clothes", "apparel", "fashion")


_RAW_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    # Telephone terms
    "tel": _PHONE,
    "tél": _PHONE,
    "téléphone": _PHONE,
    "telephone": ("phone", "mobile", "smartphone", "iphone", "samsung", "android", "cellular"),
    "téléphones": ("phones", "telephone", "mobile", "smartphone", "iphone", "samsung", "android"),
    "portable": ("mobile", "phone", "smartphone", "iphone", "samsung", "android", "cellular"),
    "portables": ("mobiles", "phones", "smartphones", "iphone", "samsung", "android"),
    "mobile": ("phone", "smartphone", "iphone", "samsung", "android", "cellular"),
    "cellulaire": ("cellular", "mobile", "phone", "smartphone"),
    # Computers
    "ordinateur": ("computer", "laptop", "pc", "mac", "desktop"),
    "pc": ("computer", "laptop", "desktop"),
    "ordi": ("computer", "laptop", "pc", "mac"),
    # Electronics
    "électronique": ("electronic", "electronics", "tech", "technology"),
    "électroniques": ("electronic", "electronics", "tech", "technology"),
    "technologie": ("technology", "tech", "electronic"),
    # Clothing
    "vêtement": _CLOTHING,
    "vêtements": _CLOTHING,
    "habit": ("clothing", "clothes", "apparel"),
    "habits": ("clothing", "clothes", "apparel"),
    # Home
    "maison": ("home", "house", "household"),
    "domestique": ("home", "household", "domestic"),
    # Beauty
    "beauté": ("beauty", "cosmetic", "cosmetics", "makeup"),
    "cosmétique": ("cosmetic", "beauty", "makeup"),
    "maquillage": ("makeup", "cosmetic", "beauty"),
    # Sports
    "sport": ("sports", "fitness", "exercise", "athletic"),
    "fitness": ("sports", "exercise", "gym", "workout"),
    # Books
    "livre": ("book", "books", "reading"),
    "livres": ("book", "books", "reading"),
    "lecture": ("reading", "book", "books"),
    # Cars
    "voiture": ("car", "auto", "vehicle", "automobile"),
    "auto": ("car", "vehicle", "automobile"),
    "véhicule": ("vehicle", "car", "auto"),
    # Brands
    "samsung": ("galaxy", "smartphone", "phone", "mobile"),
    "apple": ("iphone", "ipad", "mac", "macbook"),
    "nike": ("shoes", "sneakers", "sportswear"),
    "adidas": ("shoes", "sneakers", "sportswear"),
}

# Read-only view shared by the whole process.
SYNONYMS: Mapping[str, Tuple[str, ...]] = MappingProxyType(_RAW_SYNONYMS)


def _fold(term: str) -> str:
    return unidecode(term).lower()


def _build_folded_index() -> Mapping[str, Tuple[str, ...]]:
    folded: Dict[str, List[str]] = {}
    for key, expansions in SYNONYMS.items():
        bucket = folded.setdefault(_fold(key), [])
        bucket.extend(term for term in expansions if term not in bucket)
    return MappingProxyType({key: tuple(values) for key, values in folded.items()})


# Accent-folded view so "electronique" reaches the "électronique" entry.
_FOLDED: Mapping[str, Tuple[str, ...]] = _build_folded_index()

# (triggers, curated terms) appended to autocomplete suggestions.
KEYWORD_HINTS: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("tel", "phone"), ("téléphone", "smartphone", "iPhone", "Samsung")),
    (("ordi",), ("ordinateur", "laptop", "PC", "MacBook")),
    (("vet", "hab"), ("vêtements", "chemise", "pantalon", "robe")),
)


def _expansions_for(token: str) -> List[str]:
    found: List[str] = []
    folded_token = _fold(token)

    found.extend(SYNONYMS.get(token, ()))
    found.extend(_FOLDED.get(folded_token, ()))

    for key, expansions in SYNONYMS.items():
        if len(key) > PARTIAL_MATCH_MIN_KEY_LENGTH and key in token:
            found.extend(expansions)
    for key, expansions in _FOLDED.items():
        if len(key) > PARTIAL_MATCH_MIN_KEY_LENGTH and key in folded_token:
            found.extend(expansions)
    return found


def expand_terms(query: str) -> List[str]:
    """Return the deduplicated token list for ``query`` including synonyms."""
    if not query or len(query) < MIN_QUERY_LENGTH:
        return query.split() if query else []

    tokens = query.lower().split()
    expanded: List[str] = []
    for token in tokens:
        expanded.append(token)
        expanded.extend(_expansions_for(token))
    return list(dict.fromkeys(expanded))


def expand_query(query: str) -> str:
    """Expand ``query`` with synonyms and join the tokens with spaces.

    Queries shorter than two characters are returned unchanged.

    >>> expand_query("tel")
    'tel phone telephone mobile smartphone iphone samsung android cellular'
    """
    if not query or len(query) < MIN_QUERY_LENGTH:
        return query or ""
    expanded = " ".join(expand_terms(query))
    logger.debug("synonyms q=%r expanded=%r", query, expanded)
    return expanded


def keyword_hints(query: str) -> List[str]:
    """Curated terms for phone, computer and clothing shaped queries."""
    lowered = query.lower()
    hints: List[str] = []
    for triggers, terms in KEYWORD_HINTS:
        if any(trigger in lowered for trigger in triggers):
            hints.extend(terms)
    return hints
