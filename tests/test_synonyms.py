"""Synonym expansion and autocomplete keyword hints."""

import pytest

from catalog_search.synonyms import SYNONYMS, expand_query, expand_terms, keyword_hints


def test_tel_expands_to_phone_vocabulary():
    """The short French abbreviation reaches the English catalog vocabulary."""

    expanded = expand_query("tel").split()

    assert expanded[0] == "tel"
    for term in ("phone", "smartphone", "iphone", "samsung"):
        assert term in expanded


def test_expansion_keeps_original_tokens():
    """Expansion only adds terms, so it can never match less than the raw query."""

    for query in ("ordinateur portable", "robe rouge", "voiture", "xyz"):
        raw_tokens = query.lower().split()
        expanded = expand_terms(query)
        assert set(raw_tokens) <= set(expanded)


def test_expansion_is_deduplicated():
    terms = expand_terms("tel téléphone")

    assert len(terms) == len(set(terms))


def test_accent_folded_lookup():
    """Typing without accents still reaches the accented entry."""

    assert "electronics" in expand_terms("electronique")
    assert "beauty" in expand_terms("beaute")


def test_partial_match_only_for_longer_keys():
    """``vêtements`` contains ``vêtement``; two- and three-letter keys never match inside words."""

    assert "clothing" in expand_terms("vêtementsfemme")
    assert "computer" not in expand_terms("spc")


@pytest.mark.parametrize("query", ["", "a"])
def test_short_queries_are_returned_unchanged(query):
    assert expand_query(query) == query


def test_synonym_table_is_read_only():
    with pytest.raises(TypeError):
        SYNONYMS["new"] = ("term",)


def test_keyword_hints():
    assert keyword_hints("tel") == ["téléphone", "smartphone", "iPhone", "Samsung"]
    assert "laptop" in keyword_hints("ordi")
    assert "robe" in keyword_hints("habit")
    assert keyword_hints("livre") == []
