"""Query tokenization and synonym expansion for the BM25 stream."""

from __future__ import annotations

from itertools import groupby
from typing import Protocol


class _SynonymSource(Protocol):
    def expand_synonyms(self, tokens: list[str]) -> list[str]: ...


def tokenize(query: str) -> list[str]:
    """Lowercase words of the query, split on non-alphanumerics.

    Tokens shorter than two bytes in UTF-8 are dropped.
    """
    return [
        word.lower()
        for is_word, chars in groupby(query, key=str.isalnum)
        if is_word
        for word in ["".join(chars)]
        if len(word.encode("utf-8")) >= 2
    ]


def build_fts_query(original_query: str, store: _SynonymSource) -> str:
    """Space-separated bag of the query's tokens plus their synonyms.

    A query with no usable tokens is returned unchanged.
    """
    tokens = tokenize(original_query)
    if not tokens:
        return original_query
    return " ".join(store.expand_synonyms(tokens))