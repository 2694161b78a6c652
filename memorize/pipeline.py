"""End-to-end recall: BM25 + vector streams, RRF fusion, diversification."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from memorize.diversify import diversify_by_session
from memorize.expand import build_fts_query
from memorize.recall_config import RecallConfig
from memorize.rrf import Hit, fuse


class _RecallStore(Protocol):
    def expand_synonyms(self, tokens: list[str]) -> list[str]: ...

    def search_bm25(self, query: str, limit: int) -> list[Hit]: ...

    def search_vector(self, embedding: Sequence[float], limit: int) -> list[Hit]: ...

    def get_obs_by_ids(self, ids: list[int]) -> list[Any]: ...


@dataclass
class Recalled:
    """A recalled observation with its final fused score."""

    obs: Any
    score: float


def recall(
    store: _RecallStore, query: str, query_emb: Sequence[float], limit: int
) -> list[Recalled]:
    """Recall with the default configuration."""
    return recall_with_config(store, query, query_emb, limit, RecallConfig())


def recall_with_config(
    store: _RecallStore,
    query: str,
    query_emb: Sequence[float],
    limit: int,
    cfg: RecallConfig,
) -> list[Recalled]:
    """Recall with an explicit configuration."""
    if limit == 0:
        return []

    bm25: list[Hit] = []
    if cfg.mode.uses_bm25:
        fts_query = build_fts_query(query, store) if cfg.use_synonyms else query
        bm25 = store.search_bm25(fts_query, cfg.per_stream_top_k)

    vec: list[Hit] = []
    if cfg.mode.uses_vector:
        vec = store.search_vector(query_emb, cfg.per_stream_top_k)

    fused = fuse(bm25, vec, cfg.rrf_k)
    if cfg.diversify_cap is not None:
        ranked = diversify_by_session(fused, limit, cfg.diversify_cap)
    else:
        ranked = fused[:limit]

    observations = store.get_obs_by_ids([f.id for f in ranked])
    return [Recalled(obs, f.score) for obs, f in zip(observations, ranked)]