"""Retrieval mode and the tunable knobs of the recall pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Mode(Enum):
    """Which retrieval streams contribute to the fused result."""

    HYBRID = "hybrid"
    BM25_ONLY = "bm25-only"
    VECTOR_ONLY = "vector-only"

    @property
    def uses_bm25(self) -> bool:
        return self is not Mode.VECTOR_ONLY

    @property
    def uses_vector(self) -> bool:
        return self is not Mode.BM25_ONLY


@dataclass(frozen=True)
class RecallConfig:
    """All recall knobs.

    ``diversify_cap`` of ``None`` disables per-session diversification.
    With ``use_synonyms`` off the BM25 query is used verbatim.
    """

    mode: Mode = Mode.HYBRID
    rrf_k: float = 60.0
    per_stream_top_k: int = 50
    diversify_cap: int | None = 3
    use_synonyms: bool = True