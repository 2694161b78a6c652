"""Retrieval metrics over per-question gold-rank records."""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field


@dataclass
class PhaseTimings:
    """Wall-clock time spent in each phase of one question, in milliseconds.

    ``cache_hits`` and ``cache_misses`` are counts of haystack sessions
    served from the embedding cache and freshly embedded.
    """

    open_store_ms: int = 0
    embed_haystack_ms: int = 0
    insert_ms: int = 0
    rebuild_fts_ms: int = 0
    embed_query_ms: int = 0
    recall_ms: int = 0
    score_ms: int = 0
    cache_hits: int = 0
    cache_misses: int = 0

    def total_ms(self) -> int:
        """Sum of all timed phases."""
        return (
            self.open_store_ms
            + self.embed_haystack_ms
            + self.insert_ms
            + self.rebuild_fts_ms
            + self.embed_query_ms
            + self.recall_ms
            + self.score_ms
        )


@dataclass
class PerQuestion:
    """One question's outcome.

    ``gold_ranks`` holds the 1-based positions at which gold sessions
    appeared in the ranked results; absent gold sessions contribute nothing.
    """

    question_id: str
    question_type: str
    gold_total: int
    gold_ranks: list[int]
    latency_ms: int = 0
    timings: PhaseTimings = field(default_factory=PhaseTimings)


@dataclass(frozen=True)
class PhaseSummary:
    """One phase's timings aggregated over many questions."""

    phase: str
    total_ms: int
    mean_ms: float
    p50_ms: int
    p95_ms: int
    max_ms: int
    share_pct: float


@dataclass(frozen=True)
class Aggregate:
    """Retrieval metrics averaged over a set of questions."""

    count: int
    recall_at_5: float
    recall_at_10: float
    recall_at_20: float
    ndcg_at_10: float
    mrr: float
    precision_at_5: float


_PHASES: tuple[tuple[str, Callable[[PhaseTimings], int]], ...] = (
    ("open_store", lambda t: t.open_store_ms),
    ("embed_haystack", lambda t: t.embed_haystack_ms),
    ("insert", lambda t: t.insert_ms),
    ("rebuild_fts", lambda t: t.rebuild_fts_ms),
    ("embed_query", lambda t: t.embed_query_ms),
    ("recall", lambda t: t.recall_ms),
    ("score", lambda t: t.score_ms),
)


def summarize_phases(records: Sequence[PerQuestion]) -> list[PhaseSummary]:
    """Per-phase totals, mean, p50, p95, max and share of the grand total."""
    grand_total = max(sum(r.timings.total_ms() for r in records), 1)
    summaries = []
    for name, extract in _PHASES:
        values = sorted(extract(r.timings) for r in records)
        n = max(len(values), 1)
        total = sum(values)
        summaries.append(
            PhaseSummary(
                phase=name,
                total_ms=total,
                mean_ms=total / n,
                p50_ms=percentile(values, 50),
                p95_ms=percentile(values, 95),
                max_ms=values[-1] if values else 0,
                share_pct=total / grand_total * 100.0,
            )
        )
    return summaries


def percentile(sorted_values: Sequence[int], p: int) -> int:
    """Nearest-rank percentile of already sorted values; 0 when empty."""
    if not sorted_values:
        return 0
    # Round half away from zero; the position is never negative.
    idx = math.floor((len(sorted_values) - 1) * (p / 100.0) + 0.5)
    return sorted_values[min(idx, len(sorted_values) - 1)]


def aggregate(records: Sequence[PerQuestion]) -> Aggregate:
    """Mean of every metric over ``records``; all zeros when empty."""
    if not records:
        return Aggregate(0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
    n = len(records)

    def mean(metric: Callable[[PerQuestion], float]) -> float:
        return sum(metric(r) for r in records) / n

    return Aggregate(
        count=n,
        recall_at_5=mean(lambda r: recall_any_at(r, 5)),
        recall_at_10=mean(lambda r: recall_any_at(r, 10)),
        recall_at_20=mean(lambda r: recall_any_at(r, 20)),
        ndcg_at_10=mean(lambda r: ndcg_at(r, 10)),
        mrr=mean(reciprocal_rank),
        precision_at_5=mean(lambda r: precision_at(r, 5)),
    )


def recall_any_at(r: PerQuestion, k: int) -> float:
    """1.0 if any gold session ranked within the top ``k``, else 0.0."""
    hit = any(rank <= k for rank in r.gold_ranks)
    return float(hit)


def ndcg_at(r: PerQuestion, k: int) -> float:
    """NDCG@k with binary relevance."""
    dcg = sum(1.0 / math.log2(rank + 1.0) for rank in r.gold_ranks if rank <= k)
    ideal_hits = min(r.gold_total, k)
    if ideal_hits == 0:
        return 0.0
    idcg = sum(1.0 / math.log2(i + 1.0) for i in range(1, ideal_hits + 1))
    return 0.0 if idcg == 0.0 else dcg / idcg


def reciprocal_rank(r: PerQuestion) -> float:
    """Reciprocal of the best gold rank; 0.0 if no gold appeared."""
    return 1.0 / min(r.gold_ranks) if r.gold_ranks else 0.0


def precision_at(r: PerQuestion, k: int) -> float:
    """Fraction of the top ``k`` positions held by gold sessions."""
    return sum(1 for rank in r.gold_ranks if rank <= k) / k


def by_type(records: Sequence[PerQuestion]) -> list[tuple[str, Aggregate]]:
    """Aggregate each question type separately, sorted by type name."""
    buckets: defaultdict[str, list[PerQuestion]] = defaultdict(list)
    for r in records:
        buckets[r.question_type].append(r)
    return [(name, aggregate(buckets[name])) for name in sorted(buckets)]