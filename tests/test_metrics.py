import pytest

from memorize.metrics import (
    PerQuestion,
    PhaseTimings,
    aggregate,
    by_type,
    ndcg_at,
    percentile,
    precision_at,
    recall_any_at,
    reciprocal_rank,
    summarize_phases,
)


def pq(ranks, gold_total, qtype="test", timings=None):
    return PerQuestion(
        question_id="q",
        question_type=qtype,
        gold_total=gold_total,
        gold_ranks=list(ranks),
        latency_ms=0,
        timings=timings or PhaseTimings(),
    )


def test_recall_any_basic():
    assert recall_any_at(pq([3], 1), 5) == 1.0
    assert recall_any_at(pq([6], 1), 5) == 0.0
    assert recall_any_at(pq([], 1), 5) == 0.0


def test_mrr_picks_first_gold():
    assert reciprocal_rank(pq([4, 1], 2)) == pytest.approx(1.0, abs=1e-9)


def test_mrr_zero_without_gold():
    assert reciprocal_rank(pq([], 2)) == 0.0


def test_precision_at_5_counts_gold_in_topk():
    assert precision_at(pq([1, 3, 9], 3), 5) == pytest.approx(0.4, abs=1e-9)


def test_ndcg_perfect_when_gold_at_top():
    assert ndcg_at(pq([1, 2], 2), 10) == pytest.approx(1.0, abs=1e-9)


def test_ndcg_decays_with_rank():
    assert ndcg_at(pq([1], 1), 10) > ndcg_at(pq([5], 1), 10)


def test_ndcg_zero_when_no_gold_total():
    assert ndcg_at(pq([], 0), 10) == 0.0


def test_aggregate_empty():
    agg = aggregate([])
    assert agg.count == 0
    assert agg.recall_at_5 == 0.0


def test_aggregate_averages():
    agg = aggregate([pq([1], 1), pq([], 1)])
    assert agg.count == 2
    assert agg.recall_at_5 == pytest.approx(0.5)
    assert agg.mrr == pytest.approx(0.5)


def test_percentile_rounds_half_away_from_zero():
    assert percentile([1, 2, 3, 4, 5, 6], 50) == 4
    assert percentile([10, 20, 30], 50) == 20
    assert percentile([], 95) == 0


def test_phase_total_ms():
    t = PhaseTimings(open_store_ms=1, embed_haystack_ms=2, recall_ms=3, cache_hits=100)
    assert t.total_ms() == 6


def test_summarize_phases():
    records = [
        pq([1], 1, timings=PhaseTimings(recall_ms=1, insert_ms=1)),
        pq([1], 1, timings=PhaseTimings(recall_ms=2, insert_ms=1)),
        pq([1], 1, timings=PhaseTimings(recall_ms=3, insert_ms=2)),
    ]
    summary = {s.phase: s for s in summarize_phases(records)}
    assert len(summary) == 7
    recall = summary["recall"]
    assert recall.total_ms == 6
    assert recall.mean_ms == pytest.approx(2.0)
    assert recall.p50_ms == 2
    assert recall.max_ms == 3
    assert recall.share_pct == pytest.approx(60.0)
    assert sum(s.share_pct for s in summary.values()) == pytest.approx(100.0)


def test_summarize_phases_empty():
    summary = summarize_phases([])
    assert all(s.total_ms == 0 and s.max_ms == 0 for s in summary)


def test_by_type_groups_sorted():
    records = [pq([1], 1, "b"), pq([], 1, "a"), pq([2], 1, "b")]
    grouped = by_type(records)
    assert [name for name, _ in grouped] == ["a", "b"]
    assert grouped[0][1].count == 1
    assert grouped[1][1].recall_at_5 == 1.0