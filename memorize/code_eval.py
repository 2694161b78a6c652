"""Code-recall evaluation: query banks, int8 vector ranking and A/B reports.

Queries come from a hand-curated TOML bank and from synthetic queries
sampled from the index. Each query is run under several retrieval modes,
and the report gives recall@K and MRR per mode. The int8 modes rank against
an in-memory index of quantized vectors instead of the store's own vector
search.
"""

from __future__ import annotations

import math
import operator
import tomllib
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from memorize.code_recall import count_path_segment_matches, tokenize_for_path_boost

DIM = 384
Q8Vec = tuple[int, ...]

_PER_STREAM = 50
_RRF_K = 60.0
_PATH_BOOST = 0.02
_INT8_POOL = 200
_PER_FILE_CAP = 2

_REPORT_MODES = ("hybrid", "bm25", "vector", "int8-only", "int8-hybrid")


class _EvalStore(Protocol):
    def code_vectors(self) -> Iterable[tuple[int, Sequence[int]]]: ...

    def get_code_chunks_by_ids(self, ids: list[int]) -> list[Any]: ...

    def search_code_bm25(
        self, query: str, limit: int, language: str | None, path_prefix: str | None
    ) -> list[Any]: ...

    def sample_code_chunks(self, n: int) -> list[tuple[str, str]]: ...


@dataclass
class BankQuery:
    """A hand-curated query.

    A hit counts as correct if any of the ``expect`` substrings occurs in
    its path.
    """

    query: str
    expect: list[str]
    category: str = ""
    path_prefix: str | None = None


@dataclass
class QueryBank:
    queries: list[BankQuery]


@dataclass(frozen=True)
class SyntheticQuery:
    """A symbol taken from the index, expected to find its own file."""

    query: str
    expected_path: str


@dataclass
class ModeStats:
    """Running totals for one retrieval mode."""

    n_queries: int = 0
    n_recall_at_5: int = 0
    n_recall_at_10: int = 0
    n_recall_at_20: int = 0
    sum_reciprocal_rank: float = 0.0
    sum_latency_ms: float = 0.0

    def r_at(self, n_hit: int) -> float:
        """Fraction of queries that scored a hit; 0.0 with no queries."""
        return n_hit / self.n_queries if self.n_queries else 0.0

    def mrr(self) -> float:
        return self.sum_reciprocal_rank / self.n_queries if self.n_queries else 0.0

    def mean_latency_ms(self) -> float:
        return self.sum_latency_ms / self.n_queries if self.n_queries else 0.0


def _round_half_away(x: float) -> float:
    return math.copysign(math.floor(abs(x) + 0.5), x)


def quantize_i8(emb: Sequence[float]) -> Q8Vec:
    """Map each component to ``round(v * 127)``, clamped to [-127, 127].

    The result always has 384 components: longer input is cut, shorter
    input is padded with zeros.
    """
    out = [0] * DIM
    for i, v in enumerate(emb[:DIM]):
        if math.isnan(v):
            continue
        out[i] = int(min(max(_round_half_away(v * 127.0), -127.0), 127.0))
    return tuple(out)


def dot_i8(a: Sequence[int], b: Sequence[int]) -> int:
    """Integer dot product of two quantized vectors."""
    return sum(map(operator.mul, a, b))


@dataclass
class Int8Index:
    """All code vectors of a store, held in memory as int8 arrays."""

    ids: list[int] = field(default_factory=list)
    vecs: list[Q8Vec] = field(default_factory=list)

    @classmethod
    def load(cls, store: _EvalStore) -> Int8Index:
        """Read every stored code vector, padded or cut to 384 components."""
        index = cls()
        for chunk_id, q8 in store.code_vectors():
            values = list(q8[:DIM])
            values.extend([0] * (DIM - len(values)))
            index.ids.append(chunk_id)
            index.vecs.append(tuple(values))
        return index

    def search(self, q: Sequence[int], n: int) -> list[tuple[int, int]]:
        """Top ``n`` ``(id, dot)`` pairs, highest dot product first."""
        scored = [(chunk_id, dot_i8(q, v)) for chunk_id, v in zip(self.ids, self.vecs)]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:n]


def _matches_prefix(path: str, path_prefix: str | None) -> bool:
    return path_prefix is None or path.startswith(path_prefix)


def int8_only_paths(
    store: _EvalStore,
    idx: Int8Index,
    q_emb: Sequence[float],
    limit: int,
    path_prefix: str | None,
) -> list[str]:
    """Rank by int8 dot product alone, then filter and diversify by file."""
    pool = idx.search(quantize_i8(q_emb), _INT8_POOL)
    rows = store.get_code_chunks_by_ids([chunk_id for chunk_id, _ in pool])
    by_id = {row.id: row.path for row in rows}
    paths = [
        by_id[chunk_id]
        for chunk_id, _ in pool
        if chunk_id in by_id and _matches_prefix(by_id[chunk_id], path_prefix)
    ]
    return diversify_paths(paths, _PER_FILE_CAP, limit)


def int8_hybrid_paths(
    store: _EvalStore,
    idx: Int8Index,
    query: str,
    q_emb: Sequence[float],
    limit: int,
    path_prefix: str | None,
) -> list[str]:
    """BM25 fused with int8 vector ranking by RRF, with the path boost.

    Uses the production shape: 50 hits per stream, k=60, a boost of 0.02
    per matching path segment and at most two chunks per file. A failing
    BM25 search contributes nothing.
    """
    try:
        bm25 = list(store.search_code_bm25(query, _PER_STREAM, None, path_prefix))
    except Exception:
        bm25 = []
    q8_hits = idx.search(quantize_i8(q_emb), _PER_STREAM)

    scores: dict[int, float] = {}
    paths: dict[int, str | None] = {}
    for rank, hit in enumerate(bm25, start=1):
        if hit.id not in scores:
            scores[hit.id] = 0.0
            paths[hit.id] = hit.path
        scores[hit.id] += 1.0 / (_RRF_K + rank)
    for rank, (chunk_id, _) in enumerate(q8_hits, start=1):
        if chunk_id not in scores:
            scores[chunk_id] = 0.0
            paths[chunk_id] = None
        scores[chunk_id] += 1.0 / (_RRF_K + rank)

    need_path = [chunk_id for chunk_id, path in paths.items() if path is None]
    if need_path:
        for row in store.get_code_chunks_by_ids(need_path):
            if row.id in paths:
                paths[row.id] = row.path

    q_tokens = tokenize_for_path_boost(query)
    if q_tokens:
        for chunk_id, path in paths.items():
            if path is not None:
                scores[chunk_id] += _PATH_BOOST * count_path_segment_matches(path, q_tokens)

    fused = [
        (path, scores[chunk_id])
        for chunk_id, path in paths.items()
        if path is not None and _matches_prefix(path, path_prefix)
    ]
    fused.sort(key=lambda item: item[1], reverse=True)
    return diversify_paths([path for path, _ in fused], _PER_FILE_CAP, limit)


def diversify_paths(paths: Sequence[str], cap: int, limit: int) -> list[str]:
    """Keep at most ``cap`` entries per path, up to ``limit`` in all.

    If that leaves fewer than ``limit``, paths not yet taken are appended
    in their original order.
    """
    per_file: Counter[str] = Counter()
    out: list[str] = []
    for path in paths:
        if per_file[path] >= cap:
            continue
        per_file[path] += 1
        out.append(path)
        if len(out) >= limit:
            return out
    if len(out) < limit:
        already = set(out)
        for path in paths:
            if len(out) >= limit:
                break
            if path not in already:
                out.append(path)
    return out


def first_correct_rank(paths: Sequence[str], expect: Sequence[str]) -> int | None:
    """1-based rank of the first path containing any expected substring."""
    return next(
        (rank for rank, path in enumerate(paths, start=1) if any(e in path for e in expect)),
        None,
    )


def accumulate(
    bucket: dict[str, ModeStats], mode: str, rank: int | None, latency_ms: float
) -> None:
    """Fold one query's outcome into the stats for ``mode``."""
    stats = bucket.setdefault(mode, ModeStats())
    stats.n_queries += 1
    stats.sum_latency_ms += latency_ms
    if rank is not None:
        if rank <= 5:
            stats.n_recall_at_5 += 1
        if rank <= 10:
            stats.n_recall_at_10 += 1
        if rank <= 20:
            stats.n_recall_at_20 += 1
        stats.sum_reciprocal_rank += 1.0 / rank


def _bank_query(record: Any) -> BankQuery:
    if not isinstance(record, dict):
        raise TypeError("query entry is not a table")
    query = record["query"]
    expect = record["expect"]
    category = record.get("category", "")
    path_prefix = record.get("path_prefix")
    if not isinstance(query, str):
        raise TypeError("`query` must be a string")
    if not isinstance(expect, list) or not all(isinstance(e, str) for e in expect):
        raise TypeError("`expect` must be a list of strings")
    if not isinstance(category, str):
        raise TypeError("`category` must be a string")
    if path_prefix is not None and not isinstance(path_prefix, str):
        raise TypeError("`path_prefix` must be a string")
    return BankQuery(query, list(expect), category, path_prefix)


def load_bank(path: Path | str) -> QueryBank:
    """Read a TOML query bank with a ``[[queries]]`` array."""
    raw = Path(path).read_text(encoding="utf-8")
    try:
        data = tomllib.loads(raw)
        queries = data["queries"]
        if not isinstance(queries, list):
            raise TypeError("`queries` must be an array of tables")
        return QueryBank([_bank_query(record) for record in queries])
    except (ValueError, KeyError, TypeError) as exc:
        raise ValueError(f"parse query bank toml: {exc}") from exc


def sample_synthetic(store: _EvalStore, n: int) -> list[SyntheticQuery]:
    """Build queries from up to ``n`` sampled chunks' qualified names.

    The first comma-separated name is used; names shorter than four bytes
    and repeated names are skipped.
    """
    out: list[SyntheticQuery] = []
    seen: set[str] = set()
    for path, qualified in store.sample_code_chunks(n):
        symbol = qualified.split(",", 1)[0].strip()
        if not symbol or len(symbol.encode("utf-8")) < 4 or symbol in seen:
            continue
        seen.add(symbol)
        out.append(SyntheticQuery(query=symbol, expected_path=path))
    return out


def _render_section(label: str, src: Mapping[str, ModeStats]) -> str:
    parts = [
        f"## {label}\n\n",
        "| mode | n | R@5 | R@10 | R@20 | MRR | mean latency (ms) |\n",
        "|---|---|---|---|---|---|---|\n",
    ]
    for mode in _REPORT_MODES:
        st = src.get(mode)
        if st is None or st.n_queries == 0:
            continue
        parts.append(
            f"| {mode} | {st.n_queries} | {st.r_at(st.n_recall_at_5) * 100.0:.1f}% "
            f"| {st.r_at(st.n_recall_at_10) * 100.0:.1f}% "
            f"| {st.r_at(st.n_recall_at_20) * 100.0:.1f}% "
            f"| {st.mrr():.3f} | {st.mean_latency_ms():.1f} |\n"
        )
    parts.append("\n")
    return "".join(parts)


def render_report(
    curated: Mapping[str, ModeStats],
    synth: Mapping[str, ModeStats],
    overall: Mapping[str, ModeStats],
) -> str:
    """Markdown tables of recall and latency per mode."""
    parts = [
        "# memorize-eval — code recall A/B\n",
        "\n",
        "Each query runs under several modes. The headline number is recall@5 — "
        "does any expected path appear in the top 5 hits. Modes that weren't "
        "enabled in this run are omitted.\n\n",
    ]
    if overall:
        parts.append(_render_section("Overall", overall))
    if curated:
        parts.append(_render_section("Hand-curated queries", curated))
    if synth:
        parts.append(_render_section("Synthetic queries (qualified → path)", synth))
    return "".join(parts)