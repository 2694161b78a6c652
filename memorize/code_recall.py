"""Code-chunk recall: hybrid BM25 + vector search with path-aware scoring.

Like observation recall, but over indexed code chunks. Two things are
specific to code. A query token that matches a path segment exactly lifts
that chunk's score. A per-file cap stops one noisy file from taking over
the top of the ranking.
"""

from __future__ import annotations

import os
import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from memorize.recall_config import Mode


class _CodeStore(Protocol):
    def search_code_bm25(
        self, query: str, limit: int, language: str | None, path_prefix: str | None
    ) -> list[Any]: ...

    def search_code_vector(
        self,
        embedding: Sequence[float],
        limit: int,
        language: str | None,
        path_prefix: str | None,
    ) -> list[Any]: ...

    def get_code_chunks_by_ids(self, ids: list[int]) -> list[Any]: ...

    def get_file_meta(self, path: str) -> FileMeta | None: ...


@dataclass(frozen=True)
class FileMeta:
    """What was recorded about a file when it was indexed."""

    mtime_ns: int
    size_bytes: int
    git_rev: str | None = None


@dataclass(frozen=True)
class CodeRecallConfig:
    """All code-recall knobs. The defaults are those of the live search route.

    ``path_boost`` is added to a chunk's score once for each query token
    that is also one of its path segments; 0.0 turns the boost off.
    ``max_per_file`` of ``None`` turns off per-file diversification.
    """

    mode: Mode = Mode.HYBRID
    rrf_k: float = 60.0
    per_stream_top_k: int = 50
    path_boost: float = 0.02
    max_per_file: int | None = 2
    language: str | None = None
    path_prefix: str | None = None


@dataclass
class CodeRecalled:
    """One returned chunk and its fused score.

    ``stale`` is true when the file on disk has changed since the chunk was
    indexed; ``body`` is then sliced from the current file and may be off.
    """

    id: int
    path: str
    language: str
    line_start: int
    line_end: int
    kind: str
    qualified: str
    body: str
    score: float
    stale: bool


def recall_code(
    store: _CodeStore,
    query: str,
    query_emb: Sequence[float],
    limit: int,
    config: CodeRecallConfig,
) -> list[CodeRecalled]:
    """End-to-end code recall."""
    if limit == 0 or not query.strip():
        return []
    fused = fused_search(store, query, query_emb, config)
    picked = diversify(fused, limit, config.max_per_file)
    return _hydrate(store, picked)


def _search_or_empty(search, *args) -> list[Any]:
    try:
        return list(search(*args))
    except Exception:
        return []


def fused_search(
    store: _CodeStore, q: str, q_emb: Sequence[float], config: CodeRecallConfig
) -> list[tuple[int, str, float]]:
    """Run both streams, fuse them with RRF and apply the path boost.

    Returns ``(id, path, score)`` tuples, highest score first. A stream that
    fails contributes nothing.
    """
    lang = config.language
    prefix = config.path_prefix
    top_k = config.per_stream_top_k

    bm25 = (
        _search_or_empty(store.search_code_bm25, q, top_k, lang, prefix)
        if config.mode.uses_bm25
        else []
    )
    vec_hits = (
        _search_or_empty(store.search_code_vector, q_emb, top_k, lang, prefix)
        if config.mode.uses_vector
        else []
    )

    acc: dict[int, list] = {}
    for stream in (bm25, vec_hits):
        for rank, hit in enumerate(stream, start=1):
            entry = acc.setdefault(hit.id, [0.0, hit.path])
            entry[0] += 1.0 / (config.rrf_k + rank)

    if config.path_boost > 0.0:
        q_tokens = tokenize_for_path_boost(q)
        if q_tokens:
            for entry in acc.values():
                entry[0] += config.path_boost * count_path_segment_matches(
                    entry[1], q_tokens
                )

    fused = [(chunk_id, path, score) for chunk_id, (score, path) in acc.items()]
    fused.sort(key=lambda item: item[2], reverse=True)
    return fused


def diversify(
    fused: Sequence[tuple[int, str, float]], limit: int, max_per_file: int | None
) -> list[tuple[int, float]]:
    """Cap the chunks taken from any one file, then backfill up to ``limit``.

    Returns ``(id, score)`` pairs. A cap of ``None`` or 0 just takes the
    first ``limit`` entries.
    """
    if not max_per_file:
        return [(chunk_id, score) for chunk_id, _, score in fused[:limit]]

    per_file: Counter[str] = Counter()
    picked: list[tuple[int, float]] = []
    for chunk_id, path, score in fused:
        if per_file[path] >= max_per_file:
            continue
        per_file[path] += 1
        picked.append((chunk_id, score))
        if len(picked) >= limit:
            return picked

    already = {chunk_id for chunk_id, _ in picked}
    for chunk_id, _, score in fused:
        if len(picked) >= limit:
            break
        if chunk_id not in already:
            picked.append((chunk_id, score))
    return picked


def _slice_lines(source: str, line_start: int, line_end: int) -> str:
    lines = source.splitlines()
    start = max(line_start, 1) - 1
    return "\n".join(lines[start:max(line_end, 0)])


def _read_text(path: str) -> str | None:
    try:
        with open(path, encoding="utf-8") as handle:
            return handle.read()
    except (OSError, UnicodeDecodeError):
        return None


def _file_meta_or_none(store: _CodeStore, path: str) -> FileMeta | None:
    try:
        return store.get_file_meta(path)
    except Exception:
        return None


def _hydrate(store: _CodeStore, picked: list[tuple[int, float]]) -> list[CodeRecalled]:
    rows = store.get_code_chunks_by_ids([chunk_id for chunk_id, _ in picked])
    unique_paths = {row.path for row in rows}
    metas = {path: _file_meta_or_none(store, path) for path in unique_paths}
    sources = {path: _read_text(path) for path in unique_paths}

    results = []
    for row, (_, score) in zip(rows, picked):
        source = sources.get(row.path)
        body = _slice_lines(source, row.line_start, row.line_end) if source is not None else ""
        results.append(
            CodeRecalled(
                id=row.id,
                path=row.path,
                language=row.language,
                line_start=row.line_start,
                line_end=row.line_end,
                kind=row.kind,
                qualified=row.qualified,
                body=body,
                score=score,
                stale=is_stale(row.path, metas.get(row.path)),
            )
        )
    return results


def is_stale(path: str, indexed: FileMeta | None) -> bool:
    """True if the file on disk no longer matches what was indexed.

    A missing index record or a missing file both count as stale.
    """
    if indexed is None:
        return True
    current = stat_for_compare(path)
    if current is None:
        return True
    mtime_ns, size_bytes = current
    return mtime_ns != indexed.mtime_ns or size_bytes != indexed.size_bytes


def stat_for_compare(path: str) -> tuple[int, int] | None:
    """``(mtime_ns, size_bytes)`` of ``path``, or ``None`` if unavailable."""
    try:
        st = os.stat(path)
    except OSError:
        return None
    if st.st_mtime_ns < 0:
        return None
    return st.st_mtime_ns, st.st_size


_QUERY_SPLIT = re.compile(r"[\s/_\-.]+")
_PATH_SPLIT = re.compile(r"[/_\-.]+")


def tokenize_for_path_boost(q: str) -> list[str]:
    """Lowercased query tokens, split on whitespace and ``/_-.``."""
    return [token.lower() for token in _QUERY_SPLIT.split(q) if token]


def count_path_segment_matches(path: str, q_tokens: Sequence[str]) -> int:
    """How many query tokens are exact (case-insensitive) path segments."""
    segments = {seg.lower() for seg in _PATH_SPLIT.split(path) if seg}
    return sum(1 for token in q_tokens if token in segments)