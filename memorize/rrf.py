"""Reciprocal Rank Fusion over a BM25 stream and a vector stream."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class Hit:
    """One ranked hit from a retrieval stream."""

    id: int
    session: str
    score: float


@dataclass
class Fused:
    """A fused candidate: id, its session, and the accumulated RRF score."""

    id: int
    session: str
    score: float


def fuse(bm25: Iterable[Hit], vec: Iterable[Hit], k: float) -> list[Fused]:
    """Fuse two ranked streams, each sorted by its own score descending.

    Each document scores the sum of ``1 / (k + rank)`` over the streams it
    appears in, with 1-based ranks. The result is sorted by score, highest
    first.
    """
    acc: dict[int, Fused] = {}
    for stream in (bm25, vec):
        for rank, hit in enumerate(stream, start=1):
            entry = acc.get(hit.id)
            if entry is None:
                entry = acc[hit.id] = Fused(hit.id, hit.session, 0.0)
            entry.score += 1.0 / (k + rank)
    return sorted(acc.values(), key=lambda f: f.score, reverse=True)