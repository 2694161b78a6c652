"""Per-session diversification of a fused ranking."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from memorize.rrf import Fused


def diversify_by_session(
    fused: Iterable[Fused], limit: int, max_per_session: int
) -> list[Fused]:
    """Keep at most ``max_per_session`` hits per session, in input order.

    If the cap leaves fewer than ``limit`` results, the skipped hits are
    appended in their original order until ``limit`` is reached.
    """
    per_session: Counter[str] = Counter()
    kept: list[Fused] = []
    deferred: list[Fused] = []

    for item in fused:
        if per_session[item.session] < max_per_session:
            per_session[item.session] += 1
            kept.append(item)
            if len(kept) == limit:
                return kept
        else:
            deferred.append(item)

    for item in deferred:
        if len(kept) == limit:
            break
        kept.append(item)
    return kept