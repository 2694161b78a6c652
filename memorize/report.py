"""Evaluation output: report.md for people, report.json and summary.csv for tools."""

from __future__ import annotations

import json
import math
import subprocess
from collections.abc import Sequence
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from memorize.metrics import Aggregate, PerQuestion, PhaseSummary
from memorize.recall_config import Mode, RecallConfig

_VERSION = "0.1.0"

_CSV_HEADER = (
    "ts,git_sha,model,model_dim,mode,rrf_k,top_k,diversify_cap,synonyms,limit,"
    "r5,r10,r20,ndcg10,mrr,p5,elapsed_s,embed_haystack_share,recall_share"
)

_MODE_NAMES = {
    Mode.HYBRID: "hybrid",
    Mode.BM25_ONLY: "bm25-only",
    Mode.VECTOR_ONLY: "vector-only",
}


def _num(x: float) -> str:
    """Shortest plain rendering of a number: 60.0 -> "60", 0.5 -> "0.5"."""
    if isinstance(x, float) and math.isfinite(x) and x.is_integer():
        return str(int(x))
    return str(x)


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def write_all(
    out_dir,
    cfg: RecallConfig,
    total_questions: int,
    elapsed: float,
    overall: Aggregate,
    per_type: Sequence[tuple[str, Aggregate]],
    phase_summary: Sequence[PhaseSummary],
    records: Sequence[PerQuestion],
    model_tag: str,
    embedding_dim: int,
) -> None:
    """Write all three artifacts; ``elapsed`` is in seconds."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    write_markdown(
        out_dir, cfg, total_questions, elapsed, overall, per_type, phase_summary,
        model_tag, embedding_dim,
    )
    write_jsonl(out_dir, records)
    append_summary_csv(
        out_dir, cfg, total_questions, elapsed, overall, phase_summary,
        model_tag, embedding_dim,
    )


def write_markdown(
    out_dir,
    cfg: RecallConfig,
    total: int,
    elapsed: float,
    overall: Aggregate,
    per_type: Sequence[tuple[str, Aggregate]],
    phase_summary: Sequence[PhaseSummary],
    model_tag: str,
    embedding_dim: int,
) -> None:
    """Write report.md."""
    path = Path(out_dir) / "report.md"
    mode = mode_str(cfg.mode)
    div = "off" if cfg.diversify_cap is None else f"on (cap={cfg.diversify_cap})"
    syn = "on" if cfg.use_synonyms else "off"
    sha = git_sha() or "unknown"
    ts = _timestamp()

    lines = [
        f"# LongMemEval-S — memorize {_VERSION}",
        "",
        f"**model:** `{model_tag}` ({embedding_dim}d) &nbsp;&nbsp;**config:** "
        f"mode=`{mode}` rrf_k={_num(cfg.rrf_k)} top_k={cfg.per_stream_top_k} "
        f"diversify={div} synonyms={syn}",
        f"**git:** `{sha}` &nbsp;&nbsp;**run:** {ts} &nbsp;&nbsp;**questions:** {total} "
        f"&nbsp;&nbsp;**elapsed:** {elapsed:.1f}s",
        "",
        "## Overall",
        "",
        "| R@5 | R@10 | R@20 | NDCG@10 | MRR | P@5 |",
        "|---|---|---|---|---|---|",
        f"| **{overall.recall_at_5:.3f}** | **{overall.recall_at_10:.3f}** "
        f"| **{overall.recall_at_20:.3f}** | {overall.ndcg_at_10:.3f} "
        f"| {overall.mrr:.3f} | {overall.precision_at_5:.3f} |",
        "",
        "## By question type",
        "",
        "| type | count | R@5 | R@10 | NDCG@10 | MRR |",
        "|---|---|---|---|---|---|",
    ]
    lines += [
        f"| `{ty}` | {agg.count} | {agg.recall_at_5:.3f} | {agg.recall_at_10:.3f} "
        f"| {agg.ndcg_at_10:.3f} | {agg.mrr:.3f} |"
        for ty, agg in per_type
    ]
    lines += [
        "",
        "## Phase timings (per question, milliseconds)",
        "",
        "| phase | total_ms | mean | p50 | p95 | max | share |",
        "|---|---|---|---|---|---|---|",
    ]
    lines += [
        f"| `{p.phase}` | {p.total_ms} | {p.mean_ms:.1f} | {p.p50_ms} | {p.p95_ms} "
        f"| {p.max_ms} | {p.share_pct:.1f}% |"
        for p in phase_summary
    ]
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")


def write_jsonl(out_dir, records: Sequence[PerQuestion]) -> None:
    """Write report.json: one compact JSON object per question per line."""
    path = Path(out_dir) / "report.json"
    with path.open("w", encoding="utf-8") as handle:
        for record in records:
            handle.write(json.dumps(asdict(record), separators=(",", ":")) + "\n")


def append_summary_csv(
    out_dir,
    cfg: RecallConfig,
    total: int,
    elapsed: float,
    overall: Aggregate,
    phase_summary: Sequence[PhaseSummary],
    model_tag: str,
    embedding_dim: int,
) -> None:
    """Append one row to summary.csv, writing the header if the file is new."""
    path = Path(out_dir) / "summary.csv"
    exists = path.exists()

    def share(name: str) -> float:
        return next((p.share_pct for p in phase_summary if p.phase == name), 0.0)

    div = "off" if cfg.diversify_cap is None else str(cfg.diversify_cap)
    fields = [
        _timestamp(),
        git_sha() or "unknown",
        model_tag,
        str(embedding_dim),
        mode_str(cfg.mode),
        _num(cfg.rrf_k),
        str(cfg.per_stream_top_k),
        div,
        "on" if cfg.use_synonyms else "off",
        str(total),
        f"{overall.recall_at_5:.4f}",
        f"{overall.recall_at_10:.4f}",
        f"{overall.recall_at_20:.4f}",
        f"{overall.ndcg_at_10:.4f}",
        f"{overall.mrr:.4f}",
        f"{overall.precision_at_5:.4f}",
        f"{elapsed:.1f}",
        f"{share('embed_haystack'):.1f}",
        f"{share('recall'):.1f}",
    ]
    with path.open("a", encoding="utf-8") as handle:
        if not exists:
            handle.write(_CSV_HEADER + "\n")
        handle.write(",".join(fields) + "\n")


def mode_str(mode: Mode) -> str:
    """The name a mode goes by in reports."""
    return _MODE_NAMES[mode]


def git_sha() -> str | None:
    """Short hash of the checked-out commit, or ``None`` outside a git tree."""
    try:
        out = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True,
            check=False,
        )
    except OSError:
        return None
    if out.returncode != 0:
        return None
    try:
        return out.stdout.decode("utf-8").strip()
    except UnicodeDecodeError:
        return None