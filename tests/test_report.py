import json
import subprocess
from dataclasses import asdict
from unittest.mock import patch

import pytest

from memorize.metrics import PerQuestion, PhaseTimings, aggregate, by_type, summarize_phases
from memorize.recall_config import Mode, RecallConfig
from memorize.report import (
    append_summary_csv,
    git_sha,
    mode_str,
    write_all,
    write_jsonl,
    write_markdown,
)


@pytest.fixture
def records():
    return [
        PerQuestion("q1", "single", 1, [1], 12, PhaseTimings(recall_ms=4, embed_haystack_ms=6)),
        PerQuestion("q2", "multi", 2, [3, 7], 20, PhaseTimings(recall_ms=2, insert_ms=8)),
    ]


def _fake_git(returncode=1, stdout=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=b"")


@pytest.mark.parametrize(
    "mode,name",
    [(Mode.HYBRID, "hybrid"), (Mode.BM25_ONLY, "bm25-only"), (Mode.VECTOR_ONLY, "vector-only")],
)
def test_mode_str(mode, name):
    assert mode_str(mode) == name


def test_git_sha_failure_is_none():
    with patch("memorize.report.subprocess.run", return_value=_fake_git(1)):
        assert git_sha() is None


def test_git_sha_missing_git_is_none():
    with patch("memorize.report.subprocess.run", side_effect=FileNotFoundError):
        assert git_sha() is None


def test_git_sha_trims_output():
    with patch("memorize.report.subprocess.run", return_value=_fake_git(0, b"abc1234\n")):
        assert git_sha() == "abc1234"


def test_write_jsonl_round_trip(tmp_path, records):
    write_jsonl(tmp_path, records)
    lines = (tmp_path / "report.json").read_text().splitlines()
    assert [json.loads(line) for line in lines] == [asdict(r) for r in records]


def test_write_markdown_contents(tmp_path, records):
    cfg = RecallConfig()
    with patch("memorize.report.subprocess.run", return_value=_fake_git(1)):
        write_markdown(
            tmp_path, cfg, 2, 1.25, aggregate(records), by_type(records),
            summarize_phases(records), "model-x", 384,
        )
    text = (tmp_path / "report.md").read_text()
    assert "| R@5 | R@10 | R@20 | NDCG@10 | MRR | P@5 |" in text
    assert "mode=`hybrid`" in text
    assert "rrf_k=60 " in text
    assert "diversify=on (cap=3)" in text
    assert "`unknown`" in text
    assert "| `multi` | 1 |" in text
    assert "| `recall` |" in text


def test_markdown_diversify_off(tmp_path, records):
    cfg = RecallConfig(diversify_cap=None, use_synonyms=False)
    write_markdown(tmp_path, cfg, 2, 0.0, aggregate(records), [], [], "m", 8)
    text = (tmp_path / "report.md").read_text()
    assert "diversify=off" in text
    assert "synonyms=off" in text


def test_summary_csv_header_once(tmp_path, records):
    cfg = RecallConfig(mode=Mode.BM25_ONLY, diversify_cap=None)
    overall = aggregate(records)
    phases = summarize_phases(records)
    append_summary_csv(tmp_path, cfg, 2, 3.0, overall, phases, "model-x", 384)
    append_summary_csv(tmp_path, cfg, 2, 3.0, overall, phases, "model-x", 384)
    lines = (tmp_path / "summary.csv").read_text().splitlines()
    assert len(lines) == 3
    header = lines[0].split(",")
    assert header[0] == "ts"
    row = dict(zip(header, lines[1].split(",")))
    assert len(lines[1].split(",")) == len(header)
    assert row["mode"] == "bm25-only"
    assert row["diversify_cap"] == "off"
    assert row["model"] == "model-x"
    assert row["limit"] == "2"


def test_write_all_creates_artifacts(tmp_path, records):
    out = tmp_path / "nested" / "out"
    write_all(
        out, RecallConfig(), 2, 1.0, aggregate(records), by_type(records),
        summarize_phases(records), records, "model-x", 384,
    )
    assert sorted(p.name for p in out.iterdir()) == ["report.json", "report.md", "summary.csv"]