"""LongMemEval-S dataset download, verification and parsing.

About 265 MB of JSON holding 500 questions. Each question carries about 48
haystack sessions and the ids of the sessions that hold the answer.
"""

from __future__ import annotations

import hashlib
import json
import sys
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path

HF_URL = (
    "https://huggingface.co/datasets/xiaowu0162/longmemeval-cleaned"
    "/resolve/main/longmemeval_s_cleaned.json"
)
EXPECTED_SHA256 = "d6f21ea9d60a0d56f34a05b609c79c88a451d2ae03597821ea3d5a9678c3a442"
EXPECTED_BYTES = 277_383_467

_CHUNK = 1 << 20
_PROGRESS_EVERY = 16 * (1 << 20)


class DatasetError(Exception):
    """The dataset is missing, corrupt, or not in the expected shape."""


@dataclass(frozen=True)
class Turn:
    role: str
    content: str


@dataclass(frozen=True)
class Question:
    question_id: str
    question: str
    question_type: str
    haystack_sessions: list[list[Turn]]
    haystack_session_ids: list[str]
    answer_session_ids: list[str]

    def session_body(self, idx: int) -> str:
        """The session's turns as ``role: content`` lines, for indexing."""
        return "".join(f"{t.role}: {t.content}\n" for t in self.haystack_sessions[idx])


def data_path() -> Path:
    """Where the dataset lives, anchored to the package directory."""
    return Path(__file__).resolve().parent / "data" / "longmemeval_s.json"


def _log(message: str) -> None:
    print(message, file=sys.stderr)


def fetch(path: Path | str | None = None) -> None:
    """Download the dataset unless present, then verify its SHA-256."""
    path = Path(path) if path is not None else data_path()
    if path.exists():
        _log(f"dataset present: {path} ({path.stat().st_size} bytes)")
        verify_sha(path)
        _log("SHA-256 OK")
        return
    path.parent.mkdir(parents=True, exist_ok=True)

    _log(f"downloading {EXPECTED_BYTES} bytes from {HF_URL}")
    total = 0
    last_logged = 0
    try:
        with urllib.request.urlopen(HF_URL) as resp, path.open("wb") as out:
            while chunk := resp.read(_CHUNK):
                out.write(chunk)
                total += len(chunk)
                if total - last_logged >= _PROGRESS_EVERY:
                    pct = total / EXPECTED_BYTES * 100.0
                    _log(f"  {total:>11} / {EXPECTED_BYTES} bytes ({pct:.1f}%)")
                    last_logged = total
    except urllib.error.URLError as exc:
        raise DatasetError(f"HTTP: {exc}") from exc
    _log(f"download complete: {total} bytes")

    if total != EXPECTED_BYTES:
        raise DatasetError(f"byte count mismatch: got {total}, expected {EXPECTED_BYTES}")
    verify_sha(path)
    _log("SHA-256 OK")


def verify_sha(path: Path | str) -> None:
    """Raise :class:`DatasetError` unless the file has the expected SHA-256."""
    with open(path, "rb") as handle:
        got = hashlib.file_digest(handle, "sha256").hexdigest()
    if got != EXPECTED_SHA256:
        raise DatasetError(
            f"SHA-256 mismatch:\n  got      {got}\n  expected {EXPECTED_SHA256}\n"
            "  → upstream dataset may have changed; delete and re-fetch, "
            "or update EXPECTED_SHA256"
        )


def _question_from_dict(record: dict) -> Question:
    return Question(
        question_id=str(record["question_id"]),
        question=str(record["question"]),
        question_type=str(record["question_type"]),
        haystack_sessions=[
            [Turn(role=str(t["role"]), content=str(t["content"])) for t in session]
            for session in record["haystack_sessions"]
        ],
        haystack_session_ids=[str(s) for s in record["haystack_session_ids"]],
        answer_session_ids=[str(s) for s in record["answer_session_ids"]],
    )


def parse_questions(raw: str) -> list[Question]:
    """Parse the dataset JSON and sanity-check the first record."""
    try:
        questions = [_question_from_dict(rec) for rec in json.loads(raw)]
    except (ValueError, KeyError, TypeError) as exc:
        raise DatasetError(f"parse LongMemEval-S JSON: {exc}") from exc

    if not questions:
        raise DatasetError("dataset parsed but contained zero questions")
    q0 = questions[0]
    if len(q0.haystack_sessions) != len(q0.haystack_session_ids):
        raise DatasetError(
            f"schema mismatch in q0: {len(q0.haystack_sessions)} haystack_sessions "
            f"but {len(q0.haystack_session_ids)} haystack_session_ids"
        )
    if not q0.answer_session_ids:
        raise DatasetError("schema mismatch in q0: no answer_session_ids")
    return questions


def load(path: Path | str | None = None) -> list[Question]:
    """Read and parse the dataset file."""
    path = Path(path) if path is not None else data_path()
    if not path.exists():
        raise DatasetError(f"dataset not found at {path}. Fetch it first.")
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DatasetError(f"read {path}: {exc}") from exc
    return parse_questions(raw)