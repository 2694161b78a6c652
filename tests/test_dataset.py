import io
import json
from unittest.mock import patch

import pytest

from memorize.dataset import (
    EXPECTED_SHA256,
    DatasetError,
    Question,
    Turn,
    data_path,
    fetch,
    load,
    parse_questions,
    verify_sha,
)


def record(**overrides):
    base = {
        "question_id": "q1",
        "question": "What did I buy?",
        "question_type": "single-session-user",
        "haystack_sessions": [
            [
                {"role": "user", "content": "I bought a lamp"},
                {"role": "assistant", "content": "Nice lamp"},
            ],
            [{"role": "user", "content": "Weather talk"}],
        ],
        "haystack_session_ids": ["s1", "s2"],
        "answer_session_ids": ["s1"],
        "extra_field": "ignored",
    }
    base.update(overrides)
    return base


def test_session_body_role_prefixed_lines():
    q = Question(
        "q", "?", "t",
        [[Turn("user", "hi"), Turn("assistant", "hello")]],
        ["s"], ["s"],
    )
    assert q.session_body(0) == "user: hi\nassistant: hello\n"


def test_session_body_empty_session():
    q = Question("q", "?", "t", [[]], ["s"], ["s"])
    assert q.session_body(0) == ""


def test_parse_questions_round_trip():
    questions = parse_questions(json.dumps([record()]))
    assert len(questions) == 1
    q = questions[0]
    assert q.question_id == "q1"
    assert q.haystack_session_ids == ["s1", "s2"]
    assert q.answer_session_ids == ["s1"]
    assert q.haystack_sessions[0][0] == Turn("user", "I bought a lamp")
    assert q.session_body(1) == "user: Weather talk\n"


def test_parse_questions_empty():
    with pytest.raises(DatasetError, match="zero questions"):
        parse_questions("[]")


def test_parse_questions_session_count_mismatch():
    with pytest.raises(DatasetError, match="schema mismatch"):
        parse_questions(json.dumps([record(haystack_session_ids=["s1"])]))


def test_parse_questions_no_answer_ids():
    with pytest.raises(DatasetError, match="no answer_session_ids"):
        parse_questions(json.dumps([record(answer_session_ids=[])]))


def test_parse_questions_bad_json():
    with pytest.raises(DatasetError, match="parse LongMemEval-S JSON"):
        parse_questions("{not json")


def test_parse_questions_missing_field():
    rec = record()
    del rec["question_type"]
    with pytest.raises(DatasetError, match="parse LongMemEval-S JSON"):
        parse_questions(json.dumps([rec]))


def test_load_missing_file(tmp_path):
    with pytest.raises(DatasetError, match="dataset not found"):
        load(tmp_path / "absent.json")


def test_load_reads_file(tmp_path):
    path = tmp_path / "ds.json"
    path.write_text(json.dumps([record(), record(question_id="q2")]), encoding="utf-8")
    questions = load(path)
    assert [q.question_id for q in questions] == ["q1", "q2"]


def test_data_path_file_name():
    assert data_path().name == "longmemeval_s.json"
    assert data_path().parent.name == "data"


def test_verify_sha_mismatch(tmp_path):
    path = tmp_path / "wrong.json"
    path.write_bytes(b"not the dataset")
    with pytest.raises(DatasetError, match="SHA-256 mismatch") as info:
        verify_sha(path)
    assert EXPECTED_SHA256 in str(info.value)


def test_fetch_existing_corrupt_file_fails(tmp_path):
    path = tmp_path / "ds.json"
    path.write_bytes(b"[]")
    with pytest.raises(DatasetError, match="SHA-256 mismatch"):
        fetch(path)
    assert path.read_bytes() == b"[]"


def test_fetch_short_download_reports_byte_count(tmp_path):
    path = tmp_path / "sub" / "ds.json"
    with patch("urllib.request.urlopen") as urlopen:
        urlopen.return_value.__enter__.return_value = io.BytesIO(b"abc")
        with pytest.raises(DatasetError, match="byte count mismatch: got 3"):
            fetch(path)
    assert path.read_bytes() == b"abc"