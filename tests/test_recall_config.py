import dataclasses

import pytest

from memorize.recall_config import Mode, RecallConfig


def test_defaults_match_published_config():
    cfg = RecallConfig()
    assert cfg.mode is Mode.HYBRID
    assert cfg.rrf_k == 60.0
    assert cfg.per_stream_top_k == 50
    assert cfg.diversify_cap == 3
    assert cfg.use_synonyms is True


def test_replace_overrides_only_given_fields():
    cfg = dataclasses.replace(RecallConfig(), mode=Mode.BM25_ONLY, diversify_cap=None)
    assert cfg.mode is Mode.BM25_ONLY
    assert cfg.diversify_cap is None
    assert cfg.rrf_k == RecallConfig().rrf_k
    assert cfg.use_synonyms == RecallConfig().use_synonyms


def test_config_is_immutable():
    cfg = RecallConfig(rrf_k=42.0)
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.rrf_k = 10.0
    assert cfg.rrf_k == 42.0


def test_mode_stream_selection():
    hybrid = Mode(Mode.HYBRID.value)
    bm25 = Mode(Mode.BM25_ONLY.value)
    vector = Mode(Mode.VECTOR_ONLY.value)
    assert hybrid.uses_bm25 is True
    assert hybrid.uses_vector is True
    assert bm25.uses_bm25 is True
    assert bm25.uses_vector is False
    assert vector.uses_vector is True
    assert vector.uses_bm25 is False


def test_mode_round_trips_through_value():
    for mode in Mode:
        assert Mode(mode.value) is mode
    assert len({m.value for m in Mode}) == len(list(Mode))