from memorize.rrf import Fused, Hit, fuse


def b(id_, sess, score):
    return Hit(id_, sess, score)


def test_fuse_promotes_dual_stream_hit():
    bm25 = [b(2, "s1", 1.0), b(1, "s1", 0.5)]
    vec = [b(1, "s1", 0.9), b(3, "s1", 0.5)]
    fused = fuse(bm25, vec, 60.0)
    assert fused[0].id == 1


def test_fuse_handles_empty_streams():
    assert fuse([], [], 60.0) == []


def test_fuse_single_stream_preserves_order():
    bm25 = [b(3, "s1", 1.0), b(1, "s1", 0.5), b(2, "s1", 0.1)]
    fused = fuse(bm25, [], 60.0)
    assert [f.id for f in fused] == [3, 1, 2]


def test_fuse_top_single_stream_score_is_rank_one_rrf():
    fused = fuse([b(7, "s", 3.0)], [], 60.0)
    assert fused == [Fused(7, "s", 1.0 / 61.0)]


def test_fuse_sorted_descending_and_unique_ids():
    bm25 = [b(i, "s", 1.0) for i in range(5)]
    vec = [b(i, "s", 1.0) for i in range(3, 8)]
    fused = fuse(bm25, vec, 60.0)
    scores = [f.score for f in fused]
    assert scores == sorted(scores, reverse=True)
    assert sorted(f.id for f in fused) == list(range(8))


def test_fuse_keeps_session_from_first_stream():
    fused = fuse([b(1, "from-bm25", 1.0)], [b(1, "from-vec", 1.0)], 60.0)
    assert fused[0].session == "from-bm25"