import logging
import math

import pytest

from libs.rag import cosine_similarity, parse_embedding, serialize_embedding


def test_cosine_identities():
    v = [0.3, -1.2, 4.0]
    assert cosine_similarity(v, v) == pytest.approx(1.0)
    assert cosine_similarity(v, [-x for x in v]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([2.0, 1.0], [1.0, 3.0]) == pytest.approx(
        cosine_similarity([1.0, 3.0], [2.0, 1.0])
    )


def test_cosine_zero_vector_is_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
    assert cosine_similarity([], []) == 0.0


def test_cosine_length_mismatch_uses_prefix_and_logs(caplog):
    with caplog.at_level(logging.WARNING, logger="libs.rag.similarity"):
        score = cosine_similarity([1.0, 0.0, 9.0], [1.0, 0.0])
    assert score == pytest.approx(1.0)
    assert "embedding_dimension_mismatch" in caplog.text


def test_embedding_round_trip():
    vec = [0.25, -1.5, 3.0]
    assert parse_embedding(serialize_embedding(vec)) == vec


@pytest.mark.parametrize("raw", [None, "", "not json", '{"a": 1}', "3"])
def test_parse_embedding_malformed(raw):
    assert parse_embedding(raw) is None


def test_parse_embedding_drops_non_numeric():
    assert parse_embedding('[1, "x", null, true, 2.5]') == [1.0, 2.5]
    parsed = parse_embedding("[1, 1e400]")
    assert parsed == [1.0]
    assert all(math.isfinite(v) for v in parsed)
