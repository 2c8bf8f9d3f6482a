import struct

import pytest

from errormem.errors import DimensionMismatchError
from errormem.search.similarity import (
    combined_similarity,
    cosine,
    edit_distance,
    edit_similarity,
    jaccard,
    pack_vector,
    token_similarity,
    top_cosine_matches,
    unpack_vector,
)


def test_cosine_identical_and_orthogonal():
    assert cosine([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
    assert cosine([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine([1, 0], [-1, 0]) == pytest.approx(-1.0)


def test_cosine_degenerate_vectors():
    assert cosine([], []) == 0.0
    assert cosine([0, 0], [1, 1]) == 0.0


def test_cosine_rejects_length_mismatch():
    with pytest.raises(DimensionMismatchError):
        cosine([1, 2], [1, 2, 3])


def test_jaccard():
    assert jaccard([], []) == 1.0
    assert jaccard({"apple", "banana"}, {"banana", "cherry"}) == pytest.approx(1 / 3)
    assert jaccard(["Apple"], ["apple"]) == 1.0
    assert jaccard(["a"], []) == 0.0


def test_edit_distance():
    assert edit_distance("kitten", "sitting") == 3
    assert edit_distance("", "abc") == 3
    assert edit_distance("abc", "abc") == 0
    assert edit_similarity("", "") == 1.0
    assert edit_similarity("abc", "abd") == pytest.approx(2 / 3)


def test_token_similarity_is_case_insensitive():
    assert token_similarity("Module NOT found", "module not FOUND") == 1.0


def test_combined_similarity_weights_are_not_normalized():
    assert combined_similarity("same text", "same text") == pytest.approx(1.0)
    assert combined_similarity("same text", "same text", weight_token=1, weight_edit=1) == pytest.approx(2.0)


def test_pack_vector_layout_is_little_endian_float32():
    assert pack_vector([1.0]) == struct.pack("<f", 1.0)
    assert len(pack_vector([0.1, 0.2, 0.3])) == 12


def test_pack_round_trip():
    values = [0.1, -2.5, 3.14159, 1e-3, 0.0]
    assert unpack_vector(pack_vector(values)) == pytest.approx(values, rel=1e-6, abs=1e-7)
    assert pack_vector([]) == b""
    assert unpack_vector(b"") == []


def test_unpack_rejects_partial_floats():
    with pytest.raises(ValueError):
        unpack_vector(b"\x00\x00\x80")


def test_top_cosine_matches_skips_other_dimensions():
    candidates = [(1, [1.0, 0.0]), (2, [1.0, 0.0, 0.0]), (3, [0.6, 0.8]), (4, [0.0, 1.0])]
    matches = top_cosine_matches([1.0, 0.0], candidates, min_similarity=0.5)
    assert [key for key, _ in matches] == [1, 3]
    assert matches[1][1] == pytest.approx(0.6)
