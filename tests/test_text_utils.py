"""
Tests for content fingerprinting and similarity helpers.
"""

import pytest

from pulsewatch.common.text_utils import content_fingerprint, cosine_similarity, text_similarity


class TestContentFingerprint:

    def test_deterministic(self):
        text = "Acme Corp recalls two million widgets."
        assert content_fingerprint(text) == content_fingerprint(text)

    def test_md5_hex_digest(self):
        # md5("hello")
        assert content_fingerprint("hello") == "5d41402abc4b2a76b9719d911017c592"
        assert len(content_fingerprint("anything")) == 32

    def test_any_change_is_new_content(self):
        """No normalization: whitespace and case changes produce a new fingerprint."""
        base = "Acme Corp recalls widgets"
        assert content_fingerprint(base) != content_fingerprint(base + " ")
        assert content_fingerprint(base) != content_fingerprint(base.lower())

    def test_empty_text(self):
        assert content_fingerprint("") == content_fingerprint(None)

    def test_unicode(self):
        assert content_fingerprint("café") != content_fingerprint("cafe")


class TestTextSimilarity:

    def test_identical_text_is_one(self):
        assert text_similarity("acme widgets recall", "acme widgets recall") == 1.0

    def test_symmetric(self):
        a = "acme recalls widgets after complaints"
        b = "widgets recalled by acme"
        assert text_similarity(a, b) == text_similarity(b, a)

    def test_empty_is_zero(self):
        assert text_similarity("", "acme") == 0.0
        assert text_similarity("acme", "") == 0.0
        assert text_similarity(None, "acme") == 0.0

    def test_case_insensitive(self):
        assert text_similarity("Acme Widgets", "acme widgets") == 1.0

    def test_partial_overlap(self):
        # {a, b, c} vs {b, c, d}: 2 shared / 4 total
        assert text_similarity("a b c", "b c d") == pytest.approx(0.5)

    def test_disjoint(self):
        assert text_similarity("alpha beta", "gamma delta") == 0.0


class TestCosineSimilarity:

    def test_same_direction(self):
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])
