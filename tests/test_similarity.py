"""Tests for edit-distance similarity."""

import random
import string
import time

import pytest

from vetchat.cache.similarity import (
    calculate_similarity,
    levenshtein_distance,
    similarity_upper_bound,
)


class TestLevenshtein:
    @pytest.mark.parametrize("a,b,expected", [
        ("kitten", "sitting", 3),
        ("", "abc", 3),
        ("abc", "", 3),
        ("same", "same", 0),
        ("dog", "dogs", 1),
        ("flaw", "lawn", 2),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected

    def test_symmetric(self):
        assert levenshtein_distance("puppy", "guppies") == levenshtein_distance("guppies", "puppy")


class TestSimilarity:
    def test_identical(self):
        assert calculate_similarity("vaccination schedule", "vaccination schedule") == 1.0

    def test_empty_is_zero(self):
        assert calculate_similarity("", "anything") == 0.0
        assert calculate_similarity("", "") == 0.0

    def test_one_edit(self):
        assert calculate_similarity("dog", "dogs") == pytest.approx(0.75)

    def test_upper_bound_never_below_similarity(self):
        a, b = "how often should i walk my dog", "how often should i feed my cat"
        assert similarity_upper_bound(a, b) >= calculate_similarity(a, b)

    def test_upper_bound_from_lengths(self):
        assert similarity_upper_bound("ab", "abcd") == 0.5


def _random_text(seed: int, length: int) -> str:
    rng = random.Random(seed)
    return "".join(rng.choice(string.ascii_lowercase + " ") for _ in range(length))


class TestBoundedDistance:
    @pytest.mark.parametrize("a,b,bound", [
        ("kitten", "sitting", 3),
        ("kitten", "sitting", 5),
        ("flaw", "lawn", 2),
        ("how often should i walk my dog", "how often should i walk my dogs", 4),
    ])
    def test_matches_full_distance_within_bound(self, a, b, bound):
        assert levenshtein_distance(a, b, max_distance=bound) == levenshtein_distance(a, b)

    def test_reports_bound_plus_one_when_exceeded(self):
        assert levenshtein_distance("kitten", "sitting", max_distance=2) == 3
        assert levenshtein_distance("abc", "abcdefgh", max_distance=2) == 3

    def test_zero_bound(self):
        assert levenshtein_distance("same", "same", max_distance=0) == 0
        assert levenshtein_distance("same", "sane", max_distance=0) == 1

    def test_similarity_with_threshold_keeps_close_pairs(self):
        a, b = "how often should i walk my dog", "how often should i walk my dogs"
        assert calculate_similarity(a, b, min_similarity=0.8) == pytest.approx(calculate_similarity(a, b))

    def test_similarity_with_threshold_drops_distant_pairs(self):
        assert calculate_similarity("flea treatment", "grooming tips", min_similarity=0.8) == 0.0

    def test_long_dissimilar_inputs_stop_early(self):
        a, b = _random_text(1, 2000), _random_text(2, 2000)
        started = time.perf_counter()
        assert calculate_similarity(a, b, min_similarity=0.8) == 0.0
        assert time.perf_counter() - started < 5.0
