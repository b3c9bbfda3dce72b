"""Tests for the matching stage and ratio test."""

import cv2
import numpy as np
import pytest

from featbench.errors import ErrorKind, StageFailure
from featbench.matching.matchers import Candidate, KnnMatches, MatcherKind, MatcherStrategy
from featbench.matching.ratio_test import apply_ratio_test, ratio_threshold
from featbench.registry import resolve_matcher


class BrokenKnnEngine:
    """Matcher double whose bulk k-NN search always fails."""

    def __init__(self, single_matches=None, match_fails=False):
        self.single_matches = single_matches or []
        self.match_fails = match_fails

    def knnMatch(self, query, train, k):
        raise cv2.error("knnMatch unsupported for this descriptor type")

    def match(self, query, train):
        if self.match_fails:
            raise cv2.error("match unsupported too")
        return self.single_matches


@pytest.fixture
def float_descriptors():
    rng = np.random.default_rng(7)
    return rng.random((60, 32)).astype(np.float32)


class TestMatcherStrategy:
    """Test k=2 nearest-neighbour search."""

    def test_bf_self_match(self, float_descriptors):
        """Matching a set against itself finds each descriptor first."""
        matcher = resolve_matcher("BF", False)
        knn = matcher.knn_match(float_descriptors, float_descriptors)
        assert isinstance(knn, KnnMatches)
        assert len(knn) == len(float_descriptors)
        assert not knn.used_fallback
        for i, pair in enumerate(knn.neighbours):
            assert len(pair) == 2
            assert pair[0].train_index == i
            assert pair[0].distance == pytest.approx(0.0, abs=1e-5)
            assert pair[1].distance >= pair[0].distance

    def test_flann_converts_to_float32(self, float_descriptors):
        """The KD-tree index receives float32 even for float64 input."""
        matcher = resolve_matcher("FLANN", False)
        knn = matcher.knn_match(float_descriptors.astype(np.float64),
                                float_descriptors.astype(np.float64))
        assert isinstance(knn, KnnMatches)
        assert len(knn) == len(float_descriptors)

    def test_hamming_neighbour_lists_bounded(self):
        """Binary matching returns at most two neighbours per query."""
        rng = np.random.default_rng(3)
        query = rng.integers(0, 256, (40, 32), dtype=np.uint8)
        train = rng.integers(0, 256, (50, 32), dtype=np.uint8)
        for name in ["BF", "FLANN"]:
            knn = resolve_matcher(name, True).knn_match(query, train)
            assert isinstance(knn, KnnMatches)
            assert all(0 <= len(pair) <= 2 for pair in knn.neighbours)
            assert all(c.distance >= 0 for pair in knn.neighbours for c in pair)

    def test_fallback_synthesizes_second_neighbour(self):
        """A failing knnMatch falls back to single matches plus a 1.5x neighbour."""
        engine = BrokenKnnEngine([cv2.DMatch(0, 4, 10.0), cv2.DMatch(1, 2, 20.0)])
        matcher = MatcherStrategy(MatcherKind.BF, engine, is_binary=True)
        knn = matcher.knn_match(np.zeros((2, 8), np.uint8), np.zeros((5, 8), np.uint8))

        assert knn.used_fallback
        assert len(knn) == 2
        nearest, second = knn.neighbours[0]
        assert nearest == Candidate(0, 4, 10.0)
        assert second.synthetic
        assert second.distance == pytest.approx(15.0)
        assert knn.neighbours[1][1].distance == pytest.approx(30.0)

    def test_fallback_failure_is_reported(self):
        """If single matching fails too, a numerical failure is returned."""
        matcher = MatcherStrategy(MatcherKind.FLANN, BrokenKnnEngine(match_fails=True),
                                  is_binary=True)
        result = matcher.knn_match(np.zeros((2, 8), np.uint8), np.zeros((5, 8), np.uint8))
        assert isinstance(result, StageFailure)
        assert result.kind is ErrorKind.NUMERICAL


class TestRatioTest:
    """Test Lowe's ratio filter."""

    def test_thresholds(self):
        assert ratio_threshold(True) == pytest.approx(0.80)
        assert ratio_threshold(False) == pytest.approx(0.75)

    def test_threshold_depends_only_on_binary_flag(self):
        """Only the threshold changes with the flag, never the distances."""
        neighbours = [[Candidate(0, 0, 78.0), Candidate(0, 1, 100.0)]]
        assert len(apply_ratio_test(neighbours, ratio_threshold(True))) == 1
        assert len(apply_ratio_test(neighbours, ratio_threshold(False))) == 0
        assert neighbours[0][0].distance == 78.0

    def test_threshold_from_config(self):
        assert ratio_threshold(False, {'ratio_float': 0.6}) == pytest.approx(0.6)

    def test_short_lists_rejected(self):
        """Lists with fewer than two neighbours cannot be ratio-tested."""
        neighbours = [[], [Candidate(1, 0, 0.0)], [Candidate(2, 3, 1.0), Candidate(2, 4, 10.0)]]
        good = apply_ratio_test(neighbours, 0.75)
        assert good == [Candidate(2, 3, 1.0)]

    def test_strict_inequality(self):
        """d0 equal to threshold * d1 is rejected."""
        neighbours = [[Candidate(0, 0, 75.0), Candidate(0, 1, 100.0)]]
        assert apply_ratio_test(neighbours, 0.75) == []

    def test_equal_zero_distances_rejected(self):
        """Two identical nearest neighbours are ambiguous."""
        neighbours = [[Candidate(0, 0, 0.0), Candidate(0, 1, 0.0)]]
        assert apply_ratio_test(neighbours, 0.8) == []
