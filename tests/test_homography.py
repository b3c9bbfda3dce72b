"""Tests for robust homography estimation."""

import cv2
import numpy as np
import pytest

from featbench.calibration.homography import (
    HomographyEstimator,
    build_correspondences,
    fit_homography_dlt,
    has_collinear_triplet,
    is_non_degenerate,
    normalize_points,
    project_corners,
    reprojection_errors,
    transform_points,
)
from featbench.calibration.optimizer import HomographyOptimizer
from featbench.calibration.ransac import RANSAC
from featbench.matching.matchers import Candidate


H_TRUE = np.array([
    [1.05, 0.08, 15.0],
    [-0.03, 0.98, 10.0],
    [0.0001, 0.00005, 1.0],
])

SQUARE = np.array([[100, 50], [400, 60], [380, 350], [90, 330]], dtype=float)


class TestNormalizePoints:
    def test_centroid_and_scale(self):
        pts = np.array([[10, 20], [30, 40], [50, 65], [70, 80]], dtype=float)
        pts_norm, T = normalize_points(pts)
        np.testing.assert_allclose(np.mean(pts_norm, axis=0), [0, 0], atol=1e-10)
        dists = np.sqrt(np.sum(pts_norm ** 2, axis=1))
        np.testing.assert_allclose(np.mean(dists), np.sqrt(2), atol=1e-10)
        np.testing.assert_allclose(transform_points(pts, T), pts_norm, atol=1e-10)


class TestFitHomographyDLT:
    def test_identity(self):
        H = fit_homography_dlt(SQUARE, SQUARE)
        np.testing.assert_allclose(H, np.eye(3), atol=1e-8)

    def test_four_points_exact(self):
        """Four correspondences in general position are reproduced exactly."""
        dst = transform_points(SQUARE, H_TRUE)
        H = fit_homography_dlt(SQUARE, dst)
        assert H is not None
        np.testing.assert_allclose(H, H_TRUE, rtol=1e-6, atol=1e-9)
        np.testing.assert_allclose(reprojection_errors(H, SQUARE, dst), 0, atol=1e-6)

    def test_too_few_points(self):
        assert fit_homography_dlt(SQUARE[:3], SQUARE[:3]) is None


class TestHelpers:
    def test_collinear_detection(self):
        assert has_collinear_triplet(np.array([[0, 0], [1, 1], [2, 2], [5, 0]], dtype=float))
        assert not has_collinear_triplet(SQUARE)

    def test_degeneracy(self):
        assert is_non_degenerate(np.eye(3))
        assert not is_non_degenerate(None)
        assert not is_non_degenerate(np.zeros((3, 3)))
        assert not is_non_degenerate(np.full((3, 3), np.nan))

    def test_build_correspondences_bounds_checked(self):
        """Stale indices beyond the keypoint sequences are dropped."""
        kps1 = [cv2.KeyPoint(float(i), float(i), 5.0) for i in range(3)]
        kps2 = [cv2.KeyPoint(float(10 + i), 0.0, 5.0) for i in range(2)]
        matches = [Candidate(0, 1, 1.0), Candidate(5, 0, 1.0),
                   Candidate(2, 7, 1.0), Candidate(2, 0, 1.0), Candidate(0, -1, 1.0)]
        src, dst = build_correspondences(matches, kps1, kps2)
        np.testing.assert_allclose(src, [[0, 0], [2, 2]])
        np.testing.assert_allclose(dst, [[11, 0], [10, 0]])

    def test_build_correspondences_empty(self):
        src, dst = build_correspondences([], [], [])
        assert src.shape == (0, 2)
        assert dst.shape == (0, 2)

    def test_project_corners(self):
        H = np.array([[1, 0, 20], [0, 1, -5], [0, 0, 1]], dtype=float)
        corners = project_corners(H, 100, 50)
        np.testing.assert_allclose(corners, [[20, -5], [120, -5], [120, 45], [20, 45]], atol=1e-4)


class TestHomographyEstimator:
    def test_from_config(self):
        estimator = HomographyEstimator.from_config(
            {'calibration': {'ransac_threshold': 1.5, 'refine': False, 'seed': 3}})
        assert estimator.ransac_threshold == 1.5
        assert estimator.refine is False
        assert estimator.seed == 3

    def test_exactly_four_correspondences(self):
        """Four non-collinear points give the exact transform."""
        dst = transform_points(SQUARE, H_TRUE)
        result = HomographyEstimator(seed=0).estimate(SQUARE, dst)
        assert result.success
        assert result.num_inliers == 4
        np.testing.assert_allclose(result.homography, H_TRUE, rtol=1e-6, atol=1e-9)
        assert result.mean_error == pytest.approx(0.0, abs=1e-6)

    def test_fewer_than_four_never_samples(self, monkeypatch):
        """Under four correspondences fail before any sampling."""
        def forbidden(*args, **kwargs):
            raise AssertionError("RANSAC must not run")

        monkeypatch.setattr(RANSAC, "fit", forbidden)
        result = HomographyEstimator().estimate(SQUARE[:3], SQUARE[:3])
        assert not result.success
        assert result.homography is None
        assert result.num_correspondences == 3

    def test_collinear_points_fail(self):
        pts = np.array([[0, 0], [1, 1], [2, 2], [3, 3], [4, 4]], dtype=float)
        result = HomographyEstimator(seed=0).estimate(pts, pts * 2)
        assert not result.success
        assert result.homography is None

    def test_outliers_rejected(self):
        """Consensus ignores gross outliers and recovers the transform."""
        rng = np.random.default_rng(0)
        src = rng.uniform(0, 500, (60, 2))
        dst = transform_points(src, H_TRUE)
        dst[:15] = rng.uniform(0, 500, (15, 2))

        result = HomographyEstimator(seed=0).estimate(src, dst)
        assert result.success
        assert result.num_inliers >= 45
        assert result.inlier_mask[15:].all()
        np.testing.assert_allclose(transform_points(src[15:], result.homography),
                                   dst[15:], atol=1e-3)

    def test_estimate_from_matches(self):
        dst = transform_points(SQUARE, H_TRUE)
        kps1 = [cv2.KeyPoint(float(x), float(y), 5.0) for x, y in SQUARE]
        kps2 = [cv2.KeyPoint(float(x), float(y), 5.0) for x, y in dst]
        matches = [Candidate(i, i, 0.0) for i in range(4)] + [Candidate(9, 0, 0.0)]
        result = HomographyEstimator(seed=0).estimate_from_matches(matches, kps1, kps2)
        assert result.success
        assert result.num_correspondences == 4
        # KeyPoint coordinates are float32
        np.testing.assert_allclose(result.homography, H_TRUE, rtol=1e-3, atol=1e-4)


class TestHomographyOptimizer:
    def test_refines_perturbed_homography(self):
        rng = np.random.default_rng(1)
        src = rng.uniform(0, 400, (30, 2))
        dst = transform_points(src, H_TRUE)
        H0 = H_TRUE.copy()
        H0[0, 2] += 4.0
        H0[1, 1] *= 1.01

        refined = HomographyOptimizer().optimize(H0, src, dst)
        assert refined is not None
        np.testing.assert_allclose(transform_points(src, refined), dst, atol=1e-4)

    def test_too_few_points(self):
        assert HomographyOptimizer().optimize(np.eye(3), SQUARE[:3], SQUARE[:3]) is None
