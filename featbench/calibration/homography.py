"""Robust homography estimation from matched keypoints."""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from featbench.calibration.optimizer import HomographyOptimizer
from featbench.calibration.ransac import RANSAC
from featbench.utils.metrics import reprojection_error_stats

logger = logging.getLogger(__name__)

MIN_CORRESPONDENCES = 4


def normalize_points(pts: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Hartley normalization: centroid to origin, mean distance sqrt(2).

    Returns:
        Tuple of (normalized points, 3x3 matrix T with pts_norm_h = T @ pts_h)
    """
    centroid = np.mean(pts, axis=0)
    centered = pts - centroid
    mean_dist = np.mean(np.sqrt(np.sum(centered ** 2, axis=1)))
    if mean_dist < 1e-10:
        mean_dist = 1e-10
    scale = np.sqrt(2.0) / mean_dist

    T = np.array([
        [scale, 0.0, -scale * centroid[0]],
        [0.0, scale, -scale * centroid[1]],
        [0.0, 0.0, 1.0],
    ])
    return centered * scale, T


def fit_homography_dlt(src: np.ndarray, dst: np.ndarray) -> Optional[np.ndarray]:
    """
    Direct Linear Transform over n >= 4 correspondences.

    Exact for four points in general position, algebraic least squares
    for more. Returns None when the system is degenerate.
    """
    n = len(src)
    if n < MIN_CORRESPONDENCES or len(dst) != n:
        return None

    src_norm, T1 = normalize_points(src)
    dst_norm, T2 = normalize_points(dst)

    A = np.zeros((2 * n, 9))
    for i in range(n):
        x1, y1 = src_norm[i]
        x2, y2 = dst_norm[i]
        A[2 * i] = [x1, y1, 1, 0, 0, 0, -x2 * x1, -x2 * y1, -x2]
        A[2 * i + 1] = [0, 0, 0, x1, y1, 1, -y2 * x1, -y2 * y1, -y2]

    try:
        _, _, Vt = np.linalg.svd(A)
        H = np.linalg.inv(T2) @ Vt[-1].reshape(3, 3) @ T1
    except np.linalg.LinAlgError:
        return None

    if abs(H[2, 2]) < 1e-15:
        return None
    H = H / H[2, 2]
    return H if is_non_degenerate(H) else None


def is_non_degenerate(H: Optional[np.ndarray]) -> bool:
    """A usable homography is a finite, invertible, well-conditioned 3x3 matrix."""
    if H is None or H.shape != (3, 3) or not np.all(np.isfinite(H)):
        return False
    if abs(np.linalg.det(H)) < 1e-10:
        return False
    return np.linalg.cond(H) < 1e12


def has_collinear_triplet(pts: np.ndarray, tol: float = 1e-6) -> bool:
    """True if any three of the points are (nearly) collinear."""
    n = len(pts)
    for i in range(n):
        for j in range(i + 1, n):
            for k in range(j + 1, n):
                a = pts[j] - pts[i]
                b = pts[k] - pts[i]
                if abs(a[0] * b[1] - a[1] * b[0]) <= tol:
                    return True
    return False


def transform_points(points: np.ndarray, H: np.ndarray) -> np.ndarray:
    """Transform points using homography matrix; points at infinity become inf."""
    points_h = np.hstack([points, np.ones((points.shape[0], 1))])
    transformed = (H @ points_h.T).T
    w = transformed[:, 2:]
    with np.errstate(divide='ignore', invalid='ignore'):
        out = transformed[:, :2] / w
    out[np.abs(w[:, 0]) < 1e-10] = np.inf
    return out


def reprojection_errors(H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Euclidean distance between H(src) and dst for each correspondence."""
    projected = transform_points(src, H)
    errors = np.linalg.norm(projected - dst, axis=1)
    return np.where(np.isfinite(errors), errors, np.inf)


def build_correspondences(matches: Sequence, keypoints1: Sequence[cv2.KeyPoint],
                          keypoints2: Sequence[cv2.KeyPoint]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Dereference match indices into point arrays.

    Indices outside the live keypoint sequences are dropped.
    """
    src, dst = [], []
    for m in matches:
        if 0 <= m.query_index < len(keypoints1) and 0 <= m.train_index < len(keypoints2):
            src.append(keypoints1[m.query_index].pt)
            dst.append(keypoints2[m.train_index].pt)
    return (np.array(src, dtype=np.float64).reshape(-1, 2),
            np.array(dst, dtype=np.float64).reshape(-1, 2))


def project_corners(H: np.ndarray, width: int, height: int) -> np.ndarray:
    """Map the image corners (TL, TR, BR, BL) through H."""
    corners = np.array([[0, 0], [width, 0], [width, height], [0, height]],
                       dtype=np.float32).reshape(-1, 1, 2)
    return cv2.perspectiveTransform(corners, H.astype(np.float64)).reshape(-1, 2)


@dataclass
class HomographyResult:
    """Outcome of robust estimation; ``homography`` is None on failure."""
    homography: Optional[np.ndarray] = None
    inlier_mask: np.ndarray = field(default_factory=lambda: np.array([], dtype=bool))
    num_correspondences: int = 0
    mean_error: float = float('inf')
    reason: str = ""

    @property
    def success(self) -> bool:
        return self.homography is not None

    @property
    def num_inliers(self) -> int:
        return int(np.sum(self.inlier_mask))


class HomographyEstimator:
    """Estimate a homography with RANSAC, a least-squares refit and optional LM refinement."""

    def __init__(self, ransac_threshold: float = 3.0, max_iters: int = 2000,
                 confidence: float = 0.995, refine: bool = True,
                 refine_iterations: int = 100, seed: Optional[int] = None):
        self.ransac_threshold = ransac_threshold
        self.max_iters = max_iters
        self.confidence = confidence
        self.refine = refine
        self.seed = seed
        self.optimizer = HomographyOptimizer(max_iters=refine_iterations)

    @classmethod
    def from_config(cls, config: dict) -> 'HomographyEstimator':
        calibration = config.get('calibration', {})
        return cls(
            ransac_threshold=calibration.get('ransac_threshold', 3.0),
            max_iters=calibration.get('ransac_iterations', 2000),
            confidence=calibration.get('confidence', 0.995),
            refine=calibration.get('refine', True),
            refine_iterations=calibration.get('refine_iterations', 100),
            seed=calibration.get('seed')
        )

    def _fit_sample(self, sample: np.ndarray) -> Optional[np.ndarray]:
        src, dst = sample[:, :2], sample[:, 2:]
        if has_collinear_triplet(src) or has_collinear_triplet(dst):
            return None
        return fit_homography_dlt(src, dst)

    def _score(self, data: np.ndarray, H: np.ndarray) -> np.ndarray:
        return reprojection_errors(H, data[:, :2], data[:, 2:])

    def _inliers(self, H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        return reprojection_errors(H, src, dst) < self.ransac_threshold

    def estimate(self, src_points: np.ndarray, dst_points: np.ndarray) -> HomographyResult:
        """
        Estimate the homography mapping src_points onto dst_points.

        Args:
            src_points: (n, 2) points in the query image
            dst_points: (n, 2) points in the reference image

        Returns:
            HomographyResult; failure is reported through ``success``
        """
        src = np.asarray(src_points, dtype=np.float64).reshape(-1, 2)
        dst = np.asarray(dst_points, dtype=np.float64).reshape(-1, 2)
        n = len(src)

        if n < MIN_CORRESPONDENCES or len(dst) != n:
            return HomographyResult(num_correspondences=n,
                                    reason=f"need {MIN_CORRESPONDENCES} correspondences, got {n}")

        ransac = RANSAC(threshold=self.ransac_threshold, max_iters=self.max_iters,
                        min_samples=MIN_CORRESPONDENCES, confidence=self.confidence,
                        seed=self.seed)
        H, inliers = ransac.fit(np.hstack([src, dst]), self._fit_sample, self._score)
        if H is None or np.sum(inliers) < MIN_CORRESPONDENCES:
            return HomographyResult(num_correspondences=n, reason="degenerate configuration")

        refit = fit_homography_dlt(src[inliers], dst[inliers])
        if refit is not None:
            refit_inliers = self._inliers(refit, src, dst)
            if np.sum(refit_inliers) >= np.sum(inliers):
                H, inliers = refit, refit_inliers

        if self.refine and np.sum(inliers) > MIN_CORRESPONDENCES:
            refined = self.optimizer.optimize(H, src[inliers], dst[inliers])
            if is_non_degenerate(refined):
                refined_inliers = self._inliers(refined, src, dst)
                if np.sum(refined_inliers) >= np.sum(inliers):
                    H, inliers = refined, refined_inliers

        if not is_non_degenerate(H):
            return HomographyResult(num_correspondences=n, reason="degenerate transform")

        stats = reprojection_error_stats(transform_points(src[inliers], H), dst[inliers])
        logger.debug("Homography: %d/%d inliers, mean error %.3f px",
                     int(np.sum(inliers)), n, stats['mean_error'])
        return HomographyResult(homography=H, inlier_mask=inliers,
                                num_correspondences=n, mean_error=stats['mean_error'])

    def estimate_from_matches(self, matches: Sequence, keypoints1: Sequence[cv2.KeyPoint],
                              keypoints2: Sequence[cv2.KeyPoint]) -> HomographyResult:
        """Build bounds-checked correspondences from matches and estimate."""
        src, dst = build_correspondences(matches, keypoints1, keypoints2)
        return self.estimate(src, dst)
