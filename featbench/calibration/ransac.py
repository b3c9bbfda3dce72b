"""RANSAC implementation for robust estimation."""

import numpy as np
from typing import Callable, Optional, Tuple


class RANSAC:
    """RANSAC algorithm for outlier rejection."""

    def __init__(self, threshold: float = 3.0, max_iters: int = 1000,
                 min_samples: int = 4, confidence: float = 0.995,
                 seed: Optional[int] = None):
        self.threshold = threshold
        self.max_iters = max_iters
        self.min_samples = min_samples
        self.confidence = confidence
        self.rng = np.random.default_rng(seed)

    def required_iterations(self, inlier_ratio: float) -> int:
        """Iterations needed to draw one all-inlier sample with the configured confidence."""
        if inlier_ratio >= 1.0:
            return 0
        if inlier_ratio <= 0.0 or self.confidence >= 1.0:
            return self.max_iters
        p_good_sample = inlier_ratio ** self.min_samples
        if p_good_sample <= np.finfo(float).eps:
            return self.max_iters
        needed = np.log(1.0 - self.confidence) / np.log(1.0 - p_good_sample)
        return int(min(self.max_iters, np.ceil(needed)))

    def fit(self, data: np.ndarray, model_func: Callable,
            score_func: Callable) -> Tuple[Optional[object], np.ndarray]:
        """
        Fit model using RANSAC.

        Args:
            data: (n, d) array, one row per observation
            model_func: Builds a model from ``min_samples`` rows, or returns
                None for a degenerate sample
            score_func: Returns an (n,) residual array for a model

        Returns:
            Tuple of (best model or None, boolean inlier mask)
        """
        n_samples = len(data)
        if n_samples < self.min_samples:
            return None, np.array([], dtype=bool)

        best_model = None
        best_inliers = np.zeros(n_samples, dtype=bool)
        best_score = -1

        limit = self.max_iters
        iteration = 0
        while iteration < limit:
            iteration += 1
            indices = self.rng.choice(n_samples, self.min_samples, replace=False)
            sample = data[indices]

            model = model_func(sample)
            if model is None:
                continue

            scores = score_func(data, model)
            inliers = scores < self.threshold
            score = int(np.sum(inliers))

            if score > best_score:
                best_score = score
                best_model = model
                best_inliers = inliers
                limit = min(limit, self.required_iterations(score / n_samples))

        return best_model, best_inliers
