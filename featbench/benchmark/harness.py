"""
Combination benchmark harness

Runs every (detector, descriptor, matcher) combination of a grid over one
image pair and accumulates the scores. A failing combination is recorded
with a zeroed result and the run continues.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import cv2
import numpy as np

from featbench.benchmark.models import (
    BenchmarkResults,
    CombinationKey,
    CombinationOutcome,
    CombinationState,
    MatchResult,
)
from featbench.calibration.homography import HomographyEstimator, project_corners
from featbench.config import load_config
from featbench.detection.feature_extractor import FeatureExtractor
from featbench.errors import ErrorKind, ImageSourceError, StageFailure
from featbench.matching.ratio_test import apply_ratio_test, ratio_threshold
from featbench.registry import (
    Unsupported,
    is_approximate_matcher,
    is_binary_descriptor,
    is_descriptor_only,
    is_valid_pair,
    resolve_descriptor,
    resolve_detector,
    resolve_matcher,
)
from featbench.utils.metrics import PerformanceMetrics

logger = logging.getLogger(__name__)

ResultSink = Callable[[CombinationOutcome], None]
VisualizationSink = Callable[..., None]


def _as_gray(image: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if len(image.shape) == 3 else image


class BenchmarkHarness:
    """Drive extraction, matching, filtering and estimation across a strategy grid."""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 on_result: Optional[ResultSink] = None,
                 on_visualize: Optional[VisualizationSink] = None):
        """
        Args:
            config: Configuration dictionary (defaults if omitted)
            on_result: Called with each outcome once it is recorded
            on_visualize: Called after timing stops with
                (key, image1, keypoints1, image2, keypoints2, good_matches, corners)
                for combinations that produced good matches
        """
        self.config = config or load_config()
        self.on_result = on_result
        self.on_visualize = on_visualize
        self.extractor = FeatureExtractor.from_config(self.config)
        self.estimator = HomographyEstimator.from_config(self.config)

    def is_excluded(self, key: CombinationKey) -> bool:
        """Binary descriptors cannot be searched with the approximate index in use."""
        if not self.config.get('grid', {}).get('exclude_binary_approximate', True):
            return False
        return is_binary_descriptor(key.descriptor) and is_approximate_matcher(key.matcher)

    def build_grid(self, detectors: Optional[Sequence[str]] = None,
                   descriptors: Optional[Sequence[str]] = None,
                   matchers: Optional[Sequence[str]] = None) -> List[CombinationKey]:
        """
        Enumerate combinations, detector outermost and matcher innermost.

        Invalid detector/descriptor pairs and excluded binary/approximate
        combinations are left out entirely.
        """
        strategies = self.config.get('strategies', {})
        detectors = detectors if detectors is not None else strategies.get('detectors', [])
        descriptors = descriptors if descriptors is not None else strategies.get('descriptors', [])
        matchers = matchers if matchers is not None else strategies.get('matchers', [])

        grid = []
        for detector in detectors:
            for descriptor in descriptors:
                if not is_valid_pair(detector, descriptor):
                    continue
                for matcher in matchers:
                    key = CombinationKey(detector, descriptor, matcher)
                    if self.is_excluded(key):
                        continue
                    grid.append(key)
        return grid

    def _failed(self, key: CombinationKey, failure: StageFailure,
                elapsed_ms: float) -> CombinationOutcome:
        logger.warning("%s: %s", key.label, failure)
        return CombinationOutcome(key, MatchResult.zeroed(elapsed_ms),
                                  CombinationState.FAILED, failure=failure)

    def run_combination(self, image1: np.ndarray, image2: np.ndarray,
                        key: CombinationKey) -> CombinationOutcome:
        """
        Run one combination to completion or first failure.

        Timing covers strategy construction through homography estimation;
        corner projection and visualization happen after the timer stops.
        """
        image1, image2 = _as_gray(image1), _as_gray(image2)
        logger.info("Processing: %s (detector) + %s (descriptor) + %s (matcher)",
                    key.detector, key.descriptor, key.matcher)
        metrics = PerformanceMetrics()
        metrics.start_timer(key.label)

        # Descriptor-only names localize keypoints with the FAST fallback
        detector = None
        if not is_descriptor_only(key.detector):
            detector = resolve_detector(key.detector, self.config)
            if isinstance(detector, Unsupported):
                return self._failed(key, detector.to_failure(), metrics.stop_timer(key.label))

        descriptor = resolve_descriptor(key.descriptor, self.config)
        if isinstance(descriptor, Unsupported):
            return self._failed(key, descriptor.to_failure(), metrics.stop_timer(key.label))

        matcher = resolve_matcher(key.matcher, descriptor.is_binary, self.config)
        if isinstance(matcher, Unsupported):
            return self._failed(key, matcher.to_failure(), metrics.stop_timer(key.label))

        logger.debug("%s -> %s", key.label, CombinationState.EXTRACTING.value)
        extracted = self.extractor.extract_pair(image1, image2, detector, descriptor)
        if isinstance(extracted, StageFailure):
            return self._failed(key, extracted, metrics.stop_timer(key.label))
        features1, features2 = extracted

        logger.debug("%s -> %s", key.label, CombinationState.MATCHING.value)
        knn = matcher.knn_match(features1.descriptors, features2.descriptors)
        if isinstance(knn, StageFailure):
            return self._failed(key, knn, metrics.stop_timer(key.label))

        logger.debug("%s -> %s", key.label, CombinationState.FILTERING.value)
        threshold = ratio_threshold(descriptor.is_binary, self.config.get('matching'))
        good_matches = apply_ratio_test(knn.neighbours, threshold)

        logger.debug("%s -> %s", key.label, CombinationState.ESTIMATING.value)
        estimation = self.estimator.estimate_from_matches(
            good_matches, features1.keypoints, features2.keypoints
        )
        elapsed = metrics.stop_timer(key.label)

        result = MatchResult(
            num_matches=len(knn),
            num_good_matches=len(good_matches),
            processing_time_ms=elapsed,
            homography_success=estimation.success
        )
        logger.info("%s: total matches %d, good matches %d, %.1f ms, homography %s",
                    key.label, result.num_matches, result.num_good_matches,
                    elapsed, "yes" if result.homography_success else "no")

        corners = None
        if estimation.success:
            height, width = image1.shape[:2]
            corners = project_corners(estimation.homography, width, height)

        if self.on_visualize is not None and good_matches:
            self.on_visualize(key, image1, features1.keypoints, image2,
                              features2.keypoints, good_matches, corners)

        return CombinationOutcome(key, result, CombinationState.RECORDED,
                                  homography=estimation.homography, corners=corners)

    def run(self, image1: Optional[np.ndarray], image2: Optional[np.ndarray],
            combinations: Optional[Iterable[CombinationKey]] = None) -> BenchmarkResults:
        """
        Benchmark every combination over the image pair.

        Args:
            image1: Query (object) image
            image2: Reference (scene) image
            combinations: Keys to run; defaults to the configured grid

        Returns:
            BenchmarkResults in traversal order

        Raises:
            ImageSourceError: if either image has no data
        """
        for label, image in (("object", image1), ("scene", image2)):
            if image is None or image.size == 0:
                raise ImageSourceError(f"No data for the {label} image")

        keys = self.build_grid() if combinations is None else list(combinations)
        results = BenchmarkResults()

        for key in keys:
            key = CombinationKey(*key)
            if not is_valid_pair(key.detector, key.descriptor):
                logger.warning("Skipping invalid combination %s: %s cannot detect keypoints",
                               key.label, key.detector)
                continue
            if key in results:
                continue

            metrics = PerformanceMetrics()
            metrics.start_timer(key.label)
            try:
                outcome = self.run_combination(image1, image2, key)
            except cv2.error as e:
                outcome = self._failed(
                    key, StageFailure('processing', ErrorKind.NUMERICAL, str(e).strip()),
                    metrics.stop_timer(key.label)
                )
            except Exception as e:
                logger.exception("Unexpected error in %s", key.label)
                outcome = self._failed(
                    key, StageFailure('processing', ErrorKind.CONFIGURATION,
                                      f"{type(e).__name__}: {e}"),
                    metrics.stop_timer(key.label)
                )

            results.record(outcome)
            if self.on_result is not None:
                self.on_result(outcome)

        logger.info("Benchmarked %d combinations (%d failed)", len(results),
                    sum(1 for o in results if o.failed))
        return results
