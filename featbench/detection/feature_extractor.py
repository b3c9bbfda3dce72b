"""Feature extraction: detect, cap and describe keypoints for an image pair."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from featbench.detection.strategies import FeatureStrategy
from featbench.errors import ErrorKind, StageFailure

logger = logging.getLogger(__name__)


class TruncationPolicy(Enum):
    """How to choose which keypoints survive the cap."""
    FIRST = "first"
    STRONGEST = "strongest"

    def apply(self, keypoints: Sequence[cv2.KeyPoint], cap: int) -> List[cv2.KeyPoint]:
        """Return at most ``cap`` keypoints."""
        if len(keypoints) <= cap:
            return list(keypoints)
        if self is TruncationPolicy.FIRST:
            return list(keypoints[:cap])
        order = sorted(range(len(keypoints)), key=lambda i: -keypoints[i].response)
        return [keypoints[i] for i in order[:cap]]


@dataclass(frozen=True)
class FeatureSet:
    """Keypoints with their index-aligned descriptor rows."""
    keypoints: Tuple[cv2.KeyPoint, ...]
    descriptors: np.ndarray

    def __post_init__(self):
        if len(self.keypoints) != len(self.descriptors):
            raise ValueError(
                f"{len(self.keypoints)} keypoints but {len(self.descriptors)} descriptors"
            )

    def __len__(self) -> int:
        return len(self.keypoints)

    def truncated(self, cap: int) -> 'FeatureSet':
        """Keep the first ``cap`` keypoints and descriptors together."""
        if len(self) <= cap:
            return self
        return FeatureSet(tuple(self.keypoints[:cap]), self.descriptors[:cap])


class FeatureExtractor:
    """Extract a bounded set of keypoints and descriptors per image."""

    def __init__(self, max_keypoints: int = 500,
                 truncation: Union[str, TruncationPolicy] = TruncationPolicy.FIRST,
                 fallback_threshold: int = 20):
        """
        Args:
            max_keypoints: Cap applied to keypoints and descriptors
            truncation: Policy choosing which keypoints survive the cap
            fallback_threshold: FAST threshold used when the detector is
                descriptor-only
        """
        self.max_keypoints = max_keypoints
        self.truncation = TruncationPolicy(truncation)
        self.fallback_threshold = fallback_threshold
        self.fallback_detector = cv2.FastFeatureDetector_create(threshold=fallback_threshold)

    @classmethod
    def from_config(cls, config: dict) -> 'FeatureExtractor':
        extraction = config.get('extraction', {})
        return cls(
            max_keypoints=extraction.get('max_keypoints', 500),
            truncation=extraction.get('truncation', 'first'),
            fallback_threshold=extraction.get('fallback_threshold', 20)
        )

    def detect(self, image: np.ndarray,
               detector: Optional[FeatureStrategy]) -> List[cv2.KeyPoint]:
        """Detect keypoints, substituting FAST when no usable detector is given."""
        if detector is None or not detector.algorithm.can_detect:
            keypoints = list(self.fallback_detector.detect(image, None))
        else:
            keypoints = detector.detect(image)
        return self.truncation.apply(keypoints, self.max_keypoints)

    def extract(self, image: np.ndarray, detector: Optional[FeatureStrategy],
                descriptor: FeatureStrategy) -> Union[FeatureSet, StageFailure]:
        """
        Detect and describe keypoints in a single image.

        Args:
            image: Grayscale image
            detector: Detector strategy, or None to use the FAST fallback
            descriptor: Descriptor strategy

        Returns:
            FeatureSet capped at max_keypoints, or a StageFailure
        """
        try:
            keypoints = self.detect(image, detector)
            keypoints, descriptors = descriptor.describe(image, keypoints)
        except cv2.error as e:
            return StageFailure('extracting', ErrorKind.NUMERICAL, str(e).strip())

        if descriptors is None or len(descriptors) == 0:
            return StageFailure('extracting', ErrorKind.DATA, "empty descriptor set")

        features = FeatureSet(tuple(keypoints), descriptors)
        return features.truncated(self.max_keypoints)

    def extract_pair(self, image1: np.ndarray, image2: np.ndarray,
                     detector: Optional[FeatureStrategy],
                     descriptor: FeatureStrategy) -> Union[Tuple[FeatureSet, FeatureSet], StageFailure]:
        """Extract features from both images; either failing fails the pair."""
        first = self.extract(image1, detector, descriptor)
        if isinstance(first, StageFailure):
            return first
        second = self.extract(image2, detector, descriptor)
        if isinstance(second, StageFailure):
            return second

        logger.debug("Keypoints in image 1: %d, image 2: %d", len(first), len(second))
        return first, second
