"""Keypoint detector and descriptor strategies backed by OpenCV."""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np


class FeatureAlgorithm(Enum):
    """Closed set of feature algorithms and what each one can do."""

    SIFT = ("SIFT", True, True, False)
    SURF = ("SURF", True, True, False)
    ORB = ("ORB", True, True, True)
    FAST = ("FAST", True, False, False)
    BRISK = ("BRISK", True, True, True)
    BRIEF = ("BRIEF", False, True, True)
    FREAK = ("FREAK", False, True, True)

    def __init__(self, label: str, can_detect: bool, can_describe: bool,
                 is_binary: bool):
        self.label = label
        self.can_detect = can_detect
        self.can_describe = can_describe
        self.is_binary = is_binary

    @classmethod
    def from_name(cls, name: str) -> Optional['FeatureAlgorithm']:
        """Look up an algorithm by name, case-insensitively."""
        return cls.__members__.get(str(name).upper())

    @property
    def descriptor_only(self) -> bool:
        return self.can_describe and not self.can_detect


def create_engine(algorithm: FeatureAlgorithm, params: Dict[str, Any]):
    """
    Construct the OpenCV object behind an algorithm.

    Args:
        algorithm: Which algorithm to build
        params: Named tuning options, passed through without interpretation

    Returns:
        An OpenCV Feature2D instance

    Raises:
        cv2.error or AttributeError when the installed OpenCV build
        does not ship the algorithm (e.g. non-free SURF); cv2.error or
        TypeError when an option has the wrong name or type
    """
    if algorithm is FeatureAlgorithm.SIFT:
        return cv2.SIFT_create(nfeatures=params.get('nfeatures', 500))
    elif algorithm is FeatureAlgorithm.SURF:
        return cv2.xfeatures2d.SURF_create(
            hessianThreshold=params.get('hessian_threshold', 100),
            nOctaves=params.get('n_octaves', 3),
            nOctaveLayers=params.get('n_octave_layers', 3),
            extended=params.get('extended', False)
        )
    elif algorithm is FeatureAlgorithm.ORB:
        return cv2.ORB_create(nfeatures=params.get('nfeatures', 700))
    elif algorithm is FeatureAlgorithm.FAST:
        return cv2.FastFeatureDetector_create(threshold=params.get('threshold', 20))
    elif algorithm is FeatureAlgorithm.BRISK:
        return cv2.BRISK_create(
            thresh=params.get('thresh', 30),
            octaves=params.get('octaves', 3),
            patternScale=params.get('pattern_scale', 1.0)
        )
    elif algorithm is FeatureAlgorithm.BRIEF:
        return cv2.xfeatures2d.BriefDescriptorExtractor_create(bytes=params.get('bytes', 32))
    else:
        return cv2.xfeatures2d.FREAK_create(**params)


class FeatureStrategy:
    """A detector and/or descriptor with a uniform detect/describe interface."""

    def __init__(self, algorithm: FeatureAlgorithm, engine):
        self.algorithm = algorithm
        self.engine = engine

    @property
    def name(self) -> str:
        return self.algorithm.label

    @property
    def is_binary(self) -> bool:
        return self.algorithm.is_binary

    def detect(self, image: np.ndarray) -> List[cv2.KeyPoint]:
        """Locate keypoints in a grayscale image."""
        if not self.algorithm.can_detect:
            raise TypeError(f"{self.name} cannot detect keypoints")
        return list(self.engine.detect(image, None))

    def describe(self, image: np.ndarray,
                 keypoints: List[cv2.KeyPoint]) -> Tuple[List[cv2.KeyPoint], Optional[np.ndarray]]:
        """
        Compute descriptors for the given keypoints.

        The engine may drop keypoints it cannot describe (e.g. near the
        border), so the surviving keypoints are returned alongside.
        """
        if not self.algorithm.can_describe:
            raise TypeError(f"{self.name} cannot compute descriptors")
        kept, descriptors = self.engine.compute(image, keypoints)
        return list(kept), descriptors

    def __repr__(self) -> str:
        return f"FeatureStrategy({self.name})"
