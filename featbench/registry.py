"""
Strategy registry

Resolves detector, descriptor and matcher names into strategy objects.
Names outside the closed set, or algorithms the installed OpenCV build
lacks, resolve to an ``Unsupported`` value instead of raising.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import cv2

from featbench.config import DEFAULT_CONFIG
from featbench.detection.strategies import FeatureAlgorithm, FeatureStrategy, create_engine
from featbench.errors import ErrorKind, StageFailure
from featbench.matching.matchers import MatcherKind, MatcherStrategy, flann_index_params

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unsupported:
    """A strategy name that cannot be used in the requested role."""
    name: str
    role: str
    reason: str

    def to_failure(self) -> StageFailure:
        return StageFailure('resolving', ErrorKind.CONFIGURATION,
                            f"{self.role} {self.name!r}: {self.reason}")


def is_descriptor_only(name: str) -> bool:
    """True for algorithms that describe keypoints but cannot find them."""
    algorithm = FeatureAlgorithm.from_name(name)
    return algorithm is not None and algorithm.descriptor_only


def is_valid_pair(detector_name: str, descriptor_name: str) -> bool:
    """A descriptor-only algorithm cannot act as the detector."""
    return not is_descriptor_only(detector_name)


def is_binary_descriptor(name: str) -> bool:
    algorithm = FeatureAlgorithm.from_name(name)
    return algorithm is not None and algorithm.is_binary


def is_approximate_matcher(name: str) -> bool:
    kind = MatcherKind.from_name(name)
    return kind is not None and kind.is_approximate


def _builds_with_defaults(algorithm: FeatureAlgorithm) -> bool:
    try:
        create_engine(algorithm, {})
    except (cv2.error, AttributeError):
        return False
    return True


def _resolve_feature(name: str, role: str, section: Dict[str, Any]) -> Union[FeatureStrategy, Unsupported]:
    algorithm = FeatureAlgorithm.from_name(name)
    if algorithm is None:
        return Unsupported(name, role, "unrecognized name")

    if role == 'detector' and not algorithm.can_detect:
        return Unsupported(name, role, "descriptor-only algorithm cannot detect keypoints")
    if role == 'descriptor' and not algorithm.can_describe:
        return Unsupported(name, role, "detector-only algorithm cannot compute descriptors")

    params = section.get(algorithm.label, {}) or {}
    try:
        engine = create_engine(algorithm, params)
    except AttributeError as e:
        logger.warning("%s %s unavailable in this OpenCV build: %s", role, name, e)
        return Unsupported(name, role, "not available in the installed OpenCV build")
    except (cv2.error, TypeError, ValueError) as e:
        # Bad options if the same algorithm builds without them
        if params and _builds_with_defaults(algorithm):
            logger.warning("%s %s rejected its tuning options: %s", role, name, e)
            return Unsupported(name, role, f"invalid tuning options: {str(e).strip()}")
        logger.warning("%s %s unavailable in this OpenCV build: %s", role, name, e)
        return Unsupported(name, role, "not available in the installed OpenCV build")

    return FeatureStrategy(algorithm, engine)


def resolve_detector(name: str, config: Optional[Dict[str, Any]] = None) -> Union[FeatureStrategy, Unsupported]:
    """Build the detector strategy named ``name``."""
    config = config or DEFAULT_CONFIG
    return _resolve_feature(name, 'detector', config.get('detectors', {}))


def resolve_descriptor(name: str, config: Optional[Dict[str, Any]] = None) -> Union[FeatureStrategy, Unsupported]:
    """Build the descriptor strategy named ``name``."""
    config = config or DEFAULT_CONFIG
    return _resolve_feature(name, 'descriptor', config.get('descriptors', {}))


def resolve_matcher(name: str, is_binary: bool,
                    config: Optional[Dict[str, Any]] = None) -> Union[MatcherStrategy, Unsupported]:
    """
    Build the matcher strategy named ``name``.

    Args:
        name: Matcher name ("BF" or "FLANN")
        is_binary: Whether the descriptors are Hamming-compared; decides the
            norm for brute force and the index type for FLANN
        config: Configuration dictionary

    Returns:
        MatcherStrategy, or Unsupported for an unrecognized name
    """
    config = config or DEFAULT_CONFIG
    matching = config.get('matching', {})

    kind = MatcherKind.from_name(name)
    if kind is None:
        return Unsupported(name, 'matcher', "unrecognized name")

    if kind is MatcherKind.BF:
        norm = cv2.NORM_HAMMING if is_binary else cv2.NORM_L2
        engine = cv2.BFMatcher(norm)
    else:
        flann = matching.get('flann', {})
        index_params = flann_index_params(is_binary, flann)
        search_params = dict(checks=flann.get('search', {}).get('checks', 50))
        engine = cv2.FlannBasedMatcher(index_params, search_params)

    return MatcherStrategy(
        kind, engine, is_binary,
        fallback_distance_multiplier=matching.get('fallback_distance_multiplier', 1.5)
    )
