"""Descriptor matchers returning the two nearest neighbours per query."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

import cv2
import numpy as np

from featbench.errors import ErrorKind, StageFailure

logger = logging.getLogger(__name__)

KNN_NEIGHBOURS = 2

FLANN_INDEX_KDTREE = 1
FLANN_INDEX_LSH = 6


class MatcherKind(Enum):
    """Supported matcher families."""

    BF = ("BF", False)
    FLANN = ("FLANN", True)

    def __init__(self, label: str, is_approximate: bool):
        self.label = label
        self.is_approximate = is_approximate

    @classmethod
    def from_name(cls, name: str) -> Optional['MatcherKind']:
        return cls.__members__.get(str(name).upper())


@dataclass(frozen=True)
class Candidate:
    """One neighbour of a query descriptor."""
    query_index: int
    train_index: int
    distance: float
    synthetic: bool = False

    @classmethod
    def from_dmatch(cls, match: cv2.DMatch) -> 'Candidate':
        return cls(int(match.queryIdx), int(match.trainIdx), max(float(match.distance), 0.0))


@dataclass
class KnnMatches:
    """Nearest-neighbour lists, one per query descriptor."""
    neighbours: List[List[Candidate]] = field(default_factory=list)
    used_fallback: bool = False

    def __len__(self) -> int:
        return len(self.neighbours)


def flann_index_params(is_binary: bool, flann_config: Optional[dict] = None) -> dict:
    """Pick the FLANN index from the descriptor type: LSH for binary, KD-tree otherwise."""
    flann_config = flann_config or {}
    if is_binary:
        lsh = flann_config.get('lsh', {})
        return dict(algorithm=FLANN_INDEX_LSH,
                    table_number=lsh.get('table_number', 6),
                    key_size=lsh.get('key_size', 12),
                    multi_probe_level=lsh.get('multi_probe_level', 1))
    kdtree = flann_config.get('kdtree', {})
    return dict(algorithm=FLANN_INDEX_KDTREE, trees=kdtree.get('trees', 5))


class MatcherStrategy:
    """Wraps an OpenCV DescriptorMatcher for k=2 nearest-neighbour search."""

    def __init__(self, kind: MatcherKind, engine, is_binary: bool,
                 fallback_distance_multiplier: float = 1.5):
        """
        Args:
            kind: Matcher family
            engine: OpenCV matcher exposing knnMatch and match
            is_binary: Whether descriptors are compared by Hamming distance
            fallback_distance_multiplier: Scale applied to the nearest
                distance to synthesize a second neighbour when knnMatch fails
        """
        self.kind = kind
        self.engine = engine
        self.is_binary = is_binary
        self.fallback_distance_multiplier = fallback_distance_multiplier

    @property
    def name(self) -> str:
        return self.kind.label

    def _prepare(self, descriptors: np.ndarray) -> np.ndarray:
        # The KD-tree index only accepts float32 input
        if self.kind is MatcherKind.FLANN and not self.is_binary \
                and descriptors.dtype != np.float32:
            return descriptors.astype(np.float32)
        return descriptors

    def knn_match(self, query: np.ndarray,
                  train: np.ndarray) -> Union[KnnMatches, StageFailure]:
        """
        Find the two nearest neighbours in ``train`` for every row of ``query``.

        If the bulk k-NN search fails, single nearest-neighbour matching is
        used instead and each list gets a synthetic second neighbour whose
        distance is only a pessimistic stand-in.
        """
        query = self._prepare(query)
        train = self._prepare(train)

        try:
            raw = self.engine.knnMatch(query, train, k=KNN_NEIGHBOURS)
        except cv2.error as e:
            logger.warning("knnMatch failed for %s, using single-match fallback: %s",
                           self.name, e)
            return self._fallback_match(query, train)

        neighbours = [
            [Candidate.from_dmatch(m) for m in pair[:KNN_NEIGHBOURS]]
            for pair in raw
        ]
        return KnnMatches(neighbours=neighbours)

    def _fallback_match(self, query: np.ndarray,
                        train: np.ndarray) -> Union[KnnMatches, StageFailure]:
        try:
            single = self.engine.match(query, train)
        except cv2.error as e:
            return StageFailure('matching', ErrorKind.NUMERICAL, str(e).strip())

        neighbours = []
        for m in single:
            nearest = Candidate.from_dmatch(m)
            second = Candidate(nearest.query_index, -1,
                               nearest.distance * self.fallback_distance_multiplier,
                               synthetic=True)
            neighbours.append([nearest, second])
        return KnnMatches(neighbours=neighbours, used_fallback=True)

    def __repr__(self) -> str:
        return f"MatcherStrategy({self.name}, binary={self.is_binary})"
