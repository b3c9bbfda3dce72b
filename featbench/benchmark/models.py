"""Records produced by the combination benchmark."""

from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, NamedTuple, Optional

import numpy as np

from featbench.errors import StageFailure


class CombinationKey(NamedTuple):
    """One (detector, descriptor, matcher) benchmark run."""
    detector: str
    descriptor: str
    matcher: str

    @property
    def label(self) -> str:
        return f"{self.detector}_{self.descriptor}_{self.matcher}"


class CombinationState(Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    MATCHING = "matching"
    FILTERING = "filtering"
    ESTIMATING = "estimating"
    RECORDED = "recorded"
    FAILED = "failed"


@dataclass(frozen=True)
class MatchResult:
    """Scores of one combination."""
    num_matches: int
    num_good_matches: int
    processing_time_ms: float
    homography_success: bool

    @classmethod
    def zeroed(cls, processing_time_ms: float = 0.0) -> 'MatchResult':
        return cls(0, 0, processing_time_ms, False)


@dataclass(frozen=True)
class CombinationOutcome:
    """Final state of a combination with its scores."""
    key: CombinationKey
    result: MatchResult
    state: CombinationState
    failure: Optional[StageFailure] = None
    homography: Optional[np.ndarray] = None
    corners: Optional[np.ndarray] = None

    @property
    def failed(self) -> bool:
        return self.state is CombinationState.FAILED


class BenchmarkResults:
    """
    Insertion-ordered accumulator of combination outcomes.

    Rankings break ties by insertion order, which follows the grid
    traversal (detector, then descriptor, then matcher).
    """

    def __init__(self):
        self._outcomes = OrderedDict()

    def record(self, outcome: CombinationOutcome):
        if outcome.key in self._outcomes:
            raise KeyError(f"Combination {outcome.key.label} already recorded")
        self._outcomes[outcome.key] = outcome

    def __len__(self) -> int:
        return len(self._outcomes)

    def __contains__(self, key) -> bool:
        return key in self._outcomes

    def __getitem__(self, key: CombinationKey) -> CombinationOutcome:
        return self._outcomes[key]

    def __iter__(self) -> Iterator[CombinationOutcome]:
        return iter(self._outcomes.values())

    def keys(self) -> List[CombinationKey]:
        return list(self._outcomes.keys())

    def best_by_quality(self) -> Optional[CombinationOutcome]:
        """Outcome with the most good matches."""
        best = None
        for outcome in self:
            if best is None or outcome.result.num_good_matches > best.result.num_good_matches:
                best = outcome
        return best

    def fastest(self, include_failed: bool = False) -> Optional[CombinationOutcome]:
        """
        Outcome with the lowest processing time.

        Failed combinations stop early and would always look fast, so they
        are skipped unless ``include_failed`` is set. With
        ``include_failed=True`` every recorded outcome competes, zeroed
        failures included, which is the plain minimum over all entries.
        """
        best = None
        for outcome in self:
            if outcome.failed and not include_failed:
                continue
            if best is None or outcome.result.processing_time_ms < best.result.processing_time_ms:
                best = outcome
        return best
