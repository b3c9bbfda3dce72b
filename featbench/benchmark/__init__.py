from .harness import BenchmarkHarness
from .models import (
    BenchmarkResults,
    CombinationKey,
    CombinationOutcome,
    CombinationState,
    MatchResult,
)

__all__ = ['BenchmarkHarness', 'BenchmarkResults', 'CombinationKey',
           'CombinationOutcome', 'CombinationState', 'MatchResult']
