"""
featbench - feature matching benchmark

Compares detector, descriptor and matcher combinations on an image pair
by ratio-tested match counts, robust homography success and timing.
"""

from .benchmark.harness import BenchmarkHarness
from .benchmark.models import BenchmarkResults, CombinationKey, MatchResult
from .config import DEFAULT_CONFIG, load_config

__all__ = ['BenchmarkHarness', 'BenchmarkResults', 'CombinationKey', 'MatchResult',
           'DEFAULT_CONFIG', 'load_config']
__version__ = '1.0.0'
