"""Performance metrics and evaluation."""

import numpy as np
from typing import Dict
from time import perf_counter


class PerformanceMetrics:
    """Track performance metrics."""

    def __init__(self):
        self.start_times = {}
        self.durations = {}

    def start_timer(self, name: str):
        """Start timing an operation."""
        self.start_times[name] = perf_counter()

    def stop_timer(self, name: str) -> float:
        """Stop timing and return duration in milliseconds."""
        if name not in self.start_times:
            return 0.0
        duration = (perf_counter() - self.start_times.pop(name)) * 1000
        self.durations[name] = duration
        return duration

    def get_summary(self) -> Dict[str, float]:
        """Get summary of all timings."""
        return self.durations.copy()


def reprojection_error_stats(predicted: np.ndarray,
                             ground_truth: np.ndarray) -> Dict[str, float]:
    """Calculate reprojection error statistics."""
    if len(predicted) == 0:
        return {
            'mean_error': float('inf'),
            'median_error': float('inf'),
            'max_error': float('inf'),
            'std_error': 0.0
        }
    errors = np.linalg.norm(predicted - ground_truth, axis=1)
    return {
        'mean_error': float(np.mean(errors)),
        'median_error': float(np.median(errors)),
        'max_error': float(np.max(errors)),
        'std_error': float(np.std(errors))
    }
