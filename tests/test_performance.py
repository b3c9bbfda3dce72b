"""Performance tests."""

import time
from featbench.utils.metrics import PerformanceMetrics, reprojection_error_stats

import numpy as np


class TestPerformance:
    """Test performance tracking."""

    def test_performance_metrics(self):
        """Test performance metrics tracking."""
        metrics = PerformanceMetrics()

        metrics.start_timer('test_operation')
        time.sleep(0.1)
        duration = metrics.stop_timer('test_operation')

        assert 90 < duration < 250  # Should be around 100ms

        summary = metrics.get_summary()
        assert 'test_operation' in summary

    def test_stop_unknown_timer(self):
        assert PerformanceMetrics().stop_timer('never_started') == 0.0

    def test_reprojection_error_stats(self):
        predicted = np.array([[0.0, 0.0], [3.0, 4.0]])
        truth = np.zeros((2, 2))
        stats = reprojection_error_stats(predicted, truth)
        assert stats['mean_error'] == 2.5
        assert stats['max_error'] == 5.0

    def test_reprojection_error_stats_empty(self):
        stats = reprojection_error_stats(np.zeros((0, 2)), np.zeros((0, 2)))
        assert stats['mean_error'] == float('inf')
