"""Tabular and JSON presentation of benchmark results."""

from typing import Any, Dict, List

from featbench.benchmark.models import BenchmarkResults, CombinationOutcome


def format_results_table(results: BenchmarkResults) -> str:
    """Render the comparative results table."""
    header = (f"{'Combination':>25}{'Matches':>12}{'Good':>12}"
              f"{'Time (ms)':>12}{'Homography':>15}")
    lines = ["=== COMPARATIVE RESULTS ===", header, "-" * 76]
    for outcome in results:
        result = outcome.result
        lines.append(
            f"{outcome.key.label:>25}{result.num_matches:>12}{result.num_good_matches:>12}"
            f"{result.processing_time_ms:>12.1f}"
            f"{('Yes' if result.homography_success else 'No'):>15}"
        )
    return "\n".join(lines)


def format_summary(results: BenchmarkResults) -> str:
    """Best-by-quality and fastest lines."""
    lines = []
    best = results.best_by_quality()
    if best is not None:
        lines.append(f"Best combination (most good matches): {best.key.label} "
                     f"with {best.result.num_good_matches} good matches")
    fastest = results.fastest()
    if fastest is not None:
        lines.append(f"Fastest combination: {fastest.key.label} "
                     f"with {fastest.result.processing_time_ms:.1f} ms")
    return "\n".join(lines)


def outcome_to_dict(outcome: CombinationOutcome) -> Dict[str, Any]:
    result = outcome.result
    return {
        "detector": outcome.key.detector,
        "descriptor": outcome.key.descriptor,
        "matcher": outcome.key.matcher,
        "state": outcome.state.value,
        "num_matches": result.num_matches,
        "num_good_matches": result.num_good_matches,
        "processing_time_ms": round(result.processing_time_ms, 3),
        "homography_success": result.homography_success,
        "homography": outcome.homography.tolist() if outcome.homography is not None else None,
        "error": str(outcome.failure) if outcome.failure is not None else None
    }


def results_to_dict(results: BenchmarkResults) -> Dict[str, Any]:
    """JSON-ready summary of a run."""
    best = results.best_by_quality()
    fastest = results.fastest()
    combinations: List[Dict[str, Any]] = [outcome_to_dict(o) for o in results]
    return {
        "combinations": combinations,
        "best_by_quality": best.key.label if best is not None else None,
        "fastest": fastest.key.label if fastest is not None else None
    }
