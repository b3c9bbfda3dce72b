"""Basic usage example for featbench."""

from featbench.benchmark.harness import BenchmarkHarness
from featbench.benchmark.models import CombinationKey
from featbench.benchmark.report import format_results_table, format_summary
from featbench.utils.io_handler import sample_pair, save_image
from featbench.utils.logger import setup_logger
from featbench.utils.visualization import draw_match_composite


def main():
    """Benchmark a few combinations on the bundled sample pair."""
    setup_logger('featbench')

    # Sample image and a rotated, scaled copy
    image, scene, _ = sample_pair(angle=15.0, scale=0.8)

    def save_composite(key, img1, kps1, img2, kps2, matches, corners):
        composite = draw_match_composite(img1, kps1, img2, kps2, matches, corners)
        save_image(composite, f"output/result_{key.label}.jpg")

    harness = BenchmarkHarness(on_visualize=save_composite)
    results = harness.run(image, scene, combinations=[
        CombinationKey("SIFT", "SIFT", "BF"),
        CombinationKey("ORB", "ORB", "BF"),
        CombinationKey("FAST", "BRIEF", "BF"),
    ])

    print(format_results_table(results))
    print(format_summary(results))


if __name__ == "__main__":
    main()
