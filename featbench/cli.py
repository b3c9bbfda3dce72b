"""
Command line entry point

    featbench OBJECT SCENE                     # full grid
    featbench OBJECT SCENE -d ORB -e ORB -m BF  # one combination
    featbench --sample                         # bundled sample pair
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from featbench.benchmark.harness import BenchmarkHarness
from featbench.benchmark.models import CombinationKey
from featbench.benchmark.report import format_results_table, format_summary, results_to_dict
from featbench.config import load_config
from featbench.errors import ImageSourceError
from featbench.registry import is_valid_pair
from featbench.utils.io_handler import JSONWriter, load_grayscale, sample_pair, save_image
from featbench.utils.logger import create_session_log_file, setup_logger
from featbench.utils.visualization import draw_match_composite


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='featbench',
        description="Benchmark detector/descriptor/matcher combinations on an image pair"
    )
    parser.add_argument('object', nargs='?', help="Object (query) image")
    parser.add_argument('scene', nargs='?', help="Scene (reference) image")
    parser.add_argument('--sample', action='store_true',
                        help="Use the bundled sample image and a rotated, scaled copy")
    parser.add_argument('-d', '--detector', help="Run a single combination with this detector")
    parser.add_argument('-e', '--descriptor', help="Descriptor for the single combination")
    parser.add_argument('-m', '--matcher', help="Matcher for the single combination")
    parser.add_argument('-c', '--config', help="YAML configuration file")
    parser.add_argument('-o', '--output', help="Write results as JSON to this path")
    parser.add_argument('--save-dir', help="Save match composites to this directory")
    parser.add_argument('--log-file', help="Also log to this file")
    parser.add_argument('--log-dir', help="Also log to a timestamped session file in this directory")
    parser.add_argument('-v', '--verbose', action='store_true', help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_file = args.log_file
    if log_file is None and args.log_dir:
        log_file = create_session_log_file(args.log_dir)
    logger = setup_logger('featbench', logging.DEBUG if args.verbose else logging.INFO,
                          log_file=log_file)

    single = [args.detector, args.descriptor, args.matcher]
    if any(single) and not all(single):
        parser.error("--detector, --descriptor and --matcher must be given together")
    if not args.sample and not (args.object and args.scene):
        parser.error("provide OBJECT and SCENE images or --sample")

    config = load_config(args.config)

    try:
        if args.sample:
            image1, image2, _ = sample_pair()
        else:
            max_size = config['input'].get('max_size')
            image1 = load_grayscale(args.object, max_size)
            image2 = load_grayscale(args.scene, max_size)
    except ImageSourceError as e:
        logger.error(str(e))
        return 1
    logger.info("Images loaded: %dx%d and %dx%d", image1.shape[1], image1.shape[0],
                image2.shape[1], image2.shape[0])

    combinations = None
    if all(single):
        key = CombinationKey(args.detector.upper(), args.descriptor.upper(), args.matcher.upper())
        if not is_valid_pair(key.detector, key.descriptor):
            logger.error("Invalid combination: %s + %s", key.detector, key.descriptor)
            return 2
        combinations = [key]

    on_visualize = None
    if args.save_dir:
        save_dir = Path(args.save_dir)

        def on_visualize(key, img1, kps1, img2, kps2, matches, corners):
            composite = draw_match_composite(img1, kps1, img2, kps2, matches, corners)
            save_image(composite, str(save_dir / f"result_{key.label}.jpg"))

    harness = BenchmarkHarness(config, on_visualize=on_visualize)
    try:
        results = harness.run(image1, image2, combinations)
    except ImageSourceError as e:
        logger.error(str(e))
        return 1

    print(format_results_table(results))
    print()
    print(format_summary(results))

    if args.output:
        JSONWriter.save_results(results_to_dict(results), args.output)
        logger.info("Results written to %s", args.output)

    return 0


if __name__ == '__main__':
    sys.exit(main())
