"""
Configuration management for featbench
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


DEFAULT_CONFIG = {
    "strategies": {
        "detectors": ["SIFT", "SURF", "ORB", "FAST", "BRISK"],
        "descriptors": ["SIFT", "SURF", "ORB", "BRIEF", "FREAK", "BRISK"],
        "matchers": ["BF", "FLANN"]
    },
    "detectors": {
        "SIFT": {"nfeatures": 500},
        "SURF": {"hessian_threshold": 100, "n_octaves": 3,
                 "n_octave_layers": 3, "extended": False},
        "ORB": {"nfeatures": 700},
        "FAST": {"threshold": 20},
        "BRISK": {"thresh": 30, "octaves": 3, "pattern_scale": 1.0}
    },
    "descriptors": {
        "SIFT": {"nfeatures": 500},
        "SURF": {"hessian_threshold": 100, "n_octaves": 3,
                 "n_octave_layers": 3, "extended": False},
        "ORB": {"nfeatures": 700},
        "BRIEF": {"bytes": 32},
        "FREAK": {},
        "BRISK": {"thresh": 30, "octaves": 3, "pattern_scale": 1.0}
    },
    "extraction": {
        "max_keypoints": 500,
        "fallback_threshold": 20,
        "truncation": "first"
    },
    "matching": {
        "ratio_binary": 0.80,
        "ratio_float": 0.75,
        "fallback_distance_multiplier": 1.5,
        "flann": {
            "lsh": {"table_number": 6, "key_size": 12, "multi_probe_level": 1},
            "kdtree": {"trees": 5},
            "search": {"checks": 50}
        }
    },
    "calibration": {
        "ransac_threshold": 3.0,
        "ransac_iterations": 2000,
        "confidence": 0.995,
        "refine": True,
        "refine_iterations": 100,
        "seed": None
    },
    "grid": {
        "exclude_binary_approximate": True
    },
    "input": {
        "max_size": 800
    }
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into ``base`` in place, descending into dicts."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build a configuration dictionary.

    Args:
        path: Optional YAML file whose sections override the defaults
        overrides: Optional dictionary applied after the file

    Returns:
        A fresh configuration dictionary; DEFAULT_CONFIG is never modified
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    layers = []
    if path is not None:
        with open(path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        layers.append(loaded)
    if overrides:
        layers.append(overrides)

    for layer in layers:
        unknown = set(layer) - set(DEFAULT_CONFIG)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")
        _deep_merge(config, copy.deepcopy(layer))

    return config
