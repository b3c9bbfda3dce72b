"""I/O handling for images and JSON output."""

import cv2
import json
import numpy as np
from pathlib import Path
from typing import Dict, Optional, Tuple

from skimage import data as sample_data

from featbench.errors import ImageSourceError


def downscale(image: np.ndarray, max_size: Optional[int] = 800) -> np.ndarray:
    """Shrink an image so neither side exceeds max_size."""
    if not max_size:
        return image
    height, width = image.shape[:2]
    if width <= max_size and height <= max_size:
        return image
    scale = min(max_size / width, max_size / height)
    return cv2.resize(image, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)


def load_grayscale(image_path: str, max_size: Optional[int] = 800) -> np.ndarray:
    """Load an image as grayscale, raising ImageSourceError if it cannot be read."""
    image = cv2.imread(str(image_path), cv2.IMREAD_GRAYSCALE)
    if image is None or image.size == 0:
        raise ImageSourceError(f"Failed to load image from {image_path}")
    return downscale(image, max_size)


def sample_pair(angle: float = 15.0, scale: float = 0.8) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Bundled sample image and a rotated, scaled copy of it.

    Returns:
        Tuple of (object image, scene image, 3x3 ground-truth homography)
    """
    image = sample_data.camera()
    height, width = image.shape[:2]
    affine = cv2.getRotationMatrix2D((width / 2, height / 2), angle, scale)
    scene = cv2.warpAffine(image, affine, (width, height))
    H = np.vstack([affine, [0.0, 0.0, 1.0]])
    return image, scene, H


class JSONWriter:
    """Write benchmark results to JSON."""

    @staticmethod
    def save_results(output_dict: Dict, output_path: str, indent: int = 2):
        """Save results to JSON file."""
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(output_dict, f, indent=indent)

    @staticmethod
    def load_results(input_path: str) -> Dict:
        """Load results from JSON file."""
        with open(input_path, 'r') as f:
            return json.load(f)


def save_image(image: np.ndarray, output_path: str):
    """Save image to file."""
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(output_path), image)
