"""Visualization utilities for debugging and display."""

import cv2
import numpy as np
from typing import List, Optional, Sequence, Tuple


def to_dmatches(matches: Sequence) -> List[cv2.DMatch]:
    """Convert candidates to OpenCV DMatch objects."""
    return [cv2.DMatch(m.query_index, m.train_index, float(m.distance)) for m in matches]


def draw_match_composite(image1: np.ndarray, keypoints1: Sequence[cv2.KeyPoint],
                         image2: np.ndarray, keypoints2: Sequence[cv2.KeyPoint],
                         matches: Sequence, corners: Optional[np.ndarray] = None,
                         color: Tuple[int, int, int] = (0, 255, 0),
                         thickness: int = 4) -> np.ndarray:
    """
    Side-by-side match image with the located region outlined.

    Args:
        image1, image2: Query and reference images
        keypoints1, keypoints2: Keypoints referenced by the matches
        matches: Good matches (query_index into keypoints1, train_index into keypoints2)
        corners: Optional (4, 2) query corners projected into the reference image

    Returns:
        BGR composite image
    """
    composite = cv2.drawMatches(
        image1, list(keypoints1), image2, list(keypoints2), to_dmatches(matches), None,
        flags=cv2.DrawMatchesFlags_NOT_DRAW_SINGLE_POINTS
    )

    if corners is not None:
        offset = np.array([image1.shape[1], 0], dtype=np.float32)
        pts = (np.asarray(corners, dtype=np.float32) + offset).astype(np.int32)
        cv2.polylines(composite, [pts.reshape(-1, 1, 2)], True, color, thickness)

    return composite
