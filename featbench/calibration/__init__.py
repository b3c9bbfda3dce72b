from .homography import HomographyEstimator, HomographyResult, project_corners
from .ransac import RANSAC

__all__ = ['HomographyEstimator', 'HomographyResult', 'project_corners', 'RANSAC']
