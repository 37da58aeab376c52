"""
Rectangle and distance utilities for image-plane tracking.
Provides overlap ratio, centroid deviation, ROI validation and the
Mahalanobis distance used for gating.
"""

import numpy as np

from .types import Rect

# Below this centroid deviation (pixels) two rectangles share a centre
MIN_DEVIATION = 1e-9


def overlap_ratio(rect_a, rect_b):
    """
    Intersection-over-union of two rectangles.

    Args:
        rect_a: First Rect
        rect_b: Second Rect

    Returns:
        Overlap ratio in [0, 1]; 0 when the union is empty
    """
    inter = rect_a.intersection(rect_b).area
    union = rect_a.area + rect_b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def centroid_deviation(rect_a, rect_b):
    """
    Euclidean distance between the centres of two rectangles.

    Args:
        rect_a: First Rect
        rect_b: Second Rect

    Returns:
        Distance in pixels
    """
    return float(np.linalg.norm(rect_a.centroid - rect_b.centroid))


def match_score(rect_a, rect_b):
    """
    Greedy matching score: overlap * 100 / deviation.

    The more overlap and the closer the centres, the higher the score.
    Coincident centres give an infinite score when the rectangles overlap
    and zero otherwise.

    Args:
        rect_a: Tracked Rect
        rect_b: Candidate Rect

    Returns:
        Non-negative score
    """
    overlap = overlap_ratio(rect_a, rect_b)
    deviation = centroid_deviation(rect_a, rect_b)
    if deviation < MIN_DEVIATION:
        return float('inf') if overlap > 0 else 0.0
    return overlap * 100.0 / deviation


def validate_roi(rect, image_size):
    """
    Check that a rectangle overlaps the image area.

    Args:
        rect: Rect in frame coordinates
        image_size: (width, height) of the image

    Returns:
        True if the clipped rectangle has a positive area
    """
    width, height = image_size
    return rect.intersection(Rect(0.0, 0.0, width, height)).area > 0


def mahalanobis(point_a, point_b, inv_covariance):
    """
    Mahalanobis distance between two points.

    Args:
        point_a: First point (2,)
        point_b: Second point (2,)
        inv_covariance: Inverse covariance matrix (2, 2)

    Returns:
        Distance (not squared)
    """
    delta = np.asarray(point_a, dtype=float) - np.asarray(point_b, dtype=float)
    return float(np.sqrt(max(delta @ inv_covariance @ delta, 0.0)))
