"""
Gating between predicted track positions and new detections.

Tracks are rows, detections are columns. The cost matrix holds squared
Mahalanobis distances between centroids (sentinel `GATE_SENTINEL` for pairs
outside the gate); the weight matrix holds the Gaussian likelihood
exp(-d^2 / 2) of gated pairs and zero elsewhere.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from . import geometry

logger = logging.getLogger(__name__)

GATE_SENTINEL = np.inf
DEFAULT_GATE_THRESHOLD = 2.0  # Mahalanobis distance, i.e. 2 standard deviations


def _row_distances(track, detections, stamp, gate_threshold):
    """
    Gated Mahalanobis distances from one track to every detection.

    Returns:
        Array (n_dets,) of distances with NaN for excluded pairs,
        or None if the track has no usable trajectory at `stamp`.
    """
    traj, found = track.get_traj(stamp)
    if not found:
        return None

    # Invert the covariance once per track
    try:
        inv_cov = np.linalg.inv(traj.covariance[:2, :2])
    except np.linalg.LinAlgError:
        logger.warning("Singular covariance for track %s, skipping gating", track.id)
        return None

    t_centroid = traj.rect.centroid
    distances = np.full(len(detections), np.nan)
    for j, det in enumerate(detections):
        dist = geometry.mahalanobis(t_centroid, det.rect.centroid, inv_cov)
        if dist > gate_threshold:
            continue
        distances[j] = dist
    return distances


def _gated_distances(detections, tracks, stamp, gate_threshold, workers):
    """Yield (row, distances) for every track with a trajectory at `stamp`."""
    def compute(track):
        return _row_distances(track, detections, stamp, gate_threshold)

    if workers and workers > 1 and len(tracks) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            rows = list(executor.map(compute, tracks))
    else:
        rows = [compute(track) for track in tracks]

    for i, distances in enumerate(rows):
        if distances is not None:
            yield i, distances


def build_cost_matrix(detections, tracks, stamp,
                      gate_threshold=DEFAULT_GATE_THRESHOLD, workers=1):
    """
    Build the track x detection cost matrix of squared gating distances.

    Args:
        detections: List of DetectedObject
        tracks: List of tracks exposing get_traj(stamp) and id
        stamp: Timestamp the tracks are evaluated at
        gate_threshold: Maximum Mahalanobis distance for a feasible pair
        workers: Thread pool size for the per-track rows (1 = serial)

    Returns:
        Array (n_tracks, n_dets); empty (0, 0) array if either input is empty
    """
    if not detections or not tracks:
        return np.empty((0, 0))

    cost = np.full((len(tracks), len(detections)), GATE_SENTINEL)
    for i, distances in _gated_distances(detections, tracks, stamp, gate_threshold, workers):
        gated = ~np.isnan(distances)
        cost[i, gated] = distances[gated] ** 2
    return cost


def build_weight_matrix(detections, tracks, stamp,
                        gate_threshold=DEFAULT_GATE_THRESHOLD, workers=1):
    """
    Build the track x detection similarity matrix for maximum-weight matching.

    Same gating as build_cost_matrix; gated pairs hold exp(-d^2 / 2), all
    other cells are zero.
    """
    if not detections or not tracks:
        return np.empty((0, 0))

    weights = np.zeros((len(tracks), len(detections)))
    for i, distances in _gated_distances(detections, tracks, stamp, gate_threshold, workers):
        gated = ~np.isnan(distances)
        weights[i, gated] = np.exp(-distances[gated] ** 2 / 2.0)
    return weights
