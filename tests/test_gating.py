"""
Tests for the gating cost and weight matrices.
"""

import numpy as np
from numpy.testing import assert_allclose

from object_tracker.gating import GATE_SENTINEL, build_cost_matrix, build_weight_matrix
from object_tracker.types import DetectedObject, Rect, Timestamp, Traj

STAMP = Timestamp(10, 0)


class FakeTrack:
    """Track stub with a fixed trajectory and covariance."""

    def __init__(self, track_id, rect, covariance=None, has_traj=True):
        self.id = track_id
        self.rect = Rect(*rect)
        self.covariance = np.eye(2) if covariance is None else np.asarray(covariance, dtype=float)
        self.has_traj = has_traj

    def get_traj(self, stamp):
        if not self.has_traj:
            return None, False
        return Traj(stamp, self.rect, self.covariance), True


def det(x, y, w=20, h=20, label='cat'):
    return DetectedObject(label, 0.9, Rect(x, y, w, h))


def test_empty_inputs_give_empty_matrix():
    track = FakeTrack(0, (10, 10, 20, 20))
    assert build_cost_matrix([], [track], STAMP).size == 0
    assert build_cost_matrix([det(10, 10)], [], STAMP).size == 0
    assert build_weight_matrix([], [], STAMP).size == 0


def test_shape_is_tracks_by_detections():
    tracks = [FakeTrack(0, (10, 10, 20, 20)), FakeTrack(1, (100, 100, 20, 20))]
    dets = [det(10, 10), det(11, 11), det(300, 300)]
    assert build_cost_matrix(dets, tracks, STAMP).shape == (2, 3)
    assert build_weight_matrix(dets, tracks, STAMP).shape == (2, 3)


def test_cost_is_squared_mahalanobis_distance():
    track = FakeTrack(0, (10, 10, 20, 20), covariance=np.eye(2))
    cost = build_cost_matrix([det(11, 11)], [track], STAMP)
    assert_allclose(cost, [[2.0]])


def test_covariance_scales_distance():
    track = FakeTrack(0, (10, 10, 20, 20), covariance=np.diag([4.0, 1.0]))
    cost = build_cost_matrix([det(12, 10)], [track], STAMP)
    assert_allclose(cost, [[1.0]])


def test_pairs_outside_gate_get_sentinel():
    track = FakeTrack(0, (10, 10, 20, 20), covariance=np.eye(2))
    # Centroid offsets of 2 (on the gate) and 3 (outside)
    cost = build_cost_matrix([det(12, 10), det(13, 10)], [track], STAMP)
    assert_allclose(cost[0, 0], 4.0)
    assert cost[0, 1] == GATE_SENTINEL


def test_finite_cells_within_squared_gate():
    rng = np.random.default_rng(7)
    tracks = [FakeTrack(i, (rng.uniform(0, 50), rng.uniform(0, 50), 20, 20),
                        covariance=np.eye(2) * rng.uniform(0.5, 5.0)) for i in range(6)]
    dets = [det(rng.uniform(0, 50), rng.uniform(0, 50)) for _ in range(8)]
    dets.append(det(tracks[0].rect.x + 0.5, tracks[0].rect.y))
    cost = build_cost_matrix(dets, tracks, STAMP)

    finite = np.isfinite(cost)
    assert finite.any()
    assert np.all(cost[finite] >= 0)
    assert np.all(cost[finite] <= 4.0 + 1e-9)
    assert np.all(cost[~finite] == GATE_SENTINEL)


def test_track_without_trajectory_is_excluded():
    tracks = [FakeTrack(0, (10, 10, 20, 20), has_traj=False), FakeTrack(1, (10, 10, 20, 20))]
    dets = [det(10, 10)]
    cost = build_cost_matrix(dets, tracks, STAMP)
    weights = build_weight_matrix(dets, tracks, STAMP)
    assert cost[0, 0] == GATE_SENTINEL
    assert cost[1, 0] == 0.0
    assert weights[0, 0] == 0.0
    assert weights[1, 0] == 1.0


def test_singular_covariance_is_excluded():
    track = FakeTrack(0, (10, 10, 20, 20), covariance=np.zeros((2, 2)))
    cost = build_cost_matrix([det(10, 10)], [track], STAMP)
    assert cost[0, 0] == GATE_SENTINEL


def test_weight_is_gaussian_likelihood():
    track = FakeTrack(0, (10, 10, 20, 20), covariance=np.eye(2))
    weights = build_weight_matrix([det(11, 11), det(40, 40)], [track], STAMP)
    assert_allclose(weights[0, 0], np.exp(-1.0))
    assert weights[0, 1] == 0.0


def test_thread_pool_matches_serial():
    rng = np.random.default_rng(3)
    tracks = [FakeTrack(i, (rng.uniform(0, 30), rng.uniform(0, 30), 10, 10),
                        covariance=np.eye(2) * 4.0) for i in range(10)]
    dets = [det(rng.uniform(0, 30), rng.uniform(0, 30), 10, 10) for _ in range(7)]

    serial = build_cost_matrix(dets, tracks, STAMP, workers=1)
    pooled = build_cost_matrix(dets, tracks, STAMP, workers=4)
    assert_allclose(serial, pooled)
