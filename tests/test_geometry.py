#!/usr/bin/env python3
"""
Tests for rectangle geometry and distance functions.
"""

import dataclasses

import numpy as np

from object_tracker import geometry
from object_tracker.types import Frame, Rect, Timestamp, Traj


def test_centroid():
    result = Rect(10, 10, 20, 20).centroid
    assert np.allclose(result, [20.0, 20.0]), f"Expected (20, 20), got {result}"


def test_intersection():
    inter = Rect(0, 0, 20, 20).intersection(Rect(10, 5, 20, 20))
    assert inter == Rect(10, 5, 10, 15), f"Unexpected intersection {inter}"

    disjoint = Rect(0, 0, 10, 10).intersection(Rect(50, 50, 10, 10))
    assert disjoint.area == 0.0


def test_overlap_ratio():
    result = geometry.overlap_ratio(Rect(0, 0, 20, 20), Rect(2, 0, 20, 20))
    expected = 360.0 / 440.0
    assert abs(result - expected) < 1e-9, f"Expected {expected}, got {result}"

    assert geometry.overlap_ratio(Rect(0, 0, 10, 10), Rect(0, 0, 10, 10)) == 1.0
    assert geometry.overlap_ratio(Rect(0, 0, 10, 10), Rect(20, 20, 10, 10)) == 0.0
    assert geometry.overlap_ratio(Rect(0, 0, 0, 0), Rect(0, 0, 0, 0)) == 0.0


def test_centroid_deviation():
    result = geometry.centroid_deviation(Rect(0, 0, 10, 10), Rect(3, 4, 10, 10))
    assert abs(result - 5.0) < 1e-9, f"Expected 5.0, got {result}"


def test_match_score():
    # 80%+ overlap, 2px deviation: far above the 0.3 acceptance threshold
    score = geometry.match_score(Rect(0, 0, 20, 20), Rect(2, 0, 20, 20))
    assert abs(score - (360.0 / 440.0) * 100 / 2.0) < 1e-9
    assert score > 0.3


def test_match_score_zero_deviation():
    assert geometry.match_score(Rect(0, 0, 10, 10), Rect(0, 0, 10, 10)) == float('inf')
    # Same centre, no area
    assert geometry.match_score(Rect(5, 5, 0, 0), Rect(5, 5, 0, 0)) == 0.0


def test_validate_roi():
    assert geometry.validate_roi(Rect(10, 10, 20, 20), (100, 100))
    assert geometry.validate_roi(Rect(-10, -10, 20, 20), (100, 100)), "Partially visible ROI is valid"
    assert not geometry.validate_roi(Rect(100, 0, 20, 20), (100, 100))
    assert not geometry.validate_roi(Rect(-30, 10, 20, 20), (100, 100))


def test_mahalanobis():
    inv_cov = np.linalg.inv(np.diag([4.0, 1.0]))
    result = geometry.mahalanobis([0, 0], [2, 1], inv_cov)
    expected = np.sqrt(2.0)
    assert abs(result - expected) < 1e-9, f"Expected {expected}, got {result}"


def test_frame_image_size():
    assert Frame(Timestamp(0, 0), np.zeros((48, 64, 3))).image_size == (64, 48)
    assert Frame(Timestamp(0, 0)).image_size is None


def test_timestamp_seconds():
    stamp = Timestamp.from_seconds(12.25)
    assert stamp == Timestamp(12, 250000000)
    assert abs(stamp.to_seconds() - 12.25) < 1e-9


def test_timestamp_from_seconds_carries_rounding():
    assert Timestamp.from_seconds(0.9999999999) == Timestamp(1, 0)
    assert Timestamp.from_seconds(4.9999999996) == Timestamp(5, 0)


def test_traj_fields():
    assert [f.name for f in dataclasses.fields(Traj)] == ['stamp', 'rect', 'covariance']
