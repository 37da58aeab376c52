"""
Track-to-detection assignment.

Two strategies are available:

- MIN_COST: minimum-cost matching on the gating cost matrix, solved with
  scipy's linear_sum_assignment. Sentinel (infinite) cells forbid a pairing.
- MAX_WEIGHT: maximum-weight bipartite matching on a likelihood matrix using
  the labeling (Kuhn-Munkres) method with augmenting paths in the equality
  subgraph.

Both return a pair of int arrays (track_to_detection, detection_to_track)
holding the matched index or -1.
"""

from enum import Enum

import numpy as np
from scipy.optimize import linear_sum_assignment

UNMATCHED = -1
LABEL_TOLERANCE = 1e-4


class AssignmentStrategy(Enum):
    MIN_COST = 'min_cost'
    MAX_WEIGHT = 'max_weight'


def _prepare_outputs(shape, out):
    """
    Allocate (or validate and reset) the output match arrays.

    Returns:
        (track_to_detection, detection_to_track, valid) where valid is False
        when caller-provided arrays do not fit the matrix
    """
    n_rows, n_cols = shape
    if out is None:
        return (np.full(n_rows, UNMATCHED, dtype=int),
                np.full(n_cols, UNMATCHED, dtype=int), True)

    track_to_det, det_to_track = out
    if len(track_to_det) != n_rows or len(det_to_track) != n_cols:
        return track_to_det, det_to_track, False
    track_to_det[:] = UNMATCHED
    det_to_track[:] = UNMATCHED
    return track_to_det, det_to_track, True


def solve_min_cost(cost_matrix, out=None):
    """
    Minimum-cost partial matching between tracks (rows) and detections (columns).

    Args:
        cost_matrix: Array (n_tracks, n_dets); non-finite cells are forbidden
        out: Optional (track_to_detection, detection_to_track) arrays to fill

    Returns:
        (track_to_detection, detection_to_track)
    """
    cost_matrix = np.asarray(cost_matrix, dtype=float)
    if cost_matrix.ndim != 2:
        cost_matrix = np.empty((0, 0))
    track_to_det, det_to_track, valid = _prepare_outputs(cost_matrix.shape, out)
    if not valid or cost_matrix.size == 0:
        return track_to_det, det_to_track

    feasible = np.isfinite(cost_matrix)
    if not feasible.any():
        return track_to_det, det_to_track

    # Forbidden cells get a cost larger than any feasible assignment total
    forbidden_cost = np.abs(cost_matrix[feasible]).sum() + 1.0
    solvable = np.where(feasible, cost_matrix, forbidden_cost)

    row_ind, col_ind = linear_sum_assignment(solvable)
    for r, c in zip(row_ind, col_ind):
        if feasible[r, c]:
            track_to_det[r] = c
            det_to_track[c] = r

    return track_to_det, det_to_track


def _augment(root, weights, row_label, col_label, row_visit, col_visit, col_match,
             tolerance):
    """
    Search an augmenting path from `root` in the equality subgraph.

    Depth-first with an explicit stack; each row is pushed at most once so
    the depth is bounded by the matrix dimension. On success the matching is
    flipped along the path.

    Returns:
        True if the matching was augmented
    """
    n = weights.shape[1]
    row_visit[root] = True
    stack = [[root, 0]]  # (row, next column to try)
    path = []            # column leading into each stack frame after the root

    while stack:
        frame = stack[-1]
        row = frame[0]
        descended = False
        for col in range(frame[1], n):
            if col_visit[col]:
                continue
            if abs(row_label[row] + col_label[col] - weights[row, col]) > tolerance:
                continue

            col_visit[col] = True
            frame[1] = col + 1
            owner = col_match[col]
            path.append(col)
            if owner == UNMATCHED:
                for (path_row, _), path_col in zip(stack, path):
                    col_match[path_col] = path_row
                return True

            row_visit[owner] = True
            stack.append([owner, 0])
            descended = True
            break

        if not descended:
            stack.pop()
            if path:
                path.pop()

    return False


def solve_max_weight(weight_matrix, out=None, tolerance=LABEL_TOLERANCE):
    """
    Maximum-weight partial matching between tracks (rows) and detections (columns).

    The matrix is zero-padded to square. Row labels start at each row's
    maximum weight and column labels at zero. For each row, augmenting paths
    are searched in the equality subgraph (row_label + col_label == weight);
    when none exists the labels are relaxed by the minimum slack between
    visited rows and unvisited columns and the search is retried.

    Pairs with non-positive weight are never reported as matches.

    Args:
        weight_matrix: Array (n_tracks, n_dets) of non-negative weights
        out: Optional (track_to_detection, detection_to_track) arrays to fill
        tolerance: Equality tolerance on labels

    Returns:
        (track_to_detection, detection_to_track)
    """
    weight_matrix = np.asarray(weight_matrix, dtype=float)
    if weight_matrix.ndim != 2:
        weight_matrix = np.empty((0, 0))
    track_to_det, det_to_track, valid = _prepare_outputs(weight_matrix.shape, out)
    if not valid or weight_matrix.size == 0:
        return track_to_det, det_to_track

    n_rows, n_cols = weight_matrix.shape
    n = max(n_rows, n_cols)
    weights = np.zeros((n, n))
    weights[:n_rows, :n_cols] = weight_matrix

    row_label = weights.max(axis=1)
    col_label = np.zeros(n)
    col_match = np.full(n, UNMATCHED, dtype=int)

    for i in range(n):
        while True:
            row_visit = np.zeros(n, dtype=bool)
            col_visit = np.zeros(n, dtype=bool)
            if _augment(i, weights, row_label, col_label, row_visit, col_visit,
                        col_match, tolerance):
                break

            slack = (row_label[row_visit][:, None] + col_label[~col_visit][None, :]
                     - weights[row_visit][:, ~col_visit])
            delta = slack.min()
            row_label[row_visit] -= delta
            col_label[col_visit] += delta

    for col in range(n_cols):
        row = col_match[col]
        if row == UNMATCHED or row >= n_rows:
            continue
        if weight_matrix[row, col] <= 0:
            continue
        track_to_det[row] = col
        det_to_track[col] = row

    return track_to_det, det_to_track


def solve(strategy, matrix, out=None):
    """Dispatch to the solver for `strategy`."""
    if strategy is AssignmentStrategy.MAX_WEIGHT:
        return solve_max_weight(matrix, out=out)
    return solve_min_cost(matrix, out=out)
