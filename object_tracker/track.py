"""
Single-object track with Kalman filtering in the image plane.
State vector: [cx, cx_rate, cy, cy_rate] (rectangle centroid and velocity).
"""

import logging
from collections import OrderedDict

import numpy as np

from . import geometry
from .config import get_param
from .types import Rect, Traj

logger = logging.getLogger(__name__)

KALMAN_CV = 'KALMAN_CV'  # Constant velocity
KALMAN_CP = 'KALMAN_CP'  # Constant position (random walk)
ALGORITHMS = (KALMAN_CV, KALMAN_CP)


# ============================================================================
# KALMAN FILTER CLASS
# ============================================================================

class KalmanFilter:
    """
    2D Kalman filter for the rectangle centroid.

    Args:
        algorithm: KALMAN_CV or KALMAN_CP
        config: Configuration dict (optional, global config otherwise)
    """

    def __init__(self, algorithm=KALMAN_CV, config=None):
        if algorithm not in ALGORITHMS:
            raise ValueError(f"Unknown tracking algorithm: {algorithm}")
        self.algorithm = algorithm
        self.q_position = get_param('process_noise', 'position', 1.0, config)
        self.q_velocity = get_param('process_noise', 'velocity', 10.0, config)
        r = get_param('measurement_noise', 'position', 4.0, config)

        # Measurement matrix (observe centroid only)
        self.H = np.array([
            [1, 0, 0, 0],
            [0, 0, 1, 0]
        ], dtype=float)

        # Measurement noise covariance
        self.R = np.eye(2) * r

    def transition(self, dt):
        """State transition matrix for a time step of `dt` seconds."""
        if self.algorithm == KALMAN_CP:
            return np.diag([1.0, 0.0, 1.0, 0.0])
        return np.array([
            [1, dt, 0,  0],
            [0,  1, 0,  0],
            [0,  0, 1, dt],
            [0,  0, 0,  1]
        ], dtype=float)

    def process_noise(self, dt):
        q_p, q_v = self.q_position, self.q_velocity
        if self.algorithm == KALMAN_CP:
            return np.diag([q_p * dt, 0.0, q_p * dt, 0.0])
        block = np.array([
            [q_p * dt + q_v * dt**3 / 3, q_v * dt**2 / 2],
            [q_v * dt**2 / 2, q_v * dt]
        ])
        Q = np.zeros((4, 4))
        Q[:2, :2] = block
        Q[2:, 2:] = block
        return Q

    def predict(self, state, covariance, dt):
        """
        Predict state and covariance `dt` seconds ahead.

        Args:
            state: Current state vector (4,)
            covariance: Current covariance matrix (4, 4)
            dt: Time step (seconds)

        Returns:
            Predicted state and covariance
        """
        F = self.transition(dt)
        state_pred = F @ state
        cov_pred = F @ covariance @ F.T + self.process_noise(dt)
        return state_pred, cov_pred

    def update(self, state, covariance, measurement):
        """
        Update state with a centroid measurement.

        Args:
            state: Predicted state vector (4,)
            covariance: Predicted covariance matrix (4, 4)
            measurement: Measurement vector [cx, cy] (2,)

        Returns:
            Updated state and covariance
        """
        innovation = measurement - self.H @ state
        S = self.get_innovation_covariance(covariance)

        try:
            K = covariance @ self.H.T @ np.linalg.inv(S)
        except np.linalg.LinAlgError:
            logger.warning("Singular innovation covariance in Kalman update, "
                           "skipping measurement")
            return state, covariance

        state_upd = state + K @ innovation
        cov_upd = (np.eye(4) - K @ self.H) @ covariance
        return state_upd, cov_upd

    def get_innovation_covariance(self, covariance):
        """Innovation covariance S (2, 2) used for gating."""
        return self.H @ covariance @ self.H.T + self.R


# ============================================================================
# TRACK CLASS
# ============================================================================

class Track:
    """
    A single tracked object.

    The track predicts its rectangle every frame (update_tracker) and is
    corrected with detections (rectify_tracker). It deactivates itself after
    `max_missed` consecutive frames without a correction.
    """

    def __init__(self, track_id, label, confidence, rect, algorithm=KALMAN_CV, config=None):
        """
        Initialize track from its first detection.

        Args:
            track_id: Unique integer id
            label: Object class label
            confidence: Detection confidence in [0, 1]
            rect: Initial Rect
            algorithm: Motion model tag (KALMAN_CV or KALMAN_CP)
            config: Configuration dict (optional)
        """
        self.id = track_id
        self.label = label
        self.confidence = confidence
        self.config = config
        self.kf = KalmanFilter(algorithm, config)
        self.max_missed = get_param('track', 'max_missed', 10, config)
        self.history_size = get_param('track', 'history_size', 16, config)

        rect = Rect(*rect)
        cx, cy = rect.centroid
        self.state = np.array([cx, 0.0, cy, 0.0])
        pos_var = get_param('track', 'initial_position_var', 10.0, config)
        vel_var = get_param('track', 'initial_velocity_var', 100.0, config)
        self.covariance = np.diag([pos_var, vel_var, pos_var, vel_var])
        self.size = (rect.width, rect.height)

        self.last_stamp = None
        self.n_missed = 0
        self.n_corrections = 0
        self.active = True
        self._history = OrderedDict()

    @property
    def algorithm(self):
        return self.kf.algorithm

    def set_algorithm_tag(self, algorithm):
        """Switch motion model; the filter state carries over."""
        if algorithm != self.kf.algorithm:
            self.kf = KalmanFilter(algorithm, self.config)

    def is_active(self):
        return self.active

    def deactivate(self):
        self.active = False

    def get_tracked_rect(self):
        cx, cy = self.state[0], self.state[2]
        return Rect.from_centroid(cx, cy, *self.size)

    def get_traj(self, stamp):
        """
        Trajectory sample recorded for `stamp`.

        Returns:
            (Traj, True) if a sample exists for that exact timestamp,
            (None, False) otherwise
        """
        entry = self._history.get(tuple(stamp))
        if entry is None:
            return None, False
        return entry['traj'], True

    def _set_traj(self, entry, state, covariance):
        entry['traj'] = Traj(
            stamp=entry['stamp'],
            rect=Rect.from_centroid(state[0], state[2], *self.size),
            covariance=self.kf.get_innovation_covariance(covariance)
        )

    def _open_entry(self, stamp):
        """
        Predict forward to `stamp` and start a history entry for it.

        Each entry keeps the predicted (prior) state at its timestamp and the
        rectangles corrected at that timestamp, so late corrections can be
        replayed from there.
        """
        if self.last_stamp is not None:
            dt = stamp.to_seconds() - self.last_stamp.to_seconds()
            if dt > 0:
                self.state, self.covariance = self.kf.predict(self.state, self.covariance, dt)
        self.last_stamp = stamp

        entry = {'stamp': stamp, 'prior': (self.state, self.covariance), 'rects': []}
        self._set_traj(entry, self.state, self.covariance)
        self._history[tuple(stamp)] = entry
        self._trim_history()

    def _insert_entry(self, stamp):
        """
        Insert an entry for `stamp` between two retained entries.

        Returns:
            Key of the entry just before `stamp` (where replay starts),
            or None if `stamp` is older than the retained history
        """
        t = stamp.to_seconds()
        items = list(self._history.items())
        n_before = sum(1 for _, entry in items if entry['stamp'].to_seconds() < t)
        if n_before == 0:
            return None

        items.insert(n_before, (tuple(stamp), {'stamp': stamp, 'prior': None, 'rects': []}))
        self._history = OrderedDict(items)
        return items[n_before - 1][0]

    def _trim_history(self):
        while len(self._history) > max(self.history_size, 1):
            self._history.popitem(last=False)

    def _replay(self, key):
        """Re-run the filter from the entry at `key` up to the newest entry."""
        keys = list(self._history)
        state = covariance = prev_stamp = None
        for k in keys[keys.index(key):]:
            entry = self._history[k]
            if prev_stamp is None:
                state, covariance = entry['prior']
            else:
                dt = entry['stamp'].to_seconds() - prev_stamp.to_seconds()
                if dt > 0:
                    state, covariance = self.kf.predict(state, covariance, dt)
                entry['prior'] = (state, covariance)

            for rect in entry['rects']:
                state, covariance = self.kf.update(state, covariance, rect.centroid)
                self.size = (rect.width, rect.height)

            self._set_traj(entry, state, covariance)
            prev_stamp = entry['stamp']

        self.state, self.covariance = state, covariance

        # Missed count is the run of uncorrected frames at the end of the history
        self.n_missed = 0
        for entry in reversed(self._history.values()):
            if entry['rects']:
                break
            self.n_missed += 1

    def update_tracker(self, frame):
        """
        Predict the track for a new frame.

        Args:
            frame: Frame to predict to

        Returns:
            False if the track is inactive, the frame is older than the last
            update, or the prediction leaves the image; True otherwise
        """
        if not self.active:
            return False

        stamp = frame.stamp
        if tuple(stamp) not in self._history:
            if self.last_stamp is not None and stamp.to_seconds() < self.last_stamp.to_seconds():
                return False
            self._open_entry(stamp)
            self.n_missed += 1
            if self.n_missed > self.max_missed:
                logger.info("Track[%d][%s] lost after %d frames without detection",
                            self.id, self.label, self.n_missed - 1)
                self.active = False

        image_size = frame.image_size
        if image_size is not None and not geometry.validate_roi(self.get_tracked_rect(), image_size):
            return False
        return True

    def rectify_tracker(self, frame, rect):
        """
        Correct the track with a detection rectangle observed in `frame`.

        A correction for an earlier frame still in the history is applied at
        that frame and the filter is re-run up to the newest frame. Inactive
        tracks and corrections older than the history are ignored.

        Args:
            frame: Frame the detection belongs to
            rect: Detected Rect
        """
        if not self.active:
            logger.debug("Track[%d] inactive, ignoring correction", self.id)
            return

        stamp = frame.stamp
        key = start = tuple(stamp)
        if key not in self._history:
            if self.last_stamp is None or stamp.to_seconds() > self.last_stamp.to_seconds():
                self._open_entry(stamp)
            else:
                start = self._insert_entry(stamp)
                if start is None:
                    logger.debug("Track[%d] ignoring correction older than its history", self.id)
                    return

        self._history[key]['rects'].append(Rect(*rect))
        self.n_corrections += 1
        self._replay(start)
        self._trim_history()

    def to_dict(self):
        """Convert track to dictionary for JSON serialization."""
        rect = self.get_tracked_rect()
        return {
            'id': self.id,
            'label': self.label,
            'confidence': self.confidence,
            'algorithm': self.algorithm,
            'active': self.active,
            'rect': [float(v) for v in rect],
            'velocity': [float(self.state[1]), float(self.state[3])],
            'n_corrections': self.n_corrections,
            'n_missed': self.n_missed
        }
