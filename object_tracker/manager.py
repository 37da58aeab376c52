"""
Multi-object tracking manager.

Keeps the live tracks, predicts them on every admitted frame and associates
detection batches to them by gated statistical distance and bipartite
matching. Unassociated detections start new tracks.
"""

import itertools
import logging
import threading
from enum import Enum

import numpy as np

from . import assignment, gating, geometry
from .admission import FrameAdmissionWindow, FrameOrder
from .assignment import AssignmentStrategy
from .config import get_config
from .track import KALMAN_CV, Track
from .types import Rect

logger = logging.getLogger(__name__)

INT32_MAX = 2**31 - 1


class UpdateFailurePolicy(Enum):
    """What to do with a track that fails to update for a frame."""
    KEEP = 'keep'
    DEACTIVATE = 'deactivate'
    REMOVE = 'remove'


class TrackIdAllocator:
    """
    Monotonic track id source. Share one instance between managers to
    allocate ids from a common domain; allocation is thread-safe.
    """

    def __init__(self, start=0):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self):
        with self._lock:
            track_id = next(self._counter)
        if track_id > INT32_MAX:
            logger.error("Track id %d exceeds the 32-bit id range", track_id)
        return track_id


class TrackingManager:
    """
    Orchestrates admission control, gating, assignment and track lifecycle.

    Args:
        algorithm: Motion model tag assigned to new tracks
        window_size: Admission window capacity
        gate_threshold: Maximum Mahalanobis distance for association
        match_threshold: Minimum score for match_or_create
        strategy: AssignmentStrategy used by process_detections
        on_update_failure: UpdateFailurePolicy for tracks failing update_tracker
        frame_order: FrameOrder (or comparator) for admission
        gating_workers: Thread pool size for the gating matrix
        id_allocator: TrackIdAllocator (a fresh one if None)
        track_factory: Callable (track_id, label, confidence, rect) -> track
        config: Configuration dict handed to bundled tracks
    """

    def __init__(self, algorithm=KALMAN_CV, window_size=5,
                 gate_threshold=gating.DEFAULT_GATE_THRESHOLD, match_threshold=0.3,
                 strategy=AssignmentStrategy.MIN_COST,
                 on_update_failure=UpdateFailurePolicy.KEEP,
                 frame_order=FrameOrder.NANOSEC, gating_workers=1,
                 id_allocator=None, track_factory=None, config=None):
        self.algorithm = algorithm
        self.gate_threshold = gate_threshold
        self.match_threshold = match_threshold
        self.strategy = AssignmentStrategy(strategy)
        self.on_update_failure = UpdateFailurePolicy(on_update_failure)
        self.gating_workers = gating_workers
        self.window = FrameAdmissionWindow(window_size, frame_order)
        self.id_allocator = id_allocator if id_allocator is not None else TrackIdAllocator()
        self.config = config
        self.track_factory = track_factory or self._default_track_factory
        self.tracks = []
        self.initialized = False

    @classmethod
    def from_config(cls, config=None, **kwargs):
        """Build a manager from the 'tracker' section of a config dict."""
        config = config if config is not None else get_config()
        section = config.get('tracker', {})
        params = dict(
            algorithm=section.get('algorithm', KALMAN_CV),
            window_size=section.get('window_size', 5),
            gate_threshold=section.get('gate_threshold', gating.DEFAULT_GATE_THRESHOLD),
            match_threshold=section.get('match_threshold', 0.3),
            strategy=AssignmentStrategy(section.get('assignment', 'min_cost')),
            on_update_failure=UpdateFailurePolicy(section.get('on_update_failure', 'keep')),
            frame_order=FrameOrder(section.get('frame_order', 'nanosec')),
            gating_workers=section.get('gating_workers', 1),
            config=config
        )
        params.update(kwargs)
        return cls(**params)

    def _default_track_factory(self, track_id, label, confidence, rect):
        return Track(track_id, label, confidence, rect, config=self.config)

    def get_tracks(self):
        """Live tracks in insertion order (a copy of the list)."""
        return list(self.tracks)

    # ------------------------------------------------------------------
    # Frame path
    # ------------------------------------------------------------------

    def track(self, frame):
        """
        Predict every live track for a new frame.

        Ignored until the first detection batch has been processed, and for
        frames that are not strictly after the last admitted one.

        Args:
            frame: Frame with stamp and payload
        """
        if not self.initialized:
            return

        stamp = frame.stamp
        if not self.window.is_frame_order_valid(stamp):
            logger.debug("Rejecting out-of-order frame %d.%09d", stamp.sec, stamp.nanosec)
            return
        self.window.admit(stamp)

        logger.debug("Tracking frame %d.%09d", stamp.sec, stamp.nanosec)
        failed = []
        for t in self.tracks:
            if t.update_tracker(frame):
                logger.debug("Tracking[%d][%s] updated", t.id, t.label)
                continue
            logger.error("Tracking[%d][%s] failed to update", t.id, t.label)
            failed.append(t)

        if self.on_update_failure is UpdateFailurePolicy.DEACTIVATE:
            for t in failed:
                t.deactivate()
        elif self.on_update_failure is UpdateFailurePolicy.REMOVE and failed:
            self.tracks = [t for t in self.tracks if t not in failed]
            for t in failed:
                logger.info("removeTracking[%d] ---", t.id)

    # ------------------------------------------------------------------
    # Detection path
    # ------------------------------------------------------------------

    def process_detections(self, frame, detections):
        """
        Associate a batch of detections with the live tracks.

        Matched detections correct their track; unmatched ones start a new
        track. Batches for frames that were never admitted by track() are
        dropped once the manager is initialized.

        Args:
            frame: Frame the detections were produced from
            detections: List of DetectedObject

        Returns:
            (track_to_detection, detection_to_track) match arrays
        """
        stamp = frame.stamp
        track_to_det = np.full(len(self.tracks), assignment.UNMATCHED, dtype=int)
        det_to_track = np.full(len(detections), assignment.UNMATCHED, dtype=int)

        if self.initialized and not self.window.contains(stamp):
            logger.debug("Dropping detections for unknown frame %d.%09d", stamp.sec, stamp.nanosec)
            return track_to_det, det_to_track

        logger.debug("Processing %d detections for frame %d.%09d",
                     len(detections), stamp.sec, stamp.nanosec)

        tracks = list(self.tracks)
        if self.strategy is AssignmentStrategy.MAX_WEIGHT:
            matrix = gating.build_weight_matrix(detections, tracks, stamp,
                                                self.gate_threshold, self.gating_workers)
        else:
            matrix = gating.build_cost_matrix(detections, tracks, stamp,
                                              self.gate_threshold, self.gating_workers)

        if matrix.size:
            assignment.solve(self.strategy, matrix, out=(track_to_det, det_to_track))

        for j, det in enumerate(detections):
            track_idx = det_to_track[j]
            if track_idx >= 0:
                tracks[track_idx].rectify_tracker(frame, det.rect)
            else:
                new_track = self.add_track(det.label, det.confidence, det.rect)
                new_track.rectify_tracker(frame, det.rect)

        self.initialized = True
        return track_to_det, det_to_track

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_track(self, label, confidence, rect):
        """
        Create a track with the next id and the manager's algorithm tag.

        Returns:
            The new track (already appended to the live tracks)
        """
        track_id = self.id_allocator.next_id()
        t = self.track_factory(track_id, label, confidence, Rect(*rect))
        t.set_algorithm_tag(self.algorithm)
        self.tracks.append(t)
        logger.info("addTracking[%d][%s] +++", track_id, label)
        return t

    def prune_inactive(self):
        """
        Remove inactive tracks, keeping the order of the survivors.

        Returns:
            List of removed tracks
        """
        removed = [t for t in self.tracks if not t.is_active()]
        if removed:
            self.tracks = [t for t in self.tracks if t.is_active()]
            for t in removed:
                logger.info("removeTracking[%d] ---", t.id)
        return removed

    def match_or_create(self, label, rect, confidence, stamp=None):
        """
        Greedy lookup of the live track best matching one detection.

        Only tracks with the same label are considered; the score favours
        overlap and penalises centroid deviation (see geometry.match_score).

        Args:
            label: Object class label
            rect: Detected Rect
            confidence: Detection confidence
            stamp: Detection timestamp (informational)

        Returns:
            The best track if its score exceeds the match threshold, a new
            track if there are no tracks at all, None otherwise
        """
        rect = Rect(*rect)
        best, best_score = None, 0.0
        for t in self.tracks:
            if t.label != label:
                continue
            score = geometry.match_score(t.get_tracked_rect(), rect)
            logger.debug("tr[%d] %s score %.2f", t.id, t.label, score)
            if score > best_score:
                best, best_score = t, score

        if best is not None and best_score > self.match_threshold:
            return best
        if not self.tracks:
            return self.add_track(label, confidence, rect)
        return None
