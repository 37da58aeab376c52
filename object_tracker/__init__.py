"""
object-tracker: Multi-object tracking manager for timestamped camera frames.

Frames are admitted in time order and every live track predicts itself for
each one. Detection batches are gated against the tracks' predictions by
Mahalanobis distance and assigned with either minimum-cost or maximum-weight
bipartite matching; unmatched detections start new tracks.

Usage:
    from object_tracker import TrackingManager, Frame, DetectedObject, Rect, Timestamp

    manager = TrackingManager()
    frame = Frame(Timestamp(0, 0), image)

    # Every frame
    manager.track(frame)

    # When a detection batch for that frame arrives
    manager.process_detections(frame, [DetectedObject('cat', 0.9, Rect(10, 10, 20, 20))])

    # Drop lost tracks
    manager.prune_inactive()
"""

from .admission import FrameAdmissionWindow, FrameOrder
from .assignment import AssignmentStrategy, solve_max_weight, solve_min_cost
from .config import get_config, load_config, set_config
from .gating import build_cost_matrix, build_weight_matrix
from .manager import TrackIdAllocator, TrackingManager, UpdateFailurePolicy
from .replay import TrackEventWriter, process_stream
from .track import KalmanFilter, Track
from .types import DetectedObject, Frame, Rect, Timestamp, Traj

__all__ = [
    'TrackingManager',
    'TrackIdAllocator',
    'UpdateFailurePolicy',
    'FrameAdmissionWindow',
    'FrameOrder',
    'AssignmentStrategy',
    'solve_min_cost',
    'solve_max_weight',
    'build_cost_matrix',
    'build_weight_matrix',
    'Track',
    'KalmanFilter',
    'TrackEventWriter',
    'process_stream',
    'Timestamp',
    'Frame',
    'Rect',
    'DetectedObject',
    'Traj',
    'load_config',
    'get_config',
    'set_config',
]
