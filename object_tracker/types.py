"""
Value types shared by the tracker: timestamps, frames, rectangles,
detections and trajectory samples.
"""

from dataclasses import dataclass, field
from typing import Any, NamedTuple

import numpy as np

NANOSEC_PER_SEC = 1000000000


class Timestamp(NamedTuple):
    """Frame timestamp as delivered by the sensor clock (seconds + nanoseconds)."""
    sec: int
    nanosec: int

    def to_seconds(self):
        return self.sec + self.nanosec * 1e-9

    @classmethod
    def from_seconds(cls, seconds):
        sec = int(np.floor(seconds))
        nanosec = int(round((seconds - sec) * 1e9))
        if nanosec >= NANOSEC_PER_SEC:
            sec, nanosec = sec + 1, nanosec - NANOSEC_PER_SEC
        return cls(sec, nanosec)


class Rect(NamedTuple):
    """Axis-aligned rectangle in frame coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def centroid(self):
        return np.array([self.x + self.width / 2.0, self.y + self.height / 2.0])

    @property
    def area(self):
        return max(self.width, 0.0) * max(self.height, 0.0)

    def intersection(self, other):
        """Return the overlapping rectangle (zero-sized if disjoint)."""
        x1 = max(self.x, other.x)
        y1 = max(self.y, other.y)
        x2 = min(self.x + self.width, other.x + other.width)
        y2 = min(self.y + self.height, other.y + other.height)
        if x2 <= x1 or y2 <= y1:
            return Rect(x1, y1, 0.0, 0.0)
        return Rect(x1, y1, x2 - x1, y2 - y1)

    @classmethod
    def from_centroid(cls, cx, cy, width, height):
        return cls(float(cx) - width / 2.0, float(cy) - height / 2.0, width, height)


@dataclass(frozen=True)
class Frame:
    """A timestamped sensor frame. The payload is opaque to the manager."""
    stamp: Timestamp
    payload: Any = None

    @property
    def image_size(self):
        """(width, height) of the payload image, or None if it has no shape."""
        shape = getattr(self.payload, 'shape', None)
        if shape is None or len(shape) < 2:
            return None
        return shape[1], shape[0]


@dataclass(frozen=True)
class DetectedObject:
    label: str
    confidence: float
    rect: Rect


@dataclass(frozen=True, eq=False)
class Traj:
    """Predicted rectangle and positional covariance for one timestamp."""
    stamp: Timestamp
    rect: Rect
    covariance: np.ndarray = field(repr=False)
