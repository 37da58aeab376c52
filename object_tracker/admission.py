"""
Temporal admission control for incoming frames.

The window keeps the last few accepted frame timestamps. New frames must be
strictly later than the most recent one; detection batches are correlated to
frames by exact timestamp equality.
"""

from collections import deque
from enum import Enum


def nanosec_order(latest, stamp):
    """True if `stamp` comes after `latest`, comparing the nanosecond field only."""
    return stamp.nanosec > latest.nanosec


def full_order(latest, stamp):
    """True if `stamp` comes after `latest`, comparing (sec, nanosec)."""
    return (stamp.sec, stamp.nanosec) > (latest.sec, latest.nanosec)


class FrameOrder(Enum):
    """Frame ordering rules."""
    NANOSEC = 'nanosec'  # Sub-second field only; wraps at second boundaries
    FULL = 'full'

    @property
    def comparator(self):
        return nanosec_order if self is FrameOrder.NANOSEC else full_order


class FrameAdmissionWindow:
    """
    Bounded FIFO of admitted frame timestamps.

    Args:
        capacity: Maximum number of timestamps kept (oldest evicted first)
        order: FrameOrder or a callable (latest, stamp) -> bool
    """

    def __init__(self, capacity=5, order=FrameOrder.NANOSEC):
        if capacity < 1:
            raise ValueError(f"Admission window capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._is_after = order.comparator if isinstance(order, FrameOrder) else order
        self._stamps = deque()

    def __len__(self):
        return len(self._stamps)

    def __iter__(self):
        return iter(self._stamps)

    @property
    def latest(self):
        return self._stamps[-1] if self._stamps else None

    def is_frame_order_valid(self, stamp):
        if not self._stamps:
            return True
        return self._is_after(self._stamps[-1], stamp)

    def admit(self, stamp):
        self._stamps.append(stamp)
        while len(self._stamps) > self.capacity:
            self._stamps.popleft()

    def contains(self, stamp):
        return any(s.sec == stamp.sec and s.nanosec == stamp.nanosec for s in self._stamps)
