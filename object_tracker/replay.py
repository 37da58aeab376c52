#!/usr/bin/env python3
"""
Replay recorded frames and detections through the tracking manager.

Input is a JSON array or JSONL file of frame records:

    {"sec": 12, "nanosec": 500000000, "width": 640, "height": 480,
     "detections": [{"label": "cat", "confidence": 0.9, "rect": [10, 10, 20, 20]}]}

Each record is tracked, its detections (if any) associated, inactive tracks
pruned, and one JSONL event with the live tracks is written per frame.
"""

import argparse
import json
import logging
import sys

import numpy as np

from .assignment import AssignmentStrategy
from .config import get_config, load_config, set_config
from .manager import TrackingManager
from .types import DetectedObject, Frame, Rect, Timestamp

logger = logging.getLogger(__name__)


# ============================================================================
# TRACK EVENT WRITER (JSONL STREAMING OUTPUT)
# ============================================================================

class TrackEventWriter:
    """
    Writes per-frame track events in JSONL (JSON Lines) format.
    Each event is a single JSON object on its own line, enabling streaming consumption.
    """

    def __init__(self, output_file):
        """
        Initialize event writer.

        Args:
            output_file: Path to output file, or '-' for stdout
        """
        if output_file == '-':
            self.output = sys.stdout
            self._is_stdout = True
        else:
            self.output = open(output_file, 'w')
            self._is_stdout = False

    def write_event(self, stamp, tracks, n_detections=0, removed=()):
        """
        Write the state of the live tracks after one frame.

        Args:
            stamp: Frame Timestamp
            tracks: Live tracks (objects with to_dict())
            n_detections: Number of detections processed for this frame
            removed: Ids of tracks pruned on this frame
        """
        event = {
            'sec': stamp.sec,
            'nanosec': stamp.nanosec,
            'n_detections': n_detections,
            'removed': list(removed),
            'tracks': [t.to_dict() for t in tracks]
        }
        self.output.write(json.dumps(event) + '\n')
        self.output.flush()  # Important for streaming

    def close(self):
        """Close the output file (if not stdout)."""
        if not self._is_stdout:
            self.output.close()


# ============================================================================
# INPUT
# ============================================================================

def load_frames(filepath):
    """Load frame records from JSON or JSONL file."""
    with open(filepath, 'r') as f:
        content = f.read().strip()

    # Try parsing as single JSON array first
    try:
        records = json.loads(content)
        if isinstance(records, list):
            return records
    except json.JSONDecodeError:
        pass

    # Try parsing as JSONL (one JSON object per line)
    records = []
    for line_num, line in enumerate(content.split('\n'), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse line %d in %s: %s", line_num, filepath, e)

    return records


def parse_record(record):
    """
    Convert one frame record to (Frame, detections).

    Returns:
        Frame and a list of DetectedObject, or None when the record has no
        'detections' key (a frame without a detection batch)
    """
    stamp = Timestamp(int(record['sec']), int(record.get('nanosec', 0)))
    payload = None
    if 'width' in record and 'height' in record:
        # Only the image shape is needed downstream
        payload = np.empty((int(record['height']), int(record['width']), 0), dtype=np.uint8)
    frame = Frame(stamp, payload)

    if 'detections' not in record:
        return frame, None
    detections = [
        DetectedObject(d['label'], float(d.get('confidence', 1.0)), Rect(*map(float, d['rect'])))
        for d in record['detections']
    ]
    return frame, detections


# ============================================================================
# REPLAY
# ============================================================================

def process_stream(records, manager, event_writer=None):
    """
    Run frame records through a manager.

    Args:
        records: Iterable of frame record dicts
        manager: TrackingManager
        event_writer: Optional TrackEventWriter

    Returns:
        The manager
    """
    for i, record in enumerate(records):
        frame, detections = parse_record(record)
        manager.track(frame)
        if detections is not None:
            manager.process_detections(frame, detections)
        removed = manager.prune_inactive()

        if event_writer:
            event_writer.write_event(frame.stamp, manager.get_tracks(),
                                     n_detections=len(detections or ()),
                                     removed=[t.id for t in removed])

        if (i + 1) % 100 == 0:
            logger.info("Processed %d frames, %d live tracks", i + 1, len(manager.tracks))

    return manager


def main(argv=None):
    parser = argparse.ArgumentParser(description='Track detected objects across frames')
    parser.add_argument('file', help='Path to JSON/JSONL frame records')
    parser.add_argument('-c', '--config', type=str,
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('-s', '--stream-output', type=str, default='-',
                        help='Output file for streaming JSONL events (default: - for stdout)')
    parser.add_argument('--strategy', choices=[s.value for s in AssignmentStrategy],
                        help='Assignment strategy (overrides config)')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    # Logs go to stderr; stdout may carry the event stream
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr
    )

    if args.config:
        set_config(load_config(args.config))
    config = get_config()

    overrides = {}
    if args.strategy:
        overrides['strategy'] = AssignmentStrategy(args.strategy)
    manager = TrackingManager.from_config(config, **overrides)

    records = load_frames(args.file)
    logger.info("Loaded %d frame records from %s", len(records), args.file)

    event_writer = TrackEventWriter(args.stream_output)
    try:
        process_stream(records, manager, event_writer=event_writer)
    finally:
        event_writer.close()

    logger.info("Finished with %d live tracks", len(manager.tracks))
    return 0


if __name__ == '__main__':
    sys.exit(main())
