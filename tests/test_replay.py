#!/usr/bin/env python3
"""
Test the replay driver and JSONL event output with synthetic frames.
"""

import json

from object_tracker.config import DEFAULT_CONFIG, load_config
from object_tracker.manager import TrackingManager
from object_tracker.replay import TrackEventWriter, load_frames, main, parse_record, process_stream


def create_test_records():
    """Two objects moving apart, with a detection-free frame in between."""
    records = []
    for i in range(6):
        record = {
            'sec': 100,
            'nanosec': i * 100000000,
            'width': 640,
            'height': 480
        }
        if i != 3:
            record['detections'] = [
                {'label': 'cat', 'confidence': 0.9, 'rect': [100 + i, 100, 20, 20]},
                {'label': 'dog', 'confidence': 0.8, 'rect': [300 - i, 100, 30, 30]}
            ]
        records.append(record)
    return records


def write_jsonl(path, records):
    with open(path, 'w') as f:
        for record in records:
            f.write(json.dumps(record) + '\n')


def test_load_frames_jsonl_and_array(tmp_path):
    records = create_test_records()
    jsonl = tmp_path / 'frames.jsonl'
    write_jsonl(jsonl, records)
    array = tmp_path / 'frames.json'
    array.write_text(json.dumps(records))

    assert load_frames(jsonl) == records
    assert load_frames(array) == records


def test_load_frames_skips_bad_lines(tmp_path):
    path = tmp_path / 'frames.jsonl'
    path.write_text('{"sec": 1, "nanosec": 0}\nnot json\n{"sec": 2, "nanosec": 0}\n')
    records = load_frames(path)
    assert [r['sec'] for r in records] == [1, 2]


def test_parse_record():
    frame, detections = parse_record(create_test_records()[0])
    assert frame.stamp == (100, 0)
    assert frame.image_size == (640, 480)
    assert [d.label for d in detections] == ['cat', 'dog']

    frame, detections = parse_record({'sec': 1})
    assert detections is None
    assert frame.image_size is None


def test_process_stream_writes_one_event_per_frame(tmp_path):
    out_path = tmp_path / 'events.jsonl'
    writer = TrackEventWriter(str(out_path))
    manager = TrackingManager(config=DEFAULT_CONFIG)
    process_stream(create_test_records(), manager, event_writer=writer)
    writer.close()

    events = [json.loads(line) for line in out_path.read_text().splitlines()]
    assert len(events) == 6
    assert events[3]['n_detections'] == 0
    last = events[-1]
    assert [t['id'] for t in last['tracks']] == [0, 1], "Both objects should keep their tracks"
    assert [t['label'] for t in last['tracks']] == ['cat', 'dog']


def test_main_cli(tmp_path):
    in_path = tmp_path / 'frames.jsonl'
    out_path = tmp_path / 'events.jsonl'
    write_jsonl(in_path, create_test_records())

    config_path = tmp_path / 'config.yaml'
    config_path.write_text('tracker:\n  window_size: 3\n')

    assert main([str(in_path), '-s', str(out_path), '-c', str(config_path),
                 '--strategy', 'max_weight']) == 0
    events = out_path.read_text().splitlines()
    assert len(events) == 6
    assert len(json.loads(events[-1])['tracks']) == 2


def test_load_config_merges_defaults(tmp_path):
    config_path = tmp_path / 'config.yaml'
    config_path.write_text('tracker:\n  gate_threshold: 3.0\ntrack:\n  max_missed: 4\n')
    config = load_config(str(config_path))

    assert config['tracker']['gate_threshold'] == 3.0
    assert config['tracker']['window_size'] == 5
    assert config['track']['max_missed'] == 4
    assert config['process_noise'] == DEFAULT_CONFIG['process_noise']
    # Defaults are not mutated by loading
    assert DEFAULT_CONFIG['tracker']['gate_threshold'] == 2.0
