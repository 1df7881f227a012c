"""
pytest configuration: synthetic snapshots and descriptors.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# make corr_app importable without installation
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from corr_app.corr.snapshot import ExtractionSnapshot, FrameRecord, Keypoint  # noqa: E402


def random_keypoints(rng, count):
    floats = rng.uniform(0.0, 640.0, size=(count, 5)).astype(np.float32).tolist()
    ints = rng.integers(-1, 8, size=(count, 2)).tolist()
    return [Keypoint(*f, *i) for f, i in zip(floats, ints)]


def flip_bits(descriptor, bits):
    """Return a copy of a uint8 descriptor with the given bit positions flipped."""
    unpacked = np.unpackbits(descriptor)
    unpacked[list(bits)] ^= 1
    return np.packbits(unpacked)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def make_snapshot():
    """Factory building a snapshot from one descriptor block per frame."""

    def _make(blocks, frame_ids=None, seed=0):
        rng = np.random.default_rng(seed)
        if frame_ids is None:
            frame_ids = list(range(len(blocks)))
        records = []
        row = 0
        for frame_id, block in zip(frame_ids, blocks):
            n = len(block)
            records.append(FrameRecord(frame_id, random_keypoints(rng, n), row, row + n))
            row += n
        if blocks:
            descriptors = np.vstack([np.asarray(b) for b in blocks])
        else:
            descriptors = np.zeros((0, 32), dtype=np.uint8)
        return ExtractionSnapshot(descriptors=descriptors, records=records)

    return _make


@pytest.fixture
def binary_descriptor(rng):
    """Factory for random 32-byte ORB-like descriptors."""

    def _make(count=1):
        return rng.integers(0, 256, size=(count, 32), dtype=np.uint8)

    return _make
