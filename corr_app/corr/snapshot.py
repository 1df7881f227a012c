"""
Extraction output: detections, per-frame row ranges and the shared descriptor matrix.

An ExtractionSnapshot is produced once per video pass and is the unit written
to and read from checkpoints. The matcher only accepts snapshots whose frame
records tile the descriptor matrix, see `validate_snapshot`.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import List, Sequence

import cv2
import numpy as np

# Order of the detection fields in the positional encoding.
KEYPOINT_FIELDS = ("x", "y", "size", "angle", "response", "octave", "class_id")
FLOAT_FIELDS = KEYPOINT_FIELDS[:5]
INT_FIELDS = KEYPOINT_FIELDS[5:]


class SnapshotValidationError(ValueError):
    """Raised when frame records do not tile the descriptor matrix."""


@dataclass(frozen=True)
class Keypoint:
    """
    A single local detection.

    Float fields hold float32 values and integer fields int32 values so a
    checkpoint round trip is exact.
    """

    x: float
    y: float
    size: float
    angle: float
    response: float
    octave: int
    class_id: int

    @classmethod
    def from_cv(cls, kp: cv2.KeyPoint) -> "Keypoint":
        values = np.array(
            [kp.pt[0], kp.pt[1], kp.size, kp.angle, kp.response], dtype=np.float32
        ).tolist()
        return cls(*values, octave=int(kp.octave), class_id=int(kp.class_id))

    def to_cv(self) -> cv2.KeyPoint:
        return cv2.KeyPoint(
            self.x,
            self.y,
            self.size,
            self.angle,
            self.response,
            self.octave,
            self.class_id,
        )

    @property
    def pt(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass
class FrameRecord:
    """Detections of one frame and the rows `[start, end)` they own."""

    frame_id: int
    keypoints: List[Keypoint]
    start: int
    end: int

    @property
    def num_rows(self) -> int:
        return self.end - self.start

    def rows(self) -> range:
        return range(self.start, self.end)


@dataclass
class ExtractionSnapshot:
    """Descriptor matrix (one row per detection) plus ordered frame records."""

    descriptors: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 32), dtype=np.uint8)
    )
    records: List[FrameRecord] = field(default_factory=list)

    @property
    def num_rows(self) -> int:
        return int(self.descriptors.shape[0])

    @property
    def num_detections(self) -> int:
        return sum(len(rec.keypoints) for rec in self.records)


def validate_snapshot(snapshot: ExtractionSnapshot) -> None:
    """
    Check that the frame records tile `[0, num_rows)` in frame order.

    Raises:
        SnapshotValidationError: naming the first violated invariant.
    """
    descriptors = snapshot.descriptors
    if descriptors.ndim != 2:
        raise SnapshotValidationError(
            f"descriptor matrix must be 2-D, got shape {descriptors.shape}"
        )

    expected_start = 0
    prev_frame_id = None
    for i, rec in enumerate(snapshot.records):
        if rec.frame_id < 0:
            raise SnapshotValidationError(
                f"record {i}: frame id {rec.frame_id} is negative"
            )
        if prev_frame_id is not None and rec.frame_id <= prev_frame_id:
            raise SnapshotValidationError(
                f"record {i}: frame id {rec.frame_id} does not follow {prev_frame_id} "
                "(frame ids must be strictly increasing)"
            )
        if rec.end < rec.start:
            raise SnapshotValidationError(
                f"record {i} (frame {rec.frame_id}): range [{rec.start}, {rec.end}) is reversed"
            )
        if rec.start < expected_start:
            raise SnapshotValidationError(
                f"record {i} (frame {rec.frame_id}): range [{rec.start}, {rec.end}) "
                f"overlaps the previous range ending at {expected_start}"
            )
        if rec.start > expected_start:
            raise SnapshotValidationError(
                f"record {i} (frame {rec.frame_id}): rows [{expected_start}, {rec.start}) "
                "are not owned by any frame"
            )
        if rec.num_rows != len(rec.keypoints):
            raise SnapshotValidationError(
                f"record {i} (frame {rec.frame_id}): range holds {rec.num_rows} rows "
                f"but the frame has {len(rec.keypoints)} detections"
            )
        expected_start = rec.end
        prev_frame_id = rec.frame_id

    if expected_start != snapshot.num_rows:
        raise SnapshotValidationError(
            f"frame ranges cover {expected_start} rows but the descriptor matrix has "
            f"{snapshot.num_rows}"
        )


def find_record_index(starts: Sequence[int], row: int) -> int:
    """
    Binary search for the record owning `row`.

    Args:
        starts: Range starts of a validated snapshot, in record order.
        row: Row index into the descriptor matrix.

    Returns:
        Index of the last record whose start is <= row. Empty ranges sharing a
        start with a non-empty one come before it, so the owner is returned.
    """
    idx = bisect_right(starts, row) - 1
    if idx < 0:
        raise IndexError(f"row {row} precedes the first frame range")
    return idx


__all__ = [
    "KEYPOINT_FIELDS",
    "FLOAT_FIELDS",
    "INT_FIELDS",
    "Keypoint",
    "FrameRecord",
    "ExtractionSnapshot",
    "SnapshotValidationError",
    "validate_snapshot",
    "find_record_index",
]
