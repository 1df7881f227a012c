"""
Extraction pass: per-frame detections appended to one shared descriptor matrix.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

import cv2
import numpy as np

from corr_app.config import ExtractionConfig
from corr_app.corr.snapshot import ExtractionSnapshot, FrameRecord, Keypoint
from corr_app.features.keypoints import create_detector, detect_keypoints
from corr_app.io.video_io import iter_video_frames


def extract_frame(
    image: np.ndarray,
    frame_id: int,
    descriptor_blocks: List[np.ndarray],
    row_count: int,
    detector: cv2.Feature2D,
) -> FrameRecord:
    """
    Detect features in one frame and append its descriptors.

    Args:
        image: Frame image (H, W, 3) or (H, W), dtype=uint8.
        frame_id: Capture sequence number of the frame.
        descriptor_blocks: Per-frame descriptor blocks so far; the block of this
            frame is appended in place.
        row_count: Rows already present in `descriptor_blocks`.
        detector: Detector created by `create_detector`.

    Returns:
        FrameRecord owning rows `[row_count, row_count + n_detections)`.
    """
    keypoints, descriptors = detect_keypoints(image, detector)

    if descriptor_blocks:
        first = descriptor_blocks[0]
        if descriptors.dtype != first.dtype or descriptors.shape[1] != first.shape[1]:
            raise ValueError(
                f"Frame {frame_id}: descriptors {descriptors.dtype}x{descriptors.shape[1]} "
                f"do not match the matrix {first.dtype}x{first.shape[1]}"
            )

    start = row_count
    end = start + descriptors.shape[0]
    descriptor_blocks.append(descriptors)

    return FrameRecord(
        frame_id=frame_id,
        keypoints=[Keypoint.from_cv(kp) for kp in keypoints],
        start=start,
        end=end,
    )


def extract_snapshot(
    frames: Iterable[Tuple[int, np.ndarray]],
    config: ExtractionConfig | None = None,
    verbose: bool = False,
) -> ExtractionSnapshot:
    """
    Run the extraction pass over frames given in capture order.

    Args:
        frames: Iterable of (frame_id, image) pairs.
        config: Extraction settings; defaults to ExtractionConfig().
        verbose: Print one line per frame.

    Returns:
        ExtractionSnapshot with the full descriptor matrix and one record per frame.
    """
    if config is None:
        config = ExtractionConfig()
    detector = create_detector(config)

    descriptor_blocks: List[np.ndarray] = []
    records: List[FrameRecord] = []
    row_count = 0

    for frame_id, image in frames:
        record = extract_frame(image, frame_id, descriptor_blocks, row_count, detector)
        row_count = record.end
        records.append(record)
        if verbose:
            print(f"[extract] Frame {frame_id}: {record.num_rows} keypoints")

    if descriptor_blocks:
        descriptors = np.vstack(descriptor_blocks)
    else:
        dtype = np.uint8 if detector.descriptorType() == cv2.CV_8U else np.float32
        descriptors = np.zeros((0, detector.descriptorSize()), dtype=dtype)

    print(f"[extract] {len(records)} frames, {descriptors.shape[0]} descriptors")
    return ExtractionSnapshot(descriptors=descriptors, records=records)


def extract_snapshot_from_video(
    video_path: str,
    config: ExtractionConfig | None = None,
    verbose: bool = False,
) -> ExtractionSnapshot:
    """Run the extraction pass over a video file."""
    if config is None:
        config = ExtractionConfig()
    frames = iter_video_frames(video_path, every_n=config.every_n, max_frames=config.max_frames)
    return extract_snapshot(frames, config, verbose=verbose)


__all__ = ["extract_frame", "extract_snapshot", "extract_snapshot_from_video"]
