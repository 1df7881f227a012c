"""
Video I/O utilities for reading frames in capture order.
"""

from __future__ import annotations

from typing import Iterator, Tuple

import cv2
import numpy as np


def iter_video_frames(
    video_path: str,
    every_n: int = 1,
    max_frames: int | None = None,
) -> Iterator[Tuple[int, np.ndarray]]:
    """
    Yield frames from a video file one at a time.

    Args:
        video_path: Path to the input video file.
        every_n: Yield every Nth frame (default: 1).
        max_frames: Maximum number of frames to yield (None = no limit).

    Yields:
        Tuples of (frame_id, frame) where frame_id is the frame's position in
        the video and frame is an RGB array (H, W, 3), dtype=uint8.
    """
    if every_n < 1:
        raise ValueError(f"every_n must be >= 1, got {every_n}")

    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise ValueError(f"Could not open video file: {video_path}")

    frame_count = 0
    yielded_count = 0
    try:
        while max_frames is None or yielded_count < max_frames:
            ret, frame = cap.read()
            if not ret:
                break

            # Subsample by every_n
            if frame_count % every_n == 0:
                # Convert BGR to RGB
                frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                yield frame_count, frame_rgb.astype(np.uint8)
                yielded_count += 1

            frame_count += 1
    finally:
        cap.release()


__all__ = ["iter_video_frames"]
