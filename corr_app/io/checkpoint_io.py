"""
Checkpoint I/O for extraction snapshots and graph summaries (.npz files).

A checkpoint stores the detections of every frame in one of two layouts,
named by its `layout` member:

- "positional": `kp_float` (K, 5) float32 holding x, y, size, angle, response
  and `kp_int` (K, 2) int32 holding octave, class_id, in that order.
- "tagged": `keypoint_fields` lists the stored field names and each field
  has its own `kp_<name>` column.

Both decoders require all seven detection fields exactly once.
"""

from __future__ import annotations

import zipfile
from typing import Dict, List

import numpy as np

from corr_app.corr.data_structures import CorrespondenceGraph
from corr_app.corr.snapshot import (
    FLOAT_FIELDS,
    INT_FIELDS,
    KEYPOINT_FIELDS,
    ExtractionSnapshot,
    FrameRecord,
    Keypoint,
)

LAYOUTS = ("positional", "tagged")

INT32_MAX = int(np.iinfo(np.int32).max)
INT32_MIN = int(np.iinfo(np.int32).min)
UINT64_MAX = int(np.iinfo(np.uint64).max)


class CheckpointError(ValueError):
    """Raised when a checkpoint cannot be encoded or decoded."""


def _keypoint_columns(snapshot: ExtractionSnapshot) -> Dict[str, np.ndarray]:
    keypoints = [kp for rec in snapshot.records for kp in rec.keypoints]
    columns = {}
    for name in KEYPOINT_FIELDS:
        values = [getattr(kp, name) for kp in keypoints]
        if name in INT_FIELDS:
            if values and (min(values) < INT32_MIN or max(values) > INT32_MAX):
                raise CheckpointError(f"field '{name}' does not fit in int32")
            columns[name] = np.array(values, dtype=np.int32)
        else:
            columns[name] = np.array(values, dtype=np.float32)
    return columns


def save_checkpoint(
    output_path: str,
    snapshot: ExtractionSnapshot,
    layout: str = "tagged",
) -> None:
    """
    Save an extraction snapshot to a .npz checkpoint.

    Args:
        output_path: Destination file; written as given, no suffix is added.
        snapshot: Descriptor matrix and frame records to persist.
        layout: Detection encoding, "tagged" or "positional".
    """
    if layout not in LAYOUTS:
        raise CheckpointError(f"Unknown layout {layout!r}, expected one of {LAYOUTS}")

    n_frames = len(snapshot.records)
    frame_ids = [rec.frame_id for rec in snapshot.records]
    if frame_ids and (min(frame_ids) < 0 or max(frame_ids) > UINT64_MAX):
        raise CheckpointError("frame ids must fit in uint64")
    bounds = [b for rec in snapshot.records for b in (rec.start, rec.end)]
    if bounds and (min(bounds) < INT32_MIN or max(bounds) > INT32_MAX):
        raise CheckpointError("descriptor row ranges must fit in int32")

    ranges = np.array(
        [(rec.start, rec.end) for rec in snapshot.records], dtype=np.int32
    ).reshape(n_frames, 2)
    keypoint_counts = np.array(
        [len(rec.keypoints) for rec in snapshot.records], dtype=np.int32
    )
    columns = _keypoint_columns(snapshot)

    arrays = dict(
        layout=np.array(layout),
        descriptors=np.ascontiguousarray(snapshot.descriptors),
        frame_ids=np.array(frame_ids, dtype=np.uint64),
        ranges=ranges,
        keypoint_counts=keypoint_counts,
    )
    if layout == "positional":
        arrays["kp_float"] = np.stack([columns[name] for name in FLOAT_FIELDS], axis=1)
        arrays["kp_int"] = np.stack([columns[name] for name in INT_FIELDS], axis=1)
    else:
        arrays["keypoint_fields"] = np.array(KEYPOINT_FIELDS)
        for name in KEYPOINT_FIELDS:
            arrays[f"kp_{name}"] = columns[name]

    # A file object keeps np.savez from appending ".npz" to the path.
    with open(output_path, "wb") as f:
        np.savez(f, **arrays)
    print(f"[checkpoint] Saved {n_frames} frames ({layout}) to {output_path}")


def _member(data, name: str) -> np.ndarray:
    if name not in data.files:
        raise CheckpointError(f"checkpoint is missing '{name}'")
    try:
        return data[name]
    except (zipfile.BadZipFile, EOFError, ValueError) as e:
        raise CheckpointError(f"checkpoint member '{name}' is corrupt: {e}") from e


def _decode_positional(data, n_keypoints: int) -> Dict[str, np.ndarray]:
    """Decode detections stored as ordered float and int columns."""
    columns = {}
    for member, names in (("kp_float", FLOAT_FIELDS), ("kp_int", INT_FIELDS)):
        block = _member(data, member)
        if block.ndim != 2 or block.shape[0] != n_keypoints:
            raise CheckpointError(
                f"'{member}' has shape {block.shape}, expected ({n_keypoints}, {len(names)})"
            )
        width = block.shape[1]
        if width < len(names):
            raise CheckpointError(
                f"missing field '{names[width]}' (position {KEYPOINT_FIELDS.index(names[width])})"
            )
        if width > len(names):
            raise CheckpointError(
                f"'{member}' has {width} columns, expected {len(names)} ({', '.join(names)})"
            )
        for i, name in enumerate(names):
            columns[name] = block[:, i]
    return columns


def _decode_tagged(data, n_keypoints: int) -> Dict[str, np.ndarray]:
    """Decode detections stored as one named column per field."""
    columns = {}
    for tag in _member(data, "keypoint_fields").tolist():
        if tag not in KEYPOINT_FIELDS:
            raise CheckpointError(f"unknown field '{tag}'")
        if tag in columns:
            raise CheckpointError(f"duplicate field '{tag}'")
        column = _member(data, f"kp_{tag}")
        if column.shape != (n_keypoints,):
            raise CheckpointError(
                f"field '{tag}' has shape {column.shape}, expected ({n_keypoints},)"
            )
        columns[tag] = column

    for name in KEYPOINT_FIELDS:
        if name not in columns:
            raise CheckpointError(f"missing field '{name}'")
    return columns


def _to_keypoints(columns: Dict[str, np.ndarray]) -> List[Keypoint]:
    lists = []
    for name in KEYPOINT_FIELDS:
        dtype = np.int32 if name in INT_FIELDS else np.float32
        lists.append(columns[name].astype(dtype).tolist())
    return [Keypoint(*values) for values in zip(*lists)]


def load_checkpoint(input_path: str) -> ExtractionSnapshot:
    """
    Load an extraction snapshot from a .npz checkpoint.

    Args:
        input_path: Path to a file written by `save_checkpoint`.

    Returns:
        The restored ExtractionSnapshot.

    Raises:
        CheckpointError: if the archive is truncated or its contents are malformed.
        OSError: if the file cannot be read.
    """
    try:
        data = np.load(input_path, allow_pickle=False)
    except (zipfile.BadZipFile, EOFError) as e:
        # truncated or partially written archive
        raise CheckpointError(f"{input_path} is not a readable checkpoint: {e}") from e
    if not isinstance(data, np.lib.npyio.NpzFile):
        raise CheckpointError(f"{input_path} is not a checkpoint archive")

    with data:
        layout = str(_member(data, "layout").item())
        descriptors = _member(data, "descriptors")
        frame_ids = _member(data, "frame_ids")
        ranges = _member(data, "ranges")
        keypoint_counts = _member(data, "keypoint_counts")

        n_frames = frame_ids.shape[0]
        if ranges.shape != (n_frames, 2) or keypoint_counts.shape != (n_frames,):
            raise CheckpointError(
                f"frame tables disagree: {n_frames} frame ids, ranges {ranges.shape}, "
                f"counts {keypoint_counts.shape}"
            )
        n_keypoints = int(keypoint_counts.sum())

        if layout == "positional":
            columns = _decode_positional(data, n_keypoints)
        elif layout == "tagged":
            columns = _decode_tagged(data, n_keypoints)
        else:
            raise CheckpointError(f"unknown layout '{layout}'")

        keypoints = _to_keypoints(columns)

    records = []
    offset = 0
    for frame_id, (start, end), count in zip(
        frame_ids.tolist(), ranges.tolist(), keypoint_counts.tolist()
    ):
        records.append(
            FrameRecord(
                frame_id=frame_id,
                keypoints=keypoints[offset:offset + count],
                start=start,
                end=end,
            )
        )
        offset += count

    print(f"[checkpoint] Loaded {len(records)} frames from {input_path}")
    return ExtractionSnapshot(descriptors=descriptors, records=records)


def save_graph_npz(
    output_path: str,
    graph: CorrespondenceGraph,
) -> None:
    """
    Serialize a correspondence graph summary to a .npz file.

    Per-frame landmark lists and per-landmark occurrence lists are stored as
    flat arrays with offsets (`*_offsets[i]:*_offsets[i + 1]`).

    Args:
        output_path: Path where the graph data will be saved (.npz file).
        graph: Graph produced by the correspondence matcher.
    """
    frames = list(graph.frames())
    landmarks = list(graph.landmarks())

    frame_indices = np.array([node.index for node in frames], dtype=np.uint64)
    frame_offsets = np.zeros(len(frames) + 1, dtype=np.int64)
    frame_offsets[1:] = np.cumsum([len(node) for node in frames])
    frame_landmarks = np.array(
        [lid for node in frames for lid in node.landmark_ids], dtype=np.int64
    )

    seed_rows = np.array([lm.seed_row for lm in landmarks], dtype=np.int64)
    if landmarks:
        descriptors = np.stack([lm.descriptor for lm in landmarks])
        positions = np.stack([lm.position for lm in landmarks])
    else:
        descriptors = np.zeros((0, 0))
        positions = np.zeros((0, 3))
    occurrence_offsets = np.zeros(len(landmarks) + 1, dtype=np.int64)
    occurrence_offsets[1:] = np.cumsum([lm.track_length for lm in landmarks])
    occurrences = np.array(
        [handle for lm in landmarks for handle in lm.occurrences], dtype=np.int64
    )

    with open(output_path, "wb") as f:
        np.savez(
            f,
            frame_indices=frame_indices,
            frame_offsets=frame_offsets,
            frame_landmarks=frame_landmarks,
            landmark_seed_rows=seed_rows,
            landmark_descriptors=descriptors,
            landmark_positions=positions,
            occurrence_offsets=occurrence_offsets,
            occurrences=occurrences,
        )


__all__ = [
    "LAYOUTS",
    "CheckpointError",
    "save_checkpoint",
    "load_checkpoint",
    "save_graph_npz",
]
