"""
Correspondence matching: resolve detections across frames into shared landmarks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

from corr_app.config import MatchingConfig
from corr_app.corr.data_structures import CorrespondenceGraph
from corr_app.corr.snapshot import (
    ExtractionSnapshot,
    find_record_index,
    validate_snapshot,
)
from corr_app.features.matching import DescriptorIndex


@dataclass
class MatchStats:
    """Counters collected while building a graph."""

    # rows whose best match passed the distance threshold
    accepted: int = 0
    # rows whose best match was too far, or that had no candidate at all
    rejected: int = 0
    # accepted matches into an earlier / a later frame
    backward: int = 0
    forward: int = 0
    # rows already claimed by an earlier frame's forward match
    claimed: int = 0


def build_correspondence_graph(
    snapshot: ExtractionSnapshot,
    config: MatchingConfig | None = None,
    verbose: bool = False,
) -> tuple[CorrespondenceGraph, MatchStats]:
    """
    Build the landmark graph for an extraction snapshot.

    Frames are processed in record order. Each unclaimed row is matched against
    the whole descriptor matrix, minus its own frame's rows. An accepted match
    onto a row that already has a landmark reuses that landmark; otherwise a
    new landmark is seeded from the query row and both rows are mapped to it.
    A later frame whose row was claimed this way keeps the landmark without a
    new query.

    Args:
        snapshot: Validated (or to be validated) extraction output.
        config: Matching settings; defaults to MatchingConfig().
        verbose: Print one line per frame.

    Returns:
        Tuple of (graph, stats).

    Raises:
        SnapshotValidationError: if the frame ranges do not tile the matrix.
    """
    if config is None:
        config = MatchingConfig()
    validate_snapshot(snapshot)

    graph = CorrespondenceGraph()
    stats = MatchStats()
    if not snapshot.records:
        print("[match] Empty snapshot; nothing to match.")
        return graph, stats

    descriptors = snapshot.descriptors
    index = DescriptorIndex(descriptors, metric=config.metric, block_rows=config.block_rows)
    print(
        f"[match] Indexed {len(index)} descriptors from {len(snapshot.records)} frames "
        f"({index.metric}, max distance {config.max_match_distance})"
    )

    starts = [rec.start for rec in snapshot.records]
    # row -> landmark id; written only through claim()
    row_landmarks: Dict[int, int] = {}

    def claim(row: int, landmark_id: int) -> int:
        return row_landmarks.setdefault(row, landmark_id)

    for rec_idx, rec in enumerate(snapshot.records):
        pending = [r for r in rec.rows() if r not in row_landmarks]
        stats.claimed += rec.num_rows - len(pending)

        if pending:
            best_rows, best_dist = index.query(
                descriptors[pending], exclude=(rec.start, rec.end)
            )
        else:
            best_rows, best_dist = [], []

        n_accepted = 0
        for row, match_row, dist in zip(pending, best_rows, best_dist):
            keypoint = rec.keypoints[row - rec.start]
            match_row = int(match_row)

            if match_row < 0 or dist > config.max_match_distance:
                stats.rejected += 1
                claim(row, graph.add_landmark(descriptors[row], keypoint, row))
                continue

            stats.accepted += 1
            n_accepted += 1
            owner = find_record_index(starts, match_row)
            if owner < rec_idx:
                stats.backward += 1
            else:
                stats.forward += 1

            landmark_id = row_landmarks.get(match_row)
            if landmark_id is None:
                landmark_id = claim(
                    match_row, graph.add_landmark(descriptors[row], keypoint, row)
                )
            claim(row, landmark_id)

        landmark_ids: List[int] = [row_landmarks[r] for r in rec.rows()]
        graph.append_frame(rec.frame_id, landmark_ids)

        if verbose:
            print(
                f"[match] Frame {rec.frame_id}: {rec.num_rows} detections, "
                f"{n_accepted} matched, {rec.num_rows - len(pending)} pre-claimed"
            )

    print(
        f"[match] Built graph with {graph.num_frames} frames and "
        f"{graph.num_landmarks} landmarks ({stats.accepted} accepted matches, "
        f"{stats.rejected} unmatched detections)"
    )
    return graph, stats


__all__ = ["MatchStats", "build_correspondence_graph"]
