"""
Visualization of landmark tracks using Plotly.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

import plotly.graph_objs as go

from corr_app.corr.data_structures import CorrespondenceGraph
from corr_app.corr.snapshot import ExtractionSnapshot


def plot_landmark_tracks(
    graph: CorrespondenceGraph,
    snapshot: ExtractionSnapshot,
    min_track_length: int = 2,
    max_tracks: int = 300,
) -> go.Figure:
    """
    Create a 3D Plotly figure of landmark tracks through the video.

    Each track is drawn as a polyline through (x, y, frame index) of the
    detections resolved to the landmark.

    Args:
        graph: Graph built from `snapshot`.
        snapshot: Snapshot providing detection positions.
        min_track_length: Skip landmarks seen in fewer frames.
        max_tracks: Draw at most this many of the longest tracks.

    Returns:
        Plotly Figure object.
    """
    # landmark id -> [(x, y, frame index)]
    tracks: Dict[int, List[Tuple[float, float, int]]] = {}
    for node, record in zip(graph.frames(), snapshot.records):
        for lid, kp in zip(node.landmark_ids, record.keypoints):
            tracks.setdefault(lid, []).append((kp.x, kp.y, node.index))

    selected = [
        lid for lid in tracks if graph.landmark(lid).track_length >= min_track_length
    ]
    selected.sort(key=lambda lid: (-graph.landmark(lid).track_length, lid))
    selected = selected[:max_tracks]

    fig = go.Figure()
    for lid in selected:
        xs, ys, zs = zip(*tracks[lid])
        fig.add_trace(
            go.Scatter3d(
                x=xs,
                y=ys,
                z=zs,
                mode="lines+markers",
                marker=dict(size=2),
                line=dict(width=2),
                name=f"Landmark {lid}",
                showlegend=False,
            )
        )

    fig.update_layout(
        title=f"Landmark tracks ({len(selected)} of {graph.num_landmarks} landmarks)",
        scene=dict(
            xaxis_title="x (px)",
            yaxis_title="y (px)",
            zaxis_title="Frame",
        ),
        width=800,
        height=600,
    )

    return fig


__all__ = ["plot_landmark_tracks"]
