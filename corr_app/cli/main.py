"""
Command-line interface for the correspondence-graph pipeline.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List

import numpy as np

from corr_app.config import get_config
from corr_app.corr.correspondence import build_correspondence_graph
from corr_app.features.extraction import extract_snapshot_from_video
from corr_app.io.checkpoint_io import LAYOUTS, load_checkpoint, save_checkpoint, save_graph_npz
from corr_app.viz.plotly_viz import plot_landmark_tracks


def run_extract(args: argparse.Namespace) -> int:
    """Extract features from a video and write the checkpoint."""
    extraction_config, _ = get_config(args.detector)
    extraction_config.every_n = args.every_n
    extraction_config.max_frames = args.max_frames

    print(f"Extracting {args.detector.upper()} features from {args.video}...")
    snapshot = extract_snapshot_from_video(args.video, extraction_config, verbose=args.verbose)

    if len(snapshot.records) == 0:
        print("Error: No frames read from video")
        return 1

    print(
        f"Extracted {snapshot.num_rows} descriptors from {len(snapshot.records)} frames"
    )

    # Only a complete pass reaches this point, so no partial checkpoint exists.
    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    save_checkpoint(str(output_path), snapshot, layout=args.layout)
    print(f"Checkpoint saved to {output_path}")
    return 0


def run_match(args: argparse.Namespace) -> int:
    """Build the correspondence graph from a checkpoint and report it."""
    print(f"Loading checkpoint {args.checkpoint}...")
    snapshot = load_checkpoint(args.checkpoint)

    detector = args.detector
    if detector is None:
        # binary descriptors come from ORB, float descriptors from SIFT
        detector = "orb" if snapshot.descriptors.dtype == np.uint8 else "sift"
    _, matching_config = get_config(detector)
    if args.max_distance is not None:
        matching_config.max_match_distance = args.max_distance
    if args.metric is not None:
        matching_config.metric = args.metric

    print("Matching descriptors across frames...")
    graph, stats = build_correspondence_graph(snapshot, matching_config, verbose=args.verbose)

    summary = graph.summary()
    print(f"Frames:                  {summary['num_frames']}")
    print(f"Landmarks:               {summary['num_landmarks']}")
    print(f"Observations:            {summary['num_observations']}")
    print(f"Multi-frame landmarks:   {summary['num_multi_frame_landmarks']}")
    print(f"Max track length:        {summary['max_track_length']}")
    print(f"Mean track length:       {summary['mean_track_length']:.3f}")
    print(
        f"Matches: {stats.accepted} accepted ({stats.backward} backward, "
        f"{stats.forward} forward), {stats.rejected} rejected, {stats.claimed} pre-claimed"
    )

    if args.output:
        print(f"Saving graph to {args.output}...")
        save_graph_npz(args.output, graph)

    if args.visualize:
        print("Generating visualization...")
        fig = plot_landmark_tracks(graph, snapshot)
        fig.write_html(args.visualize)
        print(f"Visualization saved to {args.visualize}")

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build a feature-correspondence graph from video"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser(
        "extract",
        help="Detect features in every frame and write an extraction checkpoint",
    )
    extract.add_argument(
        "--video",
        type=str,
        required=True,
        help="Path to input video file",
    )
    extract.add_argument(
        "--output",
        type=str,
        default="extraction.npz",
        help="Checkpoint file to write (default: extraction.npz)",
    )
    extract.add_argument(
        "--detector",
        type=str,
        default="orb",
        choices=["orb", "sift"],
        help="Feature detector (default: orb)",
    )
    extract.add_argument(
        "--every-n",
        type=int,
        default=1,
        help="Use every Nth video frame (default: 1)",
    )
    extract.add_argument(
        "--max-frames",
        type=int,
        default=None,
        help="Maximum number of frames to process (default: all)",
    )
    extract.add_argument(
        "--layout",
        type=str,
        default="tagged",
        choices=list(LAYOUTS),
        help="Detection encoding inside the checkpoint (default: tagged)",
    )
    extract.add_argument("--verbose", action="store_true", help="Print per-frame progress")
    extract.set_defaults(func=run_extract)

    match = subparsers.add_parser(
        "match",
        help="Build the correspondence graph from an extraction checkpoint",
    )
    match.add_argument(
        "--checkpoint",
        type=str,
        required=True,
        help="Checkpoint file written by the extract command",
    )
    match.add_argument(
        "--detector",
        type=str,
        default=None,
        choices=["orb", "sift"],
        help="Detector used for the checkpoint; selects matching defaults (default: from descriptor type)",
    )
    match.add_argument(
        "--max-distance",
        type=float,
        default=None,
        help="Maximum descriptor distance for a match (default: detector specific)",
    )
    match.add_argument(
        "--metric",
        type=str,
        default=None,
        choices=["hamming", "euclidean", "cosine"],
        help="Descriptor distance (default: from descriptor type)",
    )
    match.add_argument(
        "--output",
        type=str,
        default=None,
        help="Optional .npz file for the graph summary",
    )
    match.add_argument(
        "--visualize",
        type=str,
        default=None,
        help="Optional HTML file for a landmark track plot",
    )
    match.add_argument("--verbose", action="store_true", help="Print per-frame progress")
    match.set_defaults(func=run_match)

    return parser


def main(argv: List[str] | None = None) -> int:
    """
    Main CLI entry point.

    Usage:
        corr-app extract --video path/to/scene.mp4 --output extraction.npz
        corr-app match --checkpoint extraction.npz --output graph.npz
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.func(args)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
