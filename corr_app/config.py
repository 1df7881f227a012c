"""
Configuration for feature extraction and correspondence matching.
"""

from __future__ import annotations

from dataclasses import dataclass

import cv2


@dataclass
class ExtractionConfig:
    """Detector settings and frame sampling for the extraction pass."""

    use_sift: bool = False

    # ORB
    n_features: int = 500
    scale_factor: float = 1.2
    n_levels: int = 8
    edge_threshold: int = 31
    first_level: int = 0
    wta_k: int = 2
    score_type: int = cv2.ORB_HARRIS_SCORE
    patch_size: int = 31
    fast_threshold: int = 20

    # frame sampling
    every_n: int = 1
    max_frames: int | None = None


@dataclass
class MatchingConfig:
    """Settings for the correspondence matcher."""

    # Hamming bits for binary descriptors, L2 for float descriptors.
    max_match_distance: float = 10.0
    # None picks hamming for uint8 descriptors and euclidean otherwise.
    metric: str | None = None
    # rows scanned per distance block
    block_rows: int = 8192


def get_config(detector: str = "orb") -> tuple[ExtractionConfig, MatchingConfig]:
    """
    Return extraction and matching defaults for a detector.

    Args:
        detector: Name of the detector (orb, sift).

    Returns:
        Tuple of (extraction_config, matching_config).
    """
    extraction = ExtractionConfig()
    matching = MatchingConfig()

    if detector == "orb":
        pass

    elif detector == "sift":
        extraction.use_sift = True
        matching.max_match_distance = 150.0
        matching.metric = "euclidean"

    else:
        raise ValueError(f"Unknown detector: {detector}")

    return extraction, matching


__all__ = ["ExtractionConfig", "MatchingConfig", "get_config"]
