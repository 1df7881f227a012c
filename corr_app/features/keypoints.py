"""
Keypoint detection and descriptor extraction.
"""

from __future__ import annotations

from typing import List, Tuple

import cv2
import numpy as np

from corr_app.config import ExtractionConfig


def create_detector(config: ExtractionConfig | None = None) -> cv2.Feature2D:
    """
    Create the detector/descriptor extractor described by `config`.

    Args:
        config: Extraction settings; defaults to ORB with ExtractionConfig().

    Returns:
        A cv2.ORB or cv2.SIFT instance.
    """
    if config is None:
        config = ExtractionConfig()

    if config.use_sift:
        return cv2.SIFT_create()

    return cv2.ORB_create(
        nfeatures=config.n_features,
        scaleFactor=config.scale_factor,
        nlevels=config.n_levels,
        edgeThreshold=config.edge_threshold,
        firstLevel=config.first_level,
        WTA_K=config.wta_k,
        scoreType=config.score_type,
        patchSize=config.patch_size,
        fastThreshold=config.fast_threshold,
    )


def detect_keypoints(
    image: np.ndarray,
    detector: cv2.Feature2D,
) -> Tuple[List[cv2.KeyPoint], np.ndarray]:
    """
    Detect keypoints and compute descriptors in an image.

    Args:
        image: Input image (H, W, 3) or (H, W), dtype=uint8.
        detector: Detector created by `create_detector`.

    Returns:
        Tuple of (keypoints, descriptors) where:
        - keypoints: List of cv2.KeyPoint objects.
        - descriptors: Array of descriptors (N, D), dtype=uint8 (ORB) or float32 (SIFT).
    """
    # Convert to grayscale if needed
    if len(image.shape) == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    else:
        gray = image

    keypoints, descriptors = detector.detectAndCompute(gray, None)

    if descriptors is None:
        dtype = np.uint8 if detector.descriptorType() == cv2.CV_8U else np.float32
        descriptors = np.zeros((0, detector.descriptorSize()), dtype=dtype)

    return list(keypoints), descriptors


__all__ = ["create_detector", "detect_keypoints"]
