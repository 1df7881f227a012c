"""
Nearest-neighbour search over the shared descriptor matrix using OpenCV's brute-force matcher.
"""

from __future__ import annotations

from typing import Tuple

import cv2
import numpy as np

METRICS = ("hamming", "euclidean", "cosine")

# cosine runs as L2 on unit-length rows
NORM_TYPES = {
    "hamming": cv2.NORM_HAMMING,
    "euclidean": cv2.NORM_L2,
    "cosine": cv2.NORM_L2,
}


def default_metric(descriptors: np.ndarray) -> str:
    """Hamming for binary (uint8) descriptors, euclidean for everything else."""
    if descriptors.dtype == np.uint8:
        return "hamming"
    return "euclidean"


class DescriptorIndex:
    """
    Best-match index over all rows of a descriptor matrix.

    The matrix is matched in blocks of `block_rows` rows with a
    cv2.BFMatcher, so the match mask stays bounded by
    `len(queries) * block_rows`. Among equal distances the lowest row wins.
    """

    def __init__(
        self,
        descriptors: np.ndarray,
        metric: str | None = None,
        block_rows: int = 8192,
    ) -> None:
        if descriptors.ndim != 2:
            raise ValueError(f"Descriptors must be 2-D, got shape {descriptors.shape}")
        if metric is None:
            metric = default_metric(descriptors)
        if metric not in METRICS:
            raise ValueError(f"Unknown metric {metric!r}, expected one of {METRICS}")
        if metric == "hamming" and descriptors.dtype != np.uint8:
            raise ValueError("Hamming distance needs uint8 (binary) descriptors")
        if block_rows < 1:
            raise ValueError(f"block_rows must be positive, got {block_rows}")

        self.metric = metric
        self.block_rows = block_rows
        self._matcher = cv2.BFMatcher(NORM_TYPES[metric], crossCheck=False)
        self._data, self._valid = self._prepare(descriptors)

    def __len__(self) -> int:
        return int(self._data.shape[0])

    def _prepare(self, descriptors: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Convert rows to the matcher's input type; flag rows that can be matched."""
        valid = np.ones(descriptors.shape[0], dtype=bool)
        if self.metric == "hamming":
            return np.ascontiguousarray(descriptors), valid

        data = descriptors.astype(np.float32)
        if self.metric == "cosine":
            norms = np.linalg.norm(data, axis=1)
            # cosine is undefined for all-zero descriptors
            valid = norms > 0
            data[valid] /= norms[valid, None]
        return np.ascontiguousarray(data), valid

    def _to_distance(self, distance: float) -> float:
        if self.metric == "cosine":
            # |a - b|^2 = 2 - 2 cos(a, b) for unit vectors
            return distance * distance / 2.0
        return float(distance)

    def query(
        self,
        queries: np.ndarray,
        exclude: Tuple[int, int] | None = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Find the single best match in the index for every query row.

        Args:
            queries: Descriptors (M, D) with the same dtype and width as the index.
            exclude: Optional row range `[start, end)` that may not be matched.

        Returns:
            Tuple of (rows, distances) where:
            - rows: (M,) int array of best rows, -1 where no row is eligible.
            - distances: (M,) float array, inf where no row is eligible.
        """
        prepared, query_valid = self._prepare(queries)
        n_queries = prepared.shape[0]
        best_rows = np.full(n_queries, -1, dtype=np.int64)
        best_dist = np.full(n_queries, np.inf)
        if n_queries == 0:
            return best_rows, best_dist

        for block_start in range(0, len(self), self.block_rows):
            block_end = min(block_start + self.block_rows, len(self))

            # BFMatcher mask: one row per query, one column per train row
            mask = np.repeat(
                self._valid[None, block_start:block_end], n_queries, axis=0
            ).astype(np.uint8)
            if exclude is not None:
                lo = max(exclude[0], block_start) - block_start
                hi = min(exclude[1], block_end) - block_start
                if lo < hi:
                    mask[:, lo:hi] = 0
            if not mask.any():
                continue

            # fully masked queries get no DMatch; ties keep the lowest trainIdx
            matches = self._matcher.match(prepared, self._data[block_start:block_end], mask)
            for m in matches:
                distance = self._to_distance(m.distance)
                # strict comparison keeps earlier blocks on ties
                if distance < best_dist[m.queryIdx]:
                    best_rows[m.queryIdx] = m.trainIdx + block_start
                    best_dist[m.queryIdx] = distance

        best_rows[~query_valid] = -1
        best_dist[~query_valid] = np.inf
        return best_rows, best_dist


__all__ = ["METRICS", "NORM_TYPES", "default_metric", "DescriptorIndex"]
