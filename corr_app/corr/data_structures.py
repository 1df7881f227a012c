"""
Correspondence graph: keyframe nodes and the landmarks they observe.

Both node kinds live in append-only arenas addressed by integer handles:
- frame nodes hold landmark ids (ownership edges),
- landmarks hold frame handles (lookup edges back to observing frames).
Nothing is ever removed from either arena.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Sequence, Tuple

import numpy as np

from corr_app.corr.snapshot import Keypoint


@dataclass
class Landmark:
    """A physical scene feature, possibly observed in many frames."""

    id: int
    # Representative descriptor, copied from the seeding row and never updated.
    descriptor: np.ndarray
    # Detection that created this landmark and its row in the descriptor matrix.
    keypoint: Keypoint
    seed_row: int
    # Placeholder until triangulation exists downstream.
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    # Handles of observing frame nodes, ascending, no duplicates.
    occurrences: List[int] = field(default_factory=list)

    @property
    def track_length(self) -> int:
        return len(self.occurrences)


@dataclass(frozen=True)
class FrameNode:
    """One processed frame and its resolved landmarks in detection order."""

    handle: int
    index: int
    landmark_ids: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.landmark_ids)


class CorrespondenceGraph:
    """Ordered keyframe nodes plus every landmark they reference."""

    def __init__(self) -> None:
        self._frames: List[FrameNode] = []
        self._landmarks: List[Landmark] = []

    @property
    def num_frames(self) -> int:
        return len(self._frames)

    @property
    def num_landmarks(self) -> int:
        return len(self._landmarks)

    def add_landmark(self, descriptor: np.ndarray, keypoint: Keypoint, seed_row: int) -> int:
        landmark_id = len(self._landmarks)
        self._landmarks.append(
            Landmark(
                id=landmark_id,
                descriptor=np.array(descriptor, copy=True),
                keypoint=keypoint,
                seed_row=seed_row,
            )
        )
        return landmark_id

    def append_frame(self, index: int, landmark_ids: Sequence[int]) -> int:
        """
        Append a frame node and register it as an occurrence of its landmarks.

        Args:
            index: Frame sequence number, greater than the previous frame's.
            landmark_ids: Landmark ids in the frame's detection order.

        Returns:
            Handle of the new frame node.
        """
        if self._frames and index <= self._frames[-1].index:
            raise ValueError(
                f"frame index {index} does not follow {self._frames[-1].index}"
            )
        ids = tuple(int(lid) for lid in landmark_ids)
        for lid in ids:
            if not 0 <= lid < len(self._landmarks):
                raise ValueError(f"unknown landmark id {lid}")

        handle = len(self._frames)
        node = FrameNode(handle=handle, index=int(index), landmark_ids=ids)
        self._frames.append(node)

        for lid in ids:
            occurrences = self._landmarks[lid].occurrences
            # a landmark can be referenced more than once by the same frame
            if not occurrences or occurrences[-1] != handle:
                occurrences.append(handle)
        return handle

    def frames(self) -> Iterator[FrameNode]:
        return iter(self._frames)

    def frame(self, handle: int) -> FrameNode:
        return self._frames[handle]

    def landmarks(self) -> Iterator[Landmark]:
        return iter(self._landmarks)

    def landmark(self, landmark_id: int) -> Landmark:
        return self._landmarks[landmark_id]

    def landmarks_of(self, handle: int) -> List[Landmark]:
        return [self._landmarks[lid] for lid in self._frames[handle].landmark_ids]

    def occurrences(self, landmark_id: int) -> Iterator[FrameNode]:
        """Frame nodes observing a landmark; handles with no node are skipped."""
        for handle in self._landmarks[landmark_id].occurrences:
            if 0 <= handle < len(self._frames):
                yield self._frames[handle]

    def track_lengths(self) -> np.ndarray:
        return np.array([lm.track_length for lm in self._landmarks], dtype=int)

    def summary(self) -> Dict[str, Any]:
        lengths = self.track_lengths()
        num_observations = sum(len(node) for node in self._frames)
        return {
            "num_frames": self.num_frames,
            "num_landmarks": self.num_landmarks,
            "num_observations": num_observations,
            "num_multi_frame_landmarks": int(np.sum(lengths >= 2)) if lengths.size else 0,
            "max_track_length": int(lengths.max()) if lengths.size else 0,
            "mean_track_length": float(lengths.mean()) if lengths.size else 0.0,
        }


__all__ = ["Landmark", "FrameNode", "CorrespondenceGraph"]
