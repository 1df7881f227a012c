"""
Unit tests for the correspondence graph arenas.
"""

import dataclasses

import numpy as np
import pytest

from corr_app.corr.data_structures import CorrespondenceGraph
from corr_app.corr.snapshot import Keypoint

KP = Keypoint(1.0, 2.0, 7.0, 90.0, 0.25, 1, -1)


@pytest.fixture
def graph():
    g = CorrespondenceGraph()
    for i in range(3):
        g.add_landmark(np.full(32, i, dtype=np.uint8), KP, i)
    return g


class TestCorrespondenceGraph:

    def test_append_frame_adds_back_references(self, graph):
        first = graph.append_frame(5, [0, 1])
        second = graph.append_frame(9, [1, 2])

        assert [node.index for node in graph.frames()] == [5, 9]
        assert [node.index for node in graph.occurrences(1)] == [5, 9]
        assert [node.handle for node in graph.occurrences(0)] == [first]
        assert [lm.id for lm in graph.landmarks_of(second)] == [1, 2]

    def test_repeated_landmark_in_one_frame(self, graph):
        graph.append_frame(0, [2, 2, 0])
        assert graph.landmark(2).occurrences == [0]
        assert graph.frame(0).landmark_ids == (2, 2, 0)

    def test_frame_index_must_increase(self, graph):
        graph.append_frame(3, [0])
        with pytest.raises(ValueError, match="does not follow"):
            graph.append_frame(3, [1])

    def test_unknown_landmark(self, graph):
        with pytest.raises(ValueError, match="unknown landmark"):
            graph.append_frame(0, [3])
        assert graph.num_frames == 0

    def test_frame_node_is_immutable(self, graph):
        handle = graph.append_frame(0, [0])
        with pytest.raises(dataclasses.FrozenInstanceError):
            graph.frame(handle).index = 4

    def test_landmark_descriptor_is_copied(self):
        g = CorrespondenceGraph()
        descriptor = np.zeros(32, dtype=np.uint8)
        lid = g.add_landmark(descriptor, KP, 0)
        descriptor[0] = 255
        assert g.landmark(lid).descriptor[0] == 0

    def test_occurrences_skip_missing_frames(self, graph):
        graph.append_frame(0, [0])
        graph.landmark(0).occurrences.append(17)
        assert [node.handle for node in graph.occurrences(0)] == [0]

    def test_summary(self, graph):
        graph.append_frame(0, [0, 1])
        graph.append_frame(1, [0])
        graph.append_frame(2, [0, 2])

        summary = graph.summary()
        assert summary["num_frames"] == 3
        assert summary["num_landmarks"] == 3
        assert summary["num_observations"] == 5
        assert summary["num_multi_frame_landmarks"] == 1
        assert summary["max_track_length"] == 3
        assert summary["mean_track_length"] == pytest.approx(5 / 3)
        assert isinstance(summary["num_frames"], int)
        assert isinstance(summary["max_track_length"], int)
        assert isinstance(summary["mean_track_length"], float)

    def test_empty_summary(self):
        summary = CorrespondenceGraph().summary()
        assert summary["num_landmarks"] == 0
        assert summary["max_track_length"] == 0
