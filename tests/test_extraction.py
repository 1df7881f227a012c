"""
Tests for the extraction pass on synthetic images and videos.
"""

import cv2
import numpy as np
import pytest

from corr_app.config import ExtractionConfig, get_config
from corr_app.corr.correspondence import build_correspondence_graph
from corr_app.corr.snapshot import validate_snapshot
from corr_app.features.extraction import extract_frame, extract_snapshot, extract_snapshot_from_video
from corr_app.features.keypoints import create_detector, detect_keypoints
from corr_app.io.video_io import iter_video_frames


def textured_image(seed=0, shape=(240, 320)):
    rng = np.random.default_rng(seed)
    img = np.full((*shape, 3), 40, dtype=np.uint8)
    for _ in range(40):
        x1, y1 = int(rng.integers(0, shape[1] - 20)), int(rng.integers(0, shape[0] - 20))
        w, h = int(rng.integers(8, 40)), int(rng.integers(8, 40))
        color = tuple(int(c) for c in rng.integers(60, 256, size=3))
        cv2.rectangle(img, (x1, y1), (x1 + w, y1 + h), color, -1)
    for _ in range(20):
        center = (int(rng.integers(10, shape[1] - 10)), int(rng.integers(10, shape[0] - 10)))
        color = tuple(int(c) for c in rng.integers(60, 256, size=3))
        cv2.circle(img, center, int(rng.integers(4, 15)), color, -1)
    return img


@pytest.fixture
def video_path(tmp_path):
    path = str(tmp_path / "scene.avi")
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (320, 240))
    if not writer.isOpened():
        pytest.skip("MJPG video writer not available")
    base = textured_image(3)
    for shift in range(6):
        frame = np.roll(base, shift * 2, axis=1)
        writer.write(cv2.cvtColor(frame, cv2.COLOR_RGB2BGR))
    writer.release()
    return path


class TestDetector:

    def test_orb_defaults(self):
        detector = create_detector()
        assert detector.getMaxFeatures() == 500
        assert detector.getNLevels() == 8
        assert detector.getFastThreshold() == 20

    def test_blank_image_has_no_detections(self):
        keypoints, descriptors = detect_keypoints(np.zeros((120, 160), dtype=np.uint8), create_detector())
        assert keypoints == []
        assert descriptors.shape == (0, 32)
        assert descriptors.dtype == np.uint8

    def test_sift_descriptors_are_float(self):
        extraction, _ = get_config("sift")
        _, descriptors = detect_keypoints(textured_image(), create_detector(extraction))
        assert descriptors.dtype == np.float32
        assert descriptors.shape[1] == 128

    def test_unknown_detector_name(self):
        with pytest.raises(ValueError):
            get_config("surf")


class TestExtraction:

    def test_ranges_tile_matrix(self):
        frames = [(0, textured_image(0)), (1, np.zeros((240, 320, 3), dtype=np.uint8)), (5, textured_image(1))]
        snapshot = extract_snapshot(frames)

        validate_snapshot(snapshot)
        assert [rec.frame_id for rec in snapshot.records] == [0, 1, 5]
        assert snapshot.records[1].num_rows == 0
        assert snapshot.records[0].num_rows > 0
        assert snapshot.descriptors.dtype == np.uint8

    def test_deterministic(self):
        frames = [(0, textured_image(0)), (1, textured_image(1))]
        a = extract_snapshot(frames)
        b = extract_snapshot(frames)
        np.testing.assert_array_equal(a.descriptors, b.descriptors)
        assert [rec.keypoints for rec in a.records] == [rec.keypoints for rec in b.records]

    def test_no_frames(self):
        snapshot = extract_snapshot([])
        assert snapshot.records == []
        assert snapshot.descriptors.shape == (0, 32)

    def test_repeated_frame_matches_itself(self):
        image = textured_image(2)
        snapshot = extract_snapshot([(0, image), (1, image.copy())])
        graph, _ = build_correspondence_graph(snapshot)

        for lid in graph.frame(1).landmark_ids:
            assert [node.index for node in graph.occurrences(lid)] == [0, 1]

    def test_descriptor_width_mismatch(self):
        blocks = [np.zeros((2, 128), dtype=np.float32)]
        with pytest.raises(ValueError, match="do not match"):
            extract_frame(textured_image(), 1, blocks, 2, create_detector())


class TestVideo:

    def test_missing_video(self, tmp_path):
        with pytest.raises(ValueError, match="Could not open"):
            list(iter_video_frames(str(tmp_path / "missing.mp4")))

    def test_sampling(self, video_path):
        frames = list(iter_video_frames(video_path, every_n=2, max_frames=2))
        assert [frame_id for frame_id, _ in frames] == [0, 2]
        assert frames[0][1].shape == (240, 320, 3)

    def test_extract_from_video(self, video_path):
        snapshot = extract_snapshot_from_video(video_path, ExtractionConfig(every_n=1))
        validate_snapshot(snapshot)
        assert [rec.frame_id for rec in snapshot.records] == list(range(6))
