"""Unit tests for the ArUco detector adapter."""

import logging

import cv2
import numpy as np
import pytest

from arucotrack.detectors.aruco_detect import (
    ArucoDetector,
    load_detector_parameters,
    resolve_dictionary,
)
from arucotrack.detectors.base_detector import MarkerObservation
from arucotrack.tracking.errors import FrameFault


def render_marker(marker_id, side=200, margin=60, dictionary=cv2.aruco.DICT_4X4_50):
    """White canvas with one marker whose top-left corner sits at (margin, margin)."""
    aruco_dict = cv2.aruco.getPredefinedDictionary(dictionary)
    if hasattr(cv2.aruco, 'generateImageMarker'):
        marker = cv2.aruco.generateImageMarker(aruco_dict, marker_id, side)
    else:
        marker = cv2.aruco.drawMarker(aruco_dict, marker_id, side)

    canvas = np.full((side + 2 * margin, side + 2 * margin), 255, dtype=np.uint8)
    canvas[margin:margin + side, margin:margin + side] = marker
    return canvas


class TestMarkerObservation:
    """Tests for the observation record."""

    def test_corners_normalized(self):
        obs = MarkerObservation(np.int32(4), [[[0, 0], [2, 0], [2, 2], [0, 2]]])

        assert obs.marker_id == 4
        assert obs.corners.shape == (4, 2)
        np.testing.assert_array_equal(obs.center, [1.0, 1.0])

    def test_corners_read_only(self):
        obs = MarkerObservation(1, np.zeros((4, 2)))

        with pytest.raises(ValueError):
            obs.corners[0, 0] = 1.0

    def test_wrong_corner_count(self):
        with pytest.raises(ValueError):
            MarkerObservation(1, np.zeros((3, 2)))


class TestDictionary:
    """Tests for dictionary selection."""

    @pytest.mark.parametrize("value", [0, '0', 'DICT_4X4_50', '4x4_50'])
    def test_resolve(self, value):
        assert resolve_dictionary(value) == cv2.aruco.DICT_4X4_50

    def test_original_dictionary_index(self):
        assert resolve_dictionary(16) == cv2.aruco.DICT_ARUCO_ORIGINAL

    @pytest.mark.parametrize("value", [17, -1, 'DICT_9X9_50'])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            resolve_dictionary(value)


class TestArucoDetector:
    """Detection on synthetic images."""

    def test_blank_image(self):
        detector = ArucoDetector()

        assert detector.detect(np.full((240, 320), 255, dtype=np.uint8)) == []
        assert detector.detection_summary()[0] == 0

    def test_detects_generated_marker(self):
        detector = ArucoDetector(dictionary=0)
        image = cv2.cvtColor(render_marker(7), cv2.COLOR_GRAY2BGR)

        markers = detector.detect(image)

        assert len(markers) == 1
        assert markers[0].marker_id == 7
        # First corner is the marker's top-left
        np.testing.assert_allclose(markers[0].corners[0], [60.0, 60.0], atol=2.0)
        assert detector.last_markers == markers

    def test_verbose_debug_logs_summary(self, caplog):
        detector = ArucoDetector(dictionary=0, debug=2)

        with caplog.at_level(logging.DEBUG, logger='arucotrack.detectors.aruco_detect'):
            detector.detect(render_marker(7))

        assert "Detected 1 markers" in caplog.text

    def test_empty_frame(self):
        with pytest.raises(FrameFault):
            ArucoDetector().detect(np.zeros((0, 0), dtype=np.uint8))

    def test_reset(self):
        detector = ArucoDetector()
        detector.detect(render_marker(3))

        detector.reset()

        assert detector.detection_summary() == (0, 0)


class TestDetectorParameters:
    """Tests for reading detector parameter files."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "detector_params.yml"
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
        fs.write('adaptiveThreshWinSizeMin', 5)
        fs.write('adaptiveThreshConstant', 9.5)
        fs.write('doCornerRefinement', 0)
        fs.release()

        params = load_detector_parameters(path)

        assert params.adaptiveThreshWinSizeMin == 5
        assert params.adaptiveThreshConstant == pytest.approx(9.5)
        assert params.cornerRefinementMethod == cv2.aruco.CORNER_REFINE_NONE

    def test_detector_uses_file(self, tmp_path):
        path = tmp_path / "detector_params.yml"
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
        fs.write('minMarkerPerimeterRate', 0.05)
        fs.release()

        detector = ArucoDetector(parameters_file=path)

        assert detector.parameters.minMarkerPerimeterRate == pytest.approx(0.05)
        assert detector.parameters.cornerRefinementMethod == cv2.aruco.CORNER_REFINE_SUBPIX
