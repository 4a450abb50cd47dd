"""Shared pytest fixtures for unit tests."""

import numpy as np
import pytest

from arucotrack.detectors.base_detector import BaseDetector, MarkerObservation
from arucotrack.tracking.models import constant_velocity_model


def make_marker(x, y, marker_id=0, size=20.0):
    """Axis-aligned square marker with its first corner at (x, y)."""
    corners = np.array([
        [x, y],
        [x + size, y],
        [x + size, y + size],
        [x, y + size]
    ])
    return MarkerObservation(marker_id, corners)


class ScriptedDetector(BaseDetector):
    """Detector that replays a fixed list of per-frame results.

    An entry may be a list of markers or an exception instance to raise.
    """

    def __init__(self, script):
        super().__init__()
        self.script = list(script)
        self.calls = 0

    def detect(self, image):
        entry = self.script[self.calls]
        self.calls += 1
        if isinstance(entry, Exception):
            raise entry
        self.last_markers = list(entry)
        return list(entry)


@pytest.fixture
def scenario_matrices():
    """Two-state constant velocity model observed through position, dt = 1."""
    return {
        'dt': 1.0,
        'A': np.array([[1.0, 1.0], [0.0, 1.0]]),
        'C': np.array([[1.0, 0.0]]),
        'Q': np.zeros((2, 2)),
        'R': np.array([[1.0]]),
        'P0': np.eye(2),
    }


@pytest.fixture
def image_filter():
    """Four-state constant velocity filter in pixel coordinates."""
    return constant_velocity_model(dt=1.0 / 30).build_filter()


def check_psd(matrix, tol=1e-10):
    """Check if matrix is positive semi-definite."""
    return np.all(np.linalg.eigvalsh(matrix) >= -tol)
