"""
arucotrack Core Module
Kalman-filtered tracking of an ArUco marker reference point in video.
"""

__version__ = "0.1.0"
__author__ = "arucotrack Team"

from .tracking.kalman import KalmanFilter
from .tracking.loop import TrackingLoop, GapPolicy, ReferencePointSelector
from .detectors.aruco_detect import ArucoDetector

__all__ = [
    'KalmanFilter',
    'TrackingLoop',
    'GapPolicy',
    'ReferencePointSelector',
    'ArucoDetector',
]
