"""
Detector modules for square fiducial markers.
"""

from .aruco_detect import ArucoDetector
from .base_detector import BaseDetector, MarkerObservation

__all__ = ['ArucoDetector', 'BaseDetector', 'MarkerObservation']
