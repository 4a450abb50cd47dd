"""
Base detector class and the observation record detectors hand to the tracker.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Tuple
import numpy as np


@dataclass(frozen=True, eq=False)
class MarkerObservation:
    """
    One detected marker in one frame.

    Corners keep the detector's order; for ArUco that is
    top-left, top-right, bottom-right, bottom-left.
    """
    marker_id: int
    corners: np.ndarray  # [4, 2] image coordinates

    def __post_init__(self):
        corners = np.array(self.corners, dtype=float).reshape(-1, 2)
        if corners.shape != (4, 2):
            raise ValueError(f"Marker needs 4 corners, got {corners.shape[0]}")
        corners.setflags(write=False)
        object.__setattr__(self, 'marker_id', int(self.marker_id))
        object.__setattr__(self, 'corners', corners)

    @property
    def center(self) -> np.ndarray:
        """Mean of the four corners."""
        return self.corners.mean(axis=0)


class BaseDetector(ABC):
    """
    Abstract base class for all marker detectors.
    """

    def __init__(self, debug: int = 0):
        """
        Initialize base detector.

        Args:
            debug: Debug level (0=off, 1=minimal, 2=verbose)
        """
        self.debug = debug
        self.last_markers: List[MarkerObservation] = []
        self.last_rejected: List[np.ndarray] = []

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[MarkerObservation]:
        """
        Detect markers in the given image.

        Args:
            image: Input image (grayscale or BGR)

        Returns:
            List of detected markers, possibly empty

        Raises:
            FrameFault: If the frame could not be processed
        """
        pass

    def reset(self):
        """Reset detector state."""
        self.last_markers = []
        self.last_rejected = []

    def detection_summary(self) -> Tuple[int, int]:
        """(accepted, rejected) counts from the last call to detect()."""
        return len(self.last_markers), len(self.last_rejected)
