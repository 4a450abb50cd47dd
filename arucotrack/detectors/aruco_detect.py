"""
ArUco square marker detector built on cv2.aruco.
"""

import logging
import numpy as np
import cv2
from pathlib import Path
from typing import List, Optional, Union

from .base_detector import BaseDetector, MarkerObservation
from ..tracking.errors import FrameFault

logger = logging.getLogger(__name__)

# Predefined dictionaries, indexed as on the command line
DICTIONARY_NAMES = [
    'DICT_4X4_50', 'DICT_4X4_100', 'DICT_4X4_250', 'DICT_4X4_1000',
    'DICT_5X5_50', 'DICT_5X5_100', 'DICT_5X5_250', 'DICT_5X5_1000',
    'DICT_6X6_50', 'DICT_6X6_100', 'DICT_6X6_250', 'DICT_6X6_1000',
    'DICT_7X7_50', 'DICT_7X7_100', 'DICT_7X7_250', 'DICT_7X7_1000',
    'DICT_ARUCO_ORIGINAL',
]

# Detector parameters that may appear in a parameter file
DETECTOR_PARAMETER_NAMES = [
    'adaptiveThreshWinSizeMin',
    'adaptiveThreshWinSizeMax',
    'adaptiveThreshWinSizeStep',
    'adaptiveThreshConstant',
    'minMarkerPerimeterRate',
    'maxMarkerPerimeterRate',
    'polygonalApproxAccuracyRate',
    'minCornerDistanceRate',
    'minDistanceToBorder',
    'minMarkerDistanceRate',
    'cornerRefinementWinSize',
    'cornerRefinementMaxIterations',
    'cornerRefinementMinAccuracy',
    'markerBorderBits',
    'perspectiveRemovePixelPerCell',
    'perspectiveRemoveIgnoredMarginPerCell',
    'maxErroneousBitsInBorderRate',
    'minOtsuStdDev',
    'errorCorrectionRate',
]


def resolve_dictionary(dictionary: Union[int, str]) -> int:
    """
    Map a dictionary index (0-16) or name ('DICT_4X4_50') to the cv2.aruco constant.
    """
    if isinstance(dictionary, str) and not dictionary.isdigit():
        name = dictionary.upper()
        if not name.startswith('DICT_'):
            name = 'DICT_' + name
        if name not in DICTIONARY_NAMES:
            raise ValueError(f"Unknown ArUco dictionary '{dictionary}'")
    else:
        index = int(dictionary)
        if not 0 <= index < len(DICTIONARY_NAMES):
            raise ValueError(
                f"Dictionary index must be 0-{len(DICTIONARY_NAMES) - 1}, got {index}"
            )
        name = DICTIONARY_NAMES[index]
    return getattr(cv2.aruco, name)


def create_detector_parameters(refine_corners: bool = True):
    """Default detector parameters, with sub-pixel corner refinement if requested."""
    if hasattr(cv2.aruco, 'DetectorParameters_create'):
        params = cv2.aruco.DetectorParameters_create()
    else:
        params = cv2.aruco.DetectorParameters()

    if refine_corners:
        params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
    return params


def load_detector_parameters(path: Union[str, Path], params=None):
    """
    Read detector parameters from an OpenCV FileStorage file (YAML/XML).

    Keys missing from the file keep their current value. The legacy
    'doCornerRefinement' flag maps to sub-pixel refinement.

    Args:
        path: Parameter file
        params: Parameters to update (new defaults if None)

    Returns:
        Updated detector parameters
    """
    if params is None:
        params = create_detector_parameters(refine_corners=False)

    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    if not fs.isOpened():
        raise ValueError(f"Invalid detector parameters file: {path}")

    try:
        for name in DETECTOR_PARAMETER_NAMES:
            node = fs.getNode(name)
            if node.empty() or not hasattr(params, name):
                continue
            current = getattr(params, name)
            value = node.real()
            setattr(params, name, int(value) if isinstance(current, int) else float(value))

        node = fs.getNode('doCornerRefinement')
        if not node.empty():
            params.cornerRefinementMethod = (
                cv2.aruco.CORNER_REFINE_SUBPIX if node.real() else cv2.aruco.CORNER_REFINE_NONE
            )
    finally:
        fs.release()

    return params


class ArucoDetector(BaseDetector):
    """
    Detects ArUco markers and reports them as MarkerObservation records.
    """

    def __init__(self,
                    dictionary: Union[int, str] = 0,
                    refine_corners: bool = True,
                    parameters_file: Optional[Union[str, Path]] = None,
                    debug: int = 0):
        """
        Initialize ArUco detector.

        Args:
            dictionary: Predefined dictionary index (0-16) or name
            refine_corners: Enable sub-pixel corner refinement
            parameters_file: Optional OpenCV FileStorage file with detector parameters
            debug: Debug level
        """
        super().__init__(debug)

        self.dictionary_id = resolve_dictionary(dictionary)
        self.dictionary = cv2.aruco.getPredefinedDictionary(self.dictionary_id)

        self.parameters = create_detector_parameters(refine_corners=False)
        if parameters_file is not None:
            self.parameters = load_detector_parameters(parameters_file, self.parameters)
        if refine_corners:
            self.parameters.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX

        # OpenCV >= 4.7 object API, module functions before that
        if hasattr(cv2.aruco, 'ArucoDetector'):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.parameters)
        else:
            self._detector = None

        if self.debug > 0:
            logger.debug(f"ArucoDetector initialized: dictionary={self.dictionary_id}, "
                            f"refine_corners={refine_corners}")

    def detect(self, image: np.ndarray) -> List[MarkerObservation]:
        """
        Detect markers in an image.

        Args:
            image: Input image (grayscale or BGR)

        Returns:
            Markers in detection order
        """
        if image is None or image.size == 0:
            raise FrameFault("Empty frame")

        try:
            if len(image.shape) == 3:
                gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
            else:
                gray = image

            if self._detector is not None:
                corners, ids, rejected = self._detector.detectMarkers(gray)
            else:
                corners, ids, rejected = cv2.aruco.detectMarkers(
                    gray, self.dictionary, parameters=self.parameters
                )
        except cv2.error as exc:
            raise FrameFault(f"ArUco detection failed: {exc}") from exc

        markers = []
        if ids is not None:
            for marker_id, marker_corners in zip(ids.flatten(), corners):
                markers.append(MarkerObservation(int(marker_id), marker_corners.reshape(4, 2)))

        self.last_markers = markers
        self.last_rejected = [np.array(c, dtype=float).reshape(-1, 2) for c in (rejected or [])]

        if self.debug > 1:
            n_markers, n_rejected = self.detection_summary()
            logger.debug(f"Detected {n_markers} markers, {n_rejected} rejected")

        return markers
