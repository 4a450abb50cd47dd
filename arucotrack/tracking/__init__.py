"""
Tracking package: linear Kalman filter and the per-frame tracking loop.
"""

from .errors import (
    TrackingError,
    UninitializedFilterError,
    DimensionMismatchError,
    SingularCovarianceError,
    FrameFault,
)
from .kalman import KalmanFilter
from .models import LinearModel, build_model, constant_velocity_model, static_model
from .loop import (
    TrackingLoop,
    GapPolicy,
    ReferencePointSelector,
    Detections,
    Estimate,
    FrameResult,
    LoopState,
)

__all__ = [
    'KalmanFilter',
    'LinearModel',
    'build_model',
    'constant_velocity_model',
    'static_model',
    'TrackingLoop',
    'GapPolicy',
    'ReferencePointSelector',
    'Detections',
    'Estimate',
    'FrameResult',
    'LoopState',
    'TrackingError',
    'UninitializedFilterError',
    'DimensionMismatchError',
    'SingularCovarianceError',
    'FrameFault',
]
