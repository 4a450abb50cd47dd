"""
Exceptions raised by the tracking core.
"""


class TrackingError(Exception):
    """Base class for errors that end a tracking session."""


class UninitializedFilterError(TrackingError):
    """Filter was used before init() set an initial belief."""


class DimensionMismatchError(TrackingError, ValueError):
    """A vector or matrix does not have the size the filter was built for."""


class SingularCovarianceError(TrackingError):
    """Innovation covariance cannot be inverted."""


class FrameFault(Exception):
    """
    Frame-level fault raised by a detector or consumer adapter.

    The tracking loop skips the affected frame (or consumer) and keeps going.
    """
