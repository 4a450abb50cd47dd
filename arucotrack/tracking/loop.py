"""
Per-frame tracking loop: detections in, filter estimates out.

Detections -> reference measurement -> KalmanFilter -> Estimate -> consumers
"""

import logging
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import FrameFault, TrackingError
from .kalman import KalmanFilter
from .linalg import as_vector

logger = logging.getLogger(__name__)


class GapPolicy(Enum):
    """What the loop does with the filter on a frame without a measurement."""
    FREEZE = 'freeze'    # no predict, no update; previous estimate is reused
    PREDICT = 'predict'  # predict only (open-loop propagation)


@dataclass(frozen=True, eq=False)
class Detections:
    """Markers found in one frame."""
    frame_index: int
    markers: Tuple = ()
    rejected: Tuple = ()

    @property
    def empty(self) -> bool:
        return len(self.markers) == 0


@dataclass(frozen=True, eq=False)
class Estimate:
    """Filter output for one frame."""
    frame_index: int
    time: Optional[float]
    state: Optional[np.ndarray]        # None until a lazily initialized filter sees data
    measurement: Optional[np.ndarray]  # Raw measurement used this frame
    had_measurement: bool = False

    def __post_init__(self):
        for name in ('state', 'measurement'):
            value = getattr(self, name)
            if value is not None:
                value = np.array(value, dtype=float)
                value.setflags(write=False)
                object.__setattr__(self, name, value)

    @property
    def position(self) -> Optional[Tuple[float, float]]:
        """(x, y) taken from the first two state components."""
        if self.state is None or self.state.size < 2:
            return None
        return float(self.state[0]), float(self.state[1])


@dataclass(frozen=True, eq=False)
class FrameResult:
    """Everything consumers get for one frame."""
    detections: Detections
    estimate: Estimate


@dataclass
class LoopState:
    """Values carried from one frame to the next within a single loop."""
    frames_processed: int = 0
    frames_with_measurement: int = 0
    frames_skipped: int = 0
    consecutive_gaps: int = 0
    last_measurement: Optional[np.ndarray] = None
    last_estimate: Optional[Estimate] = None


class ReferencePointSelector:
    """
    Picks the single measurement for a frame from its detected markers.

    Rule: take the first marker in detector order (or the first one with
    marker_id, if set) and use one of its corners, or the mean of all four.
    """

    CENTER = 'center'

    def __init__(self, corner: Union[int, str] = 0, marker_id: Optional[int] = None):
        """
        Args:
            corner: Corner index 0-3 or 'center'
            marker_id: Only accept markers with this id (None accepts any)
        """
        if isinstance(corner, str) and corner != self.CENTER:
            if not corner.isdigit():
                raise ValueError(f"Reference must be a corner index 0-3 or '{self.CENTER}', got '{corner}'")
            corner = int(corner)
        if isinstance(corner, int) and not 0 <= corner <= 3:
            raise ValueError(f"Corner index must be 0-3, got {corner}")
        self.corner = corner
        self.marker_id = marker_id

    def select(self, markers: Sequence) -> Optional[np.ndarray]:
        """
        Args:
            markers: MarkerObservation records

        Returns:
            Measurement [x, y], or None if no marker qualifies
        """
        for marker in markers:
            if self.marker_id is not None and marker.marker_id != self.marker_id:
                continue
            if self.corner == self.CENTER:
                return marker.center
            return marker.corners[self.corner].copy()
        return None

    def __repr__(self) -> str:
        return f"ReferencePointSelector(corner={self.corner!r}, marker_id={self.marker_id})"


def log_estimate(result: FrameResult):
    """Consumer that writes one INFO line per frame that had a measurement."""
    estimate = result.estimate
    if not estimate.had_measurement or estimate.state is None:
        return
    logger.info(f"t = {estimate.time:.4f}, y = {np.array2string(estimate.measurement, precision=2)}, "
                f"x_hat = {np.array2string(estimate.state, precision=3)}")


class TrackingLoop:
    """
    Drives a KalmanFilter from per-frame marker detections.

    The loop is the only owner of the filter for the lifetime of a session.
    """

    def __init__(self,
                    estimator: KalmanFilter,
                    detector,
                    selector: Optional[ReferencePointSelector] = None,
                    gap_policy: GapPolicy = GapPolicy.FREEZE,
                    consumers: Optional[List[Callable[[FrameResult], Any]]] = None,
                    stop_condition: Optional[Callable[[], bool]] = None,
                    t0: float = 0.0,
                    x0=None,
                    init_from_first_measurement: bool = False):
        """
        Initialize tracking loop.

        Args:
            estimator: Filter to drive; owned by the loop from here on
            detector: Object with detect(frame) -> list of markers
            selector: Measurement selection rule (first corner of first marker by default)
            gap_policy: Behaviour on frames without a measurement
            consumers: Callables receiving each FrameResult
            stop_condition: Checked before every frame; True ends run()
            t0: Initial filter time
            x0: Initial state; zeros if None (ignored with init_from_first_measurement)
            init_from_first_measurement: Initialize the filter from the first measurement
        """
        self.estimator = estimator
        self.detector = detector
        self.selector = selector or ReferencePointSelector()
        self.gap_policy = GapPolicy(gap_policy)
        self.consumers = list(consumers or [])
        self.stop_condition = stop_condition
        self.t0 = float(t0)
        self.init_from_first_measurement = init_from_first_measurement
        self.state = LoopState()

        if not init_from_first_measurement and not estimator.initialized:
            estimator.init(self.t0, np.zeros(estimator.n) if x0 is None else x0)

    def add_consumer(self, consumer: Callable[[FrameResult], Any]):
        self.consumers.append(consumer)

    def step(self, frame_index: int, frame) -> Optional[FrameResult]:
        """
        Process one frame.

        Args:
            frame_index: Index of the frame in the stream
            frame: Image passed to the detector

        Returns:
            FrameResult, or None if the detector faulted and the frame was skipped
        """
        try:
            markers = self.detector.detect(frame)
        except FrameFault as exc:
            self.state.frames_skipped += 1
            logger.warning(f"Frame {frame_index} skipped: {exc}")
            return None

        detections = Detections(
            frame_index=frame_index,
            markers=tuple(markers),
            rejected=tuple(getattr(self.detector, 'last_rejected', ()))
        )
        return self.process(detections)

    def process(self, detections: Detections) -> FrameResult:
        """
        Feed one frame's detections to the filter and emit the result.

        Filter errors (TrackingError) propagate; they end the session.
        """
        measurement = self.selector.select(detections.markers)

        if measurement is not None:
            estimate = self._correct(detections.frame_index, measurement)
        else:
            estimate = self._bridge_gap(detections.frame_index)

        self.state.frames_processed += 1
        self.state.last_estimate = estimate

        result = FrameResult(detections=detections, estimate=estimate)
        self._emit(result)
        return result

    def run(self, frames: Iterable) -> LoopState:
        """
        Process frames until the source is exhausted or the stop condition fires.

        Args:
            frames: Iterable of images, or of (frame_index, image) pairs

        Returns:
            Final loop state
        """
        for frame_index, frame in self._indexed(frames):
            if self.stop_condition is not None and self.stop_condition():
                logger.info(f"Stop requested before frame {frame_index}")
                break
            try:
                self.step(frame_index, frame)
            except TrackingError as exc:
                logger.error(f"Tracking stopped at frame {frame_index}: {exc}")
                raise

        return self.state

    def _correct(self, frame_index: int, measurement: np.ndarray) -> Estimate:
        est = self.estimator
        if not est.initialized:
            x0 = np.linalg.pinv(est.C) @ as_vector(measurement, est.m, 'y')
            est.init(self.t0, x0)
            logger.debug(f"Filter initialized from first measurement at frame {frame_index}")
        else:
            est.predict()
            est.update(measurement)

        self.state.frames_with_measurement += 1
        self.state.consecutive_gaps = 0
        self.state.last_measurement = measurement

        return Estimate(
            frame_index=frame_index,
            time=est.time,
            state=est.state(),
            measurement=measurement,
            had_measurement=True
        )

    def _bridge_gap(self, frame_index: int) -> Estimate:
        est = self.estimator
        self.state.consecutive_gaps += 1

        if not est.initialized:
            return Estimate(frame_index=frame_index, time=None, state=None, measurement=None)

        if self.gap_policy is GapPolicy.PREDICT:
            est.predict()
            state = est.state()
        elif self.state.last_estimate is not None and self.state.last_estimate.state is not None:
            state = self.state.last_estimate.state
        else:
            state = est.state()

        return Estimate(
            frame_index=frame_index,
            time=est.time,
            state=state,
            measurement=None,
            had_measurement=False
        )

    def _emit(self, result: FrameResult):
        for consumer in self.consumers:
            try:
                consumer(result)
            except FrameFault as exc:
                logger.warning(f"Consumer {consumer!r} failed on frame "
                                f"{result.detections.frame_index}: {exc}")

    @staticmethod
    def _indexed(frames: Iterable) -> Iterator[Tuple[int, Any]]:
        for i, item in enumerate(frames):
            if isinstance(item, tuple) and len(item) == 2:
                yield item
            else:
                yield i, item
