"""
Visualization and export of tracking results.
"""

import csv
import cv2
import numpy as np
from collections import deque
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..tracking.errors import FrameFault
from ..tracking.loop import FrameResult


class OverlayRenderer:
    """
    Draws detections and filter estimates on video frames.
    """

    def __init__(self,
                    show_rejected: bool = False,
                    trail_length: Optional[int] = 50,
                    forecast_steps: int = 0):
        """
        Initialize renderer.

        Args:
            show_rejected: Draw rejected marker candidates
            trail_length: Number of past estimates drawn as a trail (None for unlimited)
            forecast_steps: Number of forecast points drawn ahead of the estimate
        """
        self.show_rejected = show_rejected
        self.forecast_steps = forecast_steps
        self.trail = deque(maxlen=trail_length)

        # Colors (BGR format)
        self.color_marker = (0, 255, 0)        # Green for marker outline
        self.color_id = (0, 255, 255)          # Yellow for ID text
        self.color_rejected = (100, 0, 255)    # Red-ish for rejected candidates
        self.color_measurement = (255, 0, 0)   # Blue for raw measurement
        self.color_estimate = (0, 165, 255)    # Orange for estimate and trail
        self.color_forecast = (255, 0, 255)    # Magenta for forecast
        self.color_info = (255, 255, 255)      # White for info text

    def draw(self,
                image: np.ndarray,
                result: FrameResult,
                forecast: Optional[Sequence[np.ndarray]] = None) -> np.ndarray:
        """
        Draw one frame's result.

        Args:
            image: BGR frame
            result: Detections and estimate for this frame
            forecast: Predicted future states (optional)

        Returns:
            Annotated copy of the frame
        """
        annotated = image.copy()
        if annotated.ndim == 2:
            annotated = cv2.cvtColor(annotated, cv2.COLOR_GRAY2BGR)

        try:
            self._draw_markers(annotated, result)
            self._draw_estimate(annotated, result, forecast)
        except cv2.error as exc:
            raise FrameFault(f"Overlay drawing failed: {exc}") from exc

        return annotated

    def _draw_markers(self, image: np.ndarray, result: FrameResult):
        detections = result.detections

        for marker in detections.markers:
            points = np.round(marker.corners).astype(np.int32)
            cv2.polylines(image, [points], True, self.color_marker, 2)
            # First corner marks the reference orientation
            cv2.rectangle(image,
                            (int(points[0][0]) - 3, int(points[0][1]) - 3),
                            (int(points[0][0]) + 3, int(points[0][1]) + 3),
                            self.color_id, 1)
            cv2.putText(image, f"id={marker.marker_id}",
                        (int(points[0][0]), int(points[0][1]) - 8),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, self.color_id, 1)

        if self.show_rejected:
            for candidate in detections.rejected:
                points = np.round(np.asarray(candidate).reshape(-1, 2)).astype(np.int32)
                cv2.polylines(image, [points], True, self.color_rejected, 1)

    def _draw_estimate(self,
                        image: np.ndarray,
                        result: FrameResult,
                        forecast: Optional[Sequence[np.ndarray]]):
        estimate = result.estimate

        if estimate.measurement is not None:
            mx, my = _point(estimate.measurement)
            cv2.circle(image, (mx, my), 4, self.color_measurement, -1)

        position = estimate.position
        if position is None:
            return

        ex, ey = _point(position)
        self.trail.append((ex, ey))
        if len(self.trail) > 1:
            cv2.polylines(image, [np.array(self.trail, dtype=np.int32)], False,
                            self.color_estimate, 2)
        cv2.drawMarker(image, (ex, ey), self.color_estimate, cv2.MARKER_CROSS, 12, 2)

        if forecast and self.forecast_steps > 0:
            points = [(ex, ey)] + [_point(x) for x in forecast[:self.forecast_steps]]
            cv2.polylines(image, [np.array(points, dtype=np.int32)], False,
                            self.color_forecast, 1, cv2.LINE_AA)

        status = "measured" if estimate.had_measurement else "no marker"
        cv2.putText(image, f"frame {estimate.frame_index}  x_hat=({position[0]:.1f}, {position[1]:.1f})  {status}",
                    (10, 20), cv2.FONT_HERSHEY_SIMPLEX, 0.5, self.color_info, 1)

    def reset(self):
        self.trail.clear()


def _point(values) -> Tuple[int, int]:
    return int(round(float(values[0]))), int(round(float(values[1])))


class TrajectoryRecorder:
    """
    Consumer that keeps per-frame estimates for export.
    """

    def __init__(self):
        self.rows: List[Tuple] = []

    def __call__(self, result: FrameResult):
        estimate = result.estimate
        if estimate.state is None:
            return
        measurement = estimate.measurement
        self.rows.append((
            estimate.frame_index,
            estimate.time,
            estimate.had_measurement,
            None if measurement is None else float(measurement[0]),
            None if measurement is None else float(measurement[1]),
            tuple(float(v) for v in estimate.state)
        ))

    def __len__(self) -> int:
        return len(self.rows)

    def export_csv(self, filepath):
        """
        Export recorded estimates to CSV file.

        Args:
            filepath: Output CSV file path
        """
        n = max((len(row[5]) for row in self.rows), default=0)

        with open(Path(filepath), 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)

            # Header
            writer.writerow(
                ['Frame', 'Time', 'Measured', 'Measured_X', 'Measured_Y'] +
                [f'X_hat_{i}' for i in range(n)]
            )

            # Data
            for frame, time, measured, mx, my, state in self.rows:
                writer.writerow(
                    [frame, f"{time:.4f}", int(measured),
                        '' if mx is None else f"{mx:.2f}",
                        '' if my is None else f"{my:.2f}"] +
                    [f"{v:.4f}" for v in state]
                )
