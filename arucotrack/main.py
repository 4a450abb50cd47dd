"""
Main entry point for arucotrack.
Command-line interface for ArUco marker tracking with a Kalman filter.
"""

import argparse
import logging
import sys
import cv2
import numpy as np
from pathlib import Path
from typing import Iterator, Optional, Tuple
from datetime import datetime

from .detectors.aruco_detect import ArucoDetector, DICTIONARY_NAMES
from .tracking.errors import FrameFault, TrackingError
from .tracking.loop import FrameResult, GapPolicy, TrackingLoop, log_estimate
from .tracking.models import MODELS
from .utils.config import Config
from .utils.logger import setup_logger
from .utils.visualization import OverlayRenderer, TrajectoryRecorder

ESC_KEY = 27


class VideoSource:
    """
    Iterates over frames of an opened cv2.VideoCapture.

    The most recent frame stays available as `current` for consumers that draw on it.
    """

    def __init__(self, capture: cv2.VideoCapture):
        self.capture = capture
        self.current: Optional[np.ndarray] = None

    def __iter__(self) -> Iterator[Tuple[int, np.ndarray]]:
        frame_index = 0
        while True:
            ret, frame = self.capture.read()
            if not ret:
                break
            self.current = frame
            yield frame_index, frame
            frame_index += 1


class Display:
    """
    Consumer that shows the annotated frame and watches for ESC / 'q'.
    """

    def __init__(self, source: VideoSource, renderer: OverlayRenderer,
                    loop: TrackingLoop, wait_ms: int, window: str = 'arucotrack'):
        self.source = source
        self.renderer = renderer
        self.loop = loop
        self.wait_ms = wait_ms
        self.window = window
        self.stop_requested = False

    def __call__(self, result: FrameResult):
        if self.source.current is None:
            return

        forecast = None
        estimator = self.loop.estimator
        if self.renderer.forecast_steps > 0 and estimator.initialized:
            forecast = estimator.forecast(self.renderer.forecast_steps)

        annotated = self.renderer.draw(self.source.current, result, forecast)
        try:
            cv2.imshow(self.window, annotated)
            key = cv2.waitKey(self.wait_ms) & 0xFF
        except cv2.error as exc:
            raise FrameFault(f"Display failed: {exc}") from exc

        if key == ESC_KEY or key == ord('q'):
            self.stop_requested = True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='ArUco marker tracking with a Kalman filter')
    parser.add_argument('-d', '--dictionary', type=str, default=None,
                        help='Dictionary: index 0-16 or name (' + ', '.join(
                            f'{name}={i}' for i, name in enumerate(DICTIONARY_NAMES)) + ')')
    parser.add_argument('-v', '--video', type=str, help='Input video file; camera if omitted')
    parser.add_argument('--ci', '--camera-id', dest='camera_id', type=int, default=None,
                        help='Camera id if no video file is given')
    parser.add_argument('--dp', '--detector-params', dest='detector_params', type=str,
                        help='File of marker detector parameters')
    parser.add_argument('-r', '--show-rejected', action='store_true', help='Show rejected candidates too')
    parser.add_argument('--config', type=str, help='Config file path')
    parser.add_argument('--debug', type=int, default=0, help='Debug level (0-2)')
    parser.add_argument('--show', action='store_true', help='Show tracking results')
    parser.add_argument('--save-csv', action='store_true', help='Save per-frame estimates as CSV')
    parser.add_argument('--save-log', action='store_true', help='Save console log to the run directory')
    parser.add_argument('--output-dir', type=str, default='output', help='Output directory')
    parser.add_argument('--gap-policy', choices=[p.value for p in GapPolicy], default=None,
                        help='Filter behaviour on frames without a marker')
    parser.add_argument('--reference', type=str, default=None,
                        help="Measured point: corner index 0-3 or 'center'")
    parser.add_argument('--marker-id', type=int, default=None, help='Only track markers with this id')
    parser.add_argument('--model', choices=sorted(MODELS), default=None, help='Motion model preset')
    parser.add_argument('--forecast-steps', type=int, default=0,
                        help='Number of forecast steps drawn ahead of the estimate')
    return parser


def apply_overrides(config: Config, args: argparse.Namespace):
    """Command-line flags take precedence over the config file."""
    if args.dictionary is not None:
        config.detection.dictionary = args.dictionary
    if args.detector_params:
        config.detection.parameters_file = args.detector_params
    if args.show_rejected:
        config.detection.show_rejected = True
    if args.camera_id is not None:
        config.video.camera_id = args.camera_id
    if args.gap_policy is not None:
        config.filter.gap_policy = args.gap_policy
    if args.reference is not None:
        config.filter.reference = args.reference
    if args.marker_id is not None:
        config.filter.marker_id = args.marker_id
    if args.model is not None:
        config.filter.model = args.model
    # Re-run section validation on the overridden values
    config.filter.__post_init__()


def main(argv=None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)

    # Create timestamped output directory for this run
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_output_dir = Path(args.output_dir) / f"run_{timestamp}"

    # Setup logger
    log_file = None
    if args.save_log:
        run_output_dir.mkdir(parents=True, exist_ok=True)
        log_file = run_output_dir / "tracking_log.txt"

    logger = setup_logger('arucotrack', level=logging.DEBUG if args.debug > 0 else logging.INFO,
                            log_file=log_file)

    # Load config
    config = Config()
    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            logger.error(f"Config file not found: {config_path}")
            return 1
        try:
            config.load(config_path)
        except ValueError as exc:
            logger.error(f"Invalid config file {config_path}: {exc}")
            return 1
        logger.info(f"Loaded config from {config_path}")

    try:
        apply_overrides(config, args)
    except ValueError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 1

    # Detector
    try:
        detector = ArucoDetector(
            dictionary=config.detection.dictionary,
            refine_corners=config.detection.refine_corners,
            parameters_file=config.detection.parameters_file,
            debug=args.debug
        )
    except ValueError as exc:
        logger.error(str(exc))
        return 1

    # Filter
    try:
        model = config.filter.build_model()
        estimator = model.build_filter(solver=config.filter.solver, joseph=config.filter.joseph)
    except ValueError as exc:
        logger.error(f"Invalid filter model: {exc}")
        return 1
    logger.info(f"Model '{config.filter.model}': n={estimator.n}, m={estimator.m}, dt={estimator.dt:.4f}")
    logger.debug(f"A:\n{model.A}\nC:\n{model.C}\nQ:\n{model.Q}\nR:\n{model.R}\nP0:\n{model.P0}")

    # Determine input source
    if args.video:
        input_path = Path(args.video)
        if not input_path.exists():
            logger.error(f"Input file not found: {input_path}")
            return 1
        cap = cv2.VideoCapture(str(input_path))
        wait_ms = config.video.file_wait_ms
        logger.info(f"Processing file: {input_path}")
    else:
        cap = cv2.VideoCapture(config.video.camera_id)
        wait_ms = config.video.camera_wait_ms
        logger.info(f"Using camera {config.video.camera_id}")

    if not cap.isOpened():
        logger.error("Failed to open input source")
        return 1

    source = VideoSource(cap)
    recorder = TrajectoryRecorder()
    consumers = [log_estimate, recorder]

    loop = TrackingLoop(
        estimator,
        detector,
        selector=config.filter.build_selector(),
        gap_policy=GapPolicy(config.filter.gap_policy),
        consumers=consumers,
        init_from_first_measurement=config.filter.init_from_first_measurement
    )
    logger.info(f"Gap policy: {loop.gap_policy.value}, reference: {loop.selector}")

    display = None
    if args.show:
        renderer = OverlayRenderer(show_rejected=config.detection.show_rejected,
                                    forecast_steps=args.forecast_steps)
        display = Display(source, renderer, loop, wait_ms)
        loop.add_consumer(display)
        loop.stop_condition = lambda: display.stop_requested

    def progress(result: FrameResult):
        if (result.detections.frame_index + 1) % config.video.progress_every == 0:
            logger.info(f"Processed {result.detections.frame_index + 1} frames, "
                        f"{loop.state.frames_with_measurement} with a marker")

    loop.add_consumer(progress)

    exit_code = 0
    try:
        loop.run(source)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except TrackingError as exc:
        logger.error(f"Tracking session aborted: {exc}")
        exit_code = 2
    finally:
        cap.release()
        if args.show:
            cv2.destroyAllWindows()

        if args.save_csv and len(recorder):
            run_output_dir.mkdir(parents=True, exist_ok=True)
            csv_path = run_output_dir / "estimates.csv"
            recorder.export_csv(csv_path)
            logger.info(f"Saved estimates: {csv_path}")

        state = loop.state
        logger.info(f"Processing complete. Frames: {state.frames_processed}, "
                    f"with marker: {state.frames_with_measurement}, skipped: {state.frames_skipped}")

    return exit_code


if __name__ == '__main__':
    sys.exit(main())
