"""
Linear motion models for tracking a marker reference point in the image.

State vector: [x, y, vx, vy]
Measurement: [x, y]
"""

import numpy as np
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .kalman import KalmanFilter


@dataclass(frozen=True)
class LinearModel:
    """Matrices of a linear Gaussian state-space model."""
    dt: float
    A: np.ndarray   # System dynamics [n, n]
    C: np.ndarray   # Output matrix [m, n]
    Q: np.ndarray   # Process noise covariance [n, n]
    R: np.ndarray   # Measurement noise covariance [m, m]
    P0: np.ndarray  # Initial error covariance [n, n]

    @property
    def n(self) -> int:
        return self.A.shape[0]

    @property
    def m(self) -> int:
        return self.C.shape[0]

    def build_filter(self, solver: str = 'cholesky', joseph: bool = False) -> KalmanFilter:
        """Create a KalmanFilter for this model."""
        return KalmanFilter(self.dt, self.A, self.C, self.Q, self.R, self.P0,
                            solver=solver, joseph=joseph)


def white_noise_acceleration(dt: float) -> np.ndarray:
    """
    Discrete white-noise acceleration covariance for [x, y, vx, vy], unit variance.
    """
    q_pp = dt ** 4 / 4
    q_pv = dt ** 3 / 2
    q_vv = dt ** 2
    return np.array([
        [q_pp, 0, q_pv, 0],
        [0, q_pp, 0, q_pv],
        [q_pv, 0, q_vv, 0],
        [0, q_pv, 0, q_vv]
    ], dtype=float)


def position_output() -> np.ndarray:
    """Output matrix that observes position only."""
    return np.array([
        [1, 0, 0, 0],
        [0, 1, 0, 0]
    ], dtype=float)


def static_model(dt: float = 1.0 / 30,
                    process_variance: float = 0.0,
                    measurement_variance: float = 1.0,
                    initial_variance: Optional[float] = None) -> LinearModel:
    """
    Identity dynamics; velocity terms are carried but never integrated.

    With the defaults both Q and P0 are zero, so the gain is zero and the
    estimate never leaves x0. Pass initial_variance to start from
    initial_variance * I instead of the process-noise shaped P0.

    Args:
        dt: Time step (seconds)
        process_variance: Scale of the white-noise acceleration covariance
        measurement_variance: Variance of each measured coordinate
        initial_variance: Diagonal initial covariance (optional)
    """
    Q = process_variance * white_noise_acceleration(dt)
    if initial_variance is None:
        P0 = Q.copy()
    else:
        P0 = np.eye(4) * initial_variance

    return LinearModel(
        dt=dt,
        A=np.eye(4),
        C=position_output(),
        Q=Q,
        R=np.eye(2) * measurement_variance,
        P0=P0
    )


def constant_velocity_model(dt: float = 1.0 / 30,
                            process_variance: float = 1000.0,
                            measurement_variance: float = 4.0,
                            initial_variance: float = 100.0) -> LinearModel:
    """
    Constant velocity model in pixel coordinates.

    Args:
        dt: Time step (seconds)
        process_variance: Acceleration variance (px^2 / s^4)
        measurement_variance: Corner localisation variance (px^2)
        initial_variance: Diagonal initial covariance
    """
    A = np.array([
        [1, 0, dt, 0],  # x = x + vx * dt
        [0, 1, 0, dt],  # y = y + vy * dt
        [0, 0, 1, 0],   # vx = vx
        [0, 0, 0, 1]    # vy = vy
    ], dtype=float)

    return LinearModel(
        dt=dt,
        A=A,
        C=position_output(),
        Q=process_variance * white_noise_acceleration(dt),
        R=np.eye(2) * measurement_variance,
        P0=np.eye(4) * initial_variance
    )


def model_from_matrices(dt: float, matrices: Dict[str, Any]) -> LinearModel:
    """
    Build a model from explicit matrices, e.g. loaded from a JSON config.

    Args:
        dt: Time step
        matrices: Dict with keys 'A', 'C', 'Q', 'R', 'P0'

    Returns:
        LinearModel (shapes are checked when the filter is built)
    """
    missing = [key for key in ('A', 'C', 'Q', 'R', 'P0') if key not in matrices]
    if missing:
        raise ValueError(f"Model matrices missing: {', '.join(missing)}")

    C = np.atleast_2d(np.array(matrices['C'], dtype=float))
    return LinearModel(
        dt=dt,
        A=np.atleast_2d(np.array(matrices['A'], dtype=float)),
        C=C,
        Q=np.atleast_2d(np.array(matrices['Q'], dtype=float)),
        R=np.atleast_2d(np.array(matrices['R'], dtype=float)),
        P0=np.atleast_2d(np.array(matrices['P0'], dtype=float))
    )


MODELS: Dict[str, Callable[..., LinearModel]] = {
    'static': static_model,
    'constant_velocity': constant_velocity_model,
}


def build_model(name: str, dt: float, **params) -> LinearModel:
    """
    Build a named model preset.

    Args:
        name: Key in MODELS
        dt: Time step
        **params: Keyword arguments forwarded to the preset builder

    Returns:
        LinearModel
    """
    if name not in MODELS:
        raise ValueError(f"Unknown model '{name}', expected one of {sorted(MODELS)}")
    return MODELS[name](dt=dt, **params)
