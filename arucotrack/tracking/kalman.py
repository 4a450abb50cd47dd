"""
Linear Kalman filter with a fixed state and measurement size.
"""

import numpy as np
from typing import List, Optional

from .errors import DimensionMismatchError, UninitializedFilterError
from .linalg import SOLVERS, as_matrix, as_vector, require_symmetric, solve_gain, symmetrize


class KalmanFilter:
    """
    Discrete linear Kalman filter.

    x' = A x + w,  w ~ N(0, Q)
    y  = C x + v,  v ~ N(0, R)

    The filter owns its mean and covariance; state() and covariance()
    hand out copies.
    """

    def __init__(self,
                    dt: float,
                    A,
                    C,
                    Q,
                    R,
                    P0,
                    solver: str = 'cholesky',
                    joseph: bool = False):
        """
        Build a filter for the given model.

        Args:
            dt: Time step added to the filter clock by every predict()
            A: System dynamics matrix [n, n]
            C: Output matrix [m, n]
            Q: Process noise covariance [n, n]
            R: Measurement noise covariance [m, m]
            P0: Initial estimate error covariance [n, n]
            solver: Gain solver, 'cholesky' or 'lu'
            joseph: Use the Joseph form for the covariance update
        """
        dt = float(dt)
        if not np.isfinite(dt):
            raise ValueError(f"dt must be finite, got {dt}")
        if solver not in SOLVERS:
            raise ValueError(f"Unknown solver '{solver}', expected one of {SOLVERS}")

        C_arr = np.array(C, dtype=float)
        if C_arr.ndim == 1:
            C_arr = C_arr.reshape(1, -1)
        if C_arr.ndim != 2:
            raise DimensionMismatchError(f"C must be a matrix, got shape {C_arr.shape}")
        m, n = C_arr.shape

        self.A = as_matrix(A, (n, n), 'A')
        self.C = as_matrix(C_arr, (m, n), 'C')
        # Covariances must be symmetric; the Cholesky solve reads one triangle only
        self.Q = require_symmetric(as_matrix(Q, (n, n), 'Q'), 'Q')
        self.R = require_symmetric(as_matrix(R, (m, m), 'R'), 'R')
        self.P0 = require_symmetric(as_matrix(P0, (n, n), 'P0'), 'P0')

        self._n = n
        self._m = m
        self._dt = dt
        self._I = np.eye(n)
        self.solver = solver
        self.joseph = joseph

        self._x: Optional[np.ndarray] = None
        self._P: Optional[np.ndarray] = None
        self._t0 = 0.0
        self._t = 0.0
        self._last_innovation: Optional[np.ndarray] = None
        self._last_gain: Optional[np.ndarray] = None

    @property
    def n(self) -> int:
        """State dimension."""
        return self._n

    @property
    def m(self) -> int:
        """Measurement dimension."""
        return self._m

    @property
    def dt(self) -> float:
        return self._dt

    @property
    def time(self) -> float:
        """Current filter clock."""
        return self._t

    @property
    def initialized(self) -> bool:
        return self._x is not None

    @property
    def last_innovation(self) -> Optional[np.ndarray]:
        """Innovation z of the most recent update (copy)."""
        return None if self._last_innovation is None else self._last_innovation.copy()

    @property
    def last_gain(self) -> Optional[np.ndarray]:
        """Kalman gain K of the most recent update (copy)."""
        return None if self._last_gain is None else self._last_gain.copy()

    def init(self, t0: float, x0):
        """
        Set the initial belief.

        Calling it again discards the current belief and starts over from P0.

        Args:
            t0: Initial filter time
            x0: Initial state estimate, length n
        """
        self._x = as_vector(x0, self._n, 'x0')
        self._P = self.P0.copy()
        self._t0 = float(t0)
        self._t = self._t0
        self._last_innovation = None
        self._last_gain = None

    def predict(self) -> np.ndarray:
        """
        Time update: x = A x, P = A P A^T + Q, t += dt.

        Returns:
            Predicted state (copy)
        """
        self._require_init('predict')

        self._x = self.A @ self._x
        self._P = self.A @ self._P @ self.A.T + self.Q
        self._t += self._dt

        return self._x.copy()

    def update(self, y) -> np.ndarray:
        """
        Measurement update with measurement y.

        Call predict() first; update() itself does not move the clock.

        Args:
            y: Measurement vector, length m

        Returns:
            Corrected state (copy)
        """
        self._require_init('update')
        y = as_vector(y, self._m, 'y')

        # Innovation and its covariance
        z = y - self.C @ self._x
        S = self.C @ self._P @ self.C.T + self.R

        K = solve_gain(self._P, self.C, S, self.solver)

        self._x = self._x + K @ z

        IKC = self._I - K @ self.C
        if self.joseph:
            P = IKC @ self._P @ IKC.T + K @ self.R @ K.T
        else:
            P = IKC @ self._P
        self._P = symmetrize(P)

        self._last_innovation = z
        self._last_gain = K

        return self._x.copy()

    def state(self) -> np.ndarray:
        """Current state estimate (copy)."""
        self._require_init('state')
        return self._x.copy()

    def covariance(self) -> np.ndarray:
        """Current estimate error covariance (copy)."""
        self._require_init('covariance')
        return self._P.copy()

    def forecast(self, steps: int) -> List[np.ndarray]:
        """
        Predict future states without touching the filter's belief.

        Args:
            steps: Number of future time steps

        Returns:
            List of predicted state vectors, one per step
        """
        self._require_init('forecast')

        x = self._x.copy()
        future = []
        for _ in range(max(int(steps), 0)):
            x = self.A @ x
            future.append(x.copy())
        return future

    def _require_init(self, operation: str):
        if self._x is None:
            raise UninitializedFilterError(
                f"{operation}() called before init(); set an initial state first"
            )

    def __repr__(self) -> str:
        return (f"KalmanFilter(n={self._n}, m={self._m}, dt={self._dt}, "
                f"solver='{self.solver}', joseph={self.joseph})")
