"""
Small fixed-size linear algebra helpers for the Kalman filter.

Every matrix the filter touches goes through these helpers so its shape is
checked against the state (n) and measurement (m) sizes once, up front.
"""

import numpy as np
from scipy import linalg as sla
from typing import Tuple

from .errors import DimensionMismatchError, SingularCovarianceError

# Innovation covariances with a larger condition number are treated as singular
MAX_CONDITION = 1.0 / np.finfo(float).eps

SOLVERS = ('cholesky', 'lu')


def as_matrix(value, shape: Tuple[int, int], name: str) -> np.ndarray:
    """
    Coerce value to a float matrix of exactly the given shape.

    A flat sequence is accepted for single-row or single-column shapes, so
    C = [1, 0] works for a 1x2 output matrix.

    Args:
        value: Array-like input
        shape: Expected (rows, cols)
        name: Matrix name used in error messages

    Returns:
        New float ndarray with the requested shape
    """
    arr = np.array(value, dtype=float)
    if arr.ndim == 1 and (shape[0] == 1 or shape[1] == 1) and arr.size == shape[0] * shape[1]:
        arr = arr.reshape(shape)
    if arr.shape != shape:
        raise DimensionMismatchError(
            f"{name} must be {shape[0]}x{shape[1]}, got shape {arr.shape}"
        )
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite values")
    return arr


def as_vector(value, size: int, name: str) -> np.ndarray:
    """
    Coerce value to a float vector of exactly the given length.

    Column/row vectors are flattened; anything whose element count differs
    from size is rejected rather than truncated or padded.
    """
    arr = np.array(value, dtype=float)
    if arr.ndim == 0:
        arr = arr.reshape(1)
    if (arr.ndim == 2 and 1 not in arr.shape) or arr.ndim > 2:
        raise DimensionMismatchError(
            f"{name} must be a vector of length {size}, got shape {arr.shape}"
        )
    arr = arr.reshape(-1)
    if arr.size != size:
        raise DimensionMismatchError(
            f"{name} must have length {size}, got {arr.size}"
        )
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite values: {arr}")
    return arr


def symmetrize(P: np.ndarray) -> np.ndarray:
    """Return the symmetric part of a square matrix."""
    return 0.5 * (P + P.T)


def require_symmetric(M: np.ndarray, name: str) -> np.ndarray:
    """Raise ValueError unless M equals its transpose up to rounding."""
    if not np.allclose(M, M.T, rtol=1e-9, atol=1e-12):
        raise ValueError(f"{name} must be symmetric:\n{M}")
    return M


def solve_gain(P: np.ndarray, C: np.ndarray, S: np.ndarray,
                solver: str = 'cholesky') -> np.ndarray:
    """
    Compute the Kalman gain K = P C^T S^-1 without forming S^-1.

    Solves S^T K^T = C P^T, i.e. the transpose of K S = P C^T.

    Args:
        P: Predicted covariance [n, n]
        C: Output matrix [m, n]
        S: Innovation covariance [m, m]
        solver: 'cholesky' (falls back to LU if S is not positive definite) or 'lu'

    Returns:
        Gain matrix [n, m]

    Raises:
        SingularCovarianceError: If S is singular or numerically close to it
    """
    if solver not in SOLVERS:
        raise ValueError(f"Unknown solver '{solver}', expected one of {SOLVERS}")

    if not np.all(np.isfinite(S)) or not np.linalg.cond(S) < MAX_CONDITION:
        raise SingularCovarianceError(
            f"Innovation covariance is singular or ill-conditioned:\n{S}"
        )

    rhs = C @ P.T
    if solver == 'cholesky':
        try:
            factor = sla.cho_factor(S.T, lower=True)
            return sla.cho_solve(factor, rhs).T
        except np.linalg.LinAlgError:
            pass  # not positive definite; LU below

    try:
        return np.linalg.solve(S.T, rhs).T
    except np.linalg.LinAlgError as exc:
        raise SingularCovarianceError(
            f"Innovation covariance is singular:\n{S}"
        ) from exc
