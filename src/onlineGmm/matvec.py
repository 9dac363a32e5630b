"""
2x2 matrix and 2-vector helpers for the online mixture.

Matrices are numpy arrays of shape (2, 2) laid out as [[a, b], [c, d]];
vectors are arrays of shape (2,) with components (a, b).

Numerical failures never raise: Cholesky/inverse of a bad matrix return a
NaN-filled matrix so downstream norm factors go non-finite and the owning
cluster gets pruned.
"""

import math
from dataclasses import dataclass, field

import numpy as np

# exp() argument bound; exp(300) ~ 1.9e130 leaves room to sum many terms
EXP_LIMIT = 300.0
# smallest normal double; mixture probabilities routinely go far below 1e-12
ZERO_THRESHOLD = np.finfo(np.float64).tiny


def vec2(a: float = 0.0, b: float = 0.0) -> np.ndarray:
    return np.array([a, b], dtype=np.float64)


def mat2x2(a: float = 0.0, b: float = 0.0, c: float = 0.0, d: float = 0.0) -> np.ndarray:
    return np.array([[a, b], [c, d]], dtype=np.float64)


def nan_mat2x2() -> np.ndarray:
    return np.full((2, 2), np.nan)


def subtract(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    return x - y


def add(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    return x + y


def scale(k: float, x: np.ndarray) -> np.ndarray:
    return k * x


def transpose(m: np.ndarray) -> np.ndarray:
    return m.T.copy()


def dot_vec2(m: np.ndarray, v: np.ndarray) -> np.ndarray:
    with np.errstate(invalid="ignore", over="ignore"):
        return m @ v


def llt(m: np.ndarray) -> np.ndarray:
    """Lower-triangular Cholesky factor, or a NaN matrix if m is not positive definite."""
    if not np.all(np.isfinite(m)):
        return nan_mat2x2()
    try:
        return np.linalg.cholesky(m)
    except np.linalg.LinAlgError:
        return nan_mat2x2()


def inverse(m: np.ndarray) -> np.ndarray:
    """Matrix inverse, or a NaN matrix if m is singular."""
    if not np.all(np.isfinite(m)):
        return nan_mat2x2()
    try:
        return np.linalg.inv(m)
    except np.linalg.LinAlgError:
        return nan_mat2x2()


def mahalanobis_sq(inv_covariance: np.ndarray, delta: np.ndarray) -> float:
    with np.errstate(invalid="ignore", over="ignore"):
        return float(delta @ inv_covariance @ delta)


def safe_exp(x: float) -> float:
    """exp(x) clamped to a finite range; NaN maps to 0."""
    if math.isnan(x) or x < -EXP_LIMIT:
        return 0.0
    return math.exp(min(x, EXP_LIMIT))


def zdiv(a: float, b: float) -> float:
    """a / b, defined as 0 when b is ~0."""
    if not abs(b) >= ZERO_THRESHOLD:
        return 0.0
    return a / b


@dataclass
class Gaussian2D:
    mean: np.ndarray = field(default_factory=vec2)
    covariance: np.ndarray = field(default_factory=mat2x2)


def weighted_mean_update(x: np.ndarray, gaussian: Gaussian2D, weight: float) -> np.ndarray:
    """
    Move gaussian.mean toward x by `weight` of the way.

    Returns the applied mean delta, weight * (x - mean), which the
    covariance update consumes.
    """
    delta = scale(weight, subtract(x, gaussian.mean))
    gaussian.mean = add(gaussian.mean, delta)
    return delta


def weighted_covariance_update(
    delta_a: np.ndarray,
    delta_b: np.ndarray,
    gaussian: Gaussian2D,
    weight: float,
) -> None:
    """Blend gaussian.covariance toward the outer product delta_a x delta_b."""
    with np.errstate(invalid="ignore", over="ignore"):
        target = np.outer(delta_a, delta_b)
        gaussian.covariance = gaussian.covariance + weight * (target - gaussian.covariance)
