from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from .errors import DimensionError, DomainError
from .utils import wrapped_delta, wrapped_squared_distance

__all__ = [
    "WeightedCovarianceResult",
    "weighted_covariance",
    "wrapped_weighted_covariance",
]


@dataclass(frozen=True)
class WeightedCovarianceResult:
    covariance: np.ndarray  # (D, D), Bessel corrected
    total_weight: float  # sum of the kernel weights

    def __iter__(self):
        yield self.covariance
        yield self.total_weight

    def asdict(self) -> dict[str, Any]:
        """Return result data as a dictionary."""
        from dataclasses import asdict

        return asdict(self)


def _check_samples(X: np.ndarray, xref: np.ndarray, bandwidth: float):
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2:
        raise DimensionError(f"Samples must be a (n, D) array, got shape {X.shape}.")
    xref = np.asarray(xref, dtype=float).reshape(-1)
    if xref.size != X.shape[1]:
        raise DimensionError(
            f"Samples have {X.shape[1]} dimensions but `xref` has {xref.size}."
        )
    n = X.shape[0]
    if n <= 1:
        raise DomainError(
            f"At least two samples are required for a covariance estimate, got {n}."
        )
    if not bandwidth > 0:
        raise DomainError(f"`bandwidth` must be positive, got {bandwidth}.")
    return X, xref, n


def weighted_covariance(
    X: np.ndarray,
    xref: np.ndarray,
    bandwidth: float,
) -> WeightedCovarianceResult:
    r"""
    Kernel-weighted covariance around a reference point, in a single pass.

    Each sample gets the weight of a spherical Gaussian kernel centred on
    ``xref``,

    $$ w_i = \exp\left(-\frac{\lVert x_i - x_{ref} \rVert^2}{2 h^2}\right) $$

    and the weighted mean and scatter matrix are accumulated with Welford's
    online update, so the data are traversed only once.

    Parameters
    ----------
    X : np.ndarray (n, D)
        Samples, one per row.
    xref : np.ndarray (D,)
        Reference point the kernel is centred on.
    bandwidth : float
        Kernel width h.

    Returns
    -------
    result : WeightedCovarianceResult
        ``covariance`` (D, D) scaled by n / (n - 1), and ``total_weight``.
        Unpacks as ``Q, W = weighted_covariance(...)``.

    Raises
    ------
    DomainError
        With fewer than two samples, a non-positive bandwidth, or when every
        kernel weight underflows to zero.

    Reference
    ---------
    West, D. H. D. (1979). Updating mean and variance estimates: an improved
    method. Communications of the ACM, 22(9), 532-535.
    """
    X, xref, n = _check_samples(X, xref, bandwidth)
    D = X.shape[1]
    kernel_factor = -0.5 / bandwidth**2

    total_weight = 0.0
    mean = np.zeros(D)
    scatter = np.zeros((D, D))
    for x in X:
        dx = xref - x
        weight = np.exp(kernel_factor * np.dot(dx, dx))
        new_total = total_weight + weight
        if new_total == 0:
            continue
        delta = x - mean
        R = delta * weight / new_total
        mean = mean + R
        scatter += total_weight * np.tril(np.outer(delta, R))
        total_weight = new_total

    if total_weight == 0:
        raise DomainError("All kernel weights vanish; increase `bandwidth`.")

    # mirror the lower triangle
    scatter = scatter + np.tril(scatter, -1).T
    Q = scatter / total_weight * n / (n - 1)
    return WeightedCovarianceResult(covariance=Q, total_weight=float(total_weight))


def wrapped_weighted_covariance(
    X: np.ndarray,
    xref: np.ndarray,
    bandwidth: float,
    period: Optional[np.ndarray],
) -> WeightedCovarianceResult:
    """
    Periodic counterpart of :func:`weighted_covariance`.

    Kernel weights use the minimum image distance to ``xref`` and the
    displacement from the running mean is wrapped as well. The running mean
    is the circular mean of the samples seen so far (from the weighted sums of
    their sines and cosines) shifted by the Welford increment. Only variances
    are estimated: the off-diagonal entries of the result are zero.

    Parameters
    ----------
    X : np.ndarray (n, D)
        Samples, one per row.
    xref : np.ndarray (D,)
        Reference point.
    bandwidth : float
        Kernel width.
    period : np.ndarray (D,) or None
        Period of each axis; values <= 0 mark non-periodic axes.

    Returns
    -------
    result : WeightedCovarianceResult
        Diagonal ``covariance`` and ``total_weight``.
    """
    X, xref, n = _check_samples(X, xref, bandwidth)
    D = X.shape[1]
    kernel_factor = -0.5 / bandwidth**2

    total_weight = 0.0
    mean = np.zeros(D)
    scatter = np.zeros(D)
    sin_sum = np.zeros(D)
    cos_sum = np.zeros(D)
    for x in X:
        weight = np.exp(kernel_factor * wrapped_squared_distance(period, xref, x))
        new_total = total_weight + weight
        if new_total == 0:
            continue
        delta = wrapped_delta(period, x, mean)
        R = delta * weight / new_total
        sin_sum += np.sin(x) * weight
        cos_sum += np.cos(x) * weight
        mean = np.arctan2(sin_sum, cos_sum) + R
        scatter += total_weight * delta * R
        total_weight = new_total

    if total_weight == 0:
        raise DomainError("All kernel weights vanish; increase `bandwidth`.")

    Q = np.diag(scatter / total_weight * n / (n - 1))
    return WeightedCovarianceResult(covariance=Q, total_weight=float(total_weight))
