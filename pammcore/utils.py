from typing import Optional, Union

import numpy as np

from .errors import DimensionError

TWO_PI = 2.0 * np.pi

# Abramowitz & Stegun 9.8.1 and 9.8.2
_I0_SMALL = (1.0, 3.5156229, 3.0899424, 1.2067492, 0.2659732, 0.0360768, 0.0045813)
_I0_LARGE = (
    0.39894228,
    0.01328592,
    0.00225319,
    -0.00157565,
    0.00916281,
    -0.02057706,
    0.02635537,
    -0.01647633,
    0.00392377,
)
_I0_BRANCH = 3.75


def _period_array(period: Optional[np.ndarray], dim: int) -> np.ndarray:
    if period is None:
        return np.zeros(dim)
    period = np.asarray(period, dtype=float).reshape(-1)
    if period.size != dim:
        raise DimensionError(
            f"`period` has {period.size} entries but the points have {dim} dimensions."
        )
    return period


def _minimum_image(delta: np.ndarray, period: np.ndarray) -> np.ndarray:
    periodic = period > 0
    if not np.any(periodic):
        return delta
    L = np.where(periodic, period, 1.0)
    scaled = delta / L
    # nearest integer, ties away from zero
    wrapped = (scaled - np.trunc(scaled + np.copysign(0.5, scaled))) * L
    return np.where(periodic, wrapped, delta)


def wrapped_delta(
    period: Optional[np.ndarray], a: np.ndarray, b: np.ndarray
) -> np.ndarray:
    """
    Displacement ``a - b`` under the minimum image convention.

    Parameters
    ----------
    period : np.ndarray (D,) or None
        Period of each axis. Axes with a period <= 0 are not periodic;
        None means no axis is.
    a, b : np.ndarray (D,)
        Points.

    Returns
    -------
    delta : np.ndarray (D,)
        On a periodic axis the component lies in [-L/2, L/2], with
        ``wrapped_delta(period, a, b) == -wrapped_delta(period, b, a)``.
    """
    a = np.asarray(a, dtype=float).reshape(-1)
    b = np.asarray(b, dtype=float).reshape(-1)
    if a.size != b.size:
        raise DimensionError(f"Points have different sizes ({a.size} and {b.size}).")
    return _minimum_image(a - b, _period_array(period, a.size))


def wrapped_squared_distance(
    period: Optional[np.ndarray], a: np.ndarray, b: np.ndarray
) -> float:
    """Squared euclidean length of :func:`wrapped_delta`."""
    delta = wrapped_delta(period, a, b)
    return float(np.dot(delta, delta))


def batch_wrapped_delta(
    period: Optional[np.ndarray], X: np.ndarray, xm: np.ndarray
) -> np.ndarray:
    """
    Minimum image displacement of every row of ``X`` from ``xm``.

    Parameters
    ----------
    period : np.ndarray (D,) or None
    X : np.ndarray (n, D)
        One sample per row.
    xm : np.ndarray (D,)
        Reference point.

    Returns
    -------
    dX : np.ndarray (n, D)
    """
    X = np.atleast_2d(np.asarray(X, dtype=float))
    xm = np.asarray(xm, dtype=float).reshape(-1)
    if X.shape[1] != xm.size:
        raise DimensionError(
            f"Samples have {X.shape[1]} dimensions but the reference point has {xm.size}."
        )
    return _minimum_image(X - xm, _period_array(period, xm.size))


def mahalanobis(
    period: Optional[np.ndarray],
    X: np.ndarray,
    y: np.ndarray,
    icov: np.ndarray,
) -> Union[float, np.ndarray]:
    """
    Squared Mahalanobis distance of ``X`` from ``y``, with periodic axes
    handled through the minimum image displacement.

    Parameters
    ----------
    period : np.ndarray (D,) or None
    X : np.ndarray (D,) or (n, D)
        A single point or one point per row.
    y : np.ndarray (D,)
        Reference point.
    icov : np.ndarray (D, D)
        Inverse covariance matrix.

    Returns
    -------
    d2 : float or np.ndarray (n,)
    """
    X = np.asarray(X, dtype=float)
    icov = np.asarray(icov, dtype=float)
    dX = batch_wrapped_delta(period, X, y)
    if icov.shape != (dX.shape[1], dX.shape[1]):
        raise DimensionError(
            f"`icov` has shape {icov.shape}, expected {(dX.shape[1], dX.shape[1])}."
        )
    d2 = np.einsum("ni,ij,nj->n", dX, icov, dX)
    return float(d2[0]) if X.ndim == 1 else d2


def bessel_i0(x: Union[np.ndarray, float]) -> Union[np.ndarray, float]:
    r"""
    Modified Bessel function of the first kind of order 0.

    Polynomial approximation of Abramowitz & Stegun (9.8.1, 9.8.2):

    $$ I_0(x) \approx \sum_{i=0}^{6} p_i t^{2i}, \quad t = x/3.75, \quad |x| < 3.75 $$

    $$ I_0(x) \approx \frac{e^{|x|}}{\sqrt{|x|}} \sum_{i=0}^{8} q_i (3.75/|x|)^i, \quad |x| \ge 3.75 $$

    with a relative error below ~2e-7.

    Parameters
    ----------
    x : np.ndarray or float

    Returns
    -------
    i0 : np.ndarray or float
    """
    ax = np.abs(np.asarray(x, dtype=float))
    small = ax < _I0_BRANCH
    # np.where evaluates both branches; keep the discarded one finite
    y_small = (np.where(small, ax, 0.0) / _I0_BRANCH) ** 2
    ax_large = np.where(small, _I0_BRANCH, ax)
    y_large = _I0_BRANCH / ax_large
    with np.errstate(over="ignore"):
        large = np.exp(ax_large) / np.sqrt(ax_large) * np.polyval(_I0_LARGE[::-1], y_large)
    result = np.where(small, np.polyval(_I0_SMALL[::-1], y_small), large)
    return float(result) if result.ndim == 0 else result


def log_bessel_i0(x: Union[np.ndarray, float]) -> Union[np.ndarray, float]:
    """Natural log of :func:`bessel_i0`, without overflow for large ``|x|``."""
    ax = np.abs(np.asarray(x, dtype=float))
    small = ax < _I0_BRANCH
    y_small = (np.where(small, ax, 0.0) / _I0_BRANCH) ** 2
    ax_large = np.where(small, _I0_BRANCH, ax)
    y_large = _I0_BRANCH / ax_large
    large = ax_large - 0.5 * np.log(ax_large) + np.log(np.polyval(_I0_LARGE[::-1], y_large))
    result = np.where(small, np.log(np.polyval(_I0_SMALL[::-1], y_small)), large)
    return float(result) if result.ndim == 0 else result
