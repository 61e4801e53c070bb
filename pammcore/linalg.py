import numpy as np
from scipy.linalg import LinAlgError, eigvals, inv

from .errors import DimensionError, NumericalError

__all__ = ["determinant", "inverse", "eigenvalues", "trace"]


def _as_square(M: np.ndarray) -> np.ndarray:
    M = np.asarray(M, dtype=float)
    if M.ndim != 2 or M.shape[0] != M.shape[1]:
        raise DimensionError(f"Expected a square matrix, got shape {M.shape}.")
    return M


def determinant(M: np.ndarray) -> float:
    """
    Determinant of a square matrix by Gaussian elimination.

    Whenever the current pivot is exactly zero the first row below it with a
    nonzero entry in that column is swapped in (flipping the sign). If no such
    row exists the matrix is singular and ``0.0`` is returned.

    Parameters
    ----------
    M : np.ndarray (D, D)
        Square matrix. It is not modified.

    Returns
    -------
    det : float
    """
    A = _as_square(M).copy()
    D = A.shape[0]
    sign = 1.0

    for k in range(D - 1):
        if A[k, k] == 0:
            nonzero = np.flatnonzero(A[k + 1 :, k])
            if nonzero.size == 0:
                return 0.0
            i = k + 1 + nonzero[0]
            A[[k, i]] = A[[i, k]]
            sign = -sign
        factors = A[k + 1 :, k] / A[k, k]
        A[k + 1 :, k + 1 :] -= np.outer(factors, A[k, k + 1 :])

    return float(sign * np.prod(np.diag(A)))


def inverse(M: np.ndarray) -> np.ndarray:
    """
    Inverse of a square matrix from its LU factorization (LAPACK getrf/getri).

    Raises
    ------
    NumericalError
        If the matrix is exactly singular.
    """
    M = _as_square(M)
    try:
        return inv(M)
    except LinAlgError as exc:
        raise NumericalError(f"Matrix is singular and cannot be inverted: {exc}") from exc


def eigenvalues(M: np.ndarray) -> np.ndarray:
    """Real parts of the eigenvalues of a general square matrix.

    The decomposition runs on a private copy, so ``M`` is left untouched.
    """
    M = _as_square(M)
    return np.real(eigvals(M, overwrite_a=False))


def trace(M: np.ndarray) -> float:
    return float(np.sum(np.diag(_as_square(M))))
