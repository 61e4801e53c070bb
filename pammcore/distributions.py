import warnings
from typing import Optional, Union

import numpy as np

from .errors import DimensionError, DomainError, NumericalError
from .linalg import determinant, eigenvalues, inverse
from .utils import TWO_PI, batch_wrapped_delta, log_bessel_i0

__all__ = ["Cluster", "GaussianCluster", "VonMisesCluster"]


class Cluster:
    """
    Base class of a weighted mixture component.

    A cluster carries an unnormalized mixture ``weight``, a ``mean`` and a
    ``covariance``. Quantities derived from the covariance (inverse,
    normalization) are computed by :meth:`prepare`, which has to run before
    any evaluation and again whenever ``covariance`` is reassigned. The
    covariance array itself is read-only, so it can only change by
    reassignment.

    Subclasses implement :meth:`prepare` and :meth:`log_density`; the
    posterior engine relies on nothing else besides ``weight``.
    """

    def __init__(
        self,
        weight: float,
        mean: np.ndarray,
        covariance: np.ndarray,
    ):
        mean = np.array(mean, dtype=float).reshape(-1)
        if mean.size < 1:
            raise DimensionError("`mean` must have at least one entry.")
        self._dimension = mean.size
        self.weight = float(weight)
        self.mean = mean
        self.covariance = covariance

        self.inverse_covariance: Optional[np.ndarray] = None
        self.log_norm: Optional[float] = None

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def mean(self) -> np.ndarray:
        return self._mean

    @mean.setter
    def mean(self, value: np.ndarray):
        value = np.array(value, dtype=float).reshape(-1)
        if value.size != self._dimension:
            raise DimensionError(
                f"`mean` has {value.size} entries, expected {self._dimension}."
            )
        self._mean = value

    @property
    def covariance(self) -> np.ndarray:
        return self._covariance

    @covariance.setter
    def covariance(self, value: np.ndarray):
        value = np.array(value, dtype=float)
        D = self._dimension
        if value.size == D * D:
            value = value.reshape(D, D)
        if value.shape != (D, D):
            raise DimensionError(
                f"`covariance` has shape {value.shape}, expected {(D, D)}."
            )
        value.setflags(write=False)
        self._covariance = value
        self._prepared = False

    @property
    def prepared(self) -> bool:
        return self._prepared

    def prepare(self):
        raise NotImplementedError

    def log_density(self, x: np.ndarray) -> Union[float, np.ndarray]:
        raise NotImplementedError

    def density(self, x: np.ndarray) -> Union[float, np.ndarray]:
        """Probability density at ``x``, i.e. ``exp(log_density(x))``."""
        return np.exp(self.log_density(x))

    def _points(self, x: np.ndarray) -> np.ndarray:
        if not self._prepared:
            raise ValueError(
                f"{type(self).__name__} must be prepared before it is evaluated."
            )
        x = np.atleast_1d(np.asarray(x, dtype=float))
        if x.ndim > 2 or x.shape[-1] != self._dimension:
            raise DimensionError(
                f"Point has shape {x.shape}, expected {self._dimension} dimensions."
            )
        return x

    def __repr__(self):
        return (
            f"{type(self).__name__}(dimension={self._dimension}, weight={self.weight}, "
            f"mean={self._mean.tolist()})"
        )


class GaussianCluster(Cluster):
    r"""
    Multivariate normal mixture component.

    $$ \log f(x) = -\frac{1}{2}\left(D \log 2\pi + \log\det\Sigma\right)
       - \frac{1}{2}(x-\mu)^T \Sigma^{-1} (x-\mu) $$

    Parameters
    ----------
    weight : float
        Unnormalized mixture weight.
    mean : np.ndarray (D,)
        Centre of the cluster.
    covariance : np.ndarray (D, D) or (D*D,)
        Covariance matrix, row-major if flattened.

    Attributes
    ----------
    determinant : float or None
        Determinant of the covariance, set by :meth:`prepare`.
    inverse_covariance : np.ndarray (D, D) or None
        Set by :meth:`prepare`.
    log_norm : float or None
        Log of the normalization constant, set by :meth:`prepare`.

    Examples
    --------
        from pammcore.distributions import GaussianCluster
        g = GaussianCluster(weight=1.0, mean=[0.0, 0.0], covariance=np.eye(2)).prepare()
        g.density([0.0, 0.0])  # 1 / (2 pi)
    """

    def __init__(self, weight: float, mean: np.ndarray, covariance: np.ndarray):
        super().__init__(weight, mean, covariance)
        self.determinant: Optional[float] = None

    def prepare(self) -> "GaussianCluster":
        """Compute determinant, inverse covariance and log normalization."""
        det = determinant(self.covariance)
        if not det > 0:
            raise NumericalError(
                f"Covariance determinant is {det}; a Gaussian needs a positive definite covariance."
            )
        self.determinant = det
        self.inverse_covariance = inverse(self.covariance)
        self.log_norm = -0.5 * (self._dimension * np.log(TWO_PI) + np.log(det))
        self._prepared = True
        return self

    def log_density(self, x: np.ndarray) -> Union[float, np.ndarray]:
        """
        Log density at one point (D,) or at each row of an (n, D) array.
        """
        x = self._points(x)
        dx = x - self.mean
        xcx = np.einsum("...i,ij,...j->...", dx, self.inverse_covariance, dx)
        logp = self.log_norm - 0.5 * xcx
        return float(logp) if x.ndim == 1 else logp


class VonMisesCluster(Cluster):
    r"""
    Multivariate von Mises mixture component for periodic coordinates.

    The density is the periodic analogue of the Gaussian,

    $$ \log f(x) = \log C - \frac{1}{2} r^2(x) $$

    where $r^2$ is :meth:`squared_periodic_mahalanobis` and the normalization
    is built from the eigenvalues $\lambda_k$ of the inverse covariance,

    $$ C^{-1} = \prod_k L_k \, I_0(\lambda_k) \, e^{-\lambda_k} $$

    Parameters
    ----------
    weight : float
        Unnormalized mixture weight.
    mean : np.ndarray (D,)
        Centre of the cluster.
    covariance : np.ndarray (D, D) or (D*D,)
        Covariance matrix, row-major if flattened.
    period : np.ndarray (D,)
        Period L_k of each axis; must be positive. Non-periodic axes are not
        supported by von Mises clusters and make :meth:`prepare` raise
        :class:`DomainError`.

    Reference
    ---------
    Tribello, G. A., Ceriotti, M., & Parrinello, M. (2010). A self-learning
    algorithm for biased molecular dynamics. PNAS, 107(41), 17509-17514.
    """

    def __init__(
        self,
        weight: float,
        mean: np.ndarray,
        covariance: np.ndarray,
        period: np.ndarray,
    ):
        super().__init__(weight, mean, covariance)
        period = np.array(period, dtype=float).reshape(-1)
        if period.size != self._dimension:
            raise DimensionError(
                f"`period` has {period.size} entries, expected {self._dimension}."
            )
        self.period = period

    def prepare(self) -> "VonMisesCluster":
        """Compute inverse covariance and log normalization."""
        if np.any(self.period <= 0):
            raise DomainError(
                f"All periods of a von Mises cluster must be positive, got {self.period.tolist()}."
            )
        self.inverse_covariance = inverse(self.covariance)
        eig = eigenvalues(self.inverse_covariance)
        if np.any(eig <= 0):
            warnings.warn(
                (
                    "Inverse covariance has non-positive eigenvalues "
                    f"{eig[eig <= 0].tolist()}; the von Mises normalization is unreliable."
                ),
                RuntimeWarning,
                stacklevel=2,
            )
        self.log_norm = -float(np.sum(np.log(self.period) + log_bessel_i0(eig) - eig))
        self._prepared = True
        return self

    def squared_periodic_mahalanobis(self, x: np.ndarray) -> Union[float, np.ndarray]:
        r"""
        Periodic distance from the centre of the cluster.

        With $\delta = 2\pi \Delta$, $\Delta$ the minimum image displacement,

        $$ r^2 = 2 \left( \sum_k \Sigma^{-1}_{kk} (1 - \cos(\delta_k / L_k))
               + \sum_{i<j} \Sigma^{-1}_{ij} \sin(\delta_i / L_i) \sin(\delta_j / L_i) \right) $$

        Note that the second sine in the cross term is scaled by $L_i$, not
        $L_j$; the two agree whenever all periods are equal.

        Parameters
        ----------
        x : np.ndarray (D,) or (n, D)

        Returns
        -------
        r2 : float or np.ndarray (n,)
        """
        x = self._points(x)
        delta = TWO_PI * batch_wrapped_delta(self.period, x.reshape(-1, self._dimension), self.mean)
        icov = self.inverse_covariance
        L = self.period

        diag = np.sum(np.diag(icov) * (1.0 - np.cos(delta / L)), axis=1)
        s = np.sin(delta / L)  # (n, D): sin(delta_i / L_i)
        t = np.sin(delta[:, None, :] / L[None, :, None])  # (n, D, D): sin(delta_j / L_i)
        cross = np.einsum("ij,ni,nij->n", np.triu(icov, 1), s, t)

        r2 = 2.0 * (diag + cross)
        return float(r2[0]) if x.ndim == 1 else r2

    def log_density(self, x: np.ndarray) -> Union[float, np.ndarray]:
        """
        Log density at one point (D,) or at each row of an (n, D) array.
        """
        return self.log_norm - 0.5 * self.squared_periodic_mahalanobis(x)

    def __repr__(self):
        return (
            f"{type(self).__name__}(dimension={self._dimension}, weight={self.weight}, "
            f"mean={self._mean.tolist()}, period={self.period.tolist()})"
        )
