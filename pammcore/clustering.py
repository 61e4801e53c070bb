from __future__ import annotations

from typing import List, Sequence

import numpy as np
from scipy.special import logsumexp

from .data import read_clusters, write_clusters
from .distributions import Cluster
from .errors import DimensionError

__all__ = ["posterior", "ClusterMixture"]


def posterior(
    x: np.ndarray,
    clusters: Sequence[Cluster],
    alpha: float = 1.0,
    zeta: float = 0.0,
) -> np.ndarray:
    r"""
    Posterior probability of ``x`` belonging to each cluster.

    $$ p_k = \frac{\left(w_k f_k(x) / f_{max}\right)^\alpha}
                  {\zeta + \sum_j \left(w_j f_j(x) / f_{max}\right)^\alpha} $$

    where $f_{max}$ is the largest component density at ``x``; dividing by it
    keeps the exponentials in range.

    Parameters
    ----------
    x : np.ndarray (D,)
        Query point.
    clusters : sequence of Cluster
        Prepared clusters; anything with ``log_density(x)`` and ``weight``.
    alpha : float, default=1
        Smoothing exponent. Values above one sharpen the assignment, values
        below one flatten it.
    zeta : float, default=0
        Weight of the "no cluster" null hypothesis. It is added to the
        normalization, so the returned probabilities sum to less than one.

    Returns
    -------
    p : np.ndarray (K,)
        Soft assignment. All zeros when the normalization vanishes.
    """
    if len(clusters) == 0:
        raise ValueError("At least one cluster is required.")
    x = np.asarray(x, dtype=float)
    if x.ndim > 1:
        raise DimensionError(
            f"`posterior` takes a single point, got shape {x.shape}; "
            "use ClusterMixture.predict_proba for batches."
        )

    log_p = np.array([cluster.log_density(x) for cluster in clusters], dtype=float)
    weights = np.array([cluster.weight for cluster in clusters], dtype=float)

    mx = np.max(log_p)
    if np.isneginf(mx):
        scaled = np.zeros_like(log_p)
    else:
        scaled = (np.exp(log_p - mx) * weights) ** alpha

    norm = zeta + np.sum(scaled)
    if norm == 0:
        return np.zeros_like(scaled)
    return scaled / norm


class ClusterMixture:
    """
    Mixture of prepared PAMM clusters used to classify new points.

    Parameters
    ----------
    clusters : sequence of Cluster
        Prepared clusters, all of the same kind and dimension.
    alpha : float, default=1
        Smoothing exponent passed to :func:`posterior`.
    zeta : float, default=0
        Null hypothesis weight passed to :func:`posterior`.

    Attributes
    ----------
    n_clusters : int
    dimension : int
    weights_ : np.ndarray (K,)
        Mixture weights normalized to sum to one.

    Examples
    --------
        from pammcore.clustering import ClusterMixture
        mixture = ClusterMixture.from_file("clusters.pamm", zeta=1e-8)
        labels = mixture.predict(X)
    """

    def __init__(
        self,
        clusters: Sequence[Cluster],
        alpha: float = 1.0,
        zeta: float = 0.0,
    ):
        clusters = list(clusters)
        if len(clusters) == 0:
            raise ValueError("At least one cluster is required.")
        if len({type(c) for c in clusters}) != 1:
            raise ValueError("All clusters of a mixture must be of the same kind.")
        dims = {c.dimension for c in clusters}
        if len(dims) != 1:
            raise DimensionError(f"Clusters have different dimensions {sorted(dims)}.")
        if alpha <= 0:
            raise ValueError("`alpha` must be positive.")
        if zeta < 0:
            raise ValueError("`zeta` must be non-negative.")

        self.clusters: List[Cluster] = clusters
        self.alpha = alpha
        self.zeta = zeta
        self.n_clusters = len(clusters)
        self.dimension = dims.pop()

        weights = np.array([c.weight for c in clusters], dtype=float)
        self.weights_ = weights / weights.sum()

    @classmethod
    def from_file(
        cls,
        fname,
        periodic: bool = False,
        alpha: float = 1.0,
        zeta: float = 0.0,
    ) -> "ClusterMixture":
        """Load and prepare a cluster set written by :func:`write_clusters`."""
        return cls(read_clusters(fname, periodic=periodic), alpha=alpha, zeta=zeta)

    def to_file(self, fname, comments: str = "# PAMM clusters"):
        write_clusters(fname, self.clusters, comments=comments)

    def _check_X(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=float)
        if X.ndim == 1 and self.dimension == 1:
            X = X.reshape(-1, 1)
        X = np.atleast_2d(X)
        if X.ndim != 2 or X.shape[1] != self.dimension:
            raise DimensionError(
                f"Expected points with {self.dimension} dimensions, got shape {X.shape}."
            )
        return X

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        Posterior probabilities for each point.

        Parameters
        ----------
        X : np.ndarray (n, D)

        Returns
        -------
        proba : np.ndarray (n, K)
            Rows sum to one when ``zeta`` is zero.
        """
        X = self._check_X(X)
        return np.array(
            [posterior(x, self.clusters, alpha=self.alpha, zeta=self.zeta) for x in X]
        )

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Most probable cluster of each point.

        The probability left over for the null hypothesis, ``1 - sum(p)``,
        competes with the clusters: points where it is the largest get the
        label -1.

        Parameters
        ----------
        X : np.ndarray (n, D)

        Returns
        -------
        labels : np.ndarray (n,)
        """
        proba = self.predict_proba(X)
        labels = proba.argmax(axis=1)
        p_null = 1.0 - proba.sum(axis=1)
        labels[p_null > proba.max(axis=1)] = -1
        return labels

    def score_samples(self, X: np.ndarray) -> np.ndarray:
        """
        Log of the mixture density ``sum_k weights_[k] * f_k(x)`` at each point.
        """
        X = self._check_X(X)
        log_p = np.vstack([c.log_density(X) for c in self.clusters])
        with np.errstate(divide="ignore"):
            log_w = np.log(self.weights_)
        return logsumexp(log_p + log_w[:, None], axis=0)

    def __len__(self):
        return self.n_clusters

    def __repr__(self):
        kind = type(self.clusters[0]).__name__
        return (
            f"ClusterMixture(n_clusters={self.n_clusters}, dimension={self.dimension}, "
            f"kind={kind}, alpha={self.alpha}, zeta={self.zeta})"
        )
