from importlib import metadata as _metadata

from .clustering import ClusterMixture, posterior
from .data import read_clusters, write_clusters
from .distributions import GaussianCluster, VonMisesCluster

try:  # Prefer installed package metadata
    __version__ = _metadata.version("pammcore")
except _metadata.PackageNotFoundError:  # pragma: no cover - during local dev
    __version__ = "0.0.0"

__all__ = [
    "ClusterMixture",
    "GaussianCluster",
    "VonMisesCluster",
    "posterior",
    "read_clusters",
    "write_clusters",
    "__version__",
]
