import os
import warnings
from contextlib import contextmanager
from typing import List, Sequence, Union

import numpy as np

from .distributions import Cluster, GaussianCluster, VonMisesCluster
from .errors import DimensionError, FormatError

__all__ = ["read_clusters", "write_clusters", "format_real"]

FIELD_WIDTH = 21
FIELD_DECIMALS = 8
EXPONENT_DIGITS = 4
COUNT_WIDTH = 12


def format_real(value: float) -> str:
    """
    Format a real as a right-aligned scientific token, e.g.
    ``'     1.50000000E+0000'`` (8 decimals, 4-digit exponent, 21 wide).
    """
    value = float(value)
    if not np.isfinite(value):
        return f"{value!r:>{FIELD_WIDTH}}"
    mantissa, exponent = f"{value:.{FIELD_DECIMALS}E}".split("E")
    token = f"{mantissa}E{int(exponent):+0{EXPONENT_DIGITS + 1}d}"
    return token.rjust(FIELD_WIDTH)


@contextmanager
def _open(fname, mode: str):
    if isinstance(fname, (str, os.PathLike)):
        with open(fname, mode) as f:
            yield f
    else:
        yield fname


def write_clusters(
    fname,
    clusters: Sequence[Cluster],
    comments: str = "# PAMM clusters",
):
    """
    Write a cluster set in the PAMM text format.

    The layout is::

        # one or more comment lines
        D K
        weight mean_1 ... mean_D cov_11 cov_12 ... cov_DD [period_1 ... period_D]
        ...

    with one line per cluster, the covariance in row-major order, and the
    periods present only for von Mises clusters.

    Parameters
    ----------
    fname : str, PathLike or text stream
        Destination.
    clusters : sequence of GaussianCluster or VonMisesCluster
        All of the same kind and dimension.
    comments : str
        Comment block; every line must start with ``#``.
    """
    clusters = list(clusters)
    if len(clusters) == 0:
        raise ValueError("At least one cluster is required.")
    if len({type(c) for c in clusters}) != 1:
        raise ValueError("All clusters in a file must be of the same kind.")
    D = clusters[0].dimension
    if any(c.dimension != D for c in clusters):
        raise DimensionError("All clusters in a file must have the same dimension.")

    comment_lines = comments.strip().splitlines() or ["#"]
    for line in comment_lines:
        if not line.startswith("#"):
            raise FormatError(f"Comment line {line!r} does not start with '#'.")

    with _open(fname, "w") as f:
        for line in comment_lines:
            f.write(line + "\n")
        f.write(f"{D:{COUNT_WIDTH}d}{len(clusters):{COUNT_WIDTH}d}\n")
        for cluster in clusters:
            fields = [cluster.weight, *cluster.mean, *cluster.covariance.ravel()]
            if isinstance(cluster, VonMisesCluster):
                fields.extend(cluster.period)
            f.write("".join(" " + format_real(v) for v in fields) + "\n")


def _parse_reals(line: str, lineno: int) -> np.ndarray:
    try:
        return np.array([float(token) for token in line.split()])
    except ValueError as exc:
        raise FormatError(f"non-numeric field ({exc})", lineno) from exc


def read_clusters(
    fname,
    periodic: bool = False,
    prepare: bool = True,
) -> Union[List[GaussianCluster], List[VonMisesCluster]]:
    """
    Read a cluster set written by :func:`write_clusters`.

    Parameters
    ----------
    fname : str, PathLike or text stream
        Source.
    periodic : bool, default=False
        If True each row carries D trailing periods and von Mises clusters
        are returned, otherwise Gaussian clusters.
    prepare : bool, default=True
        Run :meth:`prepare` on every cluster before returning.

    Returns
    -------
    clusters : list of GaussianCluster or VonMisesCluster

    Raises
    ------
    FormatError
        If the header or a cluster row is malformed, or rows are missing.
    """
    with _open(fname, "r") as f:
        lines = f.read().splitlines()

    lineno = 0
    for lineno, line in enumerate(lines, start=1):
        if line.strip() and not line.startswith("#"):
            break
    else:
        raise FormatError("no header line found", lineno or None)

    header = lines[lineno - 1].split()
    try:
        D, K = (int(token) for token in header)
    except ValueError as exc:
        raise FormatError(
            f"header must hold two integers 'D K', got {lines[lineno - 1]!r}", lineno
        ) from exc
    if D < 1 or K < 1:
        raise FormatError(f"header values must be positive, got D={D} K={K}", lineno)

    nfields = 1 + D + D * D + (D if periodic else 0)
    clusters = []
    for lineno in range(lineno + 1, lineno + 1 + K):
        if lineno > len(lines):
            raise FormatError(f"expected {K} clusters, found {len(clusters)}", lineno)
        fields = _parse_reals(lines[lineno - 1], lineno)
        if fields.size != nfields:
            raise FormatError(
                f"expected {nfields} fields for D={D}, found {fields.size}", lineno
            )
        weight, mean = fields[0], fields[1 : 1 + D]
        cov = fields[1 + D : 1 + D + D * D].reshape(D, D)
        if periodic:
            cluster = VonMisesCluster(weight, mean, cov, period=fields[1 + D + D * D :])
        else:
            cluster = GaussianCluster(weight, mean, cov)
        if prepare:
            cluster.prepare()
        clusters.append(cluster)

    trailing = [line for line in lines[lineno:] if line.strip()]
    if trailing:
        warnings.warn(
            f"Ignoring {len(trailing)} non-empty line(s) after the {K} cluster rows.",
            UserWarning,
            stacklevel=2,
        )
    return clusters
