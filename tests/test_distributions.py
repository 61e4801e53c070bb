import numpy as np
import pytest
from scipy.special import i0
from scipy.stats import multivariate_normal, vonmises

from pammcore.distributions import GaussianCluster, VonMisesCluster
from pammcore.errors import DimensionError, DomainError, NumericalError

############################
#  Fixtures and Utilities  #
############################


@pytest.fixture
def standard_gaussian():
    return GaussianCluster(weight=1.0, mean=[0.0, 0.0], covariance=np.eye(2)).prepare()


@pytest.fixture
def correlated_gaussian():
    cov = np.array([[2.0, 0.6, 0.1], [0.6, 1.0, -0.3], [0.1, -0.3, 0.5]])
    return GaussianCluster(weight=0.4, mean=[1.0, -2.0, 0.5], covariance=cov).prepare()


@pytest.fixture
def vm_cluster():
    cov = np.array([[0.05, 0.01], [0.01, 0.08]])
    return VonMisesCluster(
        weight=1.0, mean=[0.1, 0.2], covariance=cov, period=[1.0, 2.0]
    ).prepare()


def legacy_r2(cluster, x):
    """Periodic distance written out term by term."""
    icov, L, D = cluster.inverse_covariance, cluster.period, cluster.dimension
    dv = 2 * np.pi * (np.asarray(x) - cluster.mean)
    diag, cross = 0.0, 0.0
    for i in range(D):
        diag += icov[i, i] * (1 - np.cos(dv[i] / L[i]))
        for j in range(i + 1, D):
            cross += icov[i, j] * np.sin(dv[i] / L[i]) * np.sin(dv[j] / L[i])
    return 2 * (diag + cross)


############################
#  Tests for Gaussian      #
############################


def test_gaussian_standard_normal_at_mean(standard_gaussian):
    np.testing.assert_allclose(standard_gaussian.log_density([0.0, 0.0]), -np.log(2 * np.pi))
    np.testing.assert_allclose(standard_gaussian.density([0.0, 0.0]), 1 / (2 * np.pi))
    np.testing.assert_allclose(standard_gaussian.density([0.0, 0.0]), 0.159155, rtol=1e-5)


def test_gaussian_prepare(correlated_gaussian):
    cov = correlated_gaussian.covariance
    assert correlated_gaussian.prepared
    np.testing.assert_allclose(correlated_gaussian.determinant, np.linalg.det(cov))
    np.testing.assert_allclose(
        correlated_gaussian.inverse_covariance @ cov, np.eye(3), atol=1e-12
    )
    np.testing.assert_allclose(
        correlated_gaussian.log_norm,
        -0.5 * (3 * np.log(2 * np.pi) + np.log(np.linalg.det(cov))),
    )


def test_gaussian_matches_scipy(correlated_gaussian):
    rng = np.random.default_rng(1)
    X = rng.normal(size=(20, 3))
    expected = multivariate_normal(
        mean=correlated_gaussian.mean, cov=correlated_gaussian.covariance
    ).logpdf(X)
    np.testing.assert_allclose(correlated_gaussian.log_density(X), expected, rtol=1e-10)
    for x, e in zip(X[:3], expected[:3]):
        np.testing.assert_allclose(correlated_gaussian.log_density(x), e, rtol=1e-10)


def test_gaussian_density_peaks_at_mean(correlated_gaussian):
    rng = np.random.default_rng(2)
    X = correlated_gaussian.mean + rng.normal(scale=0.5, size=(100, 3))
    peak = correlated_gaussian.density(correlated_gaussian.mean)
    assert np.all(correlated_gaussian.density(X) < peak)


def test_gaussian_one_dimensional():
    g = GaussianCluster(weight=2.0, mean=[1.0], covariance=4.0).prepare()
    np.testing.assert_allclose(g.density(1.0), 1 / np.sqrt(2 * np.pi * 4.0))
    np.testing.assert_allclose(g.log_density([[1.0], [3.0]]), [g.log_norm, g.log_norm - 0.5])


def test_gaussian_requires_prepare():
    g = GaussianCluster(weight=1.0, mean=[0.0], covariance=[[1.0]])
    assert not g.prepared
    with pytest.raises(ValueError):
        g.log_density([0.0])
    g.prepare()
    g.log_density([0.0])


def test_gaussian_covariance_edit_invalidates(standard_gaussian):
    with pytest.raises(ValueError):
        standard_gaussian.covariance[0, 0] = 3.0

    standard_gaussian.covariance = 2 * np.eye(2)
    assert not standard_gaussian.prepared
    with pytest.raises(ValueError):
        standard_gaussian.density([0.0, 0.0])

    standard_gaussian.prepare()
    np.testing.assert_allclose(standard_gaussian.determinant, 4.0)
    np.testing.assert_allclose(standard_gaussian.density([0.0, 0.0]), 1 / (4 * np.pi))


def test_gaussian_flat_covariance_is_row_major():
    g = GaussianCluster(weight=1.0, mean=[0.0, 0.0], covariance=[1.0, 2.0, 3.0, 4.0])
    np.testing.assert_array_equal(g.covariance, [[1.0, 2.0], [3.0, 4.0]])


def test_gaussian_dimension_errors(standard_gaussian):
    with pytest.raises(DimensionError):
        standard_gaussian.log_density([0.0, 0.0, 0.0])
    with pytest.raises(DimensionError):
        standard_gaussian.log_density(np.zeros((4, 3)))
    with pytest.raises(DimensionError):
        GaussianCluster(weight=1.0, mean=[0.0, 0.0], covariance=np.eye(3))
    with pytest.raises(DimensionError):
        standard_gaussian.mean = [1.0]
    assert standard_gaussian.dimension == 2


def test_gaussian_singular_covariance():
    g = GaussianCluster(weight=1.0, mean=[0.0, 0.0], covariance=[[1.0, 1.0], [1.0, 1.0]])
    with pytest.raises(NumericalError):
        g.prepare()
    g = GaussianCluster(weight=1.0, mean=[0.0, 0.0], covariance=[[1.0, 0.0], [0.0, -1.0]])
    with pytest.raises(NumericalError):
        g.prepare()


############################
#  Tests for von Mises     #
############################


def test_von_mises_one_dimensional_matches_scipy():
    kappa, mu = 2.5, 0.7
    c = VonMisesCluster(
        weight=1.0, mean=[mu], covariance=[[1 / kappa]], period=[2 * np.pi]
    ).prepare()
    x = np.linspace(-np.pi, np.pi, 25)
    np.testing.assert_allclose(
        c.density(x.reshape(-1, 1)), vonmises.pdf(x, kappa, loc=mu), rtol=1e-6
    )


def test_von_mises_prepare(vm_cluster):
    icov = np.linalg.inv(vm_cluster.covariance)
    np.testing.assert_allclose(vm_cluster.inverse_covariance, icov)
    eig = np.linalg.eigvals(icov).real
    expected = -np.log(np.prod(vm_cluster.period * i0(eig) * np.exp(-eig)))
    np.testing.assert_allclose(vm_cluster.log_norm, expected, atol=5e-6)


def test_von_mises_log_density_at_mean(vm_cluster):
    np.testing.assert_allclose(vm_cluster.squared_periodic_mahalanobis(vm_cluster.mean), 0.0)
    np.testing.assert_allclose(vm_cluster.log_density(vm_cluster.mean), vm_cluster.log_norm)


def test_von_mises_is_periodic(vm_cluster):
    x = np.array([0.35, -0.6])
    shifted = x + np.array([3.0, -2.0])
    np.testing.assert_allclose(
        vm_cluster.log_density(shifted), vm_cluster.log_density(x), rtol=1e-10
    )


def test_von_mises_cross_term_uses_first_period(vm_cluster):
    x = np.array([0.3, 0.9])
    r2 = vm_cluster.squared_periodic_mahalanobis(x)
    np.testing.assert_allclose(r2, legacy_r2(vm_cluster, x), rtol=1e-12)

    # the symmetric form, scaling each sine by its own period, differs
    icov, L = vm_cluster.inverse_covariance, vm_cluster.period
    dv = 2 * np.pi * (x - vm_cluster.mean)
    symmetric = 2 * (
        np.sum(np.diag(icov) * (1 - np.cos(dv / L)))
        + icov[0, 1] * np.sin(dv[0] / L[0]) * np.sin(dv[1] / L[1])
    )
    assert not np.isclose(r2, symmetric)


def test_von_mises_batch(vm_cluster):
    rng = np.random.default_rng(4)
    X = rng.uniform(-1, 1, size=(15, 2))
    r2 = vm_cluster.squared_periodic_mahalanobis(X)
    assert r2.shape == (15,)
    for x, value in zip(X, r2):
        np.testing.assert_allclose(value, vm_cluster.squared_periodic_mahalanobis(x))
    np.testing.assert_allclose(
        vm_cluster.density(X), np.exp(vm_cluster.log_norm - 0.5 * r2)
    )


def test_von_mises_equal_periods_matches_legacy_formula():
    cov = np.array([[0.3, -0.1, 0.05], [-0.1, 0.4, 0.0], [0.05, 0.0, 0.2]])
    c = VonMisesCluster(
        weight=1.0, mean=[0.0, 1.0, -1.0], covariance=cov, period=np.full(3, 2 * np.pi)
    ).prepare()
    for x in ([0.5, 0.5, 0.5], [-2.0, 3.0, 1.0], [3.1, -3.1, 0.0]):
        np.testing.assert_allclose(
            c.squared_periodic_mahalanobis(x), legacy_r2(c, x), rtol=1e-10
        )


def test_von_mises_errors():
    with pytest.raises(DimensionError):
        VonMisesCluster(weight=1.0, mean=[0.0, 0.0], covariance=np.eye(2), period=[1.0])
    c = VonMisesCluster(weight=1.0, mean=[0.0, 0.0], covariance=np.eye(2), period=[1.0, 0.0])
    with pytest.raises(DomainError):
        c.prepare()


def test_von_mises_warns_on_indefinite_covariance():
    c = VonMisesCluster(
        weight=1.0, mean=[0.0, 0.0], covariance=[[1.0, 2.0], [2.0, 1.0]], period=[1.0, 1.0]
    )
    with pytest.warns(RuntimeWarning):
        c.prepare()
