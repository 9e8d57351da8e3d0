# mypy: ignore-errors

import jax
import jax.numpy as jnp
import pytest
from numpy import random as np_random
from scipy import stats

from rlcmgp import GaussianProcess, kernels
from rlcmgp.solvers import DirectSolver, RLCMSolver
from rlcmgp.test_utils import assert_allclose


@pytest.fixture
def random():
    return np_random.default_rng(1058390)


@pytest.fixture
def data(random):
    X = random.uniform(-3, 3, (50, 5))
    y = random.normal(size=len(X))
    return X, y


def test_sample(data):
    X, _ = data

    gp = GaussianProcess(kernels.Matern32(1.5), X, diag=0.01, mean=lambda x: jnp.sum(x))
    y = gp.sample(jax.random.PRNGKey(543))
    assert y.shape == (len(X),)

    y = gp.sample(jax.random.PRNGKey(543), shape=(7, 3))
    assert y.shape == (7, 3, len(X))

    y = gp.sample(jax.random.PRNGKey(543), shape=(20_000,))
    assert y.shape == (20_000, len(X))
    assert_allclose(jnp.mean(y, axis=0), jnp.sum(X, axis=1), atol=0.05)
    assert_allclose(jnp.cov(y, rowvar=False), gp.covariance, atol=0.05)


def test_sample_not_supported_by_rlcm(data):
    X, _ = data
    gp = GaussianProcess(kernels.Matern32(1.5), X, diag=0.01, rank=8, seed=0)
    with pytest.raises(NotImplementedError):
        gp.sample(jax.random.PRNGKey(0))


def test_means(data):
    X, y = data

    gp1 = GaussianProcess(kernels.Matern32(1.5), X, diag=0.01, mean=lambda x: 0.0)
    gp2 = GaussianProcess(kernels.Matern32(1.5), X, diag=0.01, mean=0.0)
    gp3 = GaussianProcess(kernels.Matern32(1.5), X, diag=0.01)

    assert_allclose(gp1.mean, gp2.mean)
    assert_allclose(gp1.mean, gp3.mean)
    assert_allclose(gp1.log_probability(y), gp2.log_probability(y))
    assert_allclose(gp1.log_probability(y), gp3.log_probability(y))


def test_solver_selection(data):
    X, _ = data
    kernel = kernels.Matern32(1.5)
    assert isinstance(GaussianProcess(kernel, X, diag=0.1).solver, DirectSolver)
    assert isinstance(
        GaussianProcess(kernel, X, diag=0.1, rank=8, seed=0).solver, RLCMSolver
    )


def test_log_probability(data):
    X, y = data
    kernel = 2.0 * kernels.Matern52(1.2)
    gp = GaussianProcess(kernel, X, diag=0.1, mean=0.5)
    expect = stats.multivariate_normal(
        mean=gp.mean, cov=kernel(X, X) + 0.1 * jnp.eye(len(X))
    ).logpdf(y)
    assert_allclose(gp.log_probability(y), expect)


def test_rlcm_log_probability_dense_limit(data):
    X, y = data
    kernel = kernels.Matern32(1.5)
    direct = GaussianProcess(kernel, X, diag=0.1)
    rlcm = GaussianProcess(kernel, X, diag=0.1, rank=64, seed=0)
    assert_allclose(rlcm.log_probability(y), direct.log_probability(y))


def test_rlcm_log_probability(random):
    X = random.uniform(0, 1, (200, 2))
    y = random.normal(size=200)
    gp = GaussianProcess(kernels.Matern32(0.3), X, diag=0.05, rank=8, seed=9)
    expect = stats.multivariate_normal(mean=gp.mean, cov=gp.covariance).logpdf(y)
    assert_allclose(gp.log_probability(y), expect)


def test_condition(data, random):
    X, y = data
    X_test = random.uniform(-3, 3, (10, 5))
    kernel = kernels.Matern32(1.5)

    direct = GaussianProcess(kernel, X, diag=0.1)
    rlcm = GaussianProcess(kernel, X, diag=0.1, rank=64, seed=0)
    a = direct.condition(y, X_test)
    b = rlcm.condition(y, X_test)
    assert_allclose(a.log_probability, b.log_probability)
    assert_allclose(a.loc, b.loc)

    # The compressed covariance carries its nugget at the test points
    assert_allclose(a.variance + 0.1, b.variance)

    loc, var = direct.predict(y, X_test, return_var=True)
    assert_allclose(loc, a.loc)
    assert_allclose(var, a.variance)


def test_predict_at_training_points(random):
    X = random.uniform(0, 1, (200, 2))
    y = random.normal(size=200)
    gp = GaussianProcess(kernels.Matern32(0.3), X, diag=0.05, rank=8, seed=2)
    loc, var = gp.predict(y, return_var=True)
    assert_allclose(loc, y, atol=1e-6, rtol=1e-6)
    assert_allclose(var, jnp.zeros_like(var), atol=1e-6)


def test_condition_shape_error(data):
    X, y = data
    gp = GaussianProcess(kernels.ExpSquared(distance=kernels.L2Distance()), X, diag=0.1)
    gp.condition(y, X[0][None])

    with pytest.raises(ValueError):
        gp.condition(y, X[0])
