# mypy: ignore-errors

import jax.numpy as jnp
import numpy as np
import pytest
from numpy import random as np_random

from rlcmgp import kernels
from rlcmgp.noise import Diagonal
from rlcmgp.solvers import DirectSolver, RLCMSolver
from rlcmgp.solvers.rlcm.tree import build_tree
from rlcmgp.test_utils import assert_allclose


@pytest.fixture
def random():
    return np_random.default_rng(730)


@pytest.fixture
def data(random):
    X = random.uniform(-2, 2, (200, 2))
    noise = Diagonal(diag=jnp.full(200, 0.05))
    return X, noise


def test_matches_direct_when_dense(random):
    X = random.uniform(-2, 2, (50, 2))
    X_test = random.uniform(-2, 2, (12, 2))
    noise = Diagonal(diag=jnp.full(50, 0.1))
    kernel = 1.3 * kernels.Matern52(0.9)

    solver = RLCMSolver(kernel, X, noise, rank=64, seed=0)
    direct = DirectSolver(kernel, X, noise)
    assert solver.tree.num_nodes == 1

    y = random.normal(size=50)
    assert_allclose(solver.variance(), direct.variance())
    assert_allclose(solver.covariance(), direct.covariance())
    assert_allclose(solver.log_determinant(), direct.log_determinant())
    assert_allclose(solver.normalization(), direct.normalization())
    assert_allclose(solver.matmul(y), direct.matmul(y))
    assert_allclose(solver.solve(y), direct.solve(y))
    assert_allclose(solver.cross_covariance(X_test), direct.cross_covariance(X_test))
    assert_allclose(solver.test_variance(X_test), direct.test_variance(X_test) + 0.1)


def test_original_order(data, random):
    X, noise = data
    kernel = kernels.Matern32(0.6)
    solver = RLCMSolver(kernel, X, noise, rank=8, seed=3)
    K = solver.covariance()

    assert_allclose(K, K.T, atol=1e-10)
    assert_allclose(solver.variance(), jnp.diag(K))
    assert_allclose(solver.variance(), kernel(X) + 0.05)

    y = random.normal(size=(200, 2))
    assert_allclose(solver.matmul(y), K @ y)
    assert_allclose(solver.solve(solver.matmul(y)), y, atol=1e-6, rtol=1e-6)
    assert_allclose(solver.log_determinant(), np.linalg.slogdet(K)[1])
    assert_allclose(solver.cross_covariance(X), K, atol=1e-10)


def test_same_seed_same_result(data):
    X, noise = data
    kernel = kernels.Exp(0.4)
    a = RLCMSolver(kernel, X, noise, rank=6, seed=11)
    b = RLCMSolver(kernel, X, noise, rank=6, seed=11)
    assert_allclose(a.log_determinant(), b.log_determinant())
    assert_allclose(a.covariance(), b.covariance())


def test_default_seed(data):
    X, noise = data
    solver = RLCMSolver(kernels.Exp(0.4), X, noise, rank=6)
    assert jnp.isfinite(solver.log_determinant())


def test_tree_reuse(data):
    X, noise = data
    tree = build_tree(X, 8)
    kernel = kernels.ExpSquared(0.7)
    a = RLCMSolver(kernel, X, noise, rank=8, seed=4, tree=tree)
    b = RLCMSolver(kernel, X, noise, rank=8, seed=4)
    assert a.tree is tree
    np.testing.assert_array_equal(a.tree.permutation.order, b.tree.permutation.order)
    assert_allclose(a.log_determinant(), b.log_determinant())


def test_dot_triangular_not_supported(data):
    X, noise = data
    solver = RLCMSolver(kernels.Exp(0.4), X, noise, rank=8, seed=0)
    with pytest.raises(NotImplementedError):
        solver.dot_triangular(jnp.ones(200))


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(rank=0),
        dict(rank=2.5),
        dict(rank=500, allow_dense=False),
        dict(rank=8, seed=-1),
    ],
)
def test_errors(data, kwargs):
    X, noise = data
    with pytest.raises(ValueError):
        RLCMSolver(kernels.Exp(0.4), X, noise, **kwargs)


def test_tree_mismatch(data):
    X, noise = data
    with pytest.raises(ValueError):
        RLCMSolver(
            kernels.Exp(0.4), X, noise, rank=8, tree=build_tree(X[:100], 8)
        )


def test_tree_reuse_across_ranks(data, random):
    X, noise = data
    tree = build_tree(X, 8, levels=2)
    kernel = kernels.Matern32(0.6)
    for rank in (4, 8, 16):
        solver = RLCMSolver(kernel, X, noise, rank=rank, seed=4, tree=tree)
        assert solver.tree is tree
        assert solver.matrix.bases[0].shape == (rank, rank)
        K = solver.covariance()
        y = random.normal(size=200)
        assert_allclose(solver.solve(K @ y), y, atol=1e-6, rtol=1e-6)


def test_non_constant_noise(data):
    X, _ = data
    noise = Diagonal(diag=jnp.linspace(0.1, 1.0, 200))
    with pytest.raises(ValueError):
        RLCMSolver(kernels.Exp(0.4), X, noise, rank=8)
