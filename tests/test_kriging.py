# mypy: ignore-errors

import jax
import jax.numpy as jnp
import pytest
from numpy import random as np_random

from rlcmgp import GaussianProcess, Kriging, kernels
from rlcmgp.fields import RandomField, random_split
from rlcmgp.test_utils import assert_allclose


@pytest.fixture
def field():
    random = np_random.default_rng(6012)
    train, test = random_split(jax.random.PRNGKey(8), 100, 80)
    return RandomField(
        (10, 10),
        (0.0, 0.0),
        (1.0, 1.0),
        random.normal(size=100),
        train_index=train,
        test_index=test,
    )


@pytest.fixture
def model(field):
    X_train, y_train, _, _ = field.split()
    gp = GaussianProcess(kernels.Matern32(0.4), X_train, diag=0.01, rank=8, seed=1)
    return Kriging(gp, y_train)


def test_reproduces_training_data(field, model):
    X_train, y_train, _, _ = field.split()
    pred = model.predict(X_train)
    assert_allclose(pred.mean, y_train, atol=1e-6, rtol=1e-6)
    assert_allclose(pred.stddev, jnp.zeros_like(pred.stddev), atol=1e-4)


@pytest.mark.parametrize("lam", [1e-4, 1e-6, 1e-8])
def test_reproduces_training_data_small_nugget(field, lam):
    X_train, y_train, _, _ = field.split()
    kernel = kernels.Matern32(0.4)
    assert isinstance(kernel.distance, kernels.L2Distance)
    gp = GaussianProcess(kernel, X_train, diag=lam, rank=8, seed=1)
    pred = Kriging(gp, y_train).predict(X_train)
    assert_allclose(pred.mean, y_train, atol=1e-5, rtol=1e-5)
    # Variances lose about half the digits of the mean to cancellation
    assert_allclose(pred.stddev, jnp.zeros_like(pred.stddev), atol=1e-2)


def test_test_points(field, model):
    _, _, X_test, _ = field.split()
    pred = model.predict(X_test)
    assert pred.mean.shape == (20,)
    assert pred.stddev.shape == (20,)
    assert jnp.all(pred.stddev > 0)
    assert jnp.all(pred.stddev <= jnp.sqrt(1.0 + 0.01))


def test_batching(field, model):
    _, _, X_test, _ = field.split()
    full = model.predict(X_test)
    batched = model.predict(X_test, batch_size=7)
    assert_allclose(batched.mean, full.mean)
    assert_allclose(batched.stddev, full.stddev)


def test_matches_conditioned_gp(field):
    X_train, y_train, X_test, _ = field.split()
    gp = GaussianProcess(kernels.Matern32(0.4), X_train, diag=0.01)
    pred = Kriging(gp, y_train).predict(X_test)
    loc, var = gp.predict(y_train, X_test, return_var=True)
    assert_allclose(pred.mean, loc)
    assert_allclose(pred.stddev, jnp.sqrt(var))


def test_empty(model):
    pred = model.predict(jnp.zeros((0, 2)))
    assert pred.mean.shape == (0,)


def test_errors(field, model):
    X_train, y_train, _, _ = field.split()
    gp = GaussianProcess(kernels.Matern32(0.4), X_train, diag=0.01)
    with pytest.raises(ValueError):
        Kriging(gp, y_train[:10])
    with pytest.raises(ValueError):
        model.predict(X_train, batch_size=0)
