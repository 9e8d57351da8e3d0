# mypy: ignore-errors

import jax.numpy as jnp
import pytest
from numpy import random as np_random

import rlcmgp
from rlcmgp.test_utils import assert_allclose


def check_noise_model(noise, dense_rep):
    random = np_random.default_rng(6675)

    assert_allclose(noise.diagonal(), jnp.diag(dense_rep))
    assert_allclose(noise + jnp.zeros_like(dense_rep), dense_rep)

    y1 = random.normal(size=dense_rep.shape)
    assert_allclose(noise + y1, dense_rep + y1)
    assert_allclose(y1 + noise, y1 + dense_rep)
    assert_allclose(noise @ y1, dense_rep @ y1)

    y2 = random.normal(size=(dense_rep.shape[1], 3))
    assert_allclose(noise @ y2, dense_rep @ y2)

    y3 = random.normal(size=dense_rep.shape[1])
    assert_allclose(noise @ y3, dense_rep @ y3)


def test_diagonal():
    N = 50
    random = np_random.default_rng(9432)
    diag = random.normal(size=N)
    noise = rlcmgp.noise.Diagonal(diag=diag)
    check_noise_model(noise, jnp.diag(diag))


def test_constant_value():
    noise = rlcmgp.noise.Diagonal(diag=jnp.full(10, 0.25))
    assert noise.constant_value() == 0.25


@pytest.mark.parametrize(
    "diag", [jnp.linspace(0.1, 1.0, 10), jnp.zeros(10), jnp.full(10, -0.5)]
)
def test_constant_value_errors(diag):
    with pytest.raises(ValueError):
        rlcmgp.noise.Diagonal(diag=diag).constant_value()
