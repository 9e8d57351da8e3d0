# mypy: ignore-errors

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from rlcmgp.fields import RandomField, random_split
from rlcmgp.test_utils import assert_allclose


@pytest.fixture
def field():
    y = jnp.arange(12.0)
    train, test = random_split(jax.random.PRNGKey(3), 12, 9)
    return RandomField(
        (3, 4),
        (0.0, 0.0),
        (1.0, 3.0),
        y,
        params=(0.1, 0.5, 1.5),
        train_index=train,
        test_index=test,
    )


def test_random_split():
    train, test = random_split(jax.random.PRNGKey(1), 100, 80)
    assert len(train) == 80 and len(test) == 20
    np.testing.assert_array_equal(
        np.sort(np.concatenate((train, test))), np.arange(100)
    )
    np.testing.assert_array_equal(train, np.sort(train))

    a, _ = random_split(jax.random.PRNGKey(1), 100, 80)
    np.testing.assert_array_equal(a, train)

    with pytest.raises(ValueError):
        random_split(jax.random.PRNGKey(1), 10, 11)


def test_points(field):
    X = field.points()
    assert X.shape == (12, 2)
    assert_allclose(X[0], [0.0, 0.0])
    assert_allclose(X[1], [0.0, 1.0])
    assert_allclose(X[-1], [1.0, 3.0])


def test_split_and_assemble(field):
    X_train, y_train, X_test, y_test = field.split()
    assert X_train.shape == (9, 2) and X_test.shape == (3, 2)
    assert_allclose(X_train, field.points()[field.train_index])
    assert_allclose(y_test, field.y[field.test_index])
    assert_allclose(field.assemble(y_train, y_test), field.y)

    with pytest.raises(ValueError):
        field.assemble(y_train[:-1], y_test)


def test_default_split():
    field = RandomField((5,), (0.0,), (1.0,), jnp.zeros(5))
    assert len(field.train_index) == 5
    assert len(field.test_index) == 0
    assert field.params.shape == (0,)


def test_check_num_params(field):
    field.check_num_params(3)
    with pytest.raises(ValueError):
        field.check_num_params(1)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(shape=(3, 4), lower=(0.0,), upper=(1.0, 1.0), y=jnp.zeros(12)),
        dict(shape=(3, 4), lower=(0.0, 0.0), upper=(1.0, 1.0), y=jnp.zeros(11)),
        dict(shape=(4,), lower=(0.0,), upper=(1.0,), y=jnp.zeros(4), train_index=[0]),
        dict(
            shape=(4,),
            lower=(0.0,),
            upper=(1.0,),
            y=jnp.zeros(4),
            train_index=[0, 1],
            test_index=[1, 2],
        ),
    ],
)
def test_errors(kwargs):
    with pytest.raises(ValueError):
        RandomField(**kwargs)
