"""
A random field is a set of observations on a regular grid, together with the
kernel parameters it was drawn with (when known) and a partition of the grid
points into training and test sets. This module only describes the in-memory
form; reading and writing fields is left to the caller.
"""

from __future__ import annotations

__all__ = ["RandomField", "random_split"]

from collections.abc import Sequence
from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from rlcmgp.helpers import JAXArray
from rlcmgp.points import regular_grid, subset


class RandomField(eqx.Module):
    """Observations of a random field on a regular grid

    Args:
        shape: The number of grid points along each axis.
        lower: The lower extent of the grid along each axis.
        upper: The upper extent of the grid along each axis.
        y: The ``prod(shape)`` observations in grid order, see
            :func:`rlcmgp.points.regular_grid`.
        params: The kernel parameters of the field, if known.
        train_index: The grid indices of the training points.
        test_index: The grid indices of the test points. Together with
            ``train_index`` these must partition the grid.
    """

    shape: tuple[int, ...] = eqx.field(static=True)
    lower: tuple[float, ...] = eqx.field(static=True)
    upper: tuple[float, ...] = eqx.field(static=True)
    y: JAXArray
    params: np.ndarray
    train_index: np.ndarray
    test_index: np.ndarray

    def __init__(
        self,
        shape: Sequence[int],
        lower: Sequence[float],
        upper: Sequence[float],
        y: Any,
        params: Any = (),
        train_index: Any | None = None,
        test_index: Any | None = None,
    ):
        self.shape = tuple(int(n) for n in shape)
        self.lower = tuple(float(v) for v in lower)
        self.upper = tuple(float(v) for v in upper)
        if not (len(self.shape) == len(self.lower) == len(self.upper)):
            raise ValueError(
                "The grid shape and extents must have the same dimension; got "
                f"{len(self.shape)}, {len(self.lower)}, and {len(self.upper)}"
            )

        num_points = int(np.prod(self.shape))
        self.y = jnp.asarray(y)
        if self.y.shape != (num_points,):
            raise ValueError(
                f"Expected {num_points} observations for a grid of shape "
                f"{self.shape}; got an array with shape {self.y.shape}"
            )
        self.params = np.atleast_1d(np.asarray(params, dtype=float))

        if train_index is None and test_index is None:
            train_index, test_index = np.arange(num_points), np.zeros(0, dtype=int)
        elif train_index is None or test_index is None:
            raise ValueError("Both or neither of train_index and test_index are needed")
        self.train_index = np.asarray(train_index, dtype=int)
        self.test_index = np.asarray(test_index, dtype=int)
        if len(self.train_index) + len(self.test_index) != num_points:
            raise ValueError(
                f"The split has {len(self.train_index)} training and "
                f"{len(self.test_index)} test points, but the grid has {num_points}"
            )
        combined = np.sort(np.concatenate((self.train_index, self.test_index)))
        if not np.array_equal(combined, np.arange(num_points)):
            raise ValueError("The train and test indices must partition the grid")

    @property
    def num_points(self) -> int:
        return int(np.prod(self.shape))

    def points(self) -> JAXArray:
        """The grid coordinates, in grid order"""
        return regular_grid(self.shape, self.lower, self.upper)

    def split(self) -> tuple[JAXArray, JAXArray, JAXArray, JAXArray]:
        """The ``(X_train, y_train, X_test, y_test)`` partition of the field"""
        X = self.points()
        return (
            subset(X, self.train_index),
            self.y[self.train_index],
            subset(X, self.test_index),
            self.y[self.test_index],
        )

    def assemble(self, y_train: Any, y_test: Any) -> JAXArray:
        """Scatter training and test values back into a full field in grid order

        For example, with the training data and the kriged test predictions,
        this gives the kriged field.
        """
        y_train = jnp.asarray(y_train)
        y_test = jnp.asarray(y_test)
        if y_train.shape != self.train_index.shape or (
            y_test.shape != self.test_index.shape
        ):
            raise ValueError(
                f"Expected {len(self.train_index)} training and "
                f"{len(self.test_index)} test values; got {y_train.shape} and "
                f"{y_test.shape}"
            )
        result = jnp.zeros(self.num_points, dtype=jnp.result_type(y_train, y_test))
        result = result.at[self.train_index].set(y_train)
        return result.at[self.test_index].set(y_test)

    def check_num_params(self, num_params: int) -> None:
        """Raise a ``ValueError`` unless the field has ``num_params`` parameters"""
        if len(self.params) != num_params:
            raise ValueError(
                f"Expected {num_params} kernel parameters for this field; got "
                f"{len(self.params)}"
            )


def random_split(
    key: JAXArray, num_points: int, num_train: int
) -> tuple[np.ndarray, np.ndarray]:
    """A random partition of ``[0, num_points)`` into training and test indices

    Both sets of indices are sorted.
    """
    if not 0 <= num_train <= num_points:
        raise ValueError(
            f"Cannot choose {num_train} training points out of {num_points}"
        )
    order = np.asarray(jax.random.permutation(key, num_points))
    return np.sort(order[:num_train]), np.sort(order[num_train:])
