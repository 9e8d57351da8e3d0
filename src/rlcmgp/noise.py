"""
The observation model of a ``rlcmgp`` Gaussian process is a diagonal
correction added to the process covariance. For the dense solver this can be
any per-observation variance, but the compressed solvers treat it as the
nugget :math:`\\lambda` of the covariance function, so it must be a single
positive value shared by every point.
"""

from __future__ import annotations

__all__ = ["Noise", "Diagonal"]

from abc import abstractmethod

import equinox as eqx
import jax.numpy as jnp
import numpy as np

from rlcmgp.helpers import JAXArray


class Noise(eqx.Module):
    """An abstract base class defining the noise model protocol"""

    __array_priority__ = 2001

    @abstractmethod
    def diagonal(self) -> JAXArray:
        """The diagonal elements of the noise model as an array"""
        raise NotImplementedError

    @abstractmethod
    def __add__(self, other: JAXArray) -> JAXArray:
        raise NotImplementedError

    @abstractmethod
    def __radd__(self, other: JAXArray) -> JAXArray:
        raise NotImplementedError

    @abstractmethod
    def __matmul__(self, other: JAXArray) -> JAXArray:
        raise NotImplementedError

    @abstractmethod
    def constant_value(self) -> float:
        """The common value on the diagonal

        Raises:
            ValueError: If the diagonal is not one strictly positive constant.
        """
        raise NotImplementedError


class Diagonal(Noise):
    """A diagonal observation noise model

    This represents the observation model using per-observation measurement
    variances.

    Args:
        diag: The diagonal elements of the noise model.
    """

    diag: JAXArray

    def __check_init__(self) -> None:
        if jnp.ndim(self.diag) != 1:
            raise ValueError(
                "The diagonal for the noise model be the same shape as the data; "
                "if passing a constant, it should be broadcasted first"
            )

    def diagonal(self) -> JAXArray:
        return self.diag

    def _add(self, other: JAXArray) -> JAXArray:
        return jnp.asarray(other).at[jnp.diag_indices(other.shape[0])].add(self.diag)

    def __add__(self, other: JAXArray) -> JAXArray:
        return self._add(other)

    def __radd__(self, other: JAXArray) -> JAXArray:
        return self._add(other)

    def __matmul__(self, other: JAXArray) -> JAXArray:
        if jnp.ndim(other) == 1:
            return self.diag * other
        else:
            return self.diag[:, None] * other

    def constant_value(self) -> float:
        diag = np.asarray(self.diag)
        if diag.size == 0:
            raise ValueError("The noise model is empty")
        value = float(diag[0])
        if not np.all(diag == value):
            raise ValueError(
                "The diagonal correction must be the same for every point; "
                f"got values between {diag.min()} and {diag.max()}"
            )
        if not value > 0:
            raise ValueError(
                f"The diagonal correction must be strictly positive; got {value}"
            )
        return value
