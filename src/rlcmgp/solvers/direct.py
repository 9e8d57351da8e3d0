from __future__ import annotations

__all__ = ["DirectSolver"]

import jax.numpy as jnp
import numpy as np
from jax.scipy import linalg

from rlcmgp import kernels
from rlcmgp.helpers import JAXArray
from rlcmgp.noise import Noise
from rlcmgp.solvers.solver import Solver


class DirectSolver(Solver):
    """A direct solver that uses ``jax``'s built in Cholesky factorization

    This is the exact reference for the compressed solvers, and it scales as
    the cube of the number of data points.
    """

    X: JAXArray
    kernel: kernels.Kernel
    variance_value: JAXArray
    covariance_value: JAXArray
    scale_tril: JAXArray

    def __init__(
        self,
        kernel: kernels.Kernel,
        X: JAXArray,
        noise: Noise,
        *,
        covariance: JAXArray | None = None,
    ):
        """Build a :class:`DirectSolver` for a given kernel and coordinates

        Args:
            kernel: The kernel function.
            X: The input coordinates.
            noise: The noise model for the process.
            covariance: Optionally, a pre-computed array with the covariance
                matrix. This should be equal to the result of calling ``kernel``
                and adding ``diag``, but that is not checked.
        """
        self.X = X
        self.kernel = kernel
        self.variance_value = kernel(X) + noise.diagonal()
        if covariance is None:
            covariance = kernel(X, X) + noise
        self.covariance_value = covariance
        self.scale_tril = linalg.cholesky(covariance, lower=True)

    def variance(self) -> JAXArray:
        return self.variance_value

    def covariance(self) -> JAXArray:
        return self.covariance_value

    def log_determinant(self) -> JAXArray:
        return 2 * jnp.sum(jnp.log(jnp.diag(self.scale_tril)))

    def normalization(self) -> JAXArray:
        return jnp.sum(
            jnp.log(jnp.diag(self.scale_tril))
        ) + 0.5 * self.scale_tril.shape[0] * np.log(2 * np.pi)

    def matmul(self, y: JAXArray) -> JAXArray:
        return self.covariance_value @ y

    def solve(self, y: JAXArray) -> JAXArray:
        return linalg.cho_solve((self.scale_tril, True), y)

    def cross_covariance(self, X_test: JAXArray) -> JAXArray:
        return self.kernel(self.X, X_test)

    def test_variance(self, X_test: JAXArray) -> JAXArray:
        return self.kernel(X_test)

    def dot_triangular(self, y: JAXArray) -> JAXArray:
        return jnp.einsum("ij,j...->i...", self.scale_tril, y)
