from __future__ import annotations

__all__ = ["Solver"]

from abc import abstractmethod
from typing import Any

import equinox as eqx
import numpy as np

from rlcmgp.helpers import JAXArray
from rlcmgp.kernels.base import Kernel
from rlcmgp.noise import Noise


class Solver(eqx.Module):
    def __init__(
        self,
        kernel: Kernel,
        X: JAXArray,
        noise: Noise,
        **kwargs: Any,
    ):
        del kernel, X, noise, kwargs
        raise NotImplementedError

    @abstractmethod
    def variance(self) -> JAXArray:
        """The diagonal of the covariance matrix"""
        raise NotImplementedError

    @abstractmethod
    def covariance(self) -> JAXArray:
        """The evaluated covariance matrix"""
        raise NotImplementedError

    @abstractmethod
    def log_determinant(self) -> JAXArray:
        """The log determinant of the covariance matrix"""
        raise NotImplementedError

    def normalization(self) -> JAXArray:
        """The multivariate normal normalization constant

        This is ``(log_det + n*log(2*pi))/2``, where ``n`` is the size of the
        covariance matrix, and ``log_det`` is the log determinant of the
        matrix.
        """
        n = self.variance().shape[0]
        return 0.5 * self.log_determinant() + 0.5 * n * np.log(2 * np.pi)

    @abstractmethod
    def matmul(self, y: JAXArray) -> JAXArray:
        """Multiply the covariance matrix by ``y``"""
        raise NotImplementedError

    @abstractmethod
    def solve(self, y: JAXArray) -> JAXArray:
        """Solve the linear system ``K @ x = y`` for ``x``"""
        raise NotImplementedError

    @abstractmethod
    def cross_covariance(self, X_test: JAXArray) -> JAXArray:
        """The covariance between the input and test coordinates

        Returns:
            An array with shape ``(N, N_test)``, where the rows are in the
            order of the input coordinates.
        """
        raise NotImplementedError

    @abstractmethod
    def test_variance(self, X_test: JAXArray) -> JAXArray:
        """The prior variance of the process at the test coordinates

        This must follow the same convention for the diagonal as
        :func:`Solver.cross_covariance` so that predicting at an input
        coordinate is consistent.
        """
        raise NotImplementedError

    @abstractmethod
    def dot_triangular(self, y: JAXArray) -> JAXArray:
        """Compute a matrix product with the lower triangular linear system

        If the covariance matrix is ``K = L @ L.T`` for some lower triangular
        matrix ``L``, this method returns ``L @ y`` for some ``y``.
        """
        raise NotImplementedError
