"""
Kriging splits Gaussian process prediction into a training step, which
factorizes the covariance matrix and solves for the weights of the observed
data once, and a prediction step that can then be repeated for any number of
test points. The test points are processed in batches so that the
``(N, N_test)`` cross covariance never has to be held in memory all at once.
"""

from __future__ import annotations

__all__ = ["Kriging", "Prediction"]

import logging
import warnings
from typing import NamedTuple

import equinox as eqx
import jax
import jax.numpy as jnp

from rlcmgp.gp import GaussianProcess
from rlcmgp.helpers import JAXArray, NumericalStabilityWarning
from rlcmgp.points import as_points

logger = logging.getLogger(__name__)


class Prediction(NamedTuple):
    """The kriging estimate at a set of test points"""

    mean: JAXArray
    """The predictive mean"""

    stddev: JAXArray
    """The predictive standard deviation"""


class Kriging(eqx.Module):
    """A Gaussian process conditioned on observed data

    Args:
        gp: The :class:`rlcmgp.GaussianProcess` describing the prior. Its
            solver holds the factorization that is reused for every
            prediction.
        y: The observed data at the coordinates of ``gp``.
    """

    gp: GaussianProcess
    y: JAXArray
    alpha: JAXArray

    def __init__(self, gp: GaussianProcess, y: JAXArray):
        y = jnp.asarray(y)
        if y.shape != (gp.num_data,):
            raise ValueError(
                f"Expected observations with shape ({gp.num_data},); got {y.shape}"
            )
        self.gp = gp
        self.y = y
        self.alpha = gp.solver.solve(y - gp.loc)

    def predict(
        self, X_test: JAXArray, *, batch_size: int | None = None
    ) -> Prediction:
        """The predictive mean and standard deviation at ``X_test``

        Predictive variances that come out negative through rounding or
        compression error are set to zero, with a warning when the clipped
        value is not negligible.

        Args:
            X_test: The test coordinates.
            batch_size: The number of test points to process at once. Defaults
                to all of them.
        """
        X_test = as_points(X_test)
        num_test = X_test.shape[0]
        if batch_size is None:
            batch_size = max(num_test, 1)
        if batch_size < 1:
            raise ValueError(f"The batch size must be positive; got {batch_size}")

        solver = self.gp.solver
        means = []
        variances = []
        for start in range(0, num_test, batch_size):
            X_batch = X_test[start : start + batch_size]
            Ks = solver.cross_covariance(X_batch)
            means.append(Ks.T @ self.alpha + jax.vmap(self.gp.mean_function)(X_batch))
            variances.append(
                solver.test_variance(X_batch) - jnp.sum(Ks * solver.solve(Ks), axis=0)
            )
        logger.debug(
            "Kriged %d test points in %d batch(es)", num_test, len(means)
        )

        if not means:
            empty = jnp.zeros(0, dtype=self.alpha.dtype)
            return Prediction(empty, empty)

        mean = jnp.concatenate(means)
        variance = jnp.concatenate(variances)
        tolerance = 1e3 * jnp.finfo(variance.dtype).eps * jnp.max(
            jnp.abs(solver.test_variance(X_test[:1]))
        )
        if bool(jnp.any(variance < -tolerance)):
            warnings.warn(
                f"Clipped {int(jnp.sum(variance < 0))} negative predictive "
                f"variance(s); the smallest was {float(jnp.min(variance)):.3e}",
                NumericalStabilityWarning,
                stacklevel=2,
            )
        return Prediction(mean, jnp.sqrt(jnp.maximum(variance, 0.0)))
