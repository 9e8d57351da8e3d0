from __future__ import annotations

__all__ = ["GaussianProcess", "ConditionResult"]

from collections.abc import Sequence
from functools import partial
from typing import Any, Callable, NamedTuple

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from rlcmgp import kernels, means
from rlcmgp.helpers import JAXArray
from rlcmgp.noise import Diagonal, Noise
from rlcmgp.solvers import DirectSolver, RLCMSolver
from rlcmgp.solvers.solver import Solver


class GaussianProcess(eqx.Module):
    """An interface for designing a Gaussian Process regression model

    Args:
        kernel (Kernel): The kernel function
        X (JAXArray): The input coordinates, with shape ``(N_data, n_dim)``
            (or ``(N_data,)`` for scalar coordinates with the dense solver).
        diag (JAXArray, optional): The value to add to the diagonal of the
            covariance matrix, often used to capture measurement uncertainty.
            This should be a scalar or have the shape ``(N_data,)``; the
            :class:`rlcmgp.solvers.RLCMSolver` requires a positive scalar. If
            not provided, this will default to the square root of machine
            epsilon for the data type being used.
        noise (Noise, optional): Used to implement more expressive observation
            noise models than those supported by just ``diag``. If this is
            provided, the ``diag`` parameter will be ignored.
        mean (Callable, optional): A callable or constant mean function that
            will be evaluated with the ``X`` as input: ``mean(X)``
        solver: The solver type to be used to execute the required linear
            algebra. Defaults to :class:`rlcmgp.solvers.RLCMSolver` if a
            ``rank`` keyword argument is given and
            :class:`rlcmgp.solvers.DirectSolver` otherwise.
        **solver_kwargs: Passed on to the solver, for example ``rank``,
            ``levels``, ``seed``, ``strategy`` and ``tree`` for the
            :class:`rlcmgp.solvers.RLCMSolver`.
    """

    num_data: int = eqx.field(static=True)
    dtype: np.dtype = eqx.field(static=True)
    kernel: kernels.Kernel
    X: JAXArray
    mean_function: means.MeanBase
    mean: JAXArray
    noise: Noise
    solver: Solver

    def __init__(
        self,
        kernel: kernels.Kernel,
        X: JAXArray,
        *,
        diag: JAXArray | None = None,
        noise: Noise | None = None,
        mean: means.MeanBase | Callable[[JAXArray], JAXArray] | JAXArray | None = None,
        solver: Any | None = None,
        **solver_kwargs: Any,
    ):
        self.kernel = kernel
        self.X = X

        if isinstance(mean, means.MeanBase):
            self.mean_function = mean
        elif mean is None:
            self.mean_function = means.Mean(jnp.zeros(()))
        else:
            self.mean_function = means.Mean(mean)
        mean_value = jax.vmap(self.mean_function)(self.X)
        self.num_data = mean_value.shape[0]
        self.dtype = mean_value.dtype
        self.mean = mean_value
        if self.mean.ndim != 1:
            raise ValueError(
                "Invalid mean shape: " f"expected ndim = 1, got ndim={self.mean.ndim}"
            )

        if noise is None:
            diag = _default_diag(self.mean) if diag is None else diag
            noise = Diagonal(diag=jnp.broadcast_to(diag, self.mean.shape))
        self.noise = noise

        if solver is None:
            solver = RLCMSolver if "rank" in solver_kwargs else DirectSolver
        self.solver = solver(kernel, self.X, self.noise, **solver_kwargs)

    @property
    def loc(self) -> JAXArray:
        return self.mean

    @property
    def variance(self) -> JAXArray:
        return self.solver.variance()

    @property
    def covariance(self) -> JAXArray:
        return self.solver.covariance()

    def log_probability(self, y: JAXArray) -> JAXArray:
        """Compute the log probability of this multivariate normal

        Args:
            y (JAXArray): The observed data. This should have the shape
                ``(N_data,)``, where ``N_data`` was the zeroth axis of the ``X``
                data provided when instantiating this object.

        Returns:
            The marginal log probability of this multivariate normal model,
            evaluated at ``y``. Non-finite values are reported as ``-inf``.
        """
        return self._compute_log_prob(y, self._get_alpha(y))

    def condition(
        self,
        y: JAXArray,
        X_test: JAXArray | None = None,
        *,
        diag: JAXArray | None = None,
        include_mean: bool = True,
    ) -> ConditionResult:
        """Condition the model on observed data and predict at test points

        Args:
            y (JAXArray): The observed data. This should have the shape
                ``(N_data,)``, where ``N_data`` was the zeroth axis of the ``X``
                data provided when instantiating this object.
            X_test (JAXArray, optional): The coordinates where the prediction
                should be evaluated. If it is not provided, ``X`` will be used
                by default.
            diag (JAXArray, optional): Added to the predictive variance, so
                this can be used to introduce, for example, observational noise
                to predicted data.
            include_mean (bool, optional): If ``True`` (default), the predicted
                values will include the mean function evaluated at ``X_test``.

        Returns:
            A named tuple with the ``log_probability`` of the data under this
            model, and the ``loc`` and marginal ``variance`` of the
            conditional process at ``X_test``.
        """
        if X_test is None:
            X_test = self.X
        elif jnp.ndim(X_test) != jnp.ndim(self.X) or (
            jnp.shape(X_test)[1:] != jnp.shape(self.X)[1:]
        ):
            raise ValueError(
                "`X_test` must have the same number of dimensions as the input "
                "`X`, and all but the leading dimension must have matching sizes"
            )

        alpha = self._get_alpha(y)
        log_prob = self._compute_log_prob(y, alpha)

        Ks = self.solver.cross_covariance(X_test)
        loc = Ks.T @ alpha
        if include_mean:
            loc += jax.vmap(self.mean_function)(X_test)

        variance = self.solver.test_variance(X_test) - jnp.sum(
            Ks * self.solver.solve(Ks), axis=0
        )
        if diag is not None:
            variance += diag

        return ConditionResult(log_prob, loc, variance)

    def predict(
        self,
        y: JAXArray,
        X_test: JAXArray | None = None,
        *,
        include_mean: bool = True,
        return_var: bool = False,
    ) -> JAXArray | tuple[JAXArray, JAXArray]:
        """Predict the GP model at new test points conditioned on observed data

        Args:
            y (JAXArray): The observed data. This should have the shape
                ``(N_data,)``, where ``N_data`` was the zeroth axis of the ``X``
                data provided when instantiating this object.
            X_test (JAXArray, optional): The coordinates where the prediction
                should be evaluated. If it is not provided, ``X`` will be used
                by default.
            include_mean (bool, optional): If ``True`` (default), the predicted
                values will include the mean function evaluated at ``X_test``.
            return_var (bool, optional): If ``True``, the variance of the
                predicted values at ``X_test`` will be returned.

        Returns:
            The mean of the predictive model evaluated at ``X_test``, with shape
            ``(N_test,)`` where ``N_test`` is the zeroth dimension of
            ``X_test``. If ``return_var`` is ``True``, the variance of the
            predicted process will also be returned with shape ``(N_test,)``.
        """
        cond = self.condition(y, X_test, include_mean=include_mean)
        if return_var:
            return cond.loc, cond.variance
        return cond.loc

    def sample(
        self,
        key: JAXArray,
        shape: Sequence[int] | None = None,
    ) -> JAXArray:
        """Generate samples from the prior process

        This needs a triangular factor of the covariance, so it is only
        supported by the :class:`rlcmgp.solvers.DirectSolver`.

        Args:
            key: A ``jax`` random number key array.
            shape (tuple, optional): The number and shape of samples to
                generate.

        Returns:
            The sampled realizations from the process with shape ``shape +
            (N_data,)`` where ``N_data`` is the zeroth dimension of the ``X``
            coordinates provided when instantiating this process.
        """
        return self._sample(key, None if shape is None else tuple(shape))

    @partial(jax.jit, static_argnums=(2,))
    def _sample(
        self,
        key: JAXArray,
        shape: tuple[int, ...] | None,
    ) -> JAXArray:
        if shape is None:
            shape = (self.num_data,)
        else:
            shape = (self.num_data,) + tuple(shape)
        normal_samples = jax.random.normal(key, shape=shape, dtype=self.dtype)
        return self.mean + jnp.moveaxis(
            self.solver.dot_triangular(normal_samples), 0, -1
        )

    @jax.jit
    def _compute_log_prob(self, y: JAXArray, alpha: JAXArray) -> JAXArray:
        loglike = -0.5 * jnp.dot(y - self.loc, alpha) - self.solver.normalization()
        return jnp.where(jnp.isfinite(loglike), loglike, -jnp.inf)

    @jax.jit
    def _get_alpha(self, y: JAXArray) -> JAXArray:
        return self.solver.solve(y - self.loc)


class ConditionResult(NamedTuple):
    """The result of conditioning a :class:`GaussianProcess` on data"""

    log_probability: JAXArray
    """The log probability of the conditioned model

    In other words, this is the marginal likelihood for the kernel parameters,
    given the observed data, or the multivariate normal log probability
    evaluated at the given data.
    """

    loc: JAXArray
    """The mean of the conditional process at the test coordinates"""

    variance: JAXArray
    """The marginal variance of the conditional process at the test coordinates"""


def _default_diag(reference: JAXArray) -> JAXArray:
    """Default to adding some amount of jitter to the diagonal, just in case,
    we use sqrt(eps) for the dtype of the mean function because that seems to
    give sensible results in general.
    """
    return jnp.sqrt(jnp.finfo(reference).eps)
