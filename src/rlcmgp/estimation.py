"""
Maximum likelihood estimation of kernel parameters by grid search, and the
uncertainty of the estimate from the observed Fisher information.

Kernels are described here by a ``build_kernel`` callable that maps a vector
of parameters to a :class:`rlcmgp.kernels.Kernel`, for example
:func:`matern_kernel`. Any extra keyword arguments are passed on to
:class:`rlcmgp.GaussianProcess`, so passing ``rank`` (with ``diag``) selects
the :class:`rlcmgp.solvers.RLCMSolver`. In that case the cluster tree and the
landmark sampling seed are fixed once and shared by every likelihood
evaluation, so that differences between candidates only come from the
kernel.
"""

from __future__ import annotations

__all__ = [
    "GridSearchResult",
    "FisherResult",
    "matern_kernel",
    "chi2_kernel",
    "parameter_grid",
    "log_likelihood",
    "grid_search",
    "finite_difference_table",
    "fisher_design",
    "fisher_from_log_likelihoods",
    "fisher_information",
]

import itertools
import logging
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, NamedTuple

import numpy as np

from rlcmgp import kernels
from rlcmgp.gp import GaussianProcess
from rlcmgp.helpers import JAXArray
from rlcmgp.points import as_points
from rlcmgp.solvers.rlcm.tree import build_tree

logger = logging.getLogger(__name__)

BuildKernel = Callable[[Any], kernels.Kernel]


class GridSearchResult(NamedTuple):
    """The log likelihood of every candidate in a parameter grid"""

    params: np.ndarray
    """The candidates, with shape ``(num_candidates, num_params)``"""

    log_likelihood: np.ndarray
    """The log likelihood of each candidate, ``nan`` where it failed"""

    best_index: int
    best_params: np.ndarray
    max_log_likelihood: float


class FisherResult(NamedTuple):
    """The observed Fisher information at a parameter estimate"""

    fisher: np.ndarray
    """The negative Hessian of the log likelihood"""

    covariance: np.ndarray
    """The inverse of ``fisher``"""

    stderr: np.ndarray
    """The square root of the diagonal of ``covariance``; ``nan`` if negative"""

    params: np.ndarray
    """The perturbed parameters from :func:`fisher_design`"""

    log_likelihood: np.ndarray
    """The log likelihood at each row of ``params``"""


def matern_kernel(params: Any) -> kernels.Kernel:
    """The ``(alpha, ell, nu)`` parameterization ``10**alpha * Matern(ell, nu)``"""
    alpha, ell, nu = (float(p) for p in params)
    return kernels.Matern(scale=ell, nu=nu) * 10.0**alpha


def chi2_kernel(params: Any) -> kernels.Kernel:
    """The ``(alpha,)`` parameterization ``10**alpha * Chi2()``"""
    (alpha,) = (float(p) for p in params)
    return kernels.Chi2() * 10.0**alpha


def parameter_grid(*axes: Sequence[float]) -> np.ndarray:
    """Every combination of the values along each axis

    The candidates are in nested loop order, with the last axis varying
    fastest.
    """
    if not axes:
        raise ValueError("At least one parameter axis is required")
    for n, axis in enumerate(axes):
        if len(axis) == 0:
            raise ValueError(f"Parameter axis {n} is empty")
    return np.array(list(itertools.product(*axes)), dtype=float)


def log_likelihood(
    build_kernel: BuildKernel,
    params: Any,
    X: JAXArray,
    y: JAXArray,
    **gp_kwargs: Any,
) -> float:
    """The log likelihood of ``y`` for the kernel built from ``params``"""
    gp = GaussianProcess(build_kernel(params), X, **gp_kwargs)
    return float(gp.log_probability(y))


def grid_search(
    build_kernel: BuildKernel,
    X: JAXArray,
    y: JAXArray,
    grid: Any,
    *,
    max_workers: int | None = None,
    **gp_kwargs: Any,
) -> GridSearchResult:
    """Find the candidate parameters with the largest log likelihood

    A candidate whose likelihood can't be computed (for example, because the
    kernel parameters are invalid) is logged and recorded as ``nan``. Ties
    are broken in favor of the earliest candidate.

    Args:
        build_kernel: Maps a parameter vector to a kernel.
        X: The input coordinates.
        y: The observed data.
        grid: The candidates, with shape ``(num_candidates, num_params)``;
            see :func:`parameter_grid`.
        max_workers: If larger than one, evaluate the candidates on a pool of
            this many threads.
        **gp_kwargs: Passed to :class:`rlcmgp.GaussianProcess`.
    """
    grid = np.asarray(grid, dtype=float)
    if grid.ndim == 1:
        grid = grid[:, None]
    if grid.ndim != 2 or grid.shape[0] == 0:
        raise ValueError(f"Expected a non-empty 2-D parameter grid; got {grid.shape}")
    gp_kwargs = _shared_solver_kwargs(X, gp_kwargs)

    def evaluate(index: int) -> float:
        params = grid[index]
        try:
            value = log_likelihood(build_kernel, params, X, y, **gp_kwargs)
        except ValueError as err:
            logger.warning("Grid search candidate %s failed: %s", params, err)
            return np.nan
        logger.info("Grid search candidate %s: log likelihood %.16e", params, value)
        return value

    values = np.full(grid.shape[0], np.nan)
    if max_workers is not None and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for index, value in enumerate(executor.map(evaluate, range(len(grid)))):
                values[index] = value
    else:
        for index in range(len(grid)):
            values[index] = evaluate(index)

    if np.all(np.isnan(values)):
        raise ValueError("The log likelihood failed for every grid candidate")
    best = int(np.nanargmax(values))
    logger.info(
        "Grid search maximum at %s: log likelihood %.16e", grid[best], values[best]
    )
    return GridSearchResult(
        params=grid,
        log_likelihood=values,
        best_index=best,
        best_params=grid[best],
        max_log_likelihood=float(values[best]),
    )


def finite_difference_table(
    build_kernel: BuildKernel,
    X: JAXArray,
    y: JAXArray,
    center: Any,
    *,
    delta: float = 1e-3,
    factor: float = 2.0,
    num_steps: int = 10,
    center_value: float | None = None,
    **gp_kwargs: Any,
) -> np.ndarray:
    """Central differences of the log likelihood for shrinking step sizes

    This is a diagnostic for choosing the steps passed to
    :func:`fisher_information`: a good step is one where the differences have
    stopped changing but have not yet been swamped by rounding error.

    Returns:
        An array with shape ``(num_params, num_steps, 3)`` where the last axis
        holds the step ``delta / factor**j``, the first difference, and the
        second difference.
    """
    center = np.atleast_1d(np.asarray(center, dtype=float))
    gp_kwargs = _shared_solver_kwargs(X, gp_kwargs)
    if center_value is None:
        center_value = log_likelihood(build_kernel, center, X, y, **gp_kwargs)

    table = np.empty((len(center), num_steps, 3))
    for i in range(len(center)):
        for j in range(num_steps):
            step = delta / factor**j
            offset = np.zeros_like(center)
            offset[i] = step
            plus = log_likelihood(build_kernel, center + offset, X, y, **gp_kwargs)
            minus = log_likelihood(build_kernel, center - offset, X, y, **gp_kwargs)
            table[i, j] = (
                step,
                (plus - minus) / (2 * step),
                (plus + minus - 2 * center_value) / step**2,
            )
            logger.debug(
                "Parameter %d step %g: first %.16e, second %.16e", i, *table[i, j]
            )
    return table


def fisher_design(center: Any, steps: Any) -> np.ndarray:
    """The perturbed parameters needed for a finite difference Hessian

    The first ``2p`` rows are the center plus and minus ``steps[i]`` along
    each axis. They are followed by four rows for each pair ``i < j``, with
    the offsets ``(+, +)``, ``(+, -)``, ``(-, +)`` and ``(-, -)``.
    """
    center = np.atleast_1d(np.asarray(center, dtype=float))
    steps = np.broadcast_to(np.asarray(steps, dtype=float), center.shape)
    num = len(center)
    rows = []
    for i in range(num):
        for sign in (1, -1):
            row = center.copy()
            row[i] += sign * steps[i]
            rows.append(row)
    for i, j in itertools.combinations(range(num), 2):
        for si, sj in ((1, 1), (1, -1), (-1, 1), (-1, -1)):
            row = center.copy()
            row[i] += si * steps[i]
            row[j] += sj * steps[j]
            rows.append(row)
    return np.array(rows)


def fisher_from_log_likelihoods(
    center_value: float, values: Any, steps: Any
) -> np.ndarray:
    """The observed Fisher information from the log likelihoods of a design

    Args:
        center_value: The log likelihood at the center.
        values: The log likelihood at each row of :func:`fisher_design`.
        steps: The step along each parameter axis.

    Returns:
        The symmetric matrix ``-H`` where ``H`` is the central difference
        Hessian of the log likelihood.
    """
    steps = np.atleast_1d(np.asarray(steps, dtype=float))
    values = np.asarray(values, dtype=float)
    num = len(steps)
    expected = 2 * num + 2 * num * (num - 1)
    if values.shape != (expected,):
        raise ValueError(
            f"Expected {expected} log likelihood values for {num} parameters; got "
            f"{values.shape}"
        )

    hessian = np.empty((num, num))
    for i in range(num):
        plus, minus = values[2 * i], values[2 * i + 1]
        hessian[i, i] = (plus + minus - 2 * center_value) / steps[i] ** 2
    for n, (i, j) in enumerate(itertools.combinations(range(num), 2)):
        pp, pm, mp, mm = values[2 * num + 4 * n : 2 * num + 4 * (n + 1)]
        hessian[i, j] = hessian[j, i] = (pp - pm - mp + mm) / (
            4 * steps[i] * steps[j]
        )
    return -hessian


def fisher_information(
    build_kernel: BuildKernel,
    X: JAXArray,
    y: JAXArray,
    center: Any,
    steps: Any,
    *,
    center_value: float | None = None,
    max_workers: int | None = None,
    **gp_kwargs: Any,
) -> FisherResult:
    """The observed Fisher information, covariance and standard errors

    Args:
        build_kernel: Maps a parameter vector to a kernel.
        X: The input coordinates.
        y: The observed data.
        center: The parameter estimate, usually the grid search maximizer.
        steps: The finite difference step for each parameter.
        center_value: The log likelihood at ``center``, if already known.
        max_workers: Passed to :func:`grid_search` for the design points.
        **gp_kwargs: Passed to :class:`rlcmgp.GaussianProcess`.
    """
    center = np.atleast_1d(np.asarray(center, dtype=float))
    steps = np.broadcast_to(np.asarray(steps, dtype=float), center.shape)
    if np.any(steps <= 0):
        raise ValueError(f"The finite difference steps must be positive; got {steps}")
    gp_kwargs = _shared_solver_kwargs(X, gp_kwargs)
    if center_value is None:
        center_value = log_likelihood(build_kernel, center, X, y, **gp_kwargs)

    design = fisher_design(center, steps)
    values = grid_search(
        build_kernel, X, y, design, max_workers=max_workers, **gp_kwargs
    ).log_likelihood
    if np.any(np.isnan(values)):
        raise ValueError(
            "The log likelihood failed at some of the Fisher design points; try "
            "smaller steps"
        )

    fisher = fisher_from_log_likelihoods(center_value, values, steps)
    if np.min(np.linalg.eigvalsh(fisher)) <= 0:
        logger.warning(
            "The Fisher information at %s is not positive definite; the "
            "estimate may not be a local maximum",
            center,
        )
    covariance = np.linalg.inv(fisher)
    variances = np.diag(covariance)
    if np.any(variances < 0):
        logger.warning(
            "Negative variance for parameter(s) %s; reporting nan standard errors",
            np.nonzero(variances < 0)[0].tolist(),
        )
    stderr = np.sqrt(np.where(variances < 0, np.nan, variances))
    return FisherResult(
        fisher=fisher,
        covariance=covariance,
        stderr=stderr,
        params=design,
        log_likelihood=values,
    )


def _shared_solver_kwargs(X: JAXArray, gp_kwargs: dict[str, Any]) -> dict[str, Any]:
    if "rank" not in gp_kwargs:
        return gp_kwargs
    gp_kwargs = dict(gp_kwargs)
    if gp_kwargs.get("seed") is None:
        gp_kwargs["seed"] = time.time_ns() % (2**31)
        logger.info("Using landmark sampling seed %d", gp_kwargs["seed"])
    if gp_kwargs.get("tree") is None:
        gp_kwargs["tree"] = build_tree(
            as_points(X),
            gp_kwargs["rank"],
            gp_kwargs.get("levels"),
            strategy=gp_kwargs.get("strategy", "bbox"),
        )
    return gp_kwargs
