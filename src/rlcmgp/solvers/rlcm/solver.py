from __future__ import annotations

__all__ = ["RLCMSolver"]

import logging
import time

import jax

from rlcmgp.helpers import JAXArray
from rlcmgp.kernels.base import Kernel
from rlcmgp.noise import Noise
from rlcmgp.points import as_points
from rlcmgp.solvers.rlcm.compress import compress
from rlcmgp.solvers.rlcm.core import RLCMatrix, RLCMFactor
from rlcmgp.solvers.rlcm.tree import ClusterTree, build_tree
from rlcmgp.solvers.solver import Solver

logger = logging.getLogger(__name__)


class RLCMSolver(Solver):
    """A scalable solver that uses recursively low rank compressed matrices

    Take a look at the documentation for the :ref:`api-solvers-rlcm`, for
    more technical details.

    You generally won't instantiate this object directly; pass ``rank`` (and
    optionally the other keyword arguments below) to
    :class:`rlcmgp.GaussianProcess` instead. All vectors passed to or
    returned by this solver are in the order of the input coordinates.
    """

    X: JAXArray
    kernel: Kernel
    tree: ClusterTree
    matrix: RLCMatrix
    factor: RLCMFactor

    def __init__(
        self,
        kernel: Kernel,
        X: JAXArray,
        noise: Noise,
        *,
        rank: int,
        levels: int | None = None,
        seed: int | None = None,
        strategy: str = "bbox",
        tree: ClusterTree | None = None,
        allow_dense: bool = True,
    ):
        """Build a :class:`RLCMSolver` for a given kernel and coordinates

        Args:
            kernel: The kernel function.
            X: The ``(N, d)`` input coordinates.
            noise: The noise model for the process. This must be a constant,
                strictly positive diagonal, which is used as the nugget of the
                compressed covariance.
            rank: The number of landmarks used to compress each off-diagonal
                block.
            levels: The depth of the cluster tree. Defaults to
                ``floor(log2(N / rank))``.
            seed: The seed for landmark sampling. If not provided, one is
                derived from the clock and logged.
            strategy: The split rule for the cluster tree, either ``"bbox"`` or
                ``"median"``.
            tree: A cluster tree built for ``X``, to be reused across kernels
                or ranks. Its partition is kept as is, and ``rank`` landmarks
                are drawn at each of its nodes.
            allow_dense: If ``False``, raise an error instead of falling back to
                a single dense block when ``rank`` is at least ``N``.
        """
        X = as_points(X)
        num_points = X.shape[0]
        nugget = noise.constant_value()
        if int(rank) != rank or rank < 1:
            raise ValueError(f"The rank must be a positive integer; got {rank}")
        if rank >= num_points:
            if not allow_dense:
                raise ValueError(
                    f"The rank ({rank}) must be smaller than the number of points "
                    f"({num_points}) when allow_dense is False"
                )
            logger.info(
                "Rank %d covers all %d points; using a dense factorization",
                rank,
                num_points,
            )

        if seed is None:
            seed = time.time_ns() % (2**31)
            logger.info("Using landmark sampling seed %d", seed)
        if int(seed) != seed or seed < 0:
            raise ValueError(f"The seed must be a non-negative integer; got {seed}")

        if tree is None:
            tree = build_tree(X, rank, levels, strategy=strategy)
        elif tree.num_points != num_points:
            raise ValueError(
                f"The tree was built for {tree.num_points} points, but "
                f"{num_points} were provided"
            )

        self.X = X
        self.kernel = kernel
        self.tree = tree
        self.matrix = compress(
            kernel, X, tree, nugget, jax.random.PRNGKey(int(seed)), rank=int(rank)
        )
        self.factor = self.matrix.factorize()

    def variance(self) -> JAXArray:
        return self.tree.permutation.invert(self.matrix.diagonal())

    def covariance(self) -> JAXArray:
        inverse = self.tree.permutation.inverse
        return self.matrix.to_dense()[inverse[:, None], inverse[None, :]]

    def log_determinant(self) -> JAXArray:
        return self.factor.log_determinant()

    def matmul(self, y: JAXArray) -> JAXArray:
        perm = self.tree.permutation
        return perm.invert(self.matrix.matmul(perm.apply(y)))

    def solve(self, y: JAXArray) -> JAXArray:
        perm = self.tree.permutation
        return perm.invert(self.factor.solve(perm.apply(y)))

    def cross_covariance(self, X_test: JAXArray) -> JAXArray:
        return self.tree.permutation.invert(self.matrix.cross_covariance(X_test))

    def test_variance(self, X_test: JAXArray) -> JAXArray:
        return self.kernel(as_points(X_test)) + self.matrix.nugget

    def dot_triangular(self, y: JAXArray) -> JAXArray:
        """The compressed matrix has no triangular factor to sample with"""
        raise NotImplementedError(
            "The RLCMSolver does not support sampling; use the DirectSolver"
        )
