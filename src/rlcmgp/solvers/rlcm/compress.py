from __future__ import annotations

__all__ = [
    "LowRankFactor",
    "sample_landmarks",
    "landmark_factor",
    "compress_block",
    "compress",
]

import logging
import warnings

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from rlcmgp.helpers import JAXArray, NumericalStabilityWarning
from rlcmgp.kernels.base import Kernel
from rlcmgp.points import as_points
from rlcmgp.solvers.rlcm.core import RLCMatrix
from rlcmgp.solvers.rlcm.tree import ClusterTree

logger = logging.getLogger(__name__)


class LowRankFactor(eqx.Module):
    """A low rank approximation ``u @ v.T`` of a kernel block"""

    u: JAXArray
    v: JAXArray

    @property
    def rank(self) -> int:
        return self.u.shape[1]

    @property
    def shape(self) -> tuple[int, int]:
        return (self.u.shape[0], self.v.shape[0])

    def to_dense(self) -> JAXArray:
        return self.u @ self.v.T

    def matmul(self, x: JAXArray) -> JAXArray:
        return self.u @ (self.v.T @ x)


def sample_landmarks(key: JAXArray, n1: int, n2: int, rank: int) -> np.ndarray:
    """Choose landmark positions within two concatenated sibling clusters

    Positions ``[0, n1)`` belong to the first cluster and ``[n1, n1 + n2)``
    to the second. If the rank covers both clusters every point is used; if it
    covers the smaller one, all of the smaller cluster is kept and the rest
    are drawn from the larger one; otherwise ``rank`` points are drawn from
    the union without replacement.

    The draws are prefixes of a single permutation of the union for a given
    ``key``, so within each of these cases the landmarks for a larger rank
    contain those for a smaller one.

    Returns:
        A sorted integer array of at most ``rank`` positions.
    """
    total = n1 + n2
    if rank >= total:
        return np.arange(total)
    priority = np.asarray(jax.random.permutation(key, total))
    if rank >= min(n1, n2):
        if n1 <= n2:
            kept, pool = np.arange(n1), priority[priority >= n1]
        else:
            kept, pool = np.arange(n1, total), priority[priority < n1]
        return np.sort(np.concatenate((kept, pool[: rank - len(kept)])))
    return np.sort(priority[:rank])


def landmark_factor(gram: JAXArray) -> JAXArray:
    """A factor ``R`` with ``R @ R.T`` equal to the inverse of ``gram``

    The symmetric eigendecomposition is used so that a numerically singular
    Gram matrix (for example, from duplicated landmarks) degrades gracefully:
    eigenvalues below ``max_eig * size * eps`` are raised to that floor.
    """
    gram = 0.5 * (gram + gram.T)
    eigvals, eigvecs = jnp.linalg.eigh(gram)
    finfo = jnp.finfo(gram.dtype)
    floor = jnp.maximum(jnp.max(eigvals), finfo.tiny) * gram.shape[0] * finfo.eps
    if bool(jnp.any(eigvals < floor)):
        warnings.warn(
            "The landmark Gram matrix is numerically singular; clipped "
            f"{int(jnp.sum(eigvals < floor))} eigenvalue(s) to {float(floor):.3e}",
            NumericalStabilityWarning,
            stacklevel=2,
        )
        eigvals = jnp.maximum(eigvals, floor)
    return eigvecs / jnp.sqrt(eigvals)[None, :]


def compress_block(
    kernel: Kernel, X1: JAXArray, X2: JAXArray, rank: int, key: JAXArray
) -> LowRankFactor:
    """The Nystrom approximation of ``kernel(X1, X2)`` with at most ``rank`` terms

    The landmarks are drawn from ``X1`` and ``X2`` with
    :func:`sample_landmarks`, so the approximation is exact whenever ``rank``
    is at least the size of the smaller block.
    """
    X1 = as_points(X1)
    X2 = as_points(X2)
    inds = sample_landmarks(key, X1.shape[0], X2.shape[0], rank)
    landmarks = jnp.concatenate((X1, X2), axis=0)[inds]
    factor = landmark_factor(_kernel_matrix(kernel, landmarks, landmarks))
    return LowRankFactor(
        u=_kernel_matrix(kernel, X1, landmarks) @ factor,
        v=_kernel_matrix(kernel, X2, landmarks) @ factor,
    )


def compress(
    kernel: Kernel,
    X: JAXArray,
    tree: ClusterTree,
    diag: float,
    key: JAXArray,
    *,
    rank: int | None = None,
) -> RLCMatrix:
    """Build the nested low rank approximation of ``kernel(X, X) + diag * I``

    Each nonleaf node gets its own landmarks, sampled from its two children
    with the key ``fold_in(key, node)``. A child's factor against these
    landmarks is evaluated directly for leaves and passed up through a small
    transfer matrix for nonleaf children, so every off-diagonal block is
    expressed in the landmark basis of the node that splits it.

    Args:
        kernel: The covariance function.
        X: The ``(N, d)`` coordinates in their original order.
        tree: The cluster tree built for ``X``.
        diag: The nugget added where two points coincide. Must be positive.
        key: The ``jax`` random key for landmark sampling.
        rank: The number of landmarks per node. Defaults to the rank the
            tree was built with. Any rank can be used with a given tree, so
            approximations of increasing rank can share one partition.

    Returns:
        The :class:`RLCMatrix`, in tree order.
    """
    X = as_points(X)
    if X.shape[0] != tree.num_points:
        raise ValueError(
            f"The tree was built for {tree.num_points} points, but {X.shape[0]} "
            "were provided"
        )
    diag = float(diag)
    if not diag > 0:
        raise ValueError(f"The diagonal correction must be positive; got {diag}")

    if rank is None:
        rank = tree.rank
    if int(rank) != rank or rank < 1:
        raise ValueError(f"The rank must be a positive integer; got {rank}")
    rank = int(rank)

    nugget_kernel = kernel.with_nugget(diag)
    X = tree.permutation.apply(X)
    num_nodes = tree.num_nodes
    blocks: list[JAXArray | None] = [None] * num_nodes
    factors: list[JAXArray | None] = [None] * num_nodes
    anchors: list[JAXArray | None] = [None] * num_nodes
    bases: list[JAXArray | None] = [None] * num_nodes
    transfers: list[JAXArray | None] = [None] * num_nodes

    for node in reversed(range(num_nodes)):
        X_node = X[tree.start[node] : tree.stop[node]]
        if tree.is_leaf(node):
            blocks[node] = _kernel_matrix(nugget_kernel, X_node, X_node)
            continue

        left, right = tree.left[node], tree.right[node]
        inds = sample_landmarks(
            jax.random.fold_in(key, node), tree.size(left), tree.size(right), rank
        )
        anchors[node] = X_node[inds]
        bases[node] = landmark_factor(
            _kernel_matrix(nugget_kernel, anchors[node], anchors[node])
        )

        for child in (left, right):
            if tree.is_leaf(child):
                X_child = X[tree.start[child] : tree.stop[child]]
                factors[child] = (
                    _kernel_matrix(nugget_kernel, X_child, anchors[node]) @ bases[node]
                )
            else:
                transfers[child] = (
                    bases[child].T
                    @ _kernel_matrix(nugget_kernel, anchors[child], anchors[node])
                    @ bases[node]
                )
                stacked = jnp.concatenate(
                    (factors[tree.left[child]], factors[tree.right[child]]), axis=0
                )
                factors[child] = stacked @ transfers[child]

    logger.debug(
        "Compressed %d points into %d leaf blocks with rank %d",
        tree.num_points,
        len(tree.leaves),
        rank,
    )
    return RLCMatrix(
        tree=tree,
        X=X,
        kernel=kernel,
        nugget=jnp.asarray(diag),
        blocks=tuple(blocks),
        factors=tuple(factors),
        anchors=tuple(anchors),
        bases=tuple(bases),
        transfers=tuple(transfers),
    )


@jax.jit
def _kernel_matrix(kernel: Kernel, X1: JAXArray, X2: JAXArray) -> JAXArray:
    # Compiled once per pair of block shapes; leaves and landmark sets only
    # take a handful of distinct sizes
    return kernel(X1, X2)
