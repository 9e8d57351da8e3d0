from __future__ import annotations

__all__ = ["RLCMatrix", "RLCMFactor"]

import logging
import warnings
from typing import Any

import equinox as eqx
import jax.numpy as jnp
import numpy as np
from jax.scipy import linalg

from rlcmgp.helpers import JAXArray, NumericalStabilityWarning, handle_matvec_shapes
from rlcmgp.kernels.base import Kernel
from rlcmgp.points import as_points
from rlcmgp.solvers.rlcm.tree import ClusterTree

logger = logging.getLogger(__name__)

Blocks = tuple[Any, ...]


class RLCMatrix(eqx.Module):
    r"""A recursively low rank compressed symmetric matrix

    Everything is stored in tree order. Entries of the per-node tuples are
    ``None`` where a node has no such component: ``blocks`` for leaves,
    ``factors`` for every node but the root, ``anchors`` and ``bases`` for
    nonleaf nodes, and ``transfers`` for nonleaf nodes below the root.

    The diagonal block of a nonleaf node ``i`` with children ``j`` and ``k``
    is

    .. math::

        A_i = \left(\begin{array}{cc}
            A_j & F_j\,F_k^T \\
            F_k\,F_j^T & A_k
        \end{array}\right)

    and the full matrix is :math:`A_0`. Build these with
    :func:`rlcmgp.solvers.rlcm.compress.compress`.
    """

    tree: ClusterTree
    X: JAXArray
    kernel: Kernel
    nugget: JAXArray
    blocks: Blocks
    factors: Blocks
    anchors: Blocks
    bases: Blocks
    transfers: Blocks

    @property
    def shape(self) -> tuple[int, int]:
        return (self.tree.num_points, self.tree.num_points)

    def diagonal(self) -> JAXArray:
        return jnp.concatenate([jnp.diag(self.blocks[i]) for i in self.tree.leaves])

    def to_dense(self) -> JAXArray:
        """The dense representation of this matrix; only useful for testing"""
        return self.matmul(jnp.eye(self.shape[0], dtype=self.X.dtype))

    @handle_matvec_shapes
    def matmul(self, x: JAXArray) -> JAXArray:
        return self._matmul(0, x)

    def __matmul__(self, x: JAXArray) -> JAXArray:
        return self.matmul(x)

    def _matmul(self, node: int, x: JAXArray) -> JAXArray:
        tree = self.tree
        if tree.is_leaf(node):
            return self.blocks[node] @ x
        left, right = tree.left[node], tree.right[node]
        split = tree.size(left)
        x1, x2 = x[:split], x[split:]
        F1, F2 = self.factors[left], self.factors[right]
        y1 = self._matmul(left, x1) + F1 @ (F2.T @ x2)
        y2 = self._matmul(right, x2) + F2 @ (F1.T @ x1)
        return jnp.concatenate((y1, y2), axis=0)

    def factorize(self) -> RLCMFactor:
        """Factorize this matrix by recursive Sherman-Morrison-Woodbury updates

        Leaves are factorized with Cholesky. For a nonleaf node, the
        off-diagonal coupling ``F_j F_k^T`` is a rank ``2r`` update of the
        block diagonal of its children, so its inverse and determinant follow
        from the children's and a small ``2r x 2r`` capacitance matrix.
        """
        tree = self.tree
        chol: list[JAXArray | None] = [None] * tree.num_nodes
        gains: list[JAXArray | None] = [None] * tree.num_nodes
        lu: list[JAXArray | None] = [None] * tree.num_nodes
        pivots: list[JAXArray | None] = [None] * tree.num_nodes
        log_det: list[JAXArray | None] = [None] * tree.num_nodes

        for node in reversed(range(tree.num_nodes)):
            if tree.is_leaf(node):
                chol[node] = _leaf_cholesky(self.blocks[node], node)
                log_det[node] = 2 * jnp.sum(jnp.log(jnp.diag(chol[node])))
            else:
                left, right = tree.left[node], tree.right[node]
                F1, F2 = self.factors[left], self.factors[right]
                C11 = F1.T @ gains[left]
                C22 = F2.T @ gains[right]
                eye = jnp.eye(F1.shape[1], dtype=F1.dtype)
                capacitance = jnp.concatenate(
                    (
                        jnp.concatenate((0.5 * (C11 + C11.T), eye), axis=1),
                        jnp.concatenate((eye, 0.5 * (C22 + C22.T)), axis=1),
                    ),
                    axis=0,
                )
                lu[node], pivots[node] = linalg.lu_factor(capacitance)
                _check_capacitance_sign(lu[node], pivots[node], node)
                log_det[node] = (
                    log_det[left]
                    + log_det[right]
                    + jnp.sum(jnp.log(jnp.abs(jnp.diag(lu[node]))))
                )

            if node > 0:
                gains[node] = _subtree_solve(
                    tree, self.factors, chol, gains, lu, pivots, node, self.factors[node]
                )

        logger.debug(
            "Factorized a %d x %d compressed matrix with %d nodes",
            *self.shape,
            tree.num_nodes,
        )
        return RLCMFactor(
            tree=tree,
            factors=self.factors,
            chol=tuple(chol),
            gains=tuple(gains),
            lu=tuple(lu),
            pivots=tuple(pivots),
            log_det=log_det[0],
        )

    def cross_covariance(self, X_test: JAXArray) -> JAXArray:
        """The compressed covariance between the points and ``X_test``

        Each test point is placed in a leaf, where it is compared directly
        with the leaf's points. Its landmark coefficients are then carried up
        the tree through the same transfer matrices as the training points,
        so the result is consistent with the compressed training covariance:
        at a training point it reproduces that point's row.

        Returns:
            An array with shape ``(N, N_test)`` with rows in tree order.
        """
        X_test = as_points(X_test)
        tree = self.tree
        kernel = self.kernel.with_nugget(self.nugget)
        result = np.zeros((tree.num_points, X_test.shape[0]), dtype=self.X.dtype)
        located = tree.locate(X_test)
        for leaf in np.unique(located):
            cols = np.nonzero(located == leaf)[0]
            X_leaf = X_test[cols]
            start, stop = tree.start[leaf], tree.stop[leaf]
            result[start:stop, cols] = np.asarray(kernel(self.X[start:stop], X_leaf))

            node = int(leaf)
            parent = tree.parent[node]
            if parent < 0:
                continue
            coeffs = self.bases[parent].T @ kernel(self.anchors[parent], X_leaf)
            while True:
                sibling = tree.sibling(node)
                start, stop = tree.start[sibling], tree.stop[sibling]
                result[start:stop, cols] = np.asarray(self.factors[sibling] @ coeffs)
                node = parent
                parent = tree.parent[node]
                if parent < 0:
                    break
                coeffs = self.transfers[node].T @ coeffs
        return jnp.asarray(result)


class RLCMFactor(eqx.Module):
    r"""The factorization of a :class:`RLCMatrix`

    ``gains[i]`` holds :math:`A_i^{-1}\,F_i` for every node below the root
    and ``lu``/``pivots`` the LU factorization of each nonleaf node's
    capacitance matrix.
    """

    tree: ClusterTree
    factors: Blocks
    chol: Blocks
    gains: Blocks
    lu: Blocks
    pivots: Blocks
    log_det: JAXArray

    def log_determinant(self) -> JAXArray:
        return self.log_det

    @handle_matvec_shapes
    def solve(self, b: JAXArray) -> JAXArray:
        return _subtree_solve(
            self.tree, self.factors, self.chol, self.gains, self.lu, self.pivots, 0, b
        )


def _subtree_solve(
    tree: ClusterTree,
    factors: Blocks,
    chol: Blocks,
    gains: Blocks,
    lu: Blocks,
    pivots: Blocks,
    node: int,
    b: JAXArray,
) -> JAXArray:
    if tree.is_leaf(node):
        return linalg.cho_solve((chol[node], True), b)
    left, right = tree.left[node], tree.right[node]
    split = tree.size(left)
    args = (tree, factors, chol, gains, lu, pivots)
    z1 = _subtree_solve(*args, left, b[:split])
    z2 = _subtree_solve(*args, right, b[split:])
    F1, F2 = factors[left], factors[right]
    width = F1.shape[1]
    s = linalg.lu_solve(
        (lu[node], pivots[node]), jnp.concatenate((F1.T @ z1, F2.T @ z2), axis=0)
    )
    x1 = z1 - gains[left] @ s[:width]
    x2 = z2 - gains[right] @ s[width:]
    return jnp.concatenate((x1, x2), axis=0)


def _leaf_cholesky(block: JAXArray, node: int, max_tries: int = 10) -> JAXArray:
    chol = linalg.cholesky(block, lower=True)
    if bool(jnp.all(jnp.isfinite(chol))):
        return chol

    scale = jnp.max(jnp.abs(jnp.diag(block)))
    eps = jnp.finfo(block.dtype).eps
    eye = jnp.eye(block.shape[0], dtype=block.dtype)
    for attempt in range(1, max_tries + 1):
        jitter = scale * eps * 10.0**attempt
        chol = linalg.cholesky(block + jitter * eye, lower=True)
        if bool(jnp.all(jnp.isfinite(chol))):
            warnings.warn(
                f"The diagonal block of leaf {node} is not numerically positive "
                f"definite; added jitter {float(jitter):.3e} to factorize it",
                NumericalStabilityWarning,
                stacklevel=3,
            )
            return chol
    raise ValueError(
        f"Failed to factorize the diagonal block of leaf {node}, even with jitter"
    )


def _check_capacitance_sign(lu: JAXArray, pivots: JAXArray, node: int) -> None:
    diag = np.asarray(jnp.diag(lu))
    swaps = np.count_nonzero(np.asarray(pivots) != np.arange(len(pivots)))
    sign = np.prod(np.sign(diag)) * (-1) ** swaps
    width = len(diag) // 2
    if sign != (-1) ** width:
        warnings.warn(
            f"The capacitance matrix of node {node} has determinant sign {sign:+.0f} "
            f"but {(-1) ** width:+d} is required for a positive definite matrix; "
            "the log determinant uses absolute values",
            NumericalStabilityWarning,
            stacklevel=3,
        )
